# src/api/auth.py
"""Login, invitation acceptance and password reset."""
import logging

from flask import Blueprint, jsonify

from src.api.schemas import (
    AcceptInviteIn,
    LoginIn,
    PasswordResetConfirmIn,
    PasswordResetIn,
    TokenIn,
    parse_body,
)
from src.auth import create_access_token, verify_password
from src.db import get_db_session
from src.db.models import Profile
from src.services.errors import ServiceError
from src.services.invitation_service import invitation_service
from src.utils.rate_limit import rate_limited

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/api/auth/login", methods=["POST"])
@rate_limited("auth_action")
def login():
    payload, error = parse_body(LoginIn)
    if error:
        return error

    session = get_db_session()
    try:
        profile = (
            session.query(Profile)
            .filter(Profile.email == payload.email.strip().lower())
            .first()
        )
        if profile is None or not verify_password(payload.password, profile.password_hash):
            return jsonify({"error": "Invalid email or password"}), 401
        if profile.email_confirmed_at is None:
            return jsonify({"error": "Email not confirmed"}), 403

        return jsonify(
            {
                "access_token": create_access_token(profile),
                "token_type": "bearer",
                "user": profile.to_dict(),
            }
        )
    except Exception as e:
        logger.error(f"❌ Login error: {str(e)}")
        return jsonify({"error": "Login failed"}), 500


@auth_bp.route("/api/invite/validate", methods=["POST"])
@rate_limited("auth_action")
def validate_invite():
    payload, error = parse_body(TokenIn)
    if error:
        return error

    session = get_db_session()
    try:
        invitation = invitation_service.validate(session, payload.token)
        return jsonify({"valid": True, "email": invitation.email})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"❌ Invite validation error: {str(e)}")
        return jsonify({"error": "Failed to validate invitation"}), 500


@auth_bp.route("/api/invite/accept", methods=["POST"])
@rate_limited("auth_action")
def accept_invite():
    payload, error = parse_body(AcceptInviteIn)
    if error:
        return error

    session = get_db_session()
    try:
        return jsonify(invitation_service.accept(session, payload.token, payload.password))
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Invite acceptance error: {str(e)}")
        return jsonify({"error": "Failed to create account"}), 500


@auth_bp.route("/api/reset-password", methods=["POST"])
@rate_limited("auth_action")
def request_password_reset():
    payload, error = parse_body(PasswordResetIn)
    if error:
        return error

    session = get_db_session()
    try:
        invitation_service.request_password_reset(session, payload.email)
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Password reset request error: {str(e)}")
    # Same answer whether or not the account exists.
    return jsonify({"ok": True, "message": "If that email exists, a reset link has been sent."})


@auth_bp.route("/api/reset-password/confirm", methods=["POST"])
@rate_limited("auth_action")
def confirm_password_reset():
    payload, error = parse_body(PasswordResetConfirmIn)
    if error:
        return error

    session = get_db_session()
    try:
        invitation_service.confirm_password_reset(session, payload.token, payload.password)
        return jsonify({"ok": True})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Password reset confirm error: {str(e)}")
        return jsonify({"error": "Failed to reset password"}), 500
