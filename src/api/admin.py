# src/api/admin.py
"""
Admin endpoints: therapist management, invitations, the session calendar,
contact requests and match analytics.
"""
import logging

from flask import Blueprint, g, jsonify, request

from src.api.schemas import (
    BulkInviteIn,
    CommissionIn,
    DeleteTherapistIn,
    InviteIn,
    RankingIn,
    SessionIn,
    SessionUpdateIn,
    ToggleOnlineIn,
    parse_body,
)
from src.auth import require_admin
from src.db import get_db_session
from src.services.errors import ServiceError
from src.services.invitation_service import invitation_service
from src.services.match_service import match_service
from src.services.session_service import session_service
from src.services.therapist_service import therapist_service

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def _actor() -> str:
    return g.current_user.user_id


# ---------------------------------------------------------------------------
# Therapists
# ---------------------------------------------------------------------------


@admin_bp.route("/api/admin/therapists", methods=["GET"])
@require_admin
def list_therapists():
    session = get_db_session()
    try:
        result = therapist_service.list_for_admin(
            session,
            page=_int_arg("page", 1),
            page_size=_int_arg("page_size", 25),
            sort=request.args.get("sort", "ranking"),
            status=request.args.get("status") or None,
            q=request.args.get("q") or None,
        )
        return jsonify(result)
    except Exception as e:
        logger.error(f"❌ Error listing therapists: {str(e)}")
        return jsonify({"error": "Failed to load therapists"}), 500


@admin_bp.route("/api/admin/therapists/<therapist_id>", methods=["GET"])
@require_admin
def therapist_detail(therapist_id):
    session = get_db_session()
    try:
        return jsonify(therapist_service.detail_for_admin(session, therapist_id))
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"❌ Error loading therapist {therapist_id}: {str(e)}")
        return jsonify({"error": "Failed to load therapist"}), 500


@admin_bp.route("/api/admin/therapists/commission", methods=["POST"])
@require_admin
def update_commission():
    payload, error = parse_body(CommissionIn)
    if error:
        return error

    session = get_db_session()
    try:
        result = therapist_service.set_commission(
            session, payload.therapist_id, payload.commission_per_session, _actor()
        )
        return jsonify(result)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error updating commission: {str(e)}")
        return jsonify({"error": "Failed to update commission"}), 500


@admin_bp.route("/api/admin/therapists/toggle-online", methods=["POST"])
@require_admin
def toggle_online():
    payload, error = parse_body(ToggleOnlineIn)
    if error:
        return error

    session = get_db_session()
    try:
        result = therapist_service.set_remote_available(
            session, payload.therapist_id, payload.remote_available
        )
        return jsonify(result)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error toggling online availability: {str(e)}")
        return jsonify({"error": "Failed to update therapist"}), 500


@admin_bp.route("/api/admin/therapists/ranking", methods=["POST"])
@require_admin
def update_ranking():
    payload, error = parse_body(RankingIn)
    if error:
        return error

    session = get_db_session()
    try:
        result = therapist_service.set_ranking_points(
            session, payload.therapist_id, payload.ranking_points, payload.reason, _actor()
        )
        return jsonify(result)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error updating ranking: {str(e)}")
        return jsonify({"error": "Failed to update ranking"}), 500


# ---------------------------------------------------------------------------
# Invitations and account removal
# ---------------------------------------------------------------------------


@admin_bp.route("/api/admin/invite-therapist", methods=["POST"])
@require_admin
def invite_therapist():
    payload, error = parse_body(InviteIn)
    if error:
        return error

    session = get_db_session()
    try:
        result = invitation_service.invite(session, payload.email, _actor())
        if not result["success"]:
            # The undeliverable status is still committed.
            return jsonify({"error": "Failed to send invitation email", "details": result["error"]}), 500
        message = "Invitation resent" if result["resent"] else "Invitation sent"
        return jsonify({"ok": True, "message": message, "resent": result["resent"]})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error inviting therapist: {str(e)}")
        return jsonify({"error": "Failed to invite therapist"}), 500


@admin_bp.route("/api/admin/invite-therapist/bulk", methods=["POST"])
@require_admin
def bulk_invite():
    payload, error = parse_body(BulkInviteIn)
    if error:
        return error

    session = get_db_session()
    try:
        results = invitation_service.bulk_invite(session, payload.emails, _actor())
        return jsonify({"results": results})
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error in bulk invite: {str(e)}")
        return jsonify({"error": "Failed to send invitations"}), 500


@admin_bp.route("/api/admin/resend-invitation", methods=["POST"])
@require_admin
def resend_invitation():
    payload, error = parse_body(InviteIn)
    if error:
        return error

    session = get_db_session()
    try:
        result = invitation_service.resend_for_account(session, payload.email, _actor())
        if not result["success"]:
            return jsonify({"error": "Failed to send invitation email", "details": result["error"]}), 500
        return jsonify({"ok": True, "message": "Invitation resent"})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error resending invitation: {str(e)}")
        return jsonify({"error": "Failed to resend invitation"}), 500


@admin_bp.route("/api/admin/delete-therapist", methods=["POST"])
@require_admin
def delete_therapist():
    payload, error = parse_body(DeleteTherapistIn)
    if error:
        return error

    session = get_db_session()
    try:
        return jsonify(invitation_service.delete_therapist(session, payload.user_id, _actor()))
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error deleting therapist {payload.user_id}: {str(e)}")
        return jsonify({"error": "Failed to delete therapist"}), 500


# ---------------------------------------------------------------------------
# Contact requests and analytics
# ---------------------------------------------------------------------------


@admin_bp.route("/api/admin/contact-requests", methods=["GET"])
@require_admin
def list_contact_requests():
    session = get_db_session()
    try:
        result = session_service.list_contact_requests(
            session,
            page=_int_arg("page", 1),
            page_size=_int_arg("page_size", 50),
            status=request.args.get("status") or None,
        )
        return jsonify(result)
    except Exception as e:
        logger.error(f"❌ Error listing contact requests: {str(e)}")
        return jsonify({"error": "Failed to load contact requests"}), 500


@admin_bp.route("/api/admin/analytics/match", methods=["GET"])
@require_admin
def match_analytics():
    session = get_db_session()
    try:
        result = match_service.analytics(
            session, request.args.get("from"), request.args.get("to")
        )
        return jsonify(result)
    except Exception as e:
        logger.error(f"❌ Error building match analytics: {str(e)}")
        return jsonify({"error": "Failed to load analytics"}), 500


# ---------------------------------------------------------------------------
# Session calendar
# ---------------------------------------------------------------------------


@admin_bp.route("/api/admin/sessions", methods=["GET"])
@require_admin
def list_sessions():
    session = get_db_session()
    try:
        sessions = session_service.list_sessions(
            session,
            therapist_id=request.args.get("therapist_id") or None,
            date_from=request.args.get("from") or None,
            date_to=request.args.get("to") or None,
        )
        return jsonify({"sessions": sessions, "count": len(sessions)})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"❌ Error listing sessions: {str(e)}")
        return jsonify({"error": "Failed to load sessions"}), 500


@admin_bp.route("/api/admin/sessions", methods=["POST"])
@require_admin
def create_session():
    payload, error = parse_body(SessionIn)
    if error:
        return error

    session = get_db_session()
    try:
        return jsonify(session_service.create_session(session, payload.model_dump())), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error creating session: {str(e)}")
        return jsonify({"error": "Failed to create session"}), 500


@admin_bp.route("/api/admin/sessions/<session_id>", methods=["PUT"])
@require_admin
def update_session(session_id):
    payload, error = parse_body(SessionUpdateIn)
    if error:
        return error

    session = get_db_session()
    try:
        result = session_service.update_session(
            session, session_id, payload.model_dump(exclude_unset=True)
        )
        return jsonify(result)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error updating session {session_id}: {str(e)}")
        return jsonify({"error": "Failed to update session"}), 500


@admin_bp.route("/api/admin/sessions/<session_id>", methods=["DELETE"])
@require_admin
def delete_session(session_id):
    session = get_db_session()
    try:
        return jsonify(session_service.delete_session(session, session_id))
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error deleting session {session_id}: {str(e)}")
        return jsonify({"error": "Failed to delete session"}), 500
