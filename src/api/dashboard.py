# src/api/dashboard.py
"""Therapist self-service: onboarding, dashboard, requests, sessions, profile."""
import logging

from flask import Blueprint, g, jsonify

from src.api.schemas import (
    ImageUploadIn,
    OnboardingIn,
    ProfileUpdateIn,
    RejectIn,
    RescheduleIn,
    ScheduleIn,
    SessionIn,
    parse_body,
)
from src.auth import require_therapist
from src.db import get_db_session
from src.services.errors import ServiceError
from src.services.session_service import session_service
from src.services.therapist_service import therapist_service
from src.utils.s3 import create_profile_image_upload

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint("dashboard", __name__)


def _run(action: str, fn, *args, status: int = 200, **kwargs):
    """Call a service function inside the request session and map its errors."""
    session = get_db_session()
    try:
        return jsonify(fn(session, *args, **kwargs)), status
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error during {action}: {str(e)}")
        return jsonify({"error": f"Failed to {action}"}), 500


@dashboard_bp.route("/api/onboarding/therapist/complete", methods=["POST"])
@require_therapist
def complete_onboarding():
    payload, error = parse_body(OnboardingIn)
    if error:
        return error
    return _run(
        "complete onboarding",
        therapist_service.complete_onboarding,
        g.current_user,
        payload.model_dump(),
    )


@dashboard_bp.route("/api/dashboard", methods=["GET"])
@require_therapist
def get_dashboard():
    return _run("load dashboard", session_service.dashboard, g.current_user.user_id)


@dashboard_bp.route("/api/dashboard/requests/<request_id>/accept", methods=["POST"])
@require_therapist
def accept_request(request_id):
    return _run("accept request", session_service.accept_request, g.current_user.user_id, request_id)


@dashboard_bp.route("/api/dashboard/requests/<request_id>/reject", methods=["POST"])
@require_therapist
def reject_request(request_id):
    payload, error = parse_body(RejectIn)
    if error:
        return error
    return _run(
        "reject request",
        session_service.reject_request,
        g.current_user.user_id,
        request_id,
        payload.rejection_reason,
    )


@dashboard_bp.route("/api/dashboard/requests/<request_id>/schedule", methods=["POST"])
@require_therapist
def schedule_request(request_id):
    payload, error = parse_body(ScheduleIn)
    if error:
        return error
    return _run(
        "schedule session",
        session_service.schedule_request,
        g.current_user.user_id,
        request_id,
        payload.session_date,
        payload.duration_minutes,
        payload.price,
    )


@dashboard_bp.route("/api/dashboard/requests/<request_id>/reschedule", methods=["POST"])
@require_therapist
def reschedule_request(request_id):
    payload, error = parse_body(RescheduleIn)
    if error:
        return error
    return _run(
        "reschedule session",
        session_service.reschedule_request,
        g.current_user.user_id,
        request_id,
        payload.session_date,
    )


@dashboard_bp.route("/api/dashboard/sessions", methods=["POST"])
@require_therapist
def create_session():
    payload, error = parse_body(SessionIn)
    if error:
        return error
    return _run(
        "create session",
        session_service.create_own_session,
        g.current_user.user_id,
        payload.model_dump(),
        status=201,
    )


@dashboard_bp.route("/api/dashboard/sessions/<session_id>/reschedule", methods=["POST"])
@require_therapist
def reschedule_session(session_id):
    payload, error = parse_body(RescheduleIn)
    if error:
        return error
    return _run(
        "reschedule session",
        session_service.reschedule_session,
        g.current_user.user_id,
        session_id,
        payload.session_date,
    )


@dashboard_bp.route("/api/dashboard/notifications/<notification_id>/read", methods=["POST"])
@require_therapist
def mark_notification_read(notification_id):
    return _run(
        "update notification",
        session_service.mark_notification_read,
        g.current_user.user_id,
        notification_id,
    )


@dashboard_bp.route("/api/dashboard/notifications/read-all", methods=["POST"])
@require_therapist
def mark_all_notifications_read():
    return _run(
        "update notifications",
        session_service.mark_all_notifications_read,
        g.current_user.user_id,
    )


@dashboard_bp.route("/api/dashboard/profile", methods=["PATCH"])
@require_therapist
def update_profile():
    payload, error = parse_body(ProfileUpdateIn)
    if error:
        return error
    return _run(
        "update profile",
        therapist_service.update_profile,
        g.current_user.user_id,
        payload.model_dump(exclude_unset=True),
    )


@dashboard_bp.route("/api/dashboard/profile/image-upload-url", methods=["POST"])
@require_therapist
def image_upload_url():
    payload, error = parse_body(ImageUploadIn)
    if error:
        return error

    upload = create_profile_image_upload(g.current_user.user_id, payload.content_type)
    if upload is None:
        return jsonify({"error": "Image uploads are not available"}), 503
    return jsonify(upload)
