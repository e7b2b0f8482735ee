# src/api/payments.py
"""Admin commission payment endpoints."""
import logging

from flask import Blueprint, g, jsonify, request

from src.api.schemas import PaymentActionIn, PaymentDeleteIn, RecalcIn, parse_body
from src.auth import require_admin
from src.db import get_db_session
from src.services.errors import ServiceError
from src.services.notification_service import notification_service
from src.services.payment_service import payment_service

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__)


@payments_bp.route("/api/admin/payments/list", methods=["GET"])
@require_admin
def list_payments():
    session = get_db_session()
    try:
        payments = payment_service.list_payments(session, request.args.get("month") or None)
        return jsonify({"payments": payments, "count": len(payments)})
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.error(f"❌ Error listing payments: {str(e)}")
        return jsonify({"error": "Failed to load payments"}), 500


@payments_bp.route("/api/admin/payments", methods=["POST"])
@require_admin
def payment_action():
    """Apply one of ``mark_complete``, ``mark_paid_again``, ``mark_overdue``
    or ``update_notes`` to a payment."""
    payload, error = parse_body(PaymentActionIn)
    if error:
        return error

    session = get_db_session()
    try:
        result = payment_service.perform_action(
            session, payload.action, payload.model_dump(), g.current_user.user_id
        )
        return jsonify(result)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error applying payment action {payload.action}: {str(e)}")
        return jsonify({"error": "Failed to update payment"}), 500


@payments_bp.route("/api/admin/payments/recalc", methods=["POST"])
@require_admin
def recalc_payment():
    payload, error = parse_body(RecalcIn)
    if error:
        return error

    session = get_db_session()
    try:
        return jsonify(
            payment_service.recalculate(session, payload.therapist_id, payload.session_date)
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error recalculating payment: {str(e)}")
        return jsonify({"error": "Failed to recalculate payment"}), 500


@payments_bp.route("/api/admin/payments/delete", methods=["POST"])
@require_admin
def delete_payment():
    payload, error = parse_body(PaymentDeleteIn)
    if error:
        return error

    session = get_db_session()
    try:
        return jsonify(
            payment_service.delete_payment(session, payload.payment_id, g.current_user.user_id)
        )
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error deleting payment: {str(e)}")
        return jsonify({"error": "Failed to delete payment"}), 500


@payments_bp.route("/api/admin/backfill-commissions", methods=["POST"])
@require_admin
def backfill_commissions():
    session = get_db_session()
    try:
        return jsonify(payment_service.backfill_commissions(session))
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error backfilling commissions: {str(e)}")
        return jsonify({"error": "Failed to backfill commissions"}), 500


@payments_bp.route("/api/admin/payments/notifications/run", methods=["POST"])
@require_admin
def run_payment_notifications():
    """Run the staged notification dispatcher now instead of waiting for
    the scheduler."""
    session = get_db_session()
    try:
        return jsonify(notification_service.dispatch_due_notifications(session))
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error dispatching payment notifications: {str(e)}")
        return jsonify({"error": "Failed to run notifications"}), 500
