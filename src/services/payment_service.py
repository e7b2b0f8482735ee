# src/services/payment_service.py
"""
Commission payments: per-period recalculation, admin status actions and
the ranking consequences of paying (or not paying) on time.
"""
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from src.db.models import Session as TherapySession
from src.db.models import (
    PaymentNotification,
    Therapist,
    TherapistPayment,
    TherapistPaymentAction,
)
from src.services.audit import adjust_ranking, log_admin_action, set_ranking
from src.services.billing import (
    COUNTED_SESSION_STATUSES,
    BillingPeriod,
    commission_amount,
    commission_rate,
    month_bounds,
    period_for,
)
from src.services.cache_service import cache_service
from src.services.errors import NotFoundError, ServiceError

logger = logging.getLogger(__name__)

PAYMENT_ACTIONS = ("mark_complete", "mark_paid_again", "mark_overdue", "update_notes")


class PaymentService:
    """Commission bookkeeping. All methods work inside the caller's session
    and leave committing to it."""

    def __init__(self):
        self.default_rate = float(os.getenv("COMMISSION_PER_SESSION", "6"))
        self.bonus_points = int(os.getenv("PAYMENT_BONUS_POINTS", "5"))
        self.penalty_points = int(os.getenv("PAYMENT_PENALTY_POINTS", "10"))

    # -- counting -----------------------------------------------------------

    def count_sessions(
        self,
        session: Session,
        therapist_id: str,
        start: datetime,
        end_exclusive: datetime,
        statuses=COUNTED_SESSION_STATUSES,
    ) -> int:
        if start >= end_exclusive:
            return 0
        return (
            session.query(func.count(TherapySession.id))
            .filter(
                TherapySession.therapist_id == therapist_id,
                TherapySession.status.in_(statuses),
                TherapySession.session_date >= start,
                TherapySession.session_date < end_exclusive,
            )
            .scalar()
            or 0
        )

    def live_commission(
        self,
        session: Session,
        therapist: Therapist,
        period: BillingPeriod,
        payment: Optional[TherapistPayment] = None,
    ) -> Dict[str, Any]:
        """Commission accrued in ``period`` since the last paid action (or
        since the period start)."""
        calc_start = period.start_at
        if payment is not None and payment.last_paid_action_at:
            calc_start = max(calc_start, payment.last_paid_action_at)

        rate = commission_rate(therapist, self.default_rate)
        total = self.count_sessions(
            session, therapist.user_id, period.start_at, period.end_exclusive
        )
        billable = self.count_sessions(
            session, therapist.user_id, calc_start, period.end_exclusive
        )
        return {
            **period.to_dict(),
            "total_sessions": total,
            "billable_sessions": billable,
            "rate": rate,
            "commission_amount": commission_amount(billable, rate),
        }

    # -- recalculation ------------------------------------------------------

    def recalculate(
        self, session: Session, therapist_id: str, session_date: Any
    ) -> Dict[str, Any]:
        """Recount the period containing ``session_date`` and upsert its
        payment row. Raises ValueError for an unparseable date."""
        period = period_for(session_date)
        session.flush()

        therapist = session.get(Therapist, therapist_id)
        if therapist is None:
            raise NotFoundError("Therapist not found")

        payment = (
            session.query(TherapistPayment)
            .filter(
                TherapistPayment.therapist_id == therapist_id,
                TherapistPayment.payment_period_start == period.start,
            )
            .first()
        )

        live = self.live_commission(session, therapist, period, payment)

        if payment is None:
            payment = TherapistPayment(
                therapist_id=therapist_id,
                payment_period_start=period.start,
                payment_period_end=period.end,
                payment_due_date=period.due_date,
                status="pending",
            )
            session.add(payment)
            logger.info(
                f"💳 Opened payment period {period.start}..{period.end} for {therapist_id}"
            )

        payment.total_sessions = live["total_sessions"]
        payment.commission_amount = live["commission_amount"]
        session.flush()

        return {
            "ok": True,
            "payment_id": payment.id,
            "total_sessions": live["total_sessions"],
            "commission_amount": live["commission_amount"],
            "period_start": period.start.isoformat(),
            "period_end": period.end.isoformat(),
        }

    def backfill_commissions(self, session: Session) -> Dict[str, Any]:
        """Recompute every payment from the completed sessions in its period."""
        updated = 0
        payments = session.query(TherapistPayment).all()
        for payment in payments:
            therapist = session.get(Therapist, payment.therapist_id)
            if therapist is None:
                continue
            period = period_for(payment.payment_period_start)
            completed = self.count_sessions(
                session,
                payment.therapist_id,
                period.start_at,
                period.end_exclusive,
                statuses=("completed",),
            )
            rate = commission_rate(therapist, self.default_rate)
            payment.total_sessions = completed
            payment.commission_amount = commission_amount(completed, rate)
            updated += 1
        logger.info(f"✅ Backfilled commissions for {updated} payments")
        return {"ok": True, "updated": updated}

    # -- listing ------------------------------------------------------------

    def list_payments(self, session: Session, month: Optional[str] = None) -> List[Dict[str, Any]]:
        query = session.query(TherapistPayment, Therapist.full_name).outerjoin(
            Therapist, Therapist.user_id == TherapistPayment.therapist_id
        )
        if month:
            first, next_first = month_bounds(month)
            query = query.filter(
                TherapistPayment.payment_period_start >= first,
                TherapistPayment.payment_period_start < next_first,
            )
        rows = query.order_by(TherapistPayment.payment_period_start.desc()).all()

        result = []
        for payment, therapist_name in rows:
            data = payment.to_dict()
            data["therapist_name"] = therapist_name
            result.append(data)
        return result

    # -- status transitions -------------------------------------------------

    def _get_payment(self, session: Session, payment_id: str) -> TherapistPayment:
        payment = session.get(TherapistPayment, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    def _get_therapist(self, session: Session, therapist_id: str) -> Therapist:
        therapist = session.get(Therapist, therapist_id)
        if therapist is None:
            raise NotFoundError("Therapist not found")
        return therapist

    def apply_payment_bonus(self, session: Session, therapist: Therapist, payment: TherapistPayment):
        adjust_ranking(
            session,
            therapist,
            self.bonus_points,
            "payment_bonus",
            f"Commission paid for {payment.payment_period_start}",
        )
        if therapist.status == "warning":
            therapist.status = "active"
        cache_service.invalidate_directory_cache()

    def apply_overdue_penalty(self, session: Session, therapist: Therapist, payment: TherapistPayment):
        adjust_ranking(
            session,
            therapist,
            -self.penalty_points,
            "payment_overdue",
            f"Commission overdue for {payment.payment_period_start}",
        )
        if therapist.status == "active":
            therapist.status = "warning"
        cache_service.invalidate_directory_cache()

    def suspend_for_nonpayment(self, session: Session, therapist: Therapist, payment: TherapistPayment):
        payment.status = "suspended"
        therapist.status = "suspended"
        set_ranking(
            session,
            therapist,
            0,
            "suspension",
            f"Suspended for unpaid commission ({payment.payment_period_start})",
        )
        cache_service.invalidate_directory_cache()
        logger.warning(f"⛔ Therapist {therapist.user_id} suspended for payment {payment.id}")

    def perform_action(
        self, session: Session, action: str, data: Dict[str, Any], actor_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Apply one admin payment action. See ``PAYMENT_ACTIONS``."""
        if action not in PAYMENT_ACTIONS:
            raise ServiceError("Unknown action")

        payment_id = data.get("payment_id")
        if not payment_id:
            raise ServiceError("Missing payment_id")

        if action == "update_notes":
            payment = self._get_payment(session, payment_id)
            payment.admin_notes = data.get("notes") or None
            return {"ok": True}

        therapist_id = data.get("therapist_id")
        if not therapist_id:
            raise ServiceError("Missing fields")

        payment = self._get_payment(session, payment_id)
        therapist = self._get_therapist(session, therapist_id)
        now = datetime.utcnow()

        if action == "mark_complete":
            payment.status = "completed"
            payment.payment_completed_date = now
            self.apply_payment_bonus(session, therapist, payment)

        elif action == "mark_paid_again":
            payment.last_paid_action_at = now
            session.add(
                TherapistPaymentAction(
                    payment_id=payment.id,
                    therapist_id=therapist_id,
                    action="paid_again",
                    amount=data.get("amount"),
                    payment_method=data.get("payment_method") or None,
                    transaction_id=data.get("transaction_id") or None,
                    notes=data.get("notes") or None,
                )
            )
            self.apply_payment_bonus(session, therapist, payment)
            log_admin_action(
                session,
                actor_user_id,
                "payments.mark_paid_again",
                target_user_id=therapist_id,
                details={
                    "payment_id": payment.id,
                    "amount": data.get("amount"),
                    "payment_method": data.get("payment_method"),
                    "transaction_id": data.get("transaction_id"),
                    "notes": data.get("notes"),
                },
            )

        elif action == "mark_overdue":
            payment.status = "overdue"
            self.apply_overdue_penalty(session, therapist, payment)

        logger.info(f"💳 {action} applied to payment {payment.id}")
        return {"ok": True}

    def delete_payment(
        self, session: Session, payment_id: str, actor_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        payment = self._get_payment(session, payment_id)
        session.query(TherapistPaymentAction).filter(
            TherapistPaymentAction.payment_id == payment_id
        ).delete(synchronize_session=False)
        session.query(PaymentNotification).filter(
            PaymentNotification.payment_id == payment_id
        ).delete(synchronize_session=False)
        log_admin_action(
            session,
            actor_user_id,
            "payments.delete",
            target_user_id=payment.therapist_id,
            details={
                "payment_id": payment.id,
                "period_start": payment.payment_period_start.isoformat(),
            },
        )
        session.delete(payment)
        return {"ok": True}

    # -- therapist view -----------------------------------------------------

    def payment_status(self, session: Session, therapist_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Open payments for a therapist with days overdue and suspension risk."""
        now = now or datetime.utcnow()
        payments = (
            session.query(TherapistPayment)
            .filter(
                TherapistPayment.therapist_id == therapist_id,
                TherapistPayment.status != "completed",
            )
            .order_by(TherapistPayment.payment_due_date.asc())
            .all()
        )
        items = []
        for payment in payments:
            due_at = datetime(
                payment.payment_due_date.year,
                payment.payment_due_date.month,
                payment.payment_due_date.day,
            )
            days_overdue = max(0, _ceil_days(now - due_at))
            data = payment.to_dict()
            data["days_overdue"] = days_overdue
            data["suspension_risk"] = days_overdue > 3
            items.append(data)
        return {
            "payments": items,
            "total_due": round(sum(p["commission_amount"] for p in items), 2),
            "suspension_risk": any(p["suspension_risk"] for p in items),
        }


def _ceil_days(delta) -> int:
    seconds = delta.total_seconds()
    days = int(seconds // 86400)
    if seconds % 86400:
        days += 1
    return days


payment_service = PaymentService()
