# src/services/notification_service.py
"""
Staged payment notifications.

Each open payment moves through four stages relative to its due date:

    reminder_3_days_before   due - 3 days   reminder email
    deadline_notification    due            deadline email
    warning_3_days_after     due + 3 days   pending -> overdue, ranking penalty, warning email
    suspension_6_days_after  due + 6 days   therapist suspended, suspension email

The dispatcher runs on a schedule and sends every stage whose time has
passed, at most once per payment. A stage that was already in the past when
the payment row was created is never sent.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from src.db.models import (
    PaymentNotification,
    Profile,
    Therapist,
    TherapistNotification,
    TherapistPayment,
)
from src.services.email_service import email_service
from src.services.payment_service import payment_service

logger = logging.getLogger(__name__)

REMINDER = "reminder_3_days_before"
DEADLINE = "deadline_notification"
WARNING = "warning_3_days_after"
SUSPENSION = "suspension_6_days_after"

STAGE_OFFSETS: List[Tuple[str, timedelta]] = [
    (REMINDER, timedelta(days=-3)),
    (DEADLINE, timedelta(days=0)),
    (WARNING, timedelta(days=3)),
    (SUSPENSION, timedelta(days=6)),
]

STAGE_TITLES = {
    REMINDER: "Payment due in 3 days",
    DEADLINE: "Payment due today",
    WARNING: "Payment overdue",
    SUSPENSION: "Account suspended",
}


def stage_times(payment: TherapistPayment) -> Dict[str, datetime]:
    """UTC instants (naive) at which each stage becomes due."""
    due = payment.payment_due_date
    due_at = datetime(due.year, due.month, due.day)
    return {stage: due_at + offset for stage, offset in STAGE_OFFSETS}


def due_stages(payment: TherapistPayment, now: datetime, already_sent) -> List[str]:
    """Stages of ``payment`` that should be sent at ``now``."""
    created_at = payment.created_at or datetime.min
    stages = []
    for stage, when in stage_times(payment).items():
        if stage in already_sent:
            continue
        if when > now:
            continue
        if when < created_at:
            continue
        stages.append(stage)
    return stages


class PaymentNotificationService:
    def _apply_stage(
        self, session: Session, stage: str, payment: TherapistPayment, therapist: Therapist
    ) -> None:
        if stage == WARNING and payment.status == "pending":
            payment.status = "overdue"
            payment_service.apply_overdue_penalty(session, therapist, payment)
        elif stage == SUSPENSION:
            payment_service.suspend_for_nonpayment(session, therapist, payment)

    def _send_email(self, stage: str, email: str, therapist: Therapist, payment: TherapistPayment) -> Dict[str, Any]:
        senders: Dict[str, Callable] = {
            REMINDER: email_service.send_payment_reminder,
            DEADLINE: email_service.send_payment_deadline,
            WARNING: email_service.send_payment_warning,
            SUSPENSION: email_service.send_account_suspended,
        }
        return senders[stage](
            email, therapist.full_name, payment.commission_amount, payment.payment_due_date
        )

    def process_stage(
        self, session: Session, payment: TherapistPayment, stage: str
    ) -> Optional[PaymentNotification]:
        """Send one stage for one payment. Returns the delivery record, or
        None when the stage was skipped."""
        if payment.status == "completed":
            logger.debug(f"⏭️ Payment {payment.id} completed, skipping {stage}")
            return None

        therapist = session.get(Therapist, payment.therapist_id)
        if therapist is None:
            logger.warning(f"⚠️ Payment {payment.id} has no therapist, skipping {stage}")
            return None
        if therapist.status == "suspended":
            logger.debug(f"⏭️ Therapist {therapist.user_id} already suspended, skipping {stage}")
            return None

        self._apply_stage(session, stage, payment, therapist)

        profile = session.get(Profile, therapist.user_id)
        result = {"success": False, "email_id": None}
        if profile is not None and profile.email:
            result = self._send_email(stage, profile.email, therapist, payment)
            if not result["success"]:
                logger.error(
                    f"❌ {stage} email failed for payment {payment.id}: {result.get('error')}"
                )

        session.add(
            TherapistNotification(
                therapist_id=therapist.user_id,
                title=STAGE_TITLES[stage],
                message=(
                    f"Commission of ${float(payment.commission_amount or 0):.2f} "
                    f"due {payment.payment_due_date.isoformat()}"
                ),
            )
        )
        record = PaymentNotification(
            payment_id=payment.id, stage=stage, email_id=result.get("email_id")
        )
        session.add(record)
        logger.info(f"🔔 {stage} processed for payment {payment.id}")
        return record

    def dispatch_due_notifications(
        self, session: Session, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Send every due, unsent stage for every open payment."""
        now = now or datetime.utcnow()
        processed = 0
        skipped = 0
        failed = 0

        payments = (
            session.query(TherapistPayment)
            .filter(TherapistPayment.status.in_(("pending", "overdue")))
            .filter(TherapistPayment.payment_due_date <= (now + timedelta(days=3)).date())
            .all()
        )

        for payment in payments:
            sent = {
                row.stage
                for row in session.query(PaymentNotification.stage).filter(
                    PaymentNotification.payment_id == payment.id
                )
            }
            for stage in due_stages(payment, now, sent):
                # A failed stage leaves no partial status or ranking change.
                savepoint = session.begin_nested()
                try:
                    record = self.process_stage(session, payment, stage)
                    session.flush()
                    savepoint.commit()
                except Exception as e:
                    savepoint.rollback()
                    failed += 1
                    logger.error(f"❌ Failed {stage} for payment {payment.id}: {str(e)}")
                    break
                if record is None:
                    skipped += 1
                else:
                    processed += 1

        logger.info(
            f"📬 Payment notifications: {processed} sent, {skipped} skipped, {failed} failed"
        )
        return {"processed": processed, "skipped": skipped, "failed": failed}


notification_service = PaymentNotificationService()
