# src/services/session_service.py
"""
Therapy sessions and the contact-request workflow.

Every write that touches a session recalculates the commission of the
period(s) the session falls in, inside the caller's transaction.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from src.db.models import (
    ContactRequest,
    Profile,
    RankingHistory,
    Session as TherapySession,
    Therapist,
    TherapistNotification,
    TherapistPayment,
)
from src.services.billing import current_period
from src.services.email_service import email_service
from src.services.errors import NotFoundError, ServiceError
from src.services.payment_service import payment_service
from src.services.scheduling import (
    TOO_CLOSE_THRESHOLD,
    annotate_sessions,
    find_too_close_sessions,
    to_utc,
)

logger = logging.getLogger(__name__)

SESSION_FIELDS = (
    "patient_id",
    "client_name",
    "client_email",
    "client_phone",
    "session_date",
    "duration_minutes",
    "price",
    "status",
    "color_tag",
    "notes",
)

GREEN_DOT_WINDOW = timedelta(days=30)


def naive_utc(value: Any) -> datetime:
    """Storage form for datetimes: naive UTC."""
    dt = to_utc(value)
    if dt is None:
        raise ServiceError("Invalid session_date")
    return dt.replace(tzinfo=None)


class SessionService:
    # -- lookups ------------------------------------------------------------

    def _get_session(self, session: Session, session_id: str, therapist_id: Optional[str] = None) -> TherapySession:
        row = session.get(TherapySession, session_id)
        if row is None or (therapist_id and row.therapist_id != therapist_id):
            raise NotFoundError("Session not found")
        return row

    def _get_request(self, session: Session, request_id: str, therapist_id: Optional[str] = None) -> ContactRequest:
        row = session.get(ContactRequest, request_id)
        if row is None or (therapist_id and row.therapist_id != therapist_id):
            raise NotFoundError("Request not found")
        return row

    def _recalc(self, session: Session, therapist_id: str, dates: Iterable[datetime]) -> None:
        seen = set()
        for when in dates:
            if when is None:
                continue
            key = (when.year, when.month, when.day <= 15)
            if key in seen:
                continue
            seen.add(key)
            payment_service.recalculate(session, therapist_id, when)

    # -- admin calendar -----------------------------------------------------

    def list_sessions(
        self,
        session: Session,
        therapist_id: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        start = naive_utc(date_from) if date_from else None
        end = naive_utc(date_to) if date_to else None

        # Neighbours up to the threshold outside the window still count.
        query = session.query(TherapySession)
        if therapist_id:
            query = query.filter(TherapySession.therapist_id == therapist_id)
        if start:
            query = query.filter(TherapySession.session_date >= start - TOO_CLOSE_THRESHOLD)
        if end:
            query = query.filter(TherapySession.session_date < end + TOO_CLOSE_THRESHOLD)
        scanned = query.order_by(TherapySession.session_date.asc()).all()

        flagged = find_too_close_sessions(scanned)
        rows = [
            row
            for row in scanned
            if (start is None or row.session_date >= start)
            and (end is None or row.session_date < end)
        ]
        return annotate_sessions(rows, flagged)

    def create_session(self, session: Session, data: Dict[str, Any]) -> Dict[str, Any]:
        therapist_id = data.get("therapist_id")
        if not therapist_id or session.get(Therapist, therapist_id) is None:
            raise NotFoundError("Therapist not found")

        row = TherapySession(therapist_id=therapist_id)
        for field in SESSION_FIELDS:
            if field in data and data[field] is not None:
                setattr(row, field, data[field])
        row.session_date = naive_utc(data["session_date"])
        session.add(row)

        self._recalc(session, therapist_id, [row.session_date])
        logger.info(f"📅 Created session {row.id} for {therapist_id} at {row.session_date}")
        return row.to_dict()

    def update_session(self, session: Session, session_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        row = self._get_session(session, session_id)
        previous_date = row.session_date

        for field, value in changes.items():
            if field not in SESSION_FIELDS:
                continue
            if field == "session_date":
                value = naive_utc(value)
            setattr(row, field, value)

        self._recalc(session, row.therapist_id, [previous_date, row.session_date])
        return row.to_dict()

    def delete_session(self, session: Session, session_id: str) -> Dict[str, Any]:
        row = self._get_session(session, session_id)
        therapist_id, when = row.therapist_id, row.session_date

        session.query(TherapySession).filter(TherapySession.rescheduled_from == session_id).update(
            {TherapySession.rescheduled_from: None}, synchronize_session=False
        )
        session.query(ContactRequest).filter(ContactRequest.session_id == session_id).update(
            {ContactRequest.session_id: None}, synchronize_session=False
        )
        session.delete(row)
        session.flush()

        self._recalc(session, therapist_id, [when])
        logger.info(f"🗑️ Deleted session {session_id}")
        return {"ok": True}

    def reschedule_session(
        self, session: Session, therapist_id: str, session_id: str, new_date: Any
    ) -> Dict[str, Any]:
        """Mark a session rescheduled and book its replacement."""
        original = self._get_session(session, session_id, therapist_id)
        if original.status != "scheduled":
            raise ServiceError("Only scheduled sessions can be rescheduled")

        original.status = "rescheduled"
        replacement = TherapySession(
            therapist_id=original.therapist_id,
            patient_id=original.patient_id,
            client_name=original.client_name,
            client_email=original.client_email,
            client_phone=original.client_phone,
            session_date=naive_utc(new_date),
            duration_minutes=original.duration_minutes,
            price=original.price,
            status="scheduled",
            color_tag=original.color_tag,
            rescheduled_from=original.id,
        )
        session.add(replacement)

        self._recalc(session, therapist_id, [original.session_date, replacement.session_date])
        return replacement.to_dict()

    # -- contact requests ---------------------------------------------------

    def create_contact_request(self, session: Session, data: Dict[str, Any]) -> Dict[str, Any]:
        therapist = session.get(Therapist, data["therapist_id"])
        if therapist is None or therapist.status != "active":
            raise NotFoundError("Therapist not found")

        request = ContactRequest(
            therapist_id=therapist.user_id,
            client_name=data["client_name"].strip(),
            client_email=data["client_email"].strip().lower(),
            client_phone=(data.get("client_phone") or "").strip() or None,
            message=(data.get("message") or "").strip() or None,
            match_session_id=data.get("match_session_id") or None,
            status="new",
        )
        session.add(request)
        session.flush()

        profile = session.get(Profile, therapist.user_id)
        if profile is not None and profile.email:
            result = email_service.send_contact_request_notification(
                profile.email,
                request.client_name,
                request.client_email,
                request.client_phone,
                request.message,
            )
            if not result["success"]:
                logger.error(
                    f"❌ Contact request {request.id} notification failed: {result.get('error')}"
                )

        logger.info(f"📨 Contact request {request.id} for therapist {therapist.user_id}")
        return {"success": True, "id": request.id}

    def list_contact_requests(
        self, session: Session, page: int = 1, page_size: int = 50, status: Optional[str] = None
    ) -> Dict[str, Any]:
        query = session.query(ContactRequest, Therapist.full_name).outerjoin(
            Therapist, Therapist.user_id == ContactRequest.therapist_id
        )
        if status:
            query = query.filter(ContactRequest.status == status)
        total = query.count()
        page = max(1, page)
        page_size = max(1, min(page_size, 200))
        rows = (
            query.order_by(ContactRequest.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        items = []
        for request, therapist_name in rows:
            data = request.to_dict()
            data["therapist_name"] = therapist_name
            items.append(data)
        return {"requests": items, "count": total, "page": page, "page_size": page_size}

    def accept_request(self, session: Session, therapist_id: str, request_id: str) -> Dict[str, Any]:
        request = self._get_request(session, request_id, therapist_id)
        request.status = "accepted"
        return request.to_dict()

    def reject_request(
        self, session: Session, therapist_id: str, request_id: str, reason: Optional[str] = None
    ) -> Dict[str, Any]:
        request = self._get_request(session, request_id, therapist_id)
        request.status = "rejected"
        request.rejection_reason = (reason or "").strip() or None
        return request.to_dict()

    def schedule_request(
        self,
        session: Session,
        therapist_id: str,
        request_id: str,
        session_date: Any,
        duration_minutes: int = 60,
        price: float = 100,
    ) -> Dict[str, Any]:
        """Book a session for a contact request and link the two."""
        request = self._get_request(session, request_id, therapist_id)
        row = TherapySession(
            therapist_id=therapist_id,
            client_name=request.client_name,
            client_email=request.client_email,
            client_phone=request.client_phone,
            session_date=naive_utc(session_date),
            duration_minutes=duration_minutes,
            price=price,
            status="scheduled",
        )
        session.add(row)
        session.flush()

        request.status = "scheduled"
        request.session_id = row.id

        self._recalc(session, therapist_id, [row.session_date])
        return {"request": request.to_dict(), "session": row.to_dict()}

    def reschedule_request(
        self, session: Session, therapist_id: str, request_id: str, session_date: Any
    ) -> Dict[str, Any]:
        """Move the request's booked session, or book one if it has none."""
        request = self._get_request(session, request_id, therapist_id)
        if request.session_id:
            replacement = self.reschedule_session(session, therapist_id, request.session_id, session_date)
            request.session_id = replacement["id"]
            request.status = "scheduled"
            return {"request": request.to_dict(), "session": replacement}
        return self.schedule_request(session, therapist_id, request_id, session_date)

    # -- therapist dashboard ------------------------------------------------

    def create_own_session(self, session: Session, therapist_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(data)
        data["therapist_id"] = therapist_id
        return self.create_session(session, data)

    def dashboard(self, session: Session, therapist_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.utcnow()
        therapist = session.get(Therapist, therapist_id)
        if therapist is None:
            raise NotFoundError("Therapist not found")
        profile = session.get(Profile, therapist_id)

        requests = (
            session.query(ContactRequest)
            .filter(ContactRequest.therapist_id == therapist_id)
            .order_by(ContactRequest.created_at.desc())
            .all()
        )
        scheduled = (
            session.query(TherapySession)
            .filter(
                TherapySession.therapist_id == therapist_id,
                TherapySession.status == "scheduled",
            )
            .order_by(TherapySession.session_date.asc())
            .all()
        )
        annotated = annotate_sessions(scheduled)
        upcoming = [
            s for s, row in zip(annotated, scheduled) if row.session_date >= now
        ][:5]

        notifications = (
            session.query(TherapistNotification)
            .filter(
                TherapistNotification.therapist_id == therapist_id,
                TherapistNotification.is_read.is_(False),
            )
            .order_by(TherapistNotification.created_at.desc())
            .limit(10)
            .all()
        )

        period = current_period(now)
        open_payment = (
            session.query(TherapistPayment)
            .filter(
                TherapistPayment.therapist_id == therapist_id,
                TherapistPayment.payment_period_start == period.start,
            )
            .first()
        )

        recent_bonus = (
            session.query(RankingHistory.id)
            .filter(
                RankingHistory.therapist_id == therapist_id,
                RankingHistory.change_type == "payment_bonus",
                RankingHistory.created_at >= now - GREEN_DOT_WINDOW,
            )
            .first()
        )

        profile_data = therapist.to_dict()
        profile_data["email"] = profile.email if profile else None
        return {
            "profile": profile_data,
            "requests": [r.to_dict() for r in requests],
            "upcoming_sessions": upcoming,
            "notifications": [n.to_dict() for n in notifications],
            "payment_status": payment_service.payment_status(session, therapist_id, now),
            "current_period": payment_service.live_commission(session, therapist, period, open_payment),
            "has_green_dot": recent_bonus is not None,
        }

    def mark_notification_read(self, session: Session, therapist_id: str, notification_id: str) -> Dict[str, Any]:
        notification = session.get(TherapistNotification, notification_id)
        if notification is None or notification.therapist_id != therapist_id:
            raise NotFoundError("Notification not found")
        notification.is_read = True
        return {"ok": True}

    def mark_all_notifications_read(self, session: Session, therapist_id: str) -> Dict[str, Any]:
        updated = (
            session.query(TherapistNotification)
            .filter(
                TherapistNotification.therapist_id == therapist_id,
                TherapistNotification.is_read.is_(False),
            )
            .update({TherapistNotification.is_read: True}, synchronize_session=False)
        )
        return {"ok": True, "updated": updated}


session_service = SessionService()
