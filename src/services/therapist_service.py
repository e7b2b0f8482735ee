# src/services/therapist_service.py
"""Therapist profiles: onboarding, self-service edits and admin management."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from src.db.models import (
    Location,
    Profile,
    RankingHistory,
    Session as TherapySession,
    Therapist,
    TherapistLocation,
    TherapistPayment,
)
from src.services.audit import log_admin_action, set_ranking
from src.services.billing import current_period
from src.services.cache_service import cache_service
from src.services.errors import NotFoundError
from src.services.payment_service import payment_service
from src.services.scheduling import annotate_sessions, find_too_close_sessions

logger = logging.getLogger(__name__)

DEFAULT_RANKING_POINTS = 50

ADMIN_SORTS = {
    "ranking": lambda t: (-(t["ranking_points"] or 0),),
    "name": lambda t: ((t["full_name"] or "").lower(),),
    "sessions": lambda t: (-(t["total_sessions"] or 0),),
    "created": lambda t: (t["created_at"] or "",),
}


def ensure_location(session: Session, name: str) -> Location:
    location = session.query(Location).filter(Location.name == name).first()
    if location is None:
        location = Location(name=name)
        session.add(location)
        session.flush()
    return location


def set_locations(session: Session, therapist: Therapist, names: List[str]) -> None:
    """Replace the therapist's location links with ``names`` (created on demand)."""
    therapist.location_links.clear()
    session.flush()
    seen = set()
    for raw in names:
        name = raw.strip()
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        location = ensure_location(session, name)
        therapist.location_links.append(
            TherapistLocation(therapist_id=therapist.user_id, location_id=location.id)
        )


def _get_therapist(session: Session, therapist_id: str) -> Therapist:
    therapist = session.get(Therapist, therapist_id)
    if therapist is None:
        raise NotFoundError("Therapist not found")
    return therapist


class TherapistService:
    # -- onboarding / self-service -----------------------------------------

    def complete_onboarding(self, session: Session, profile: Profile, data: Dict[str, Any]) -> Dict[str, Any]:
        now = datetime.utcnow()
        profile.full_name = data["full_name"]
        profile.terms_accepted_at = now

        therapist = session.get(Therapist, profile.user_id)
        if therapist is None:
            therapist = Therapist(user_id=profile.user_id)
            session.add(therapist)

        for field in (
            "full_name",
            "title",
            "bio_short",
            "bio_long",
            "religion",
            "age_range",
            "years_of_experience",
            "languages",
            "interests",
            "session_price_45_min",
            "gender",
        ):
            setattr(therapist, field, data[field])
        if data.get("profile_image_url") is not None:
            therapist.profile_image_url = str(data["profile_image_url"])
        if isinstance(data.get("lgbtq_friendly"), bool):
            therapist.lgbtq_friendly = data["lgbtq_friendly"]

        therapist.status = "active"
        therapist.ranking_points = DEFAULT_RANKING_POINTS
        therapist.total_sessions = 0
        session.flush()

        set_locations(session, therapist, data["locations"])

        log_admin_action(
            session, profile.user_id, "therapist.complete_onboarding", target_user_id=profile.user_id
        )
        cache_service.invalidate_directory_cache()
        logger.info(f"✅ Completed onboarding for {profile.user_id} ({therapist.full_name})")
        return {"ok": True}

    def update_profile(self, session: Session, therapist_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        therapist = _get_therapist(session, therapist_id)
        for field, value in changes.items():
            if field == "profile_image_url" and value is not None:
                value = str(value)
            setattr(therapist, field, value)
        cache_service.invalidate_directory_cache()
        return therapist.to_dict()

    # -- admin --------------------------------------------------------------

    def list_for_admin(
        self,
        session: Session,
        page: int = 1,
        page_size: int = 25,
        sort: str = "ranking",
        status: Optional[str] = None,
        q: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Every therapist account, onboarded or not, merged with its
        therapist row and last session date."""
        profiles = (
            session.query(Profile)
            .filter(Profile.role == "therapist")
            .order_by(Profile.created_at.desc())
            .all()
        )
        user_ids = [p.user_id for p in profiles]

        therapists = {}
        last_active = {}
        if user_ids:
            therapists = {
                t.user_id: t
                for t in session.query(Therapist).filter(Therapist.user_id.in_(user_ids))
            }
            last_active = dict(
                session.query(TherapySession.therapist_id, func.max(TherapySession.session_date))
                .filter(TherapySession.therapist_id.in_(user_ids))
                .group_by(TherapySession.therapist_id)
                .all()
            )

        rows = []
        for profile in profiles:
            therapist = therapists.get(profile.user_id)
            last = last_active.get(profile.user_id)
            rows.append(
                {
                    "user_id": profile.user_id,
                    "email": profile.email,
                    "full_name": (therapist.full_name if therapist else None)
                    or profile.full_name
                    or "(Pending Onboarding)",
                    "title": therapist.title if therapist else None,
                    "status": therapist.status if therapist else "not_onboarded",
                    "ranking_points": (therapist.ranking_points or 0) if therapist else 0,
                    "total_sessions": (therapist.total_sessions or 0) if therapist else 0,
                    "churn_rate_monthly": (therapist.churn_rate_monthly or 0) if therapist else 0,
                    "commission_per_session": therapist.commission_per_session if therapist else None,
                    "remote_available": bool(therapist.remote_available) if therapist else False,
                    "last_active": last.isoformat() if last else None,
                    "has_completed_onboarding": therapist is not None,
                    "created_at": profile.created_at.isoformat() if profile.created_at else None,
                }
            )

        if status:
            rows = [r for r in rows if r["status"] == status]
        if q:
            needle = q.strip().lower()
            rows = [
                r
                for r in rows
                if needle in (r["full_name"] or "").lower() or needle in (r["email"] or "").lower()
            ]

        rows.sort(key=ADMIN_SORTS.get(sort, ADMIN_SORTS["ranking"]))

        total = len(rows)
        page = max(1, page)
        page_size = max(1, min(page_size, 200))
        start = (page - 1) * page_size
        return {
            "therapists": rows[start : start + page_size],
            "count": total,
            "page": page,
            "page_size": page_size,
            "pages": (total + page_size - 1) // page_size,
        }

    def detail_for_admin(self, session: Session, therapist_id: str) -> Dict[str, Any]:
        therapist = _get_therapist(session, therapist_id)
        profile = session.get(Profile, therapist_id)

        sessions = (
            session.query(TherapySession)
            .filter(TherapySession.therapist_id == therapist_id)
            .order_by(TherapySession.session_date.desc())
            .all()
        )
        payments = (
            session.query(TherapistPayment)
            .filter(TherapistPayment.therapist_id == therapist_id)
            .order_by(TherapistPayment.payment_period_start.desc())
            .all()
        )
        history = (
            session.query(RankingHistory)
            .filter(RankingHistory.therapist_id == therapist_id)
            .order_by(RankingHistory.created_at.desc())
            .limit(50)
            .all()
        )

        # Only live bookings can conflict.
        now = datetime.utcnow()
        upcoming = [s for s in sessions if s.status == "scheduled" and s.session_date >= now]
        flagged = find_too_close_sessions(upcoming)

        period = current_period()
        open_payment = next(
            (p for p in payments if p.payment_period_start == period.start), None
        )

        data = therapist.to_dict()
        data["email"] = profile.email if profile else None
        return {
            "therapist": data,
            "sessions": annotate_sessions(sessions, flagged),
            "payments": [p.to_dict() for p in payments],
            "ranking_history": [h.to_dict() for h in history],
            "current_period": payment_service.live_commission(
                session, therapist, period, open_payment
            ),
        }

    def set_commission(
        self, session: Session, therapist_id: str, rate: Optional[float], actor_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        therapist = _get_therapist(session, therapist_id)
        previous = therapist.commission_per_session
        therapist.commission_per_session = rate
        log_admin_action(
            session,
            actor_user_id,
            "therapist.commission_updated",
            target_user_id=therapist_id,
            details={"previous": previous, "commission_per_session": rate},
        )
        return {"ok": True, "commission_per_session": rate}

    def set_remote_available(self, session: Session, therapist_id: str, remote_available: bool) -> Dict[str, Any]:
        therapist = _get_therapist(session, therapist_id)
        therapist.remote_available = remote_available
        cache_service.invalidate_directory_cache()
        return {"ok": True, "remote_available": remote_available}

    def set_ranking_points(
        self,
        session: Session,
        therapist_id: str,
        points: int,
        reason: Optional[str],
        actor_user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        therapist = _get_therapist(session, therapist_id)
        set_ranking(session, therapist, points, "admin_adjustment", reason or "Manual adjustment")
        log_admin_action(
            session,
            actor_user_id,
            "therapist.ranking_updated",
            target_user_id=therapist_id,
            details={"ranking_points": points, "reason": reason},
        )
        cache_service.invalidate_directory_cache()
        return {"ok": True, "ranking_points": therapist.ranking_points}


therapist_service = TherapistService()
