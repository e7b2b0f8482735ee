# src/services/match_service.py
"""Match quiz events and the conversion analytics built from them."""
import logging
import os
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import distinct
from sqlalchemy.orm import Session

from src.db.models import ContactRequest, MatchEvent
from src.services.directory import DirectoryFilters
from src.services.scheduling import to_utc

logger = logging.getLogger(__name__)

EVENT_FIELDS = (
    "session_id",
    "user_id",
    "problem",
    "city",
    "area",
    "gender",
    "lgbtq",
    "religion",
    "age",
    "exp_band",
    "price_min",
    "price_max",
    "source_page",
    "user_agent",
)

BREAKDOWN_FIELDS = ("problem", "city", "area", "gender", "lgbtq", "religion", "age", "exp_band")

DEFAULT_WINDOW = timedelta(days=30)


def _site_url() -> str:
    return os.getenv(
        "SITE_URL", os.getenv("NEXT_PUBLIC_SITE_URL", "http://localhost:3000")
    ).rstrip("/")


def directory_redirect(event: Dict[str, Any]) -> str:
    """Directory URL pre-filtered with the quiz answers."""
    args = {key: event.get(key) for key in BREAKDOWN_FIELDS if key != "exp_band"}
    args["exp"] = event.get("exp_band")
    args["price_min"] = event.get("price_min")
    args["price_max"] = event.get("price_max")
    query = DirectoryFilters.from_mapping(args).to_query_string()
    return f"{_site_url()}/therapists" + (f"?{query}" if query else "")


def _bound(value: Optional[str], default: datetime) -> datetime:
    dt = to_utc(value) if value else None
    return dt.replace(tzinfo=None) if dt else default


class MatchService:
    def record_event(self, session: Session, data: Dict[str, Any]) -> Dict[str, Any]:
        event = MatchEvent(**{field: data.get(field) for field in EVENT_FIELDS})
        session.add(event)
        session.flush()
        logger.debug(f"🎯 Match event {event.id} for session {event.session_id}")
        return {"ok": True, "id": event.id, "redirect_url": directory_redirect(data)}

    def analytics(
        self, session: Session, date_from: Optional[str] = None, date_to: Optional[str] = None
    ) -> Dict[str, Any]:
        now = datetime.utcnow()
        end = _bound(date_to, now)
        start = _bound(date_from, end - DEFAULT_WINDOW)

        events = (
            session.query(MatchEvent)
            .filter(MatchEvent.created_at >= start, MatchEvent.created_at <= end)
            .all()
        )

        breakdown = {}
        for field in BREAKDOWN_FIELDS:
            counts = Counter(getattr(e, field) or "—" for e in events)
            breakdown[field] = dict(counts.most_common())

        session_ids = {e.session_id for e in events}
        conversions = 0
        if session_ids:
            conversions = (
                session.query(distinct(ContactRequest.match_session_id))
                .filter(ContactRequest.match_session_id.in_(session_ids))
                .count()
            )

        return {
            "from": start.isoformat(),
            "to": end.isoformat(),
            "total_events": len(events),
            "unique_sessions": len(session_ids),
            "conversions": conversions,
            "breakdown": breakdown,
            "prices": [
                {"price_min": e.price_min, "price_max": e.price_max}
                for e in events
                if e.price_min is not None or e.price_max is not None
            ],
        }


match_service = MatchService()
