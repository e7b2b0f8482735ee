# src/services/scheduling.py
"""
Session proximity checks.

Two sessions are "too close" when they belong to the same client of the same
therapist and start less than 48 hours apart. The flag is advisory: callers
surface it in calendars and dashboards but never block a save on it.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

TOO_CLOSE_THRESHOLD = timedelta(hours=48)


def _field(session: Any, name: str) -> Any:
    if isinstance(session, dict):
        return session.get(name)
    return getattr(session, name, None)


def to_utc(value: Any) -> Optional[datetime]:
    """Coerce a datetime or ISO string to an aware UTC datetime.

    Naive values are taken as UTC (that is how they are stored).
    Returns None for anything that can't be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.isoparse(str(value))
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def client_key(session: Any) -> Optional[str]:
    """Grouping key: therapist plus patient id, falling back to client email."""
    therapist_id = _field(session, "therapist_id")
    patient_id = _field(session, "patient_id")
    email = (_field(session, "client_email") or "").strip().lower()

    if patient_id:
        return f"{therapist_id}|p:{patient_id}"
    if email:
        return f"{therapist_id}|e:{email}"
    return None


def find_too_close_sessions(
    sessions: Iterable[Any], threshold: timedelta = TOO_CLOSE_THRESHOLD
) -> Set[str]:
    """Return the ids of sessions that start within ``threshold`` of another
    session for the same client and therapist.

    Accepts ORM rows or dicts. Sessions without a parseable date or without
    any client identity are ignored. Never raises on bad input.
    """
    groups: Dict[str, List[Tuple[datetime, str]]] = {}

    for session in sessions or []:
        key = client_key(session)
        when = to_utc(_field(session, "session_date"))
        session_id = _field(session, "id")
        if key is None or when is None or session_id is None:
            continue
        groups.setdefault(key, []).append((when, str(session_id)))

    flagged: Set[str] = set()
    for entries in groups.values():
        if len(entries) < 2:
            continue
        entries.sort(key=lambda item: item[0])
        for (prev_time, prev_id), (cur_time, cur_id) in zip(entries, entries[1:]):
            if cur_time - prev_time < threshold:
                flagged.add(prev_id)
                flagged.add(cur_id)

    if flagged:
        logger.debug(f"⚠️ {len(flagged)} sessions flagged as too close")
    return flagged


def annotate_sessions(
    sessions: Iterable[Any], flagged: Optional[Set[str]] = None
) -> List[Dict[str, Any]]:
    """Serialize sessions and attach the ``is_too_close`` flag to each.

    ``flagged`` is a precomputed id set when the conflict scan covers a
    different set of sessions than the ones returned.
    """
    rows = list(sessions or [])
    if flagged is None:
        flagged = find_too_close_sessions(rows)
    result = []
    for session in rows:
        data = session.to_dict() if hasattr(session, "to_dict") else dict(session)
        data["is_too_close"] = str(data.get("id")) in flagged
        result.append(data)
    return result
