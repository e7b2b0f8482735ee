# src/services/audit.py
"""Admin audit trail and ranking history helpers."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from src.db.models import AdminAuditLog, RankingHistory, Therapist

logger = logging.getLogger(__name__)


def log_admin_action(
    session: Session,
    actor_user_id: Optional[str],
    action: str,
    target_user_id: Optional[str] = None,
    target_email: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AdminAuditLog:
    entry = AdminAuditLog(
        actor_user_id=actor_user_id,
        action=action,
        target_user_id=target_user_id,
        target_email=target_email,
        details=details or {},
    )
    session.add(entry)
    logger.info(f"📝 Audit: {action} by {actor_user_id or 'system'} on {target_user_id or target_email}")
    return entry


def set_ranking(
    session: Session,
    therapist: Therapist,
    new_points: int,
    change_type: str,
    reason: str,
) -> RankingHistory:
    """Set a therapist's ranking points and record the change. Floors at 0."""
    previous = therapist.ranking_points or 0
    new_points = max(0, int(new_points))
    therapist.ranking_points = new_points
    history = RankingHistory(
        therapist_id=therapist.user_id,
        previous_points=previous,
        new_points=new_points,
        change_type=change_type,
        change_reason=reason,
    )
    session.add(history)
    return history


def adjust_ranking(
    session: Session, therapist: Therapist, delta: int, change_type: str, reason: str
) -> RankingHistory:
    return set_ranking(
        session, therapist, (therapist.ranking_points or 0) + delta, change_type, reason
    )
