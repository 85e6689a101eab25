"""
Housekeeping for guest study sessions.

Guest sessions are keyed by an anonymous token and never migrate on their
own, so sessions nobody has touched for the retention window are deleted.
Sessions that were later attached to a learner are kept.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlmodel import Session as DBSession, select

from app.config.settings import get_settings
from app.db.schemas import StudySession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuestSessionStats:
    total: int
    active: int
    abandoned: int
    migrated: int


def find_stale_guest_sessions(
    session: DBSession,
    *,
    retention_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[StudySession]:
    days = retention_days if retention_days is not None else get_settings().guest_session_retention_days
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    statement = (
        select(StudySession)
        .where(StudySession.is_guest == True)  # noqa: E712
        .where(StudySession.learner_id.is_(None))
        .where(StudySession.last_activity_at < cutoff)
        .order_by(StudySession.id)
    )
    return list(session.exec(statement).all())


def cleanup_guest_sessions(
    session: DBSession,
    *,
    retention_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    stale = find_stale_guest_sessions(session, retention_days=retention_days, now=now)
    for item in stale:
        session.delete(item)
    if stale:
        session.commit()
    logger.info("Deleted %d stale guest sessions", len(stale))
    return len(stale)


def guest_session_stats(session: DBSession) -> GuestSessionStats:
    rows = session.exec(select(StudySession).where(StudySession.is_guest == True)).all()  # noqa: E712
    return GuestSessionStats(
        total=len(rows),
        active=sum(1 for row in rows if row.status == "active" and row.learner_id is None),
        abandoned=sum(1 for row in rows if row.status == "abandoned" and row.learner_id is None),
        migrated=sum(1 for row in rows if row.learner_id is not None),
    )
