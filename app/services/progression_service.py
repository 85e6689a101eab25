"""
Progression ledger: XP and levels, per-day aggregates, and streaks.

XP is applied incrementally, one delta at a time, and is never recomputed.
Streaks are the opposite: they are always recomputed from ``daily_progress``
so they stay correct no matter how sessions ended.

None of the ledger methods commit. The caller owns the transaction.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Set

from sqlmodel import Session as DBSession, select

from app.config.settings import Settings, get_settings
from app.db.schemas import DailyProgress, Learner
from app.models.progress import DailyProgressRead, LearnerProgressRead

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LevelState:
    level: int
    current_xp: int
    next_level_xp: int


@dataclass(frozen=True)
class StreakResult:
    current_streak: int
    longest_streak: int
    shield_used: bool = False
    shielded_date: Optional[date] = None


def apply_level_progress(state: LevelState, delta: int, *, multiplier: float = 1.2) -> LevelState:
    """Apply an XP delta to a level state.

    Positive deltas may cross several thresholds at once. Negative deltas
    only drain ``current_xp`` (never below zero) and never lower the level.
    """
    if delta < 0:
        return LevelState(state.level, max(0, state.current_xp + delta), state.next_level_xp)
    level = state.level
    current_xp = state.current_xp + delta
    next_level_xp = max(1, state.next_level_xp)
    while current_xp >= next_level_xp:
        current_xp -= next_level_xp
        level += 1
        next_level_xp = max(1, int(math.floor(next_level_xp * multiplier)))
    return LevelState(level, current_xp, next_level_xp)


def calculate_streak(
    active_days: Iterable[date],
    today: date,
    *,
    shield_active: bool = False,
    protected_days: Iterable[date] = (),
) -> StreakResult:
    """Walk back from ``today`` over consecutive active days.

    A day with no activity yet today does not break the chain; the walk then
    starts at yesterday. An active shield bridges exactly one missing day,
    which counts toward the streak, provided the day before it was active.
    Days bridged by an earlier shield (``protected_days``) count as active.
    """
    days: Set[date] = set(active_days) | set(protected_days)
    cursor = today if today in days else today - timedelta(days=1)
    current = 0
    shield_available = shield_active
    shielded_date: Optional[date] = None
    while True:
        if cursor in days:
            current += 1
        elif shield_available and (cursor - timedelta(days=1)) in days:
            shield_available = False
            shielded_date = cursor
            current += 1
        else:
            break
        cursor -= timedelta(days=1)

    longest = current
    run = 0
    previous: Optional[date] = None
    for day in sorted(days | ({shielded_date} if shielded_date else set())):
        if previous is not None and day - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return StreakResult(
        current_streak=current,
        longest_streak=longest,
        shield_used=shielded_date is not None,
        shielded_date=shielded_date,
    )


class ProgressionLedger:
    def __init__(self, session: DBSession, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    # XP & level
    def apply_xp(self, learner: Learner, delta: int) -> bool:
        """Apply an XP delta and return whether the learner levelled up."""
        if delta == 0:
            return False
        before = learner.level
        state = apply_level_progress(
            LevelState(learner.level, learner.current_xp, learner.next_level_xp or self.settings.base_level_xp),
            delta,
            multiplier=self.settings.xp_level_multiplier,
        )
        learner.level = state.level
        learner.current_xp = state.current_xp
        learner.next_level_xp = state.next_level_xp
        learner.total_xp = max(0, learner.total_xp + delta)
        self._touch(learner)
        if state.level > before:
            logger.info("Learner %s levelled up %d -> %d", learner.id, before, state.level)
        return state.level > before

    def record_answers(self, learner: Learner, total: int, correct: int) -> None:
        """Add answer counts. ``correct`` may be negative when answers were revised."""
        if total <= 0 and correct == 0:
            return
        learner.total_answers += max(0, total)
        learner.total_correct_answers = max(0, learner.total_correct_answers + correct)
        self._touch(learner)

    def record_completion(self, learner: Learner, *, cards_learned: int, time_spent_minutes: int) -> None:
        learner.total_cards_learned += cards_learned
        learner.total_decks_completed += 1
        learner.total_time_spent += time_spent_minutes
        self._touch(learner)

    # Daily aggregates
    def record_daily_progress(
        self,
        learner_id: int,
        day: date,
        *,
        cards_studied: int = 0,
        cards_learned: int = 0,
        time_spent_seconds: int = 0,
        xp_earned: int = 0,
        sessions_completed: int = 0,
    ) -> DailyProgress:
        statement = (
            select(DailyProgress)
            .where(DailyProgress.learner_id == learner_id)
            .where(DailyProgress.day == day)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = self.session.exec(statement).first()
        if row is None:
            row = DailyProgress(learner_id=learner_id, day=day)
        row.cards_studied = max(0, row.cards_studied + cards_studied)
        row.cards_learned += cards_learned
        row.time_spent_seconds += time_spent_seconds
        row.xp_earned = max(0, row.xp_earned + xp_earned)
        row.sessions_completed += sessions_completed
        self.session.add(row)
        return row

    def list_daily_progress(self, learner_id: int, *, days: int = 30, today: Optional[date] = None) -> List[DailyProgressRead]:
        """Rows for the ``days`` local days ending at ``today``, oldest first."""
        until = today or date.today()
        since = until - timedelta(days=days - 1)
        rows = self.session.exec(
            select(DailyProgress)
            .where(DailyProgress.learner_id == learner_id)
            .where(DailyProgress.day >= since)
            .where(DailyProgress.day <= until)
            .order_by(DailyProgress.day)
        ).all()
        return [DailyProgressRead.model_validate(row) for row in rows]

    # Streaks
    def recompute_streak(self, learner: Learner, today: date) -> StreakResult:
        rows = self.session.exec(
            select(DailyProgress)
            .where(DailyProgress.learner_id == learner.id)
            .where(DailyProgress.day <= today)
        ).all()
        active_days = {row.day for row in rows if _has_activity(row)}
        result = calculate_streak(
            active_days,
            today,
            shield_active=learner.streak_shield_active,
            protected_days=_shielded_days(learner),
        )
        learner.streak = result.current_streak
        learner.longest_streak = max(learner.longest_streak, result.longest_streak)
        if result.shield_used:
            learner.streak_shield_active = False
            learner.streak_shield_used_date = result.shielded_date
            learner.streak_shield_days = sorted(
                {*(learner.streak_shield_days or []), result.shielded_date.isoformat()}
            )
            logger.info("Streak shield consumed for learner %s on %s", learner.id, result.shielded_date)
        self._touch(learner)
        return StreakResult(
            current_streak=result.current_streak,
            longest_streak=learner.longest_streak,
            shield_used=result.shield_used,
            shielded_date=result.shielded_date,
        )

    def snapshot(self, learner: Learner) -> LearnerProgressRead:
        return LearnerProgressRead.model_validate(learner)

    def _touch(self, learner: Learner) -> None:
        learner.updated_at = datetime.now(timezone.utc)
        self.session.add(learner)


def _has_activity(row: DailyProgress) -> bool:
    return any(
        (
            row.cards_studied,
            row.cards_learned,
            row.time_spent_seconds,
            row.xp_earned,
            row.sessions_completed,
        )
    )


def _shielded_days(learner: Learner) -> Set[date]:
    days = {date.fromisoformat(value) for value in learner.streak_shield_days or []}
    if learner.streak_shield_used_date:
        days.add(learner.streak_shield_used_date)
    return days
