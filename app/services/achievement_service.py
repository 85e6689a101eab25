from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol

from sqlalchemy import and_, case, func
from sqlmodel import Session as DBSession, select

from app.db.schemas import Achievement, Card, CardProgress, Learner, LearnerAchievement, StudySession
from app.services.progression_service import ProgressionLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionContext:
    correct_count: int
    duration_seconds: int
    total_cards: int
    completed_at_hour: int
    score: int
    session_xp: int


class AchievementEvaluator(Protocol):
    def evaluate(self, learner_id: int, context: Optional[SessionContext] = None) -> List[str]:
        """Unlock whatever the learner now qualifies for and return the new ids."""
        ...


class RuleAchievementEvaluator:
    """Evaluates the rows of the ``achievements`` table against a learner.

    Unlocks are added to the caller's transaction; nothing is committed here.
    """

    def __init__(self, session: DBSession, ledger: Optional[ProgressionLedger] = None) -> None:
        self.session = session
        self.ledger = ledger or ProgressionLedger(session)

    def evaluate(self, learner_id: int, context: Optional[SessionContext] = None) -> List[str]:
        learner = self.session.get(Learner, learner_id)
        if not learner:
            return []
        unlocked_ids = set(
            self.session.exec(
                select(LearnerAchievement.achievement_id).where(LearnerAchievement.learner_id == learner_id)
            ).all()
        )
        candidates = self.session.exec(select(Achievement).order_by(Achievement.xp_reward, Achievement.id)).all()
        newly_unlocked: List[str] = []
        for achievement in candidates:
            if achievement.id in unlocked_ids:
                continue
            if not self._condition_met(achievement, learner, context):
                continue
            self.session.add(
                LearnerAchievement(
                    learner_id=learner_id,
                    achievement_id=achievement.id,
                    xp_awarded=achievement.xp_reward,
                    unlocked_at=datetime.now(timezone.utc),
                )
            )
            if achievement.xp_reward:
                self.ledger.apply_xp(learner, achievement.xp_reward)
            newly_unlocked.append(achievement.id)
        if newly_unlocked:
            logger.info("Learner %s unlocked achievements: %s", learner_id, ", ".join(newly_unlocked))
        return newly_unlocked

    def _condition_met(
        self,
        achievement: Achievement,
        learner: Learner,
        context: Optional[SessionContext],
    ) -> bool:
        kind = achievement.condition_type
        value = achievement.condition_value
        if kind == "decks_completed":
            return learner.total_decks_completed >= value
        if kind == "streak_days":
            return learner.streak >= value
        if kind == "cards_mastered":
            return learner.total_cards_learned >= value
        if kind == "level_reached":
            return learner.level >= value
        if kind == "total_xp":
            return learner.total_xp >= value
        if kind == "total_sessions_completed":
            return self._completed_session_count(learner.id) >= value
        if kind == "cards_mastered_single_deck":
            # value is the number of decks whose every card is mastered.
            return self._mastered_deck_count(learner.id) >= value
        if context is None:
            return False
        if kind == "cards_per_minute":
            minutes = context.duration_seconds / 60
            # At least ten correct answers so one fast card cannot qualify.
            if minutes <= 0 or context.correct_count < max(10, value):
                return False
            return context.correct_count / minutes >= value
        if kind == "session_time_of_day":
            # value encodes the start hour as HHMM, e.g. 2300 or 500.
            start_hour = value // 100
            hour = context.completed_at_hour
            if start_hour >= 20:
                return hour >= start_hour or hour < (start_hour + 5) % 24
            return start_hour <= hour < start_hour + 4
        if kind == "perfect_score_min_cards":
            return context.score == 100 and context.total_cards >= value
        if kind == "single_session_xp":
            return context.session_xp >= value
        logger.warning("Unknown achievement condition %r on %s", kind, achievement.id)
        return False

    def _completed_session_count(self, learner_id: int) -> int:
        statement = (
            select(func.count(StudySession.id))
            .where(StudySession.learner_id == learner_id)
            .where(StudySession.status == "completed")
        )
        return self.session.exec(statement).one()

    def _mastered_deck_count(self, learner_id: int) -> int:
        mastered = func.count(case((CardProgress.status == "mastered", 1)))
        statement = (
            select(Card.deck_id)
            .join(
                CardProgress,
                and_(CardProgress.card_id == Card.id, CardProgress.learner_id == learner_id),
                isouter=True,
            )
            .where(Card.deleted_at.is_(None))
            .group_by(Card.deck_id)
            .having(func.count(Card.id) == mastered)
        )
        return len(self.session.exec(statement).all())
