from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

CardStatus = Literal["new", "learning", "mastered"]


class CardProgressRead(BaseModel):
    id: int
    learner_id: int
    card_id: int
    status: CardStatus
    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: Optional[date] = None
    times_seen: int
    times_correct: int
    times_incorrect: int
    last_reviewed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LearnerProgressRead(BaseModel):
    id: int
    level: int
    current_xp: int
    next_level_xp: int
    total_xp: int
    streak: int
    longest_streak: int
    streak_shield_active: bool
    total_cards_learned: int
    total_decks_completed: int
    total_time_spent: int
    total_correct_answers: int
    total_answers: int

    model_config = ConfigDict(from_attributes=True)


class DailyProgressRead(BaseModel):
    day: date
    cards_studied: int
    cards_learned: int
    time_spent_seconds: int
    xp_earned: int
    sessions_completed: int

    model_config = ConfigDict(from_attributes=True)
