from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class CardProgress(SQLModel, table=True):
    __tablename__ = "card_progress"
    __table_args__ = (UniqueConstraint("learner_id", "card_id", name="ux_card_progress_learner_card"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    learner_id: int = Field(foreign_key="learners.id", index=True)
    card_id: int = Field(foreign_key="cards.id", index=True)
    status: str = Field(default="new")
    ease_factor: float = Field(default=2.5)
    interval: int = Field(default=0)
    repetitions: int = Field(default=0)
    next_review_date: Optional[date] = None
    times_seen: int = Field(default=0)
    times_correct: int = Field(default=0)
    times_incorrect: int = Field(default=0)
    last_reviewed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DailyProgress(SQLModel, table=True):
    __tablename__ = "daily_progress"
    __table_args__ = (UniqueConstraint("learner_id", "day", name="ux_daily_progress_learner_day"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    learner_id: int = Field(foreign_key="learners.id", index=True)
    day: date = Field(index=True)
    cards_studied: int = Field(default=0)
    cards_learned: int = Field(default=0)
    time_spent_seconds: int = Field(default=0)
    xp_earned: int = Field(default=0)
    sessions_completed: int = Field(default=0)
