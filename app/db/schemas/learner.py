from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel


class Learner(SQLModel, table=True):
    __tablename__ = "learners"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str

    level: int = Field(default=1)
    current_xp: int = Field(default=0)
    next_level_xp: int = Field(default=100)
    total_xp: int = Field(default=0)

    streak: int = Field(default=0)
    longest_streak: int = Field(default=0)
    streak_shield_active: bool = Field(default=False)
    streak_shield_used_date: Optional[date] = None
    # ISO dates of every day bridged by a streak shield.
    streak_shield_days: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False, default=list))

    total_cards_learned: int = Field(default=0)
    total_decks_completed: int = Field(default=0)
    total_time_spent: int = Field(default=0)  # minutes
    total_correct_answers: int = Field(default=0)
    total_answers: int = Field(default=0)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
