from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel


class StudySession(SQLModel, table=True):
    __tablename__ = "study_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    learner_id: Optional[int] = Field(default=None, foreign_key="learners.id", index=True)
    guest_token: Optional[str] = Field(default=None, index=True)
    is_guest: bool = Field(default=False)
    deck_id: Optional[int] = Field(default=None, foreign_key="decks.id", index=True)
    title: Optional[str] = None
    selection_method: str
    total_cards: int
    selected_card_ids: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False, default=list))

    current_card_index: int = Field(default=0)
    answers: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False, default=dict))
    streak: int = Field(default=0)
    session_xp: int = Field(default=0)

    status: str = Field(default="active", index=True)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    last_activity_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration_seconds: int = Field(default=0)

    score: Optional[int] = None
    correct_count: int = Field(default=0)
    incorrect_count: int = Field(default=0)
    skipped_count: int = Field(default=0)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
