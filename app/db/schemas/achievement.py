from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Achievement(SQLModel, table=True):
    __tablename__ = "achievements"

    id: str = Field(primary_key=True)
    title: str
    description: str = ""
    xp_reward: int = Field(default=0)
    condition_type: str = Field(index=True)
    condition_value: int
    tier: str = Field(default="bronze")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LearnerAchievement(SQLModel, table=True):
    __tablename__ = "learner_achievements"
    __table_args__ = (UniqueConstraint("learner_id", "achievement_id", name="ux_learner_achievement"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    learner_id: int = Field(foreign_key="learners.id", index=True)
    achievement_id: str = Field(foreign_key="achievements.id")
    xp_awarded: int = Field(default=0)
    unlocked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
