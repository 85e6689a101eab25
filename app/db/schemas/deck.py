from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel


class Deck(SQLModel, table=True):
    __tablename__ = "decks"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Card(SQLModel, table=True):
    __tablename__ = "cards"

    id: Optional[int] = Field(default=None, primary_key=True)
    deck_id: int = Field(foreign_key="decks.id", index=True)
    front: str
    back: str
    context: Optional[str] = None
    hint: Optional[str] = None
    type: str = Field(default="standard")
    options: Optional[list] = Field(default=None, sa_column=Column(JSON, nullable=True))
    correct_option_indices: Optional[list] = Field(default=None, sa_column=Column(JSON, nullable=True))
    position: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    deleted_at: Optional[datetime] = None
