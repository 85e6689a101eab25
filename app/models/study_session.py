from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.card import CardRead
from app.models.progress import CardProgressRead, LearnerProgressRead

AnswerOutcome = Literal["correct", "incorrect", "skipped"]
SelectionMethod = Literal["random", "smart", "manual", "all"]
SELECTION_METHODS: tuple[str, ...] = ("random", "smart", "manual", "all")


class StudySessionCreate(BaseModel):
    deck_id: int
    # Validated by the service so the error carries the engine's error code.
    selection_method: Optional[str] = None
    card_count: Optional[int] = Field(default=None, ge=1)
    selected_card_ids: Optional[List[int]] = None
    exclude_mastered_cards: bool = True
    exclude_active_session_cards: bool = False
    title: Optional[str] = None


class GuestStudySessionCreate(BaseModel):
    deck_id: int
    guest_token: Optional[str] = None
    selection_method: str = "all"
    card_count: Optional[int] = Field(default=None, ge=1)
    selected_card_ids: Optional[List[int]] = None
    title: Optional[str] = None


class StudySessionAutosave(BaseModel):
    current_card_index: Optional[int] = Field(default=None, ge=0)
    answers: Optional[Dict[str, AnswerOutcome]] = None
    streak: Optional[int] = Field(default=None, ge=0)
    session_xp: Optional[int] = Field(default=None, ge=0)
    duration_seconds: Optional[int] = Field(default=None, ge=0)
    timezone_offset_minutes: Optional[int] = None


class GuestStudySessionAutosave(StudySessionAutosave):
    guest_token: Optional[str] = None


class CardOutcome(BaseModel):
    card_id: int
    was_correct: bool


class StudySessionComplete(BaseModel):
    score: int = Field(default=0, ge=0, le=100)
    correct_count: int = Field(default=0, ge=0)
    incorrect_count: int = Field(default=0, ge=0)
    skipped_count: int = Field(default=0, ge=0)
    duration_seconds: int = Field(default=0, ge=0)
    card_progress_updates: List[CardOutcome] = Field(default_factory=list)
    timezone_offset_minutes: Optional[int] = None


class StudySessionRead(BaseModel):
    id: int
    learner_id: Optional[int] = None
    deck_id: Optional[int] = None
    title: Optional[str] = None
    selection_method: SelectionMethod
    total_cards: int
    selected_card_ids: List[int]
    current_card_index: int
    answers: Dict[str, AnswerOutcome] = Field(default_factory=dict)
    streak: int
    session_xp: int
    status: Literal["active", "completed", "abandoned"]
    started_at: datetime
    completed_at: Optional[datetime] = None
    last_activity_at: datetime
    duration_seconds: int
    score: Optional[int] = None
    correct_count: int
    incorrect_count: int
    skipped_count: int
    is_guest: bool = False

    model_config = ConfigDict(from_attributes=True)


class StudySessionDetail(StudySessionRead):
    cards: List[CardRead] = Field(default_factory=list)
    card_progress: Dict[str, CardProgressRead] = Field(default_factory=dict)
    guest_token: Optional[str] = None
    order_reconciled: bool = False


class StudySessionCreateResult(BaseModel):
    session: StudySessionDetail
    available_cards: int
    mastered_cards: int


class AutosaveResult(BaseModel):
    session: StudySessionRead
    learner: Optional[LearnerProgressRead] = None
    new_achievements: List[str] = Field(default_factory=list)


class CompletionResult(BaseModel):
    session: StudySessionRead
    xp_earned: int
    leveled_up: bool
    old_level: int
    new_level: int
    new_achievements: List[str] = Field(default_factory=list)
    streak_updated: bool = False
    new_streak: int
    cards_learned: int
    cards_mastered: int
    cards_unmastered: int = 0


class AvailableCountRead(BaseModel):
    total_cards: int
    mastered_count: int
    active_session_card_count: int
    available_count: int
