from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict

CardType = Literal["standard", "quiz", "type-answer"]
CARD_TYPES: tuple[str, ...] = ("standard", "quiz", "type-answer")


class CardRead(BaseModel):
    id: int
    deck_id: int
    front: str
    back: str
    context: Optional[str] = None
    hint: Optional[str] = None
    type: CardType = "standard"
    options: Optional[List[str]] = None
    correct_option_indices: Optional[List[int]] = None
    position: int
    created_at: datetime
    deleted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
