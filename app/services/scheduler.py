"""
SM-2 spaced repetition scheduling.

Answers in a study session are binary, so they are mapped onto SM-2's 0-5
quality scale as correct -> 4 and incorrect -> 2.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

MIN_EASE_FACTOR = 1.3
SUCCESS_QUALITY = 3
CORRECT_QUALITY = 4
INCORRECT_QUALITY = 2


@dataclass(frozen=True)
class CardMemory:
    ease_factor: float = 2.5
    interval: int = 0
    repetitions: int = 0
    status: str = "new"


@dataclass(frozen=True)
class SM2Result:
    status: str
    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: date
    became_mastered: bool = False
    lost_mastery: bool = False


def quality_for_answer(was_correct: bool) -> int:
    return CORRECT_QUALITY if was_correct else INCORRECT_QUALITY


def calculate_sm2_update(
    prior: CardMemory,
    quality: int,
    *,
    today: Optional[date] = None,
    mastery_interval_days: int = 21,
    mastery_min_repetitions: int = 6,
) -> SM2Result:
    q = max(0, min(5, quality))
    repetitions = prior.repetitions
    if q >= SUCCESS_QUALITY:
        if repetitions == 0:
            interval = 1
        elif repetitions == 1:
            interval = 6
        else:
            interval = int(math.floor(prior.interval * prior.ease_factor + 0.5))
        repetitions += 1
    else:
        repetitions = 0
        interval = 1

    ease_factor = prior.ease_factor + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    ease_factor = max(MIN_EASE_FACTOR, ease_factor)

    if repetitions >= mastery_min_repetitions and interval >= mastery_interval_days:
        status = "mastered"
    else:
        status = "learning"

    was_mastered = prior.status == "mastered"
    return SM2Result(
        status=status,
        ease_factor=round(ease_factor, 2),
        interval=interval,
        repetitions=repetitions,
        next_review_date=(today or date.today()) + timedelta(days=interval),
        became_mastered=status == "mastered" and not was_mastered,
        lost_mastery=was_mastered and status != "mastered",
    )
