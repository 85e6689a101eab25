"""
Card selection for study sessions.

``select_cards_for_session`` builds the working set for a new session from a
deck's cards and the learner's progress on them; ``interleave_cards_by_type``
then spreads card types round-robin so the session does not present long runs
of the same kind of card. Both run exactly once, when a session is created.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Set

from app.core.exceptions import NoCardsAvailable, NoCardsInDeck, ValidationError
from app.db.schemas import Card, CardProgress
from app.models.card import CARD_TYPES
from app.models.study_session import SELECTION_METHODS

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    selected_cards: List[Card] = field(default_factory=list)
    available_count: int = 0
    mastered_count: int = 0


def select_cards_for_session(
    cards: Sequence[Card],
    progress: Iterable[CardProgress],
    method: str,
    *,
    card_count: Optional[int] = None,
    selected_card_ids: Optional[Sequence[int]] = None,
    exclude_mastered: bool = True,
    exclude_card_ids: Optional[Set[int]] = None,
    today: Optional[date] = None,
    rng: Optional[random.Random] = None,
) -> SelectionResult:
    """Select the cards for a new session.

    ``cards`` must already be the deck's non-deleted cards in position order.
    Exclusions (mastered cards, cards live in other active sessions) are
    applied before the method truncates to ``card_count``.
    """
    if method not in SELECTION_METHODS:
        raise ValidationError(f"Invalid selection_method. Options: {', '.join(SELECTION_METHODS)}")
    if not cards:
        raise NoCardsInDeck()

    progress_map: Dict[int, CardProgress] = {row.card_id: row for row in progress}
    excluded = exclude_card_ids or set()

    eligible: List[Card] = []
    mastered_count = 0
    for card in cards:
        card_progress = progress_map.get(card.id)
        if exclude_mastered and card_progress is not None and card_progress.status == "mastered":
            mastered_count += 1
            continue
        if card.id in excluded:
            continue
        eligible.append(card)

    count = card_count if card_count else len(eligible)
    if method == "all":
        selected = list(eligible)
    elif method == "random":
        selected = _select_random(eligible, count, rng or random.Random())
    elif method == "smart":
        selected = _select_smart(eligible, progress_map, count, today or date.today())
    else:
        if not selected_card_ids:
            raise NoCardsAvailable("Manual selection requires selected_card_ids")
        selected = _select_manual(eligible, selected_card_ids)

    if not selected:
        raise NoCardsAvailable()
    logger.debug(
        "Selected %d/%d cards with method=%s (mastered excluded: %d)",
        len(selected),
        len(eligible),
        method,
        mastered_count,
    )
    return SelectionResult(
        selected_cards=selected,
        available_count=len(eligible),
        mastered_count=mastered_count,
    )


def _select_random(cards: List[Card], count: int, rng: random.Random) -> List[Card]:
    shuffled = list(cards)
    rng.shuffle(shuffled)
    return shuffled[:count]


def _select_smart(
    cards: List[Card],
    progress_map: Dict[int, CardProgress],
    count: int,
    today: date,
) -> List[Card]:
    """Due cards first (most overdue leading), then never-reviewed, then the rest by due date."""
    due: List[tuple[date, int, Card]] = []
    unseen: List[Card] = []
    upcoming: List[tuple[date, int, Card]] = []
    for index, card in enumerate(cards):
        card_progress = progress_map.get(card.id)
        review_date = card_progress.next_review_date if card_progress else None
        if review_date is None:
            unseen.append(card)
        elif review_date <= today:
            due.append((review_date, index, card))
        else:
            upcoming.append((review_date, index, card))
    due.sort(key=lambda item: (item[0], item[1]))
    upcoming.sort(key=lambda item: (item[0], item[1]))
    ordered = [card for _, _, card in due] + unseen + [card for _, _, card in upcoming]
    return ordered[:count]


def _select_manual(cards: List[Card], selected_ids: Sequence[int]) -> List[Card]:
    wanted = set(selected_ids)
    return [card for card in cards if card.id in wanted]


def interleave_cards_by_type(cards: Sequence[Card]) -> List[Card]:
    """Round-robin cards across their types, keeping order within each type.

    Types are visited in order of first appearance, so the result starts with
    the type of the first input card.
    """
    partitions: Dict[str, List[Card]] = {}
    for card in cards:
        card_type = card.type if card.type in CARD_TYPES else "standard"
        partitions.setdefault(card_type, []).append(card)
    if len(partitions) <= 1:
        return list(cards)

    queues = list(partitions.values())
    result: List[Card] = []
    round_index = 0
    while len(result) < len(cards):
        for queue in queues:
            if round_index < len(queue):
                result.append(queue[round_index])
        round_index += 1
    return result
