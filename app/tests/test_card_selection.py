import random
from datetime import date, timedelta
from typing import Optional

import pytest

from app.core.exceptions import NoCardsAvailable, NoCardsInDeck, ValidationError
from app.db.schemas import Card, CardProgress
from app.services.card_selection import interleave_cards_by_type, select_cards_for_session

TODAY = date(2024, 5, 10)


def _cards(*types: str) -> list[Card]:
    return [
        Card(id=index + 1, deck_id=1, front=f"front {index}", back=f"back {index}", type=card_type, position=index)
        for index, card_type in enumerate(types)
    ]


def _progress(card_id: int, *, status: str = "learning", due: Optional[date] = None) -> CardProgress:
    return CardProgress(learner_id=1, card_id=card_id, status=status, next_review_date=due)


def test_all_keeps_deck_order_and_skips_mastered() -> None:
    cards = _cards("standard", "standard", "standard")
    result = select_cards_for_session(cards, [_progress(2, status="mastered")], "all")
    assert [card.id for card in result.selected_cards] == [1, 3]
    assert result.available_count == 2
    assert result.mastered_count == 1


def test_all_includes_mastered_when_not_excluded() -> None:
    cards = _cards("standard", "standard")
    result = select_cards_for_session(cards, [_progress(2, status="mastered")], "all", exclude_mastered=False)
    assert [card.id for card in result.selected_cards] == [1, 2]
    assert result.mastered_count == 0


def test_random_truncates_after_exclusions() -> None:
    cards = _cards(*["standard"] * 10)
    result = select_cards_for_session(
        cards,
        [],
        "random",
        card_count=4,
        exclude_card_ids={1, 2, 3},
        rng=random.Random(7),
    )
    ids = [card.id for card in result.selected_cards]
    assert len(ids) == 4
    assert len(set(ids)) == 4
    assert not {1, 2, 3} & set(ids)
    assert result.available_count == 7


def test_random_without_count_returns_every_eligible_card() -> None:
    cards = _cards(*["standard"] * 5)
    result = select_cards_for_session(cards, [], "random", rng=random.Random(1))
    assert sorted(card.id for card in result.selected_cards) == [1, 2, 3, 4, 5]


def test_manual_uses_deck_order_and_ignores_unknown_ids() -> None:
    cards = _cards("standard", "standard", "standard", "standard")
    result = select_cards_for_session(cards, [], "manual", selected_card_ids=[4, 99, 2])
    assert [card.id for card in result.selected_cards] == [2, 4]


@pytest.mark.parametrize("selected", [None, []])
def test_manual_without_ids_has_nothing_available(selected) -> None:
    with pytest.raises(NoCardsAvailable):
        select_cards_for_session(_cards("standard"), [], "manual", selected_card_ids=selected)


def test_smart_puts_overdue_then_unseen_then_upcoming() -> None:
    cards = _cards(*["standard"] * 5)
    progress = [
        _progress(1, due=TODAY + timedelta(days=3)),
        _progress(2, due=TODAY - timedelta(days=1)),
        _progress(4, due=TODAY - timedelta(days=5)),
        _progress(5, due=TODAY + timedelta(days=1)),
    ]
    result = select_cards_for_session(cards, progress, "smart", today=TODAY)
    assert [card.id for card in result.selected_cards] == [4, 2, 3, 5, 1]

    truncated = select_cards_for_session(cards, progress, "smart", card_count=2, today=TODAY)
    assert [card.id for card in truncated.selected_cards] == [4, 2]


def test_empty_deck_raises_no_cards() -> None:
    with pytest.raises(NoCardsInDeck):
        select_cards_for_session([], [], "all")


def test_everything_excluded_raises_no_cards_available() -> None:
    cards = _cards("standard", "standard")
    progress = [_progress(1, status="mastered"), _progress(2, status="mastered")]
    with pytest.raises(NoCardsAvailable):
        select_cards_for_session(cards, progress, "smart", today=TODAY)


def test_unknown_method_is_rejected() -> None:
    with pytest.raises(ValidationError):
        select_cards_for_session(_cards("standard"), [], "alphabetical")


def test_interleave_alternates_types_round_robin() -> None:
    cards = _cards("standard", "standard", "standard", "quiz", "quiz", "type-answer")
    ordered = interleave_cards_by_type(cards)
    assert [card.id for card in ordered] == [1, 4, 6, 2, 5, 3]
    assert sorted(card.id for card in ordered) == [card.id for card in cards]


def test_interleave_three_and_three() -> None:
    cards = _cards("standard", "standard", "standard", "quiz", "quiz", "quiz")
    ordered = interleave_cards_by_type(cards)
    assert [card.type for card in ordered] == ["standard", "quiz"] * 3


def test_interleave_single_type_is_unchanged() -> None:
    cards = _cards("quiz", "quiz", "quiz")
    assert interleave_cards_by_type(cards) == cards
