from datetime import date, timedelta

import pytest

from app.services.scheduler import (
    MIN_EASE_FACTOR,
    CardMemory,
    calculate_sm2_update,
    quality_for_answer,
)

TODAY = date(2024, 5, 10)


def _answer_correctly(times: int) -> CardMemory:
    memory = CardMemory()
    for _ in range(times):
        result = calculate_sm2_update(memory, quality_for_answer(True), today=TODAY)
        memory = CardMemory(result.ease_factor, result.interval, result.repetitions, result.status)
    return memory


def test_first_three_correct_answers_give_1_6_15() -> None:
    memory = CardMemory()
    intervals = []
    for _ in range(3):
        result = calculate_sm2_update(memory, 4, today=TODAY)
        intervals.append(result.interval)
        memory = CardMemory(result.ease_factor, result.interval, result.repetitions, result.status)
    assert intervals == [1, 6, 15]
    assert memory.repetitions == 3
    assert memory.ease_factor == pytest.approx(2.5)
    assert memory.status == "learning"


def test_next_review_date_follows_interval() -> None:
    result = calculate_sm2_update(CardMemory(), 4, today=TODAY)
    assert result.next_review_date == TODAY + timedelta(days=1)


def test_failure_resets_repetitions_and_interval() -> None:
    prior = CardMemory(ease_factor=2.5, interval=15, repetitions=3, status="learning")
    result = calculate_sm2_update(prior, quality_for_answer(False), today=TODAY)
    assert result.repetitions == 0
    assert result.interval == 1
    assert result.ease_factor == pytest.approx(2.18)
    assert result.status == "learning"


def test_ease_factor_never_drops_below_floor() -> None:
    memory = CardMemory(ease_factor=1.35)
    for _ in range(5):
        result = calculate_sm2_update(memory, 0, today=TODAY)
        memory = CardMemory(result.ease_factor, result.interval, result.repetitions, result.status)
        assert result.ease_factor >= MIN_EASE_FACTOR
    assert memory.ease_factor == pytest.approx(MIN_EASE_FACTOR)


def test_quality_is_clamped() -> None:
    high = calculate_sm2_update(CardMemory(), 9, today=TODAY)
    five = calculate_sm2_update(CardMemory(), 5, today=TODAY)
    assert high == five
    low = calculate_sm2_update(CardMemory(), -3, today=TODAY)
    zero = calculate_sm2_update(CardMemory(), 0, today=TODAY)
    assert low == zero


def test_card_becomes_mastered_after_long_stable_interval() -> None:
    before = _answer_correctly(5)
    assert before.status == "learning"
    result = calculate_sm2_update(before, 4, today=TODAY)
    assert result.repetitions == 6
    assert result.interval >= 21
    assert result.status == "mastered"
    assert result.became_mastered is True


def test_failing_mastered_card_reports_lost_mastery() -> None:
    mastered = _answer_correctly(6)
    assert mastered.status == "mastered"
    result = calculate_sm2_update(mastered, quality_for_answer(False), today=TODAY)
    assert result.status == "learning"
    assert result.lost_mastery is True
    assert result.became_mastered is False


def test_mastery_thresholds_are_configurable() -> None:
    memory = _answer_correctly(1)
    result = calculate_sm2_update(
        memory,
        4,
        today=TODAY,
        mastery_interval_days=6,
        mastery_min_repetitions=2,
    )
    assert result.interval == 6
    assert result.status == "mastered"
