from app.services.study_session_service import compute_autosave_delta, reconcile_card_order


def test_replayed_payload_has_empty_delta() -> None:
    answers = {"1": "correct", "2": "incorrect"}
    delta = compute_autosave_delta(answers, 20, 60, answers=answers, session_xp=20, duration_seconds=60)
    assert delta.is_empty


def test_only_first_answers_add_to_the_answer_count() -> None:
    delta = compute_autosave_delta(
        {"1": "correct", "2": "incorrect"},
        0,
        0,
        answers={"1": "correct", "2": "correct", "3": "incorrect", "4": "skipped"},
    )
    assert delta.new_answers == 1
    assert delta.new_correct == 1


def test_flipping_an_answer_back_and_forth_nets_out() -> None:
    stored = {"1": "correct"}
    flipped = compute_autosave_delta(stored, 0, 0, answers={"1": "incorrect"})
    assert flipped.new_answers == 0
    assert flipped.new_correct == -1

    restored = compute_autosave_delta({"1": "incorrect"}, 0, 0, answers={"1": "correct"})
    assert restored.new_answers == 0
    assert restored.new_correct == 1


def test_skipping_a_card_after_answering_it_keeps_the_answer_count() -> None:
    delta = compute_autosave_delta({"1": "correct"}, 0, 0, answers={"1": "skipped"})
    assert delta.new_answers == 0
    assert delta.new_correct == -1


def test_time_never_goes_backwards() -> None:
    delta = compute_autosave_delta({}, 0, 90, duration_seconds=30)
    assert delta.time_seconds == 0


def test_xp_drop_is_a_spend() -> None:
    delta = compute_autosave_delta({}, 50, 0, session_xp=35)
    assert delta.xp == -15


def test_missing_fields_leave_baseline_alone() -> None:
    delta = compute_autosave_delta({"1": "correct"}, 50, 90)
    assert delta.is_empty


def test_reconcile_card_order() -> None:
    assert reconcile_card_order([3, 1, 2], None) is False
    assert reconcile_card_order([3, 1, 2], [3, 1, 2]) is False
    assert reconcile_card_order([3, 1, 2], [1, 2, 3]) is True
