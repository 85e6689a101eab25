from typing import Generator

import pytest
from sqlmodel import SQLModel, Session, create_engine

from app.db.schemas import Learner, StudySession
from app.models.study_session import StudySessionAutosave
from app.services.study_session_service import StudySessionService


@pytest.fixture(name="engine")
def engine_fixture(tmp_path) -> Generator:
    # A file database so each Session gets its own connection, like two requests.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'study.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


def _seed(engine) -> tuple[int, int]:
    with Session(engine) as db:
        learner = Learner(name="Ada")
        db.add(learner)
        db.commit()
        db.refresh(learner)
        study = StudySession(
            learner_id=learner.id,
            selection_method="all",
            total_cards=2,
            selected_card_ids=[1, 2],
        )
        db.add(study)
        db.commit()
        db.refresh(study)
        return learner.id, study.id


def test_overlapping_autosaves_keep_every_credit(engine) -> None:
    learner_id, study_id = _seed(engine)

    with Session(engine) as first_tab, Session(engine) as second_tab:
        # The second request resolved its learner before the first one saved.
        stale_learner = second_tab.get(Learner, learner_id)
        stale_session = second_tab.get(StudySession, study_id)
        assert stale_learner.total_xp == 0
        assert stale_session.session_xp == 0

        StudySessionService(first_tab).autosave(learner_id, study_id, StudySessionAutosave(session_xp=10))
        result = StudySessionService(second_tab).autosave(
            learner_id, study_id, StudySessionAutosave(session_xp=25)
        )
        assert result.session.session_xp == 25
        assert result.learner.total_xp == 25

    with Session(engine) as check:
        learner = check.get(Learner, learner_id)
        assert learner.total_xp == 25
        assert learner.current_xp == 25
        assert check.get(StudySession, study_id).session_xp == 25


def test_overlapping_autosaves_keep_answer_totals(engine) -> None:
    learner_id, study_id = _seed(engine)

    with Session(engine) as first_tab, Session(engine) as second_tab:
        second_tab.get(Learner, learner_id)
        StudySessionService(first_tab).autosave(
            learner_id, study_id, StudySessionAutosave(answers={"1": "correct"}, session_xp=10)
        )
        second = StudySessionService(second_tab).autosave(
            learner_id, study_id, StudySessionAutosave(answers={"1": "correct", "2": "incorrect"}, session_xp=10)
        )
        assert second.learner.total_answers == 2
        assert second.learner.total_correct_answers == 1
        assert second.learner.total_xp == 10
