from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from app.db.schemas import Card, CardProgress, DailyProgress, Deck, Learner, StudySession


def create_in_memory_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


def test_study_session_round_trips_json_fields():
    engine = create_in_memory_engine()
    SQLModel.metadata.create_all(engine)
    with Session(engine) as db:
        learner = Learner(name="Ada")
        deck = Deck(title="Verbs")
        db.add(learner)
        db.add(deck)
        db.commit()
        db.refresh(learner)
        db.refresh(deck)

        card = Card(
            deck_id=deck.id,
            front="taberu",
            back="to eat",
            type="quiz",
            options=["eat", "drink"],
            correct_option_indices=[0],
        )
        db.add(card)
        db.commit()
        db.refresh(card)

        study = StudySession(
            learner_id=learner.id,
            deck_id=deck.id,
            selection_method="all",
            total_cards=1,
            selected_card_ids=[card.id],
            answers={str(card.id): "correct"},
        )
        db.add(study)
        db.commit()

        stored = db.exec(select(StudySession)).first()
        stored_card = db.exec(select(Card)).first()

        assert stored is not None
        assert stored.selected_card_ids == [card.id]
        assert stored.answers == {str(card.id): "correct"}
        assert stored.status == "active"
        assert stored_card.options == ["eat", "drink"]
        assert learner.level == 1
        assert learner.next_level_xp == 100


def test_progress_rows_are_unique_per_learner():
    engine = create_in_memory_engine()
    SQLModel.metadata.create_all(engine)
    with Session(engine) as db:
        learner = Learner(name="Ada")
        deck = Deck(title="Verbs")
        db.add(learner)
        db.add(deck)
        db.commit()
        card = Card(deck_id=deck.id, front="nomu", back="to drink")
        db.add(card)
        db.commit()

        db.add(CardProgress(learner_id=learner.id, card_id=card.id))
        db.commit()
        db.add(CardProgress(learner_id=learner.id, card_id=card.id))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

        db.add(DailyProgress(learner_id=learner.id, day=date(2024, 5, 10)))
        db.commit()
        db.add(DailyProgress(learner_id=learner.id, day=date(2024, 5, 10)))
        with pytest.raises(IntegrityError):
            db.commit()
