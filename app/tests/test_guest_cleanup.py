from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from app.db.schemas import Learner, StudySession
from app.services.guest_cleanup import cleanup_guest_sessions, find_stale_guest_sessions, guest_session_stats

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(name="session")
def session_fixture() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


def _guest(session: Session, *, days_idle: int, status: str = "active", learner_id=None) -> StudySession:
    item = StudySession(
        guest_token="0b7f3a52-6a1e-4c4f-9a51-2f8f3c0e9d11",
        is_guest=True,
        learner_id=learner_id,
        selection_method="all",
        total_cards=1,
        selected_card_ids=[1],
        status=status,
        last_activity_at=NOW - timedelta(days=days_idle),
    )
    session.add(item)
    session.commit()
    session.refresh(item)
    return item


def test_only_stale_unclaimed_guest_sessions_are_deleted(session: Session) -> None:
    learner = Learner(name="Ada")
    session.add(learner)
    session.commit()
    session.refresh(learner)

    stale = _guest(session, days_idle=10)
    fresh = _guest(session, days_idle=2)
    migrated = _guest(session, days_idle=30, learner_id=learner.id)

    assert [item.id for item in find_stale_guest_sessions(session, retention_days=7, now=NOW)] == [stale.id]
    assert cleanup_guest_sessions(session, retention_days=7, now=NOW) == 1

    remaining = {item.id for item in session.exec(select(StudySession)).all()}
    assert remaining == {fresh.id, migrated.id}


def test_guest_session_stats(session: Session) -> None:
    _guest(session, days_idle=1)
    _guest(session, days_idle=1, status="abandoned")
    stats = guest_session_stats(session)
    assert stats.total == 2
    assert stats.active == 1
    assert stats.abandoned == 1
    assert stats.migrated == 0
