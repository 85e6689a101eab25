from collections.abc import Generator
from typing import Optional

from fastapi import Depends, Header
from sqlmodel import Session

from app.core.exceptions import UnauthorizedError
from app.db.base import get_engine
from app.db.schemas import Learner
from app.services.achievement_service import AchievementEvaluator, RuleAchievementEvaluator


def get_session() -> Generator[Session, None, None]:
    """Provide a database session for request scope."""
    engine = get_engine()
    with Session(engine) as session:
        yield session


def get_current_learner(
    x_learner_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_session),
) -> Learner:
    # Authentication happens upstream; the gateway forwards the learner id.
    if x_learner_id is None:
        raise UnauthorizedError()
    learner = db.get(Learner, x_learner_id)
    if not learner:
        raise UnauthorizedError("Unknown learner")
    return learner


def get_achievement_evaluator(db: Session = Depends(get_session)) -> AchievementEvaluator:
    return RuleAchievementEvaluator(db)
