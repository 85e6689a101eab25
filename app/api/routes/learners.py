from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_current_learner, get_session
from app.db.schemas import Learner
from app.models.progress import DailyProgressRead, LearnerProgressRead
from app.services.progression_service import ProgressionLedger
from app.utils.timezone import local_today


def get_ledger(db=Depends(get_session)) -> ProgressionLedger:
    return ProgressionLedger(db)


router = APIRouter(prefix="/learners", tags=["learners"])


@router.get("/me/progress", response_model=LearnerProgressRead)
def get_my_progress(
    learner: Learner = Depends(get_current_learner),
    ledger: ProgressionLedger = Depends(get_ledger),
) -> LearnerProgressRead:
    return ledger.snapshot(learner)


@router.get("/me/daily-progress", response_model=List[DailyProgressRead])
def get_my_daily_progress(
    days: int = Query(default=30, ge=1, le=366),
    timezone_offset_minutes: Optional[int] = Query(default=None, ge=-840, le=720),
    learner: Learner = Depends(get_current_learner),
    ledger: ProgressionLedger = Depends(get_ledger),
) -> List[DailyProgressRead]:
    return ledger.list_daily_progress(learner.id, days=days, today=local_today(timezone_offset_minutes))


__all__ = ["router"]
