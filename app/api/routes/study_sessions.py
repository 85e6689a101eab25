from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import get_achievement_evaluator, get_current_learner, get_session
from app.db.schemas import Learner
from app.models.study_session import (
    AutosaveResult,
    AvailableCountRead,
    CompletionResult,
    GuestStudySessionAutosave,
    GuestStudySessionCreate,
    StudySessionAutosave,
    StudySessionComplete,
    StudySessionCreate,
    StudySessionCreateResult,
    StudySessionDetail,
    StudySessionRead,
)
from app.services.study_session_service import StudySessionService


def get_study_session_service(
    db=Depends(get_session), evaluator=Depends(get_achievement_evaluator)
) -> StudySessionService:
    return StudySessionService(db, achievement_evaluator=evaluator)


router = APIRouter(prefix="/study-sessions", tags=["study-sessions"])


# Guest routes are declared first so "/guest" is not captured by "/{session_id}".
@router.post("/guest", response_model=StudySessionCreateResult, status_code=status.HTTP_201_CREATED)
def create_guest_session(
    payload: GuestStudySessionCreate,
    service: StudySessionService = Depends(get_study_session_service),
) -> StudySessionCreateResult:
    return service.create_guest_session(payload)


@router.get("/guest/{session_id}", response_model=StudySessionDetail)
def get_guest_session(
    session_id: int,
    guest_token: Optional[str] = None,
    service: StudySessionService = Depends(get_study_session_service),
) -> StudySessionDetail:
    return service.get_guest_session(session_id, guest_token)


@router.put("/guest/{session_id}", response_model=StudySessionRead)
def autosave_guest_session(
    session_id: int,
    payload: GuestStudySessionAutosave,
    service: StudySessionService = Depends(get_study_session_service),
) -> StudySessionRead:
    return service.autosave_guest(session_id, payload)


@router.post("", response_model=StudySessionCreateResult, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: StudySessionCreate,
    learner: Learner = Depends(get_current_learner),
    service: StudySessionService = Depends(get_study_session_service),
) -> StudySessionCreateResult:
    return service.create_session(learner.id, payload)


@router.get("", response_model=List[StudySessionRead])
def list_sessions(
    status_filter: str = Query(default="active", alias="status"),
    deck_id: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    learner: Learner = Depends(get_current_learner),
    service: StudySessionService = Depends(get_study_session_service),
) -> List[StudySessionRead]:
    return service.list_sessions(
        learner.id, status_filter=status_filter, deck_id=deck_id, limit=limit, offset=offset
    )


@router.get("/available-count", response_model=AvailableCountRead)
def available_count(
    deck_id: int,
    exclude_mastered: bool = False,
    exclude_active_session_cards: bool = False,
    learner: Learner = Depends(get_current_learner),
    service: StudySessionService = Depends(get_study_session_service),
) -> AvailableCountRead:
    return service.count_available_cards(
        learner.id,
        deck_id,
        exclude_mastered=exclude_mastered,
        exclude_active_session_cards=exclude_active_session_cards,
    )


@router.get("/{session_id}", response_model=StudySessionDetail)
def get_session_detail(
    session_id: int,
    client_card_ids: Optional[List[int]] = Query(default=None),
    learner: Learner = Depends(get_current_learner),
    service: StudySessionService = Depends(get_study_session_service),
) -> StudySessionDetail:
    return service.get_session(learner.id, session_id, client_card_ids=client_card_ids)


@router.put("/{session_id}", response_model=AutosaveResult)
def autosave_session(
    session_id: int,
    payload: StudySessionAutosave,
    learner: Learner = Depends(get_current_learner),
    service: StudySessionService = Depends(get_study_session_service),
) -> AutosaveResult:
    return service.autosave(learner.id, session_id, payload)


@router.post("/{session_id}/complete", response_model=CompletionResult)
def complete_session(
    session_id: int,
    payload: StudySessionComplete,
    learner: Learner = Depends(get_current_learner),
    service: StudySessionService = Depends(get_study_session_service),
) -> CompletionResult:
    return service.complete_session(learner.id, session_id, payload)


@router.delete("/{session_id}", response_model=StudySessionRead)
def abandon_session(
    session_id: int,
    learner: Learner = Depends(get_current_learner),
    service: StudySessionService = Depends(get_study_session_service),
) -> StudySessionRead:
    return service.abandon_session(learner.id, session_id)


__all__ = ["router"]
