from fastapi import APIRouter

from . import learners, study_sessions

api_router = APIRouter()
api_router.include_router(study_sessions.router)
api_router.include_router(learners.router)

__all__ = ["api_router"]
