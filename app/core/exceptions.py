"""
Error taxonomy for the study engine.

Every error carries a machine-readable ``code`` next to its message so that
clients can branch on the kind of failure. They are ``HTTPException``
subclasses and surface as ``{"detail": {"code": ..., "message": ...}}``.
"""
from typing import Optional

from fastapi import HTTPException, status


class StudyEngineError(HTTPException):
    """Base exception for all study engine errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "SERVER_ERROR"
    default_message = "Unexpected server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(
            status_code=self.status_code,
            detail={"code": self.code, "message": self.message},
        )


class ValidationError(StudyEngineError):
    """Raised when a request is malformed (bad method, bad guest token)."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class UnauthorizedError(StudyEngineError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    default_message = "Learner identity required"


class NotFoundError(StudyEngineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ForbiddenError(StudyEngineError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_message = "Session belongs to another learner"


class NoCardsInDeck(StudyEngineError):
    """The deck exists but has no usable cards."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "NO_CARDS"
    default_message = "Deck has no cards"


class NoCardsAvailable(StudyEngineError):
    """Exclusions reduced the selection to nothing."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "NO_CARDS_AVAILABLE"
    default_message = "No cards available for selection"


class AlreadyCompleted(StudyEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "ALREADY_COMPLETED"
    default_message = "Session already completed"


class SessionNotActive(StudyEngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "SESSION_NOT_ACTIVE"
    default_message = "Session is no longer active"


class ServerError(StudyEngineError):
    """Persistence failure. Safe to retry."""
