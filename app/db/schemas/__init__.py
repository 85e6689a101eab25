from .learner import Learner
from .deck import Deck, Card
from .progress import CardProgress, DailyProgress
from .study_session import StudySession
from .achievement import Achievement, LearnerAchievement

__all__ = [
    "Learner",
    "Deck",
    "Card",
    "CardProgress",
    "DailyProgress",
    "StudySession",
    "Achievement",
    "LearnerAchievement",
]
