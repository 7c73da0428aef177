# SQLAlchemy models
from .base import Base
from .question import QuestionCodeCounter, QuestionRow

__all__ = [
    "Base",
    "QuestionRow",
    "QuestionCodeCounter",
]
