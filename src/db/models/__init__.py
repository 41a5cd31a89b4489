# SQLAlchemy models
from .base import Base
from .tutoring import (
    AttemptRecord,
    MessageRecord,
    ProblemRecord,
    TutoringSessionRecord,
)

__all__ = [
    "Base",
    "ProblemRecord",
    "TutoringSessionRecord",
    "AttemptRecord",
    "MessageRecord",
]
