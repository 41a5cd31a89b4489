"""
NCERT math tutor: attempt orchestration core.

Components:
- hint_ledger: bounded hint counter per attempt
- evaluation_gateway: contract enforcement around answer evaluation
- attempt: the per-problem state machine
- mastery: the single follow-up check after a solved problem
- diagnostics: misconception analysis over an attempt's history
- session: one learner's stream of attempts
"""

from .attempt import Attempt
from .diagnostics import DiagnosticComposer
from .errors import (
    AttemptClosed,
    ConcurrentSubmission,
    DiagnosticFailure,
    EmptyAnswer,
    GenerationFailure,
    MalformedEvaluation,
    ProblemNotFound,
    TutoringError,
)
from .evaluation_gateway import EvaluationGateway
from .hint_ledger import HintLedger
from .mastery import MasteryCheckOrchestrator
from .problem_generator import ProblemGenerator
from .session import TutoringSession

__all__ = [
    "Attempt",
    "AttemptClosed",
    "ConcurrentSubmission",
    "DiagnosticComposer",
    "DiagnosticFailure",
    "EmptyAnswer",
    "EvaluationGateway",
    "GenerationFailure",
    "HintLedger",
    "MalformedEvaluation",
    "MasteryCheckOrchestrator",
    "ProblemGenerator",
    "ProblemNotFound",
    "TutoringError",
    "TutoringSession",
]
