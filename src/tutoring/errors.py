"""
Error taxonomy for the tutoring core.

MalformedEvaluation, GenerationFailure and DiagnosticFailure are recovered
by the component that raises them. ProblemNotFound, ConcurrentSubmission,
EmptyAnswer and AttemptClosed reach the caller.
"""

from __future__ import annotations


class TutoringError(Exception):
    """Base class for tutoring errors."""


class MalformedEvaluation(TutoringError):
    """Evaluation response failed contract validation."""

    def __init__(self, reason: str, payload: object | None = None):
        super().__init__(reason)
        self.reason = reason
        self.payload = payload


class GenerationFailure(TutoringError):
    """Sibling problem generation failed."""


class DiagnosticFailure(TutoringError):
    """Misconception analysis failed."""


class ProblemNotFound(TutoringError):
    """No problem matches the lookup."""

    def __init__(self, message: str, problem_id: str | None = None):
        super().__init__(message)
        self.problem_id = problem_id


class ConcurrentSubmission(TutoringError):
    """An evaluation call is already in flight for this attempt."""

    def __init__(self, attempt_id: str):
        super().__init__(f"Attempt {attempt_id} already has an evaluation in flight")
        self.attempt_id = attempt_id


class AttemptClosed(TutoringError):
    """The attempt does not accept this input in its current state."""


class EmptyAnswer(TutoringError, ValueError):
    """Learner answer was blank after trimming."""


class LLMUnavailable(TutoringError):
    """No language model is configured or reachable."""
