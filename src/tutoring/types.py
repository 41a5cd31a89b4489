"""
Tutoring data model.

Problems, conversation turns and the results exchanged with the
language-model capabilities. Enums carry the wire values used by the
model contract and the persistence schema.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class Role(str, Enum):
    """Who authored a conversation turn."""
    LEARNER = "learner"
    TUTOR = "tutor"


class Complexity(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ResponseType(str, Enum):
    """Classification of a learner answer; drives attempt transitions."""
    CORRECT_FINAL = "correct_final"         # Complete correct answer
    PARTIAL_PROGRESS = "partial_progress"   # Valid intermediate step
    ARITHMETIC_ERROR = "arithmetic_error"   # Right method, wrong computation
    CONCEPTUAL_ERROR = "conceptual_error"   # Misunderstood the concept
    NEEDS_HINT = "needs_hint"               # Learner is stuck


class BadgeType(str, Enum):
    """Display-only tag attached to a tutor turn."""
    PARTIAL_PROGRESS = "partial_progress"
    HINT_GIVEN = "hint_given"
    CORRECTIVE_FEEDBACK = "corrective_feedback"


class DifficultyAdjustment(str, Enum):
    EASIER = "easier"
    SAME = "same"
    HARDER = "harder"


class AttemptState(str, Enum):
    """Lifecycle of a single problem attempt."""
    PRESENTED = "presented"
    AWAITING_EVALUATION = "awaiting_evaluation"
    EVALUATED = "evaluated"
    SOLVED = "solved"
    SOLUTION_REVEALED = "solution_revealed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    AttemptState.SOLVED,
    AttemptState.SOLUTION_REVEALED,
    AttemptState.ABANDONED,
})


class FinalStatus(str, Enum):
    """Persisted outcome of an attempt."""
    MASTERED = "mastered"
    INCOMPLETE = "incomplete"
    STRUGGLING = "struggling"


class MasteryOutcome(str, Enum):
    """Result of a mastery check on a generated sibling problem."""
    PENDING = "pending"
    MASTERY_PASSED = "mastery_passed"
    MASTERY_FAILED = "mastery_failed"
    SKIPPED = "skipped"


class MisconceptionType(str, Enum):
    CONCEPTUAL = "conceptual"
    PROCEDURAL = "procedural"
    ARITHMETIC = "arithmetic"
    READING_COMPREHENSION = "reading_comprehension"
    INCOMPLETE_KNOWLEDGE = "incomplete_knowledge"
    CARELESS_ERROR = "careless_error"
    NONE = "none"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Problem:
    """A math problem, either from the repository or generated."""
    id: str
    text: str
    grade: int
    chapter: int
    problem_number: int = 0
    complexity: Complexity = Complexity.MEDIUM
    requires_multi_step: bool = False
    source_book: str = "NCERT"
    expected_answer: str | None = None
    explanation: str | None = None
    is_generated: bool = False

    def summary(self) -> str:
        """Problem summary sent to the language model."""
        return (
            f"Class: {self.grade}\n"
            f"Chapter: {self.chapter}\n"
            f"Complexity: {self.complexity.value}\n"
            f"Multi-step: {str(self.requires_multi_step).lower()}\n"
            f'"{self.text}"'
        )


@dataclass(frozen=True)
class ConversationTurn:
    """One entry in the append-only conversation of an attempt."""
    role: Role
    text: str
    timestamp: datetime = field(default_factory=datetime.now)
    badge: BadgeType | None = None
    response_type: ResponseType | None = None

    @classmethod
    def learner(cls, text: str) -> ConversationTurn:
        return cls(role=Role.LEARNER, text=text)

    @classmethod
    def tutor(
        cls,
        text: str,
        badge: BadgeType | None = None,
        response_type: ResponseType | None = None,
    ) -> ConversationTurn:
        return cls(role=Role.TUTOR, text=text, badge=badge, response_type=response_type)

    def format_line(self) -> str:
        prefix = "Student" if self.role == Role.LEARNER else "Tutor"
        return f"{prefix}: {self.text}"


@dataclass(frozen=True)
class EvaluationResult:
    """Validated classification of one learner answer."""
    response_type: ResponseType
    tutor_message: str
    badge: BadgeType
    show_solution_button: bool = False
    is_fallback: bool = False

    @property
    def consumes_hint(self) -> bool:
        return self.response_type == ResponseType.NEEDS_HINT


@dataclass(frozen=True)
class SolutionResult:
    """Worked explanation returned when the learner asks for the solution."""
    tutor_message: str
    explanation: str
    is_fallback: bool = False


@dataclass(frozen=True)
class GeneratedProblem:
    """A sibling problem produced by the generation capability."""
    text: str
    expected_answer: str
    explanation: str
    complexity: Complexity

    def to_problem(self, original: Problem) -> Problem:
        """Materialize as an ephemeral Problem scoped to the original."""
        return Problem(
            id=f"{original.id}-gen-{uuid.uuid4().hex[:8]}",
            text=self.text,
            grade=original.grade,
            chapter=original.chapter,
            problem_number=original.problem_number,
            complexity=self.complexity,
            requires_multi_step=original.requires_multi_step,
            source_book=original.source_book,
            expected_answer=self.expected_answer,
            explanation=self.explanation,
            is_generated=True,
        )


@dataclass(frozen=True)
class DiagnosticResult:
    """Misconception classification over an attempt's answer history."""
    misconception_type: MisconceptionType
    confidence: Confidence
    description: str
    evidence: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    prerequisite_concepts: list[str] = field(default_factory=list)
    is_fallback: bool = False


@dataclass(frozen=True)
class TurnOutcome:
    """What the learner sees after one action on an attempt."""
    tutor_turn: ConversationTurn
    state: AttemptState
    hint_count: int
    hints_remaining: int
    show_solution_button: bool
    response_type: ResponseType | None = None
    is_fallback: bool = False

    @property
    def badge(self) -> BadgeType | None:
        return self.tutor_turn.badge

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


def age_from_birthdate(birthdate: date, today: date | None = None) -> int:
    """Whole years between a birthdate and today."""
    today = today or date.today()
    years = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        years -= 1
    return max(0, years)
