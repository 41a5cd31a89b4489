"""
Tutoring session: one learner working through problems.

Owns the live attempt for a single learner stream and wires the
components together. Only one attempt is live at a time; starting a new
problem abandons whatever is still open.
"""

from __future__ import annotations

from loguru import logger

from src.problems.repository import ProblemRepository
from src.tutoring.attempt import Attempt
from src.tutoring.diagnostics import DiagnosticComposer
from src.tutoring.errors import AttemptClosed
from src.tutoring.evaluation_gateway import EvaluationGateway
from src.tutoring.llm_client import GeminiClient, LLMClient
from src.tutoring.mastery import MasteryCheckOrchestrator
from src.tutoring.problem_generator import ProblemGenerator
from src.tutoring.recorder import SessionRecorder, SessionSummary
from src.tutoring.types import AttemptState, DiagnosticResult, MasteryOutcome, Problem, TurnOutcome


class TutoringSession:
    """
    Session facade used by the CLI.

    Usage:
        session = TutoringSession("Asha", learner_age=10)
        session.start_problem("problem_00042")
        outcome = await session.submit("I think it is 24")
        if session.mastery_check_available:
            await session.start_mastery_check()
    """

    def __init__(
        self,
        student_name: str,
        *,
        learner_age: int | None = None,
        llm: LLMClient | None = None,
        repository: ProblemRepository | None = None,
        recorder: SessionRecorder | None = None,
        gateway: EvaluationGateway | None = None,
        generator: ProblemGenerator | None = None,
        diagnostics: DiagnosticComposer | None = None,
    ):
        self.student_name = student_name
        self.learner_age = learner_age

        if llm is None and not (gateway and generator and diagnostics):
            llm = GeminiClient()
        self.repository = repository or ProblemRepository()
        self.recorder = recorder
        self.gateway = gateway or EvaluationGateway(llm)
        self.generator = generator or ProblemGenerator(llm)
        self.diagnostics = diagnostics or DiagnosticComposer(llm)

        self.session_id = recorder.create_session(student_name) if recorder else None
        self.attempt: Attempt | None = None
        self.original: Attempt | None = None
        self.mastery: MasteryCheckOrchestrator | None = None
        self.closed = False

    # ========================================
    # Problem selection
    # ========================================

    def start_problem(self, problem_id: str) -> Attempt:
        """
        Start an attempt on a stored problem.

        Raises:
            ProblemNotFound: If the id is unknown
        """
        problem = self.repository.get_by_id(problem_id)
        return self.start_with(problem)

    def start_with(self, problem: Problem) -> Attempt:
        """Start an attempt on an already-loaded problem."""
        self._ensure_active()
        self._retire_current()

        self.attempt = Attempt(
            problem,
            self.gateway,
            session_id=self.session_id,
            learner_age=self.learner_age,
            recorder=self.recorder,
        )
        self.original = self.attempt
        self.mastery = None
        logger.info(f"{self.student_name} started problem {problem.id}")
        return self.attempt

    # ========================================
    # Learner actions
    # ========================================

    async def submit(self, text: str) -> TurnOutcome:
        """Submit an answer on the live attempt."""
        attempt = self._require_attempt()
        outcome = await attempt.submit_answer(text)
        if attempt.is_terminal:
            self._settle(attempt)
        return outcome

    async def request_solution(self) -> TurnOutcome:
        """Reveal the solution on the live attempt once the gate is open."""
        attempt = self._require_attempt()
        outcome = await attempt.request_solution()
        self._settle(attempt)
        return outcome

    def abandon(self) -> bool:
        """
        Abandon the live attempt.

        Abandoning a mastery check leaves the original mastered.
        """
        if self.attempt is None or not self.attempt.abandon():
            return False
        self._settle(self.attempt)
        return True

    # ========================================
    # Mastery check
    # ========================================

    @property
    def mastery_check_available(self) -> bool:
        return (
            self.original is not None
            and self.original.state == AttemptState.SOLVED
            and self.mastery is None
        )

    @property
    def mastery_outcome(self) -> MasteryOutcome | None:
        return self.mastery.outcome if self.mastery else None

    async def start_mastery_check(self) -> Attempt | None:
        """
        Start the mastery check for the solved original.

        Returns:
            The mastery attempt, now live, or None if generation failed and
            the check was skipped

        Raises:
            ValueError: If there is no solved original attempt
            AttemptClosed: If the check was already started or skipped
        """
        self._ensure_active()
        orchestrator = self._orchestrator()
        mastery_attempt = await orchestrator.start()
        if mastery_attempt is not None:
            self.attempt = mastery_attempt
        return mastery_attempt

    def skip_mastery_check(self) -> None:
        """Decline the mastery check; the original stays mastered."""
        self._orchestrator().skip()

    # ========================================
    # Diagnostics
    # ========================================

    async def diagnose(self, attempt: Attempt | None = None) -> DiagnosticResult:
        """Diagnose the live attempt, or a given one. Read-only."""
        target = attempt or self._require_attempt()
        return await self.diagnostics.diagnose(target)

    async def recommend_practice(self, diagnostic: DiagnosticResult) -> list[str]:
        target = self._require_attempt()
        return await self.diagnostics.recommend_practice(diagnostic, target.problem)

    # ========================================
    # Lifecycle
    # ========================================

    def close(self) -> bool:
        """Abandon any open attempt and complete the session."""
        if self.closed:
            return False
        self._retire_current()
        self.closed = True
        if self.recorder and self.session_id:
            return self.recorder.complete_session(self.session_id)
        return True

    def summary(self) -> SessionSummary | None:
        if not (self.recorder and self.session_id):
            return None
        return self.recorder.session_summary(self.session_id)

    # ========================================
    # Internals
    # ========================================

    def _orchestrator(self) -> MasteryCheckOrchestrator:
        if self.mastery is None:
            if self.original is None:
                raise ValueError("No problem has been attempted in this session")
            self.mastery = MasteryCheckOrchestrator(
                self.original,
                self.generator,
                self.gateway,
                self.recorder,
            )
        return self.mastery

    def _settle(self, attempt: Attempt) -> None:
        """Finalize a terminal attempt and report a finished mastery check."""
        attempt.finalize()
        if attempt.is_mastery_check and self.mastery is not None:
            self.mastery.record_outcome()

    def _retire_current(self) -> None:
        if self.attempt is None:
            return
        if not self.attempt.is_terminal:
            self.attempt.abandon()
        self._settle(self.attempt)

    def _require_attempt(self) -> Attempt:
        self._ensure_active()
        if self.attempt is None:
            raise AttemptClosed("No problem has been started")
        return self.attempt

    def _ensure_active(self) -> None:
        if self.closed:
            raise AttemptClosed(f"Session {self.session_id or self.student_name} is closed")
