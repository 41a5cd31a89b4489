"""
Mastery Check Orchestrator.

After an original attempt is solved, the learner gets one sibling problem
testing the same concept. The sibling is a nested attempt with its own
ledger and conversation; whatever happens to it, the original stays
finalized as mastered. A mastery attempt never spawns another check.
"""

from __future__ import annotations

from loguru import logger

from config import get_settings
from src.tutoring.attempt import Attempt, AttemptRecorder
from src.tutoring.errors import AttemptClosed, GenerationFailure
from src.tutoring.evaluation_gateway import EvaluationGateway
from src.tutoring.problem_generator import ProblemGenerator
from src.tutoring.types import AttemptState, DifficultyAdjustment, MasteryOutcome

OUTCOME_BY_STATE = {
    AttemptState.SOLVED: MasteryOutcome.MASTERY_PASSED,
    AttemptState.SOLUTION_REVEALED: MasteryOutcome.MASTERY_FAILED,
    AttemptState.ABANDONED: MasteryOutcome.SKIPPED,
}


class MasteryCheckOrchestrator:
    """Runs the single mastery check that follows a solved original."""

    def __init__(
        self,
        original: Attempt,
        generator: ProblemGenerator,
        gateway: EvaluationGateway | None = None,
        recorder: AttemptRecorder | None = None,
        difficulty: DifficultyAdjustment | None = None,
    ):
        if original.is_mastery_check:
            raise ValueError("A mastery check attempt cannot start another mastery check")
        if original.state != AttemptState.SOLVED:
            raise ValueError(
                f"Mastery check needs a solved original, attempt is {original.state.value}"
            )

        self.original = original
        self.generator = generator
        self.gateway = gateway or original.gateway
        self.recorder = recorder or original.recorder
        self.difficulty = DifficultyAdjustment(difficulty or get_settings().mastery_difficulty)

        self.mastery_attempt: Attempt | None = None
        self._started = False
        self._skipped = False
        self._recorded = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def outcome(self) -> MasteryOutcome:
        if self._skipped:
            return MasteryOutcome.SKIPPED
        if self.mastery_attempt is None:
            return MasteryOutcome.PENDING
        return OUTCOME_BY_STATE.get(self.mastery_attempt.state, MasteryOutcome.PENDING)

    async def start(self) -> Attempt | None:
        """
        Generate one sibling problem and open the nested mastery attempt.

        Returns:
            The mastery Attempt, or None if generation failed and the check
            was skipped

        Raises:
            AttemptClosed: If the check was already started or skipped
        """
        self._claim()
        self.original.finalize()

        try:
            generated = await self.generator.generate_similar(
                self.original.problem,
                count=1,
                difficulty_adjustment=self.difficulty,
            )
        except GenerationFailure as e:
            logger.warning(
                f"Mastery check skipped for problem {self.original.problem.id}: {e}"
            )
            self._skipped = True
            return None

        sibling = generated[0].to_problem(self.original.problem)
        self.mastery_attempt = Attempt(
            sibling,
            self.gateway,
            session_id=self.original.session_id,
            is_mastery_check=True,
            original_problem_id=self.original.problem.id,
            learner_age=self.original.learner_age,
            recorder=self.recorder,
        )
        logger.info(
            f"Mastery check {sibling.id} started for problem {self.original.problem.id}"
        )
        return self.mastery_attempt

    def skip(self) -> None:
        """Decline the check; the original is still finalized as mastered."""
        self._claim()
        self.original.finalize()
        self._skipped = True
        logger.info(f"Mastery check declined for problem {self.original.problem.id}")

    def record_outcome(self) -> bool:
        """
        Persist mastery_check_passed on the original attempt, once.

        Finalizes the nested attempt if it is terminal. A skipped or pending
        check records nothing.
        """
        if self._recorded:
            return False

        outcome = self.outcome
        if self.mastery_attempt is not None and self.mastery_attempt.is_terminal:
            self.mastery_attempt.finalize()

        if outcome not in (MasteryOutcome.MASTERY_PASSED, MasteryOutcome.MASTERY_FAILED):
            return False

        self._recorded = True
        passed = outcome == MasteryOutcome.MASTERY_PASSED
        logger.info(
            f"Mastery check for problem {self.original.problem.id}: {outcome.value}"
        )
        if self.recorder and self.original.session_id:
            self.recorder.record_mastery_result(self.original.attempt_id, passed)
        return True

    def _claim(self) -> None:
        if self._started:
            raise AttemptClosed(
                f"Mastery check for attempt {self.original.attempt_id} already started"
            )
        self._started = True
