"""
Attempt State Machine: one learner's run at one problem.

    PRESENTED --submit--> AWAITING_EVALUATION --resolve--> EVALUATED | SOLVED
    EVALUATED --submit--> AWAITING_EVALUATION
    EVALUATED --request_solution (after hint ceiling)--> SOLUTION_REVEALED
    any open state --abandon--> ABANDONED

Only one evaluation call may be in flight per attempt. Learner and tutor
turns are committed together once the call resolves, so a cancelled call
leaves the conversation and hint ledger exactly as they were.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import NamedTuple, Protocol

from loguru import logger

from src.tutoring.errors import AttemptClosed, ConcurrentSubmission, EmptyAnswer
from src.tutoring.evaluation_gateway import EvaluationGateway
from src.tutoring.hint_ledger import HintLedger
from src.tutoring.types import (
    AttemptState,
    ConversationTurn,
    EvaluationResult,
    FinalStatus,
    Problem,
    ResponseType,
    Role,
    TurnOutcome,
)


class AttemptRecorder(Protocol):
    """Persistence collaborator for attempts. Writes report success, never raise."""

    def create_attempt(
        self,
        attempt_id: str,
        session_id: str,
        problem_id: str,
        is_mastery_check: bool = False,
        original_problem_id: str | None = None,
    ) -> bool:
        ...

    def append_turn(self, attempt_id: str, turn: ConversationTurn) -> bool:
        ...

    def finalize_attempt(
        self,
        attempt_id: str,
        final_status: FinalStatus,
        hints_used: int,
    ) -> bool:
        ...

    def record_mastery_result(self, attempt_id: str, passed: bool) -> bool:
        ...


class Transition(NamedTuple):
    next_state: AttemptState
    consumes_hint: bool


# Every ResponseType must have an entry
TRANSITIONS: dict[ResponseType, Transition] = {
    ResponseType.CORRECT_FINAL: Transition(AttemptState.SOLVED, consumes_hint=False),
    ResponseType.PARTIAL_PROGRESS: Transition(AttemptState.EVALUATED, consumes_hint=False),
    ResponseType.ARITHMETIC_ERROR: Transition(AttemptState.EVALUATED, consumes_hint=False),
    ResponseType.CONCEPTUAL_ERROR: Transition(AttemptState.EVALUATED, consumes_hint=False),
    ResponseType.NEEDS_HINT: Transition(AttemptState.EVALUATED, consumes_hint=True),
}

FINAL_STATUS_BY_STATE = {
    AttemptState.SOLVED: FinalStatus.MASTERED,
    AttemptState.SOLUTION_REVEALED: FinalStatus.STRUGGLING,
    AttemptState.ABANDONED: FinalStatus.INCOMPLETE,
}


class Attempt:
    """
    Controlling state machine for one problem attempt.

    Normal and mastery-check attempts share this type; a mastery check is
    flagged with is_mastery_check and points back at the original problem.
    """

    def __init__(
        self,
        problem: Problem,
        gateway: EvaluationGateway,
        *,
        session_id: str | None = None,
        is_mastery_check: bool = False,
        original_problem_id: str | None = None,
        learner_age: int | None = None,
        recorder: AttemptRecorder | None = None,
    ):
        if is_mastery_check and not original_problem_id:
            raise ValueError("A mastery check attempt needs original_problem_id")

        self.attempt_id = str(uuid.uuid4())
        self.problem = problem
        self.gateway = gateway
        self.session_id = session_id
        self.is_mastery_check = is_mastery_check
        self.original_problem_id = original_problem_id
        self.learner_age = learner_age
        self.recorder = recorder

        self.ledger = HintLedger(gateway.hint_ceiling)
        self.turns: list[ConversationTurn] = []
        self.state = AttemptState.PRESENTED
        self.solution_offered = False
        self.final_status: FinalStatus | None = None
        self.started_at = datetime.now()
        self.ended_at: datetime | None = None

        if self.recorder and self.session_id:
            self.recorder.create_attempt(
                attempt_id=self.attempt_id,
                session_id=self.session_id,
                problem_id=problem.id,
                is_mastery_check=is_mastery_check,
                original_problem_id=original_problem_id,
            )

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def hint_count(self) -> int:
        return self.ledger.current_count()

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def can_request_solution(self) -> bool:
        return self.solution_offered and not self.is_terminal

    @property
    def history(self) -> tuple[ConversationTurn, ...]:
        return tuple(self.turns)

    @property
    def duration_ms(self) -> int:
        end = self.ended_at or datetime.now()
        return int((end - self.started_at).total_seconds() * 1000)

    def learner_answers(self) -> list[str]:
        """Every learner answer in submission order."""
        return [turn.text for turn in self.turns if turn.role == Role.LEARNER]

    # ------------------------------------------------------------------
    # Learner actions
    # ------------------------------------------------------------------

    async def submit_answer(self, text: str) -> TurnOutcome:
        """
        Evaluate a learner answer and apply the resulting transition.

        Raises:
            ConcurrentSubmission: If an evaluation is already in flight
            AttemptClosed: If the attempt is terminal, or was abandoned
                while this evaluation was in flight
            EmptyAnswer: If the answer is blank
        """
        self._ensure_idle()
        self._ensure_open()

        answer = (text or "").strip()
        if not answer:
            raise EmptyAnswer("Learner answer must be non-empty")

        previous = self.state
        self.state = AttemptState.AWAITING_EVALUATION
        try:
            result = await self.gateway.evaluate(
                self.problem,
                self.history,
                answer,
                self.ledger.current_count(),
                self.learner_age,
            )
        finally:
            if self.state == AttemptState.AWAITING_EVALUATION:
                self.state = previous

        if self.is_terminal:
            raise AttemptClosed(f"Attempt {self.attempt_id} closed while awaiting evaluation")

        return self._apply_evaluation(answer, result)

    async def request_solution(self) -> TurnOutcome:
        """
        Reveal the worked solution once the hint ceiling has been reached.

        Raises:
            ConcurrentSubmission: If an evaluation is already in flight
            AttemptClosed: If the attempt is terminal or the gate is closed
        """
        self._ensure_idle()
        self._ensure_open()
        if not self.solution_offered:
            raise AttemptClosed(
                f"Solution is available after {self.ledger.ceiling} hints "
                f"({self.hint_count} used)"
            )

        previous = self.state
        self.state = AttemptState.AWAITING_EVALUATION
        try:
            solution = await self.gateway.request_solution(self.problem, self.hint_count)
        finally:
            if self.state == AttemptState.AWAITING_EVALUATION:
                self.state = previous

        if self.is_terminal:
            raise AttemptClosed(f"Attempt {self.attempt_id} closed while awaiting the solution")

        tutor_turn = ConversationTurn.tutor(f"{solution.tutor_message}\n\n{solution.explanation}")
        self._commit([tutor_turn], AttemptState.SOLUTION_REVEALED)
        logger.info(f"Attempt {self.attempt_id}: solution revealed after {self.hint_count} hints")

        return TurnOutcome(
            tutor_turn=tutor_turn,
            state=self.state,
            hint_count=self.hint_count,
            hints_remaining=self.ledger.remaining(),
            show_solution_button=False,
            is_fallback=solution.is_fallback,
        )

    def abandon(self) -> bool:
        """Close an unsolved attempt. Returns False if already terminal."""
        if self.is_terminal:
            return False
        self.state = AttemptState.ABANDONED
        self.ended_at = datetime.now()
        logger.info(f"Attempt {self.attempt_id} abandoned after {len(self.turns)} turns")
        return True

    def finalize(self) -> FinalStatus:
        """
        Map the terminal state to its persisted status. Idempotent.

        Raises:
            AttemptClosed: If the attempt has not reached a terminal state
        """
        if self.final_status is not None:
            return self.final_status
        if not self.is_terminal:
            raise AttemptClosed(f"Attempt {self.attempt_id} is still {self.state.value}")

        self.final_status = FINAL_STATUS_BY_STATE[self.state]
        if self.recorder and self.session_id:
            self.recorder.finalize_attempt(self.attempt_id, self.final_status, self.hint_count)
        logger.info(
            f"Attempt {self.attempt_id} finalized as {self.final_status.value} "
            f"({self.hint_count} hints, mastery_check={self.is_mastery_check})"
        )
        return self.final_status

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_evaluation(self, answer: str, result: EvaluationResult) -> TurnOutcome:
        transition = TRANSITIONS[result.response_type]
        badge = result.badge

        if transition.consumes_hint:
            before = self.ledger.current_count()
            after = self.ledger.record_hint()
            if after == before:
                # Saturated ledger: no slot consumed, so no hint badge either
                badge = None
            if self.ledger.is_exhausted and not self.solution_offered:
                self.solution_offered = True
                logger.info(f"Attempt {self.attempt_id}: hint ceiling reached, solution offered")

        learner_turn = ConversationTurn.learner(answer)
        tutor_turn = ConversationTurn.tutor(
            result.tutor_message,
            badge=badge,
            response_type=result.response_type,
        )
        self._commit([learner_turn, tutor_turn], transition.next_state)

        logger.debug(
            f"Attempt {self.attempt_id}: {result.response_type.value} -> {self.state.value} "
            f"(hints {self.hint_count}/{self.ledger.ceiling})"
        )

        return TurnOutcome(
            tutor_turn=tutor_turn,
            state=self.state,
            hint_count=self.hint_count,
            hints_remaining=self.ledger.remaining(),
            show_solution_button=self.can_request_solution,
            response_type=result.response_type,
            is_fallback=result.is_fallback,
        )

    def _commit(self, turns: list[ConversationTurn], next_state: AttemptState) -> None:
        self.turns.extend(turns)
        self.state = next_state
        if next_state.is_terminal:
            self.ended_at = datetime.now()

        if self.recorder and self.session_id:
            for turn in turns:
                self.recorder.append_turn(self.attempt_id, turn)

    def _ensure_idle(self) -> None:
        if self.state == AttemptState.AWAITING_EVALUATION:
            raise ConcurrentSubmission(self.attempt_id)

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise AttemptClosed(f"Attempt {self.attempt_id} is {self.state.value}")

    def __repr__(self) -> str:
        kind = "mastery" if self.is_mastery_check else "original"
        return f"<Attempt {self.attempt_id[:8]} {kind} problem={self.problem.id} state={self.state.value}>"
