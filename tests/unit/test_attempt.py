"""
Unit tests for the attempt state machine.

Covers the main learner paths (solved first try, hints then solution,
abandonment), the single in-flight evaluation rule and cancellation.
"""

import asyncio
from dataclasses import replace

import pytest

from conftest import RecordingRecorder, evaluation
from src.tutoring.attempt import FINAL_STATUS_BY_STATE, TRANSITIONS, Attempt
from src.tutoring.errors import AttemptClosed, ConcurrentSubmission, EmptyAnswer
from src.tutoring.evaluation_gateway import FALLBACK_MESSAGE, SOLUTION_INTRO, EvaluationGateway
from src.tutoring.types import AttemptState, BadgeType, FinalStatus, ResponseType, Role


@pytest.fixture
def attempt(sample_problem, gateway):
    return Attempt(sample_problem, gateway)


async def give_hints(attempt, llm, n):
    for i in range(n):
        llm.queue(evaluation("needs_hint", f"Hint number {i + 1}"))
        await attempt.submit_answer("I don't know")


class TestTransitionTable:

    def test_every_response_type_has_a_transition(self):
        assert set(TRANSITIONS) == set(ResponseType)

    def test_only_needs_hint_consumes(self):
        consuming = {rt for rt, t in TRANSITIONS.items() if t.consumes_hint}
        assert consuming == {ResponseType.NEEDS_HINT}

    def test_only_correct_final_solves(self):
        solving = {rt for rt, t in TRANSITIONS.items() if t.next_state == AttemptState.SOLVED}
        assert solving == {ResponseType.CORRECT_FINAL}

    def test_terminal_states_have_final_status(self):
        terminal = {s for s in AttemptState if s.is_terminal}
        assert set(FINAL_STATUS_BY_STATE) == terminal


class TestSolvedFirstTry:

    @pytest.mark.asyncio
    async def test_correct_answer_solves(self, attempt, llm):
        llm.queue(evaluation("correct_final", "Brilliant!"))

        outcome = await attempt.submit_answer("45")

        assert outcome.state == AttemptState.SOLVED
        assert outcome.is_terminal
        assert outcome.hint_count == 0
        assert attempt.ended_at is not None
        assert attempt.finalize() == FinalStatus.MASTERED

    @pytest.mark.asyncio
    async def test_turns_recorded_in_order(self, attempt, llm):
        llm.queue(evaluation("correct_final", "Brilliant!"))
        await attempt.submit_answer("  45  ")

        roles = [t.role for t in attempt.history]
        assert roles == [Role.LEARNER, Role.TUTOR]
        assert attempt.history[0].text == "45"
        assert attempt.history[1].response_type == ResponseType.CORRECT_FINAL

    @pytest.mark.asyncio
    async def test_no_input_after_solved(self, attempt, llm):
        llm.queue(evaluation("correct_final"))
        await attempt.submit_answer("45")
        with pytest.raises(AttemptClosed):
            await attempt.submit_answer("45 again")


class TestHintsThenSolution:

    @pytest.mark.asyncio
    async def test_hints_count_up_to_ceiling(self, attempt, llm):
        for expected in (1, 2, 3):
            llm.queue(evaluation("needs_hint", "Think about what she gave away."))
            outcome = await attempt.submit_answer("no idea")
            assert outcome.hint_count == expected
            assert outcome.badge == BadgeType.HINT_GIVEN

        assert outcome.hints_remaining == 0
        assert outcome.show_solution_button
        assert attempt.can_request_solution

    @pytest.mark.asyncio
    async def test_solution_gated_before_ceiling(self, attempt, llm):
        await give_hints(attempt, llm, 2)
        assert not attempt.can_request_solution
        with pytest.raises(AttemptClosed):
            await attempt.request_solution()

    @pytest.mark.asyncio
    async def test_solution_reveal(self, attempt, llm):
        await give_hints(attempt, llm, 3)
        llm.queue("Subtract first, then add.")

        outcome = await attempt.request_solution()

        assert outcome.state == AttemptState.SOLUTION_REVEALED
        assert outcome.tutor_turn.text == f"{SOLUTION_INTRO}\n\nSubtract first, then add."
        assert not outcome.show_solution_button
        assert attempt.finalize() == FinalStatus.STRUGGLING

    @pytest.mark.asyncio
    async def test_saturated_ledger_drops_hint_badge(self, attempt, llm):
        await give_hints(attempt, llm, 3)
        llm.queue(evaluation("needs_hint", "One more nudge."))

        outcome = await attempt.submit_answer("still stuck")

        assert outcome.hint_count == 3
        assert outcome.badge is None
        hint_badges = [t for t in attempt.history if t.badge == BadgeType.HINT_GIVEN]
        assert len(hint_badges) == attempt.hint_count

    @pytest.mark.asyncio
    async def test_wrong_answer_after_ceiling_keeps_solution_offer(self, attempt, llm):
        await give_hints(attempt, llm, 3)
        llm.queue(evaluation("arithmetic_error", "Check 48 - 15 again."))

        outcome = await attempt.submit_answer("43")

        assert outcome.hint_count == 3
        assert outcome.state == AttemptState.EVALUATED
        assert outcome.show_solution_button
        assert attempt.can_request_solution

    @pytest.mark.asyncio
    async def test_hint_mentioning_short_answer_is_kept(self, sample_problem, gateway, llm):
        problem = replace(sample_problem, text="How many 5s make 10?", expected_answer="2")
        attempt = Attempt(problem, gateway)
        llm.queue(evaluation("partial_progress", "Good start! Step 2: think about how many 5s fit in 10."))

        outcome = await attempt.submit_answer("5 + 5")

        assert not outcome.is_fallback
        assert outcome.tutor_turn.response_type == ResponseType.PARTIAL_PROGRESS
        assert outcome.hint_count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response_type",
        ["partial_progress", "arithmetic_error", "conceptual_error"],
    )
    async def test_feedback_does_not_consume_hints(self, attempt, llm, response_type):
        llm.queue(evaluation(response_type, "Look again at the second step."))
        outcome = await attempt.submit_answer("33")
        assert outcome.hint_count == 0
        assert outcome.state == AttemptState.EVALUATED

    @pytest.mark.asyncio
    async def test_fallback_turn_consumes_hint(self, attempt, llm):
        llm.queue("this is not json")
        outcome = await attempt.submit_answer("33")
        assert outcome.is_fallback
        assert outcome.tutor_turn.text == FALLBACK_MESSAGE
        assert outcome.hint_count == 1

    @pytest.mark.asyncio
    async def test_correct_after_hints_still_mastered(self, attempt, llm):
        await give_hints(attempt, llm, 3)
        llm.queue(evaluation("correct_final"))
        outcome = await attempt.submit_answer("45")
        assert outcome.state == AttemptState.SOLVED
        assert attempt.finalize() == FinalStatus.MASTERED


class TestAbandon:

    @pytest.mark.asyncio
    async def test_abandon_open_attempt(self, attempt, llm):
        llm.queue(evaluation("partial_progress"))
        await attempt.submit_answer("33")

        assert attempt.abandon()
        assert attempt.state == AttemptState.ABANDONED
        assert attempt.finalize() == FinalStatus.INCOMPLETE
        with pytest.raises(AttemptClosed):
            await attempt.submit_answer("45")

    @pytest.mark.asyncio
    async def test_abandon_terminal_is_noop(self, attempt, llm):
        llm.queue(evaluation("correct_final"))
        await attempt.submit_answer("45")
        assert not attempt.abandon()
        assert attempt.state == AttemptState.SOLVED


class TestInputValidation:

    @pytest.mark.asyncio
    async def test_blank_answer(self, attempt, llm):
        with pytest.raises(EmptyAnswer):
            await attempt.submit_answer("   ")
        assert attempt.state == AttemptState.PRESENTED
        assert attempt.history == ()
        assert llm.calls == []

    def test_finalize_requires_terminal(self, attempt):
        with pytest.raises(AttemptClosed):
            attempt.finalize()

    def test_mastery_attempt_needs_original(self, sample_problem, gateway):
        with pytest.raises(ValueError):
            Attempt(sample_problem, gateway, is_mastery_check=True)


class TestConcurrency:
    """One evaluation in flight per attempt."""

    @pytest.mark.asyncio
    async def test_second_submission_rejected(self, sample_problem, make_llm):
        gate = asyncio.Event()
        llm = make_llm(evaluation("partial_progress"), gate=gate)
        attempt = Attempt(sample_problem, EvaluationGateway(llm, hint_ceiling=3))

        first = asyncio.create_task(attempt.submit_answer("33"))
        await asyncio.sleep(0)
        assert attempt.state == AttemptState.AWAITING_EVALUATION

        with pytest.raises(ConcurrentSubmission):
            await attempt.submit_answer("45")

        gate.set()
        outcome = await first
        assert outcome.state == AttemptState.EVALUATED
        assert len(attempt.history) == 2
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_cancelled_call_leaves_no_trace(self, sample_problem, make_llm):
        gate = asyncio.Event()
        llm = make_llm(evaluation("needs_hint"), gate=gate)
        attempt = Attempt(sample_problem, EvaluationGateway(llm, hint_ceiling=3))

        task = asyncio.create_task(attempt.submit_answer("no idea"))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert attempt.state == AttemptState.PRESENTED
        assert attempt.history == ()
        assert attempt.hint_count == 0

    @pytest.mark.asyncio
    async def test_abandon_while_in_flight(self, sample_problem, make_llm):
        gate = asyncio.Event()
        llm = make_llm(evaluation("needs_hint"), gate=gate)
        attempt = Attempt(sample_problem, EvaluationGateway(llm, hint_ceiling=3))

        task = asyncio.create_task(attempt.submit_answer("no idea"))
        await asyncio.sleep(0)
        assert attempt.abandon()
        gate.set()

        with pytest.raises(AttemptClosed):
            await task
        assert attempt.state == AttemptState.ABANDONED
        assert attempt.history == ()
        assert attempt.hint_count == 0


class TestRecorderHooks:

    @pytest.mark.asyncio
    async def test_recorder_sees_lifecycle(self, sample_problem, gateway, llm):
        recorder = RecordingRecorder()
        attempt = Attempt(sample_problem, gateway, session_id="session-1", recorder=recorder)
        llm.queue(evaluation("needs_hint"), evaluation("correct_final"))

        await attempt.submit_answer("no idea")
        await attempt.submit_answer("45")
        attempt.finalize()
        attempt.finalize()

        assert recorder.created == [(attempt.attempt_id, "session-1", sample_problem.id, False, None)]
        assert [turn.role for _, turn in recorder.turns] == [Role.LEARNER, Role.TUTOR] * 2
        assert recorder.finalized == [(attempt.attempt_id, FinalStatus.MASTERED, 1)]

    def test_no_session_no_recording(self, sample_problem, gateway):
        recorder = RecordingRecorder()
        Attempt(sample_problem, gateway, recorder=recorder)
        assert recorder.created == []
