"""
Evaluation Gateway: contract enforcement around the evaluation capability.

Turns a problem, the ordered conversation and the latest answer into an
evaluation request, and validates what comes back. Anything that breaks
the response contract becomes a single deterministic fallback turn; there
are no automatic retries.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from config import get_settings
from src.tutoring.errors import EmptyAnswer, MalformedEvaluation
from src.tutoring.llm_client import GeminiClient, LLMClient, extract_json
from src.tutoring.prompts import (
    EVALUATION_USER_PROMPT,
    SOLUTION_SYSTEM_PROMPT,
    SOLUTION_USER_PROMPT,
    evaluation_system_prompt,
)
from src.tutoring.types import (
    BadgeType,
    ConversationTurn,
    EvaluationResult,
    Problem,
    ResponseType,
    SolutionResult,
)

FALLBACK_MESSAGE = (
    "I'm having trouble understanding your answer. "
    "Could you explain your thinking step by step?"
)
SOLUTION_INTRO = "Here's how to solve this problem:"
SOLUTION_UNAVAILABLE = "Unable to generate solution explanation at this time."


class EvaluationPayload(BaseModel):
    """Wire shape of an evaluation response."""

    model_config = ConfigDict(extra="ignore")

    response_type: ResponseType
    tutor_message: str
    badge_type: BadgeType
    show_solution_button: bool = False

    @field_validator("tutor_message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("tutor_message is blank")
        return v.strip()


def format_conversation(history: Sequence[ConversationTurn]) -> str:
    """Render the full ordered history; nothing is summarized or dropped."""
    if not history:
        return "No conversation yet"
    return "\n".join(turn.format_line() for turn in history)


def reveals_answer(message: str, expected_answer: str | None) -> bool:
    """Check whether a tutor message states the expected answer verbatim."""
    if not expected_answer:
        return False
    answer = " ".join(expected_answer.split())
    if not answer:
        return False

    # Bounded so "12" does not match inside "120" or "1.25"
    pattern = rf"(?<!\w)(?<!\d\.){re.escape(answer)}(?!\.?\d)(?!\w)"
    return re.search(pattern, " ".join(message.split()), re.IGNORECASE) is not None


def checks_answer_leaks(problem: Problem) -> bool:
    """
    Whether non-final messages are screened for the expected answer.

    Only generated problems are screened. Stored answers are often one or
    two digits that a hint can mention as a step or operand, and an answer
    already printed in the problem text gives nothing away.
    """
    if not problem.is_generated:
        return False
    return not reveals_answer(problem.text, problem.expected_answer)


def parse_evaluation(response: str, problem: Problem) -> EvaluationResult:
    """
    Validate a raw evaluation response against the contract.

    Raises:
        MalformedEvaluation: If the payload is not a JSON object, lacks a
            recognized response_type, badge_type or tutor_message, pairs
            needs_hint and hint_given inconsistently, or leaks the answer
    """
    try:
        data = extract_json(response)
    except ValueError as e:
        raise MalformedEvaluation(f"unparseable response: {e}", response) from e

    if not isinstance(data, dict):
        raise MalformedEvaluation("response is not a JSON object", data)

    try:
        payload = EvaluationPayload.model_validate(data)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise MalformedEvaluation(f"invalid fields: {', '.join(fields)}", data) from e

    is_hint = payload.response_type == ResponseType.NEEDS_HINT
    has_hint_badge = payload.badge_type == BadgeType.HINT_GIVEN
    if is_hint != has_hint_badge:
        raise MalformedEvaluation(
            f"response_type {payload.response_type.value} disagrees with "
            f"badge_type {payload.badge_type.value}",
            data,
        )

    if (
        payload.response_type != ResponseType.CORRECT_FINAL
        and checks_answer_leaks(problem)
        and reveals_answer(payload.tutor_message, problem.expected_answer)
    ):
        raise MalformedEvaluation("tutor_message reveals the expected answer", data)

    return EvaluationResult(
        response_type=payload.response_type,
        tutor_message=payload.tutor_message,
        badge=payload.badge_type,
        show_solution_button=payload.show_solution_button,
    )


def fallback_evaluation() -> EvaluationResult:
    """Fixed turn used whenever an evaluation cannot be trusted."""
    return EvaluationResult(
        response_type=ResponseType.NEEDS_HINT,
        tutor_message=FALLBACK_MESSAGE,
        badge=BadgeType.HINT_GIVEN,
        show_solution_button=False,
        is_fallback=True,
    )


class EvaluationGateway:
    """Issues evaluation and solution requests and enforces their contract."""

    def __init__(
        self,
        llm: LLMClient | None = None,
        hint_ceiling: int | None = None,
    ):
        settings = get_settings()
        self.llm = llm or GeminiClient()
        self.hint_ceiling = hint_ceiling or settings.hint_ceiling
        self._llm_config = settings.get_llm_config()

    async def evaluate(
        self,
        problem: Problem,
        history: Sequence[ConversationTurn],
        learner_answer: str,
        hint_count: int,
        learner_age: int | None = None,
    ) -> EvaluationResult:
        """
        Classify a learner answer.

        Args:
            problem: Problem being attempted
            history: Full ordered conversation, excluding the new answer
            learner_answer: The new answer
            hint_count: Hints consumed so far, from the attempt's ledger
            learner_age: Optional age used to adapt tone

        Returns:
            A validated EvaluationResult, or the fallback turn

        Raises:
            EmptyAnswer: If the answer is blank after trimming
        """
        answer = (learner_answer or "").strip()
        if not answer:
            raise EmptyAnswer("Learner answer must be non-empty")

        prompt = EVALUATION_USER_PROMPT.format(
            problem_summary=problem.summary(),
            conversation=format_conversation(history),
            answer=answer,
            hints_used=hint_count,
            hint_ceiling=self.hint_ceiling,
        )

        try:
            response = await self.llm.complete(
                evaluation_system_prompt(learner_age),
                prompt,
                json_mode=True,
                **self._llm_config["evaluation"],
            )
            result = parse_evaluation(response, problem)
        except MalformedEvaluation as e:
            logger.warning(f"Malformed evaluation for problem {problem.id}: {e.reason}")
            return fallback_evaluation()
        except Exception as e:
            logger.error(f"Evaluation call failed for problem {problem.id}: {e}")
            return fallback_evaluation()

        logger.debug(
            f"Problem {problem.id} evaluated as {result.response_type.value} "
            f"({hint_count}/{self.hint_ceiling} hints used)"
        )
        return result

    async def request_solution(self, problem: Problem, hint_count: int) -> SolutionResult:
        """Worked explanation for the solution-reveal path."""
        prompt = SOLUTION_USER_PROMPT.format(
            problem_text=problem.text,
            hints_used=hint_count,
        )

        try:
            explanation = await self.llm.complete(
                SOLUTION_SYSTEM_PROMPT,
                prompt,
                **self._llm_config["solution"],
            )
            explanation = explanation.strip()
            if not explanation:
                raise ValueError("Empty solution explanation")
        except Exception as e:
            logger.error(f"Solution generation failed for problem {problem.id}: {e}")
            return SolutionResult(
                tutor_message=SOLUTION_INTRO,
                explanation=problem.explanation or SOLUTION_UNAVAILABLE,
                is_fallback=True,
            )

        return SolutionResult(tutor_message=SOLUTION_INTRO, explanation=explanation)
