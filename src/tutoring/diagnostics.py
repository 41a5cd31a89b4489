"""
Diagnostic Composer: misconception analysis over an attempt's history.

Reads the full answer history and conversation of an attempt, open or
terminal, and classifies the learner's error pattern. Diagnosis never
changes the attempt and never fails outward; any failure becomes the
fixed low-confidence fallback.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from config import get_settings
from src.tutoring.attempt import Attempt
from src.tutoring.errors import DiagnosticFailure
from src.tutoring.evaluation_gateway import format_conversation
from src.tutoring.llm_client import GeminiClient, LLMClient, extract_json
from src.tutoring.prompts import (
    DIAGNOSTIC_SYSTEM_PROMPT,
    DIAGNOSTIC_USER_PROMPT,
    PRACTICE_SYSTEM_PROMPT,
    PRACTICE_USER_PROMPT,
)
from src.tutoring.types import (
    Confidence,
    ConversationTurn,
    DiagnosticResult,
    MisconceptionType,
    Problem,
)

FALLBACK_DESCRIPTION = "Unable to determine specific misconception from available data."
FALLBACK_EVIDENCE = ["Insufficient data for analysis"]
FALLBACK_RECOMMENDATIONS = [
    "Continue working with the student to gather more information",
    "Provide additional practice problems to identify patterns",
]

# Advice when there is nothing to remediate
GENERAL_PRACTICE = [
    "Continue with similar problems to build confidence",
    "Try slightly harder problems to advance",
]

NO_REMEDIATION = {MisconceptionType.NONE, MisconceptionType.CARELESS_ERROR}


def _string_list(v: Any) -> Any:
    if v is None:
        return []
    if isinstance(v, str):
        return [v] if v.strip() else []
    return v


class DiagnosticPayload(BaseModel):
    """Wire shape of a diagnostic response."""

    model_config = ConfigDict(extra="ignore")

    misconception_type: MisconceptionType
    confidence: Confidence
    description: str
    evidence: list[str] = []
    recommendations: list[str] = []
    prerequisite_concepts: list[str] = []

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("description is blank")
        return v.strip()

    @field_validator("evidence", "recommendations", "prerequisite_concepts", mode="before")
    @classmethod
    def coerce_lists(cls, v: Any) -> Any:
        return _string_list(v)


def fallback_diagnostic() -> DiagnosticResult:
    return DiagnosticResult(
        misconception_type=MisconceptionType.NONE,
        confidence=Confidence.LOW,
        description=FALLBACK_DESCRIPTION,
        evidence=list(FALLBACK_EVIDENCE),
        recommendations=list(FALLBACK_RECOMMENDATIONS),
        prerequisite_concepts=[],
        is_fallback=True,
    )


def format_answers(answers: Sequence[str]) -> str:
    if not answers:
        return "No attempts yet"
    return "\n".join(f'Attempt {i}: "{answer}"' for i, answer in enumerate(answers, 1))


def parse_diagnostic(response: str) -> DiagnosticResult:
    """
    Validate a raw diagnostic response.

    Raises:
        DiagnosticFailure: If the response is not a valid diagnostic object
    """
    try:
        data = extract_json(response)
    except ValueError as e:
        raise DiagnosticFailure(f"Unparseable diagnostic response: {e}") from e

    if not isinstance(data, dict):
        raise DiagnosticFailure("Diagnostic response is not a JSON object")

    try:
        payload = DiagnosticPayload.model_validate(data)
    except ValidationError as e:
        raise DiagnosticFailure(f"Invalid diagnostic response structure: {e.error_count()} error(s)") from e

    return DiagnosticResult(
        misconception_type=payload.misconception_type,
        confidence=payload.confidence,
        description=payload.description,
        evidence=payload.evidence,
        recommendations=payload.recommendations,
        prerequisite_concepts=payload.prerequisite_concepts,
    )


class DiagnosticComposer:
    """Classifies misconceptions from attempt histories."""

    def __init__(self, llm: LLMClient | None = None, hint_ceiling: int | None = None):
        settings = get_settings()
        self.llm = llm or GeminiClient()
        self.hint_ceiling = hint_ceiling or settings.hint_ceiling
        self._llm_config = settings.get_llm_config()

    async def diagnose(self, attempt: Attempt) -> DiagnosticResult:
        """Diagnose an attempt from its current history. Safe to repeat."""
        return await self.diagnose_history(
            attempt.problem,
            attempt.history,
            attempt.learner_answers(),
            attempt.hint_count,
        )

    async def diagnose_history(
        self,
        problem: Problem,
        history: Sequence[ConversationTurn],
        answers: Sequence[str],
        hint_count: int,
    ) -> DiagnosticResult:
        """
        Diagnose from raw history.

        Args:
            problem: Problem that was attempted
            history: Full ordered conversation
            answers: Every learner answer, in order
            hint_count: Hints consumed on the attempt

        Returns:
            A validated DiagnosticResult, or the fallback
        """
        prompt = DIAGNOSTIC_USER_PROMPT.format(
            problem_summary=problem.summary(),
            attempt_count=len(answers),
            attempts=format_answers(answers),
            conversation=format_conversation(history),
            hints_used=hint_count,
            hint_ceiling=self.hint_ceiling,
        )

        try:
            response = await self.llm.complete(
                DIAGNOSTIC_SYSTEM_PROMPT,
                prompt,
                json_mode=True,
                **self._llm_config["diagnostic"],
            )
            result = parse_diagnostic(response)
        except DiagnosticFailure as e:
            logger.warning(f"Diagnostic failed for problem {problem.id}: {e}")
            return fallback_diagnostic()
        except Exception as e:
            logger.error(f"Diagnostic call failed for problem {problem.id}: {e}")
            return fallback_diagnostic()

        logger.info(
            f"Problem {problem.id}: {result.misconception_type.value} "
            f"({result.confidence.value} confidence, {len(answers)} answers)"
        )
        return result

    async def recommend_practice(
        self,
        diagnostic: DiagnosticResult,
        problem: Problem,
    ) -> list[str]:
        """
        Practice advice targeting a diagnosed misconception.

        Returns fixed advice when there is nothing to remediate, and the
        diagnostic's own recommendations if the model gives nothing usable.
        """
        if diagnostic.misconception_type in NO_REMEDIATION:
            return list(GENERAL_PRACTICE)

        prompt = PRACTICE_USER_PROMPT.format(
            misconception_type=diagnostic.misconception_type.value,
            description=diagnostic.description,
            grade=problem.grade,
            chapter=problem.chapter,
            complexity=problem.complexity.value,
        )

        try:
            response = await self.llm.complete(
                PRACTICE_SYSTEM_PROMPT,
                prompt,
                json_mode=True,
                **self._llm_config["practice"],
            )
            data = extract_json(response)
        except Exception as e:
            logger.warning(f"Practice recommendations failed for problem {problem.id}: {e}")
            return list(diagnostic.recommendations)

        recommendations = data.get("recommendations") if isinstance(data, dict) else None
        if isinstance(recommendations, list):
            cleaned = [str(r).strip() for r in recommendations if str(r).strip()]
            if cleaned:
                return cleaned
        return list(diagnostic.recommendations)
