"""
Sibling problem generation.

Produces practice problems that test the same concept as an original,
used by the mastery check. Every returned item is validated; one malformed
item, or a response with no problems, is a GenerationFailure.
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from config import get_settings
from src.tutoring.errors import GenerationFailure
from src.tutoring.llm_client import GeminiClient, LLMClient, extract_json
from src.tutoring.prompts import (
    DIFFICULTY_INSTRUCTIONS,
    GENERATOR_SYSTEM_PROMPT,
    GENERATOR_USER_PROMPT,
)
from src.tutoring.types import Complexity, DifficultyAdjustment, GeneratedProblem, Problem

# Keys a model may wrap the problem list under, checked in order
WRAPPER_KEYS = ("problems", "similar_problems", "generated_problems", "items", "data")


class GeneratedItem(BaseModel):
    """Wire shape of one generated problem."""

    model_config = ConfigDict(extra="ignore")

    text: str
    expected_answer: str
    explanation: str
    complexity: Complexity | None = None

    @field_validator("expected_answer", mode="before")
    @classmethod
    def answer_to_str(cls, v: Any) -> Any:
        # Models often emit numeric answers as numbers
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("text", "expected_answer", "explanation")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("complexity", mode="before")
    @classmethod
    def unknown_complexity(cls, v: Any) -> Any:
        if isinstance(v, str) and v.lower() in {c.value for c in Complexity}:
            return v.lower()
        return None


def unwrap_problem_list(data: Any) -> list:
    """Find the problem list in a bare array or a wrapping object."""
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        raise GenerationFailure("Response is neither a list nor an object")

    for key in WRAPPER_KEYS:
        if isinstance(data.get(key), list):
            return data[key]

    for value in data.values():
        if isinstance(value, list):
            return value

    raise GenerationFailure("Response object contains no problem list")


class ProblemGenerator:
    """Generates similar problems through the language model."""

    def __init__(self, llm: LLMClient | None = None):
        settings = get_settings()
        self.llm = llm or GeminiClient()
        self.max_count = settings.max_generated_problems
        self._llm_config = settings.get_llm_config()["generation"]

    async def generate_similar(
        self,
        original: Problem,
        count: int = 1,
        difficulty_adjustment: DifficultyAdjustment = DifficultyAdjustment.SAME,
    ) -> list[GeneratedProblem]:
        """
        Generate problems testing the same concept as the original.

        Args:
            original: Problem to imitate
            count: How many problems to request (1..max_generated_problems)
            difficulty_adjustment: easier, same or harder

        Returns:
            Between 1 and count validated problems

        Raises:
            ValueError: If count is out of range
            GenerationFailure: If no valid problem can be produced
        """
        if count < 1 or count > self.max_count:
            raise ValueError(f"count must be between 1 and {self.max_count}, got {count}")

        adjustment = DifficultyAdjustment(difficulty_adjustment)
        prompt = GENERATOR_USER_PROMPT.format(
            problem_summary=original.summary(),
            count=count,
            difficulty_instructions=DIFFICULTY_INSTRUCTIONS[adjustment.value],
            grade=original.grade,
        )

        try:
            response = await self.llm.complete(
                GENERATOR_SYSTEM_PROMPT,
                prompt,
                json_mode=True,
                **self._llm_config,
            )
            data = extract_json(response)
        except Exception as e:
            raise GenerationFailure(f"Generation call failed: {e}") from e

        problems = self._parse_items(unwrap_problem_list(data), original)
        if not problems:
            raise GenerationFailure("No valid problems in response")

        logger.info(
            f"Generated {len(problems[:count])} {adjustment.value} sibling(s) "
            f"for problem {original.id}"
        )
        return problems[:count]

    def _parse_items(self, items: list, original: Problem) -> list[GeneratedProblem]:
        problems = []
        for index, item in enumerate(items):
            try:
                parsed = GeneratedItem.model_validate(item)
            except ValidationError as e:
                raise GenerationFailure(
                    f"Invalid problem structure at item {index}: {e.error_count()} field error(s)"
                ) from e

            problems.append(
                GeneratedProblem(
                    text=parsed.text,
                    expected_answer=parsed.expected_answer,
                    explanation=parsed.explanation,
                    complexity=parsed.complexity or original.complexity,
                )
            )
        return problems
