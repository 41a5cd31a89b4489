"""
Unit tests for the diagnostic composer.
"""

import json

import pytest

from conftest import evaluation
from src.tutoring.attempt import Attempt
from src.tutoring.diagnostics import (
    FALLBACK_DESCRIPTION,
    FALLBACK_EVIDENCE,
    FALLBACK_RECOMMENDATIONS,
    GENERAL_PRACTICE,
    DiagnosticComposer,
    format_answers,
    parse_diagnostic,
)
from src.tutoring.errors import DiagnosticFailure
from src.tutoring.types import Confidence, DiagnosticResult, MisconceptionType

PROCEDURAL = {
    "misconception_type": "procedural",
    "confidence": "high",
    "description": "Adds before subtracting in multi-step problems.",
    "evidence": ["Answered 75 twice", "Computed 48 + 12 + 15"],
    "recommendations": ["Underline each action in order", "Practise two-step problems"],
    "prerequisite_concepts": ["Order of events in word problems"],
}


@pytest.fixture
def composer(llm):
    return DiagnosticComposer(llm, hint_ceiling=3)


class TestParseDiagnostic:

    def test_valid(self):
        result = parse_diagnostic(json.dumps(PROCEDURAL))
        assert result.misconception_type == MisconceptionType.PROCEDURAL
        assert result.confidence == Confidence.HIGH
        assert result.prerequisite_concepts == ["Order of events in word problems"]
        assert not result.is_fallback

    def test_optional_lists_default_empty(self):
        data = {"misconception_type": "none", "confidence": "medium", "description": "On track.",
                "prerequisite_concepts": None}
        result = parse_diagnostic(json.dumps(data))
        assert result.evidence == []
        assert result.prerequisite_concepts == []

    @pytest.mark.parametrize(
        "raw",
        [
            "no json",
            "[]",
            json.dumps({"confidence": "high", "description": "x"}),
            json.dumps(dict(PROCEDURAL, misconception_type="laziness")),
            json.dumps(dict(PROCEDURAL, description="  ")),
        ],
    )
    def test_invalid(self, raw):
        with pytest.raises(DiagnosticFailure):
            parse_diagnostic(raw)


class TestFormatAnswers:

    def test_numbered(self):
        assert format_answers(["75", "33"]) == 'Attempt 1: "75"\nAttempt 2: "33"'

    def test_empty(self):
        assert format_answers([]) == "No attempts yet"


class TestDiagnose:

    @pytest.mark.asyncio
    async def test_diagnose_attempt_history(self, composer, gateway, llm, sample_problem):
        attempt = Attempt(sample_problem, gateway)
        llm.queue(evaluation("conceptual_error", "Check the order."), evaluation("needs_hint", "What happens first?"))
        await attempt.submit_answer("75")
        await attempt.submit_answer("75 again")
        llm.queue(json.dumps(PROCEDURAL))

        result = await composer.diagnose(attempt)

        assert result.misconception_type == MisconceptionType.PROCEDURAL
        prompt = llm.calls[-1]["prompt"]
        assert "STUDENT ATTEMPTS (2 total)" in prompt
        assert 'Attempt 2: "75 again"' in prompt
        assert "Tutor: What happens first?" in prompt
        assert "HINTS PROVIDED: 1/3" in prompt
        assert llm.calls[-1]["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_diagnosis_is_read_only(self, composer, gateway, llm, sample_problem):
        attempt = Attempt(sample_problem, gateway)
        llm.queue(evaluation("arithmetic_error", "Check 48 - 15."))
        await attempt.submit_answer("43")
        before = (attempt.state, attempt.history, attempt.hint_count)

        llm.queue(json.dumps(PROCEDURAL), json.dumps(PROCEDURAL))
        first = await composer.diagnose(attempt)
        second = await composer.diagnose(attempt)

        assert first == second
        assert (attempt.state, attempt.history, attempt.hint_count) == before

    @pytest.mark.asyncio
    async def test_works_after_termination(self, composer, gateway, llm, sample_problem):
        attempt = Attempt(sample_problem, gateway)
        attempt.abandon()
        llm.queue(json.dumps(dict(PROCEDURAL, misconception_type="none")))
        result = await composer.diagnose(attempt)
        assert result.misconception_type == MisconceptionType.NONE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", ["gibberish", RuntimeError("quota exceeded")])
    async def test_failure_degrades_to_fallback(self, composer, llm, sample_problem, response):
        llm.queue(response)

        result = await composer.diagnose_history(sample_problem, [], ["75"], 0)

        assert result.is_fallback
        assert result.misconception_type == MisconceptionType.NONE
        assert result.confidence == Confidence.LOW
        assert result.description == FALLBACK_DESCRIPTION
        assert result.evidence == FALLBACK_EVIDENCE
        assert result.recommendations == FALLBACK_RECOMMENDATIONS


class TestRecommendPractice:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", [MisconceptionType.NONE, MisconceptionType.CARELESS_ERROR])
    async def test_nothing_to_remediate(self, composer, llm, sample_problem, kind):
        diagnostic = DiagnosticResult(kind, Confidence.MEDIUM, "Fine.")
        assert await composer.recommend_practice(diagnostic, sample_problem) == GENERAL_PRACTICE
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_model_recommendations(self, composer, llm, sample_problem):
        diagnostic = parse_diagnostic(json.dumps(PROCEDURAL))
        llm.queue(json.dumps({"recommendations": ["Act out the story with counters", "Draw a bar model"]}))

        result = await composer.recommend_practice(diagnostic, sample_problem)

        assert result == ["Act out the story with counters", "Draw a bar model"]
        prompt = llm.calls[0]["prompt"]
        assert "Type: procedural" in prompt
        assert "Class 5, Chapter 2, Complexity medium" in prompt

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", ["{}", "not json", ConnectionError("offline")])
    async def test_falls_back_to_diagnostic_advice(self, composer, llm, sample_problem, response):
        diagnostic = parse_diagnostic(json.dumps(PROCEDURAL))
        llm.queue(response)
        result = await composer.recommend_practice(diagnostic, sample_problem)
        assert result == PROCEDURAL["recommendations"]
