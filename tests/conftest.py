"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests:
sample problems, a scripted language model and an in-memory database.
"""
import asyncio
import json
import sys
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.db.database import create_db_engine, init_db  # noqa: E402
from src.tutoring.evaluation_gateway import EvaluationGateway  # noqa: E402
from src.tutoring.types import Complexity, Problem  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Test doubles
# =============================================================================

class ScriptedLLM:
    """
    LLMClient double that replays queued responses in order.

    A queued Exception is raised instead of returned. When a gate is set,
    every call waits on it, which keeps an evaluation in flight.
    """

    def __init__(self, *responses, gate: asyncio.Event | None = None):
        self.responses = list(responses)
        self.gate = gate
        self.calls: list[dict] = []

    def queue(self, *responses) -> None:
        self.responses.extend(responses)

    async def complete(self, system_prompt, prompt, *, temperature, max_output_tokens, json_mode=False):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "prompt": prompt,
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
                "json_mode": json_mode,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if not self.responses:
            raise RuntimeError("No scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class RecordingRecorder:
    """AttemptRecorder double that keeps every call."""

    def __init__(self):
        self.created = []
        self.turns = []
        self.finalized = []
        self.mastery_results = []

    def create_attempt(self, attempt_id, session_id, problem_id, is_mastery_check=False, original_problem_id=None):
        self.created.append((attempt_id, session_id, problem_id, is_mastery_check, original_problem_id))
        return True

    def append_turn(self, attempt_id, turn):
        self.turns.append((attempt_id, turn))
        return True

    def finalize_attempt(self, attempt_id, final_status, hints_used):
        self.finalized.append((attempt_id, final_status, hints_used))
        return True

    def record_mastery_result(self, attempt_id, passed):
        self.mastery_results.append((attempt_id, passed))
        return True


def evaluation(response_type, message="Keep going!", badge=None, show_solution_button=False):
    """JSON evaluation payload as the model would send it."""
    if badge is None:
        badge = {
            "correct_final": "partial_progress",
            "partial_progress": "partial_progress",
            "needs_hint": "hint_given",
        }.get(response_type, "corrective_feedback")
    return json.dumps(
        {
            "response_type": response_type,
            "tutor_message": message,
            "badge_type": badge,
            "show_solution_button": show_solution_button,
        }
    )


def generated(*problems):
    """JSON generation payload wrapping the given problem dicts."""
    return json.dumps({"problems": list(problems)})


SIBLING = {
    "text": "Arjun had 36 stickers. He gave 9 to his sister and then got 14 more. How many stickers does he have now?",
    "expected_answer": "41",
    "explanation": "36 - 9 = 27, then 27 + 14 = 41.",
    "complexity": "medium",
}


@pytest.fixture
def make_llm():
    """Factory for ScriptedLLM instances."""
    return ScriptedLLM


@pytest.fixture
def llm():
    """Empty ScriptedLLM; tests queue responses as needed."""
    return ScriptedLLM()


@pytest.fixture
def gateway(llm):
    return EvaluationGateway(llm, hint_ceiling=3)


@pytest.fixture
def recorder_double():
    return RecordingRecorder()


# =============================================================================
# Sample data
# =============================================================================

@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def sample_problem():
    """Provide a multi-step Class 5 word problem."""
    return Problem(
        id="problem_00042",
        text="Riya has 48 marbles. She gives 15 to her friend and then buys 12 more. How many marbles does she have now?",
        grade=5,
        chapter=2,
        problem_number=7,
        complexity=Complexity.MEDIUM,
        requires_multi_step=True,
        expected_answer="45",
        explanation="48 - 15 = 33, then 33 + 12 = 45.",
    )


@pytest.fixture
def sample_problems():
    """Provide a small problem bank across two classes."""
    return [
        Problem(id="problem_00001", text="What is 25 + 17?", grade=5, chapter=1, problem_number=1,
                complexity=Complexity.EASY, expected_answer="42"),
        Problem(id="problem_00002", text="What is 8 x 7?", grade=5, chapter=1, problem_number=2,
                complexity=Complexity.EASY, expected_answer="56"),
        Problem(id="problem_00003", text="A shop sells 12 pens a day. How many pens in 15 days?",
                grade=5, chapter=3, problem_number=4, complexity=Complexity.MEDIUM, expected_answer="180"),
        Problem(id="problem_00004", text="Find the LCM of 12 and 18.", grade=6, chapter=3,
                problem_number=1, complexity=Complexity.HARD, expected_answer="36"),
    ]


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)
