"""
Problem bank loader.

Reads the NCERT book export (books -> chapters -> problems) or a flat list
of problem objects, and enriches each problem with an estimated complexity
and a multi-step flag when the source does not provide them.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from src.tutoring.types import Complexity, Problem

MULTI_STEP_INDICATORS = [
    "then",
    "after that",
    "next",
    "and then",
    "in total",
    "altogether",
    "how many more",
    "how many less",
    "difference",
    "remaining",
]

_STEP_WORDS = ("then", "and then", "after that")
_COMPLEX_WORDS = re.compile(r"division|multiplication|fraction|decimal|percentage")


def estimate_complexity(text: str, answer: str = "") -> Complexity:
    """Heuristic complexity from problem length and wording."""
    has_steps = any(word in text for word in _STEP_WORDS)
    has_complex_words = _COMPLEX_WORDS.search(text.lower()) is not None
    complex_answer = len(answer) > 10 or re.search(r"[/\\.]", answer) is not None

    if len(text) > 300 or (has_steps and has_complex_words):
        return Complexity.HARD
    if len(text) > 150 or has_steps or has_complex_words or complex_answer:
        return Complexity.MEDIUM
    return Complexity.EASY


def requires_multi_step(text: str) -> bool:
    lowered = text.lower()
    return any(indicator in lowered for indicator in MULTI_STEP_INDICATORS)


def _parse_number(value: Any) -> int:
    match = re.match(r"\s*(\d+)", str(value))
    return int(match.group(1)) if match else 0


def _complexity(raw: Any, text: str, answer: str) -> Complexity:
    if isinstance(raw, str) and raw.lower() in {c.value for c in Complexity}:
        return Complexity(raw.lower())
    return estimate_complexity(text, answer)


def _flat_problem(index: int, item: Any) -> Problem:
    if not isinstance(item, dict):
        raise ValueError(f"Problem {index} is not an object")
    missing = [key for key in ("id", "chapter") if item.get(key) in (None, "")]
    if missing:
        raise ValueError(f"Problem {index} is missing {', '.join(missing)}")

    text = item.get("text") or item.get("problem_text") or ""
    answer = str(item.get("expected_answer") or "")
    return Problem(
        id=str(item["id"]),
        text=text,
        grade=int(item.get("grade", item.get("class", 0))),
        chapter=int(item["chapter"]),
        problem_number=_parse_number(item.get("problem_number", 0)),
        complexity=_complexity(item.get("complexity"), text, answer),
        requires_multi_step=item.get("requires_multi_step", requires_multi_step(text)),
        source_book=item.get("source_book", "NCERT"),
        expected_answer=answer,
        explanation=item.get("explanation"),
    )


def parse_problem_bank(data: Any) -> list[Problem]:
    """
    Flatten a problem bank document into Problems.

    Book exports get sequential ids (problem_00001, ...) in document order;
    flat lists keep their own ids.

    Raises:
        ValueError: If the document shape is not recognized, or a flat-list
            item is not an object or lacks an id or chapter
    """
    if not isinstance(data, list):
        raise ValueError("Problem bank must be a JSON array")

    if data and isinstance(data[0], dict) and "chapters" not in data[0]:
        return [_flat_problem(i, item) for i, item in enumerate(data)]

    problems = []
    counter = 1
    for book in data:
        for chapter in book.get("chapters", []):
            for raw in chapter.get("problems", []):
                text = raw.get("problem_text") or raw.get("text") or ""
                answer = str(raw.get("expected_answer") or "")
                problems.append(
                    Problem(
                        id=f"problem_{counter:05d}",
                        text=text,
                        grade=int(raw.get("class", book.get("class", 0))),
                        chapter=int(raw.get("chapter", chapter.get("chapter_number", 0))),
                        problem_number=_parse_number(raw.get("problem_number", 0)),
                        complexity=_complexity(raw.get("difficulty"), text, answer),
                        requires_multi_step=requires_multi_step(text),
                        source_book=book.get("book_id", "NCERT"),
                        expected_answer=answer,
                    )
                )
                counter += 1
    return problems


def load_problem_bank(path: Path) -> list[Problem]:
    """Read and flatten a problem bank JSON file."""
    if not path.exists():
        raise FileNotFoundError(f"Problem bank not found: {path}")

    data = json.loads(path.read_text(encoding="utf-8"))
    problems = parse_problem_bank(data)

    by_complexity = {c: sum(1 for p in problems if p.complexity == c) for c in Complexity}
    logger.info(
        f"Loaded {len(problems)} problems from {path.name} "
        f"(easy={by_complexity[Complexity.EASY]}, medium={by_complexity[Complexity.MEDIUM]}, "
        f"hard={by_complexity[Complexity.HARD]})"
    )
    return problems
