"""
Problem repository: lookup over the NCERT problem bank.

Returns domain Problem objects; ORM rows never leave this module.
"""

from __future__ import annotations

import random
from collections.abc import Iterable

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from src.db.database import session_scope
from src.db.models import ProblemRecord
from src.tutoring.errors import ProblemNotFound
from src.tutoring.types import Complexity, Problem


def to_problem(record: ProblemRecord) -> Problem:
    return Problem(
        id=record.id,
        text=record.text,
        grade=record.grade,
        chapter=record.chapter,
        problem_number=record.problem_number,
        complexity=Complexity(record.complexity or Complexity.MEDIUM.value),
        requires_multi_step=bool(record.requires_multi_step),
        source_book=record.source_book,
        expected_answer=record.expected_answer,
        explanation=record.explanation,
    )


def to_record(problem: Problem) -> ProblemRecord:
    return ProblemRecord(
        id=problem.id,
        source_book=problem.source_book,
        grade=problem.grade,
        chapter=problem.chapter,
        problem_number=problem.problem_number,
        text=problem.text,
        expected_answer=problem.expected_answer or "",
        explanation=problem.explanation,
        requires_multi_step=problem.requires_multi_step,
        complexity=problem.complexity.value,
    )


class ProblemRepository:
    """Read and seed access to stored problems."""

    def __init__(self, session_factory: sessionmaker | None = None):
        self._factory = session_factory

    def get_by_id(self, problem_id: str) -> Problem:
        """
        Fetch one problem.

        Raises:
            ProblemNotFound: If no problem has this id
        """
        with session_scope(self._factory) as session:
            record = session.get(ProblemRecord, problem_id)
            if record is None:
                raise ProblemNotFound(f"Problem {problem_id} not found", problem_id)
            return to_problem(record)

    def find(self, grade: int, chapter: int, problem_number: int) -> Problem:
        """
        Find a problem by its textbook position.

        Tries the exact number first, then the next number, since exercise
        numbering in the bank can be offset by one from the book.

        Raises:
            ProblemNotFound: If neither position holds a problem
        """
        with session_scope(self._factory) as session:
            base = select(ProblemRecord).where(
                ProblemRecord.grade == grade,
                ProblemRecord.chapter == chapter,
            )

            record = session.scalars(
                base.where(ProblemRecord.problem_number == problem_number).limit(1)
            ).first()
            if record is None:
                record = session.scalars(
                    base.where(
                        ProblemRecord.problem_number >= problem_number,
                        ProblemRecord.problem_number <= problem_number + 1,
                    )
                    .order_by(ProblemRecord.problem_number)
                    .limit(1)
                ).first()

            if record is None:
                raise ProblemNotFound(
                    f"No problem {problem_number} in class {grade} chapter {chapter}"
                )
            return to_problem(record)

    def list_problems(
        self,
        grade: int,
        chapter: int | None = None,
        complexity: Complexity | str | None = None,
        source_book: str | None = None,
    ) -> list[Problem]:
        """Problems for a class, ordered by chapter and number."""
        stmt = select(ProblemRecord).where(ProblemRecord.grade == grade)
        if chapter is not None:
            stmt = stmt.where(ProblemRecord.chapter == chapter)
        if complexity is not None:
            stmt = stmt.where(ProblemRecord.complexity == Complexity(complexity).value)
        if source_book is not None:
            stmt = stmt.where(ProblemRecord.source_book == source_book)
        stmt = stmt.order_by(ProblemRecord.chapter, ProblemRecord.problem_number)

        with session_scope(self._factory) as session:
            return [to_problem(r) for r in session.scalars(stmt)]

    def random_problem(
        self,
        grade: int,
        chapter: int | None = None,
        complexity: Complexity | str | None = None,
    ) -> Problem:
        """
        Pick a random problem matching the filters.

        Raises:
            ProblemNotFound: If nothing matches
        """
        candidates = self.list_problems(grade, chapter=chapter, complexity=complexity)
        if not candidates:
            raise ProblemNotFound(f"No problems for class {grade} with the given filters")
        return random.choice(candidates)

    def chapters_for_grade(self, grade: int) -> list[int]:
        """Distinct chapters that have problems, ascending."""
        stmt = (
            select(ProblemRecord.chapter)
            .where(ProblemRecord.grade == grade)
            .distinct()
            .order_by(ProblemRecord.chapter)
        )
        with session_scope(self._factory) as session:
            return list(session.scalars(stmt))

    def add_problems(self, problems: Iterable[Problem]) -> int:
        """Insert or update problems. Returns how many were written."""
        count = 0
        with session_scope(self._factory) as session:
            for problem in problems:
                if problem.is_generated:
                    continue
                session.merge(to_record(problem))
                count += 1
        logger.info(f"Stored {count} problems")
        return count
