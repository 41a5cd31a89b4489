"""
Session Recorder: persistence for tutoring sessions.

Records sessions, attempts and every conversation turn for:
- Parent and teacher summaries
- Misconception analysis across sessions
- Mastery tracking per problem

Writes never raise into the tutoring flow. A failed write is logged and
reported as False or None so the attempt carries on unrecorded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from src.db.database import session_scope
from src.db.models import AttemptRecord, MessageRecord, ProblemRecord, TutoringSessionRecord
from src.tutoring.types import (
    BadgeType,
    ConversationTurn,
    FinalStatus,
    ResponseType,
    Role,
)

# Stored role names differ from the domain's
ROLE_TO_DB = {Role.LEARNER: "student", Role.TUTOR: "tutor"}
ROLE_FROM_DB = {v: k for k, v in ROLE_TO_DB.items()}


@dataclass(frozen=True)
class AttemptInfo:
    """Stored view of one attempt."""
    attempt_id: str
    session_id: str
    problem_id: str
    started_at: datetime | None
    completed_at: datetime | None
    hints_used: int
    final_status: FinalStatus | None
    mastery_check_passed: bool | None
    is_mastery_check: bool
    original_problem_id: str | None


@dataclass(frozen=True)
class ProblemDetail:
    """Per-problem line of a session summary."""
    problem_id: str
    problem_text: str | None
    hints_used: int
    mastered: bool
    conversation_length: int
    is_mastery_check: bool = False
    mastery_check_passed: bool | None = None


@dataclass(frozen=True)
class SessionSummary:
    """Aggregate view of a session for parents and teachers."""
    session_id: str
    student_name: str
    created_at: datetime | None
    completed_at: datetime | None
    total_problems: int
    problems_mastered: int
    total_hints_used: int
    average_hints_per_problem: float
    problem_details: list[ProblemDetail] = field(default_factory=list)

    @property
    def duration_minutes(self) -> float | None:
        if self.created_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.created_at).total_seconds() / 60


def _attempt_info(record: AttemptRecord) -> AttemptInfo:
    return AttemptInfo(
        attempt_id=record.attempt_id,
        session_id=record.session_id,
        problem_id=record.problem_id,
        started_at=record.started_at,
        completed_at=record.completed_at,
        hints_used=record.hints_used or 0,
        final_status=FinalStatus(record.final_status) if record.final_status else None,
        mastery_check_passed=record.mastery_check_passed,
        is_mastery_check=bool(record.is_mastery_check),
        original_problem_id=record.original_problem_id,
    )


class SessionRecorder:
    """
    Persists tutoring sessions to the database.

    Satisfies the attempt recorder protocol, so attempts report their own
    creation, turns and final status as they happen.
    """

    def __init__(self, session_factory: sessionmaker | None = None):
        self._factory = session_factory

    # ========================================
    # Writes
    # ========================================

    def create_session(self, student_name: str) -> str | None:
        """
        Start a new learner session.

        Returns:
            session_id for the new record, or None on failure
        """
        try:
            with session_scope(self._factory) as db:
                record = TutoringSessionRecord(
                    student_name=student_name,
                    created_at=datetime.now(),
                )
                db.add(record)
                db.flush()
                logger.info(f"Session {record.session_id} started for {student_name}")
                return record.session_id
        except Exception as e:
            logger.error(f"Failed to create session: {e}")
            return None

    def create_attempt(
        self,
        attempt_id: str,
        session_id: str,
        problem_id: str,
        is_mastery_check: bool = False,
        original_problem_id: str | None = None,
    ) -> bool:
        """Record the start of an attempt under the attempt's own id."""
        try:
            with session_scope(self._factory) as db:
                db.add(
                    AttemptRecord(
                        attempt_id=attempt_id,
                        session_id=session_id,
                        problem_id=problem_id,
                        started_at=datetime.now(),
                        is_mastery_check=is_mastery_check,
                        original_problem_id=original_problem_id,
                    )
                )
            return True
        except Exception as e:
            logger.error(f"Failed to create attempt {attempt_id}: {e}")
            return False

    def append_turn(self, attempt_id: str, turn: ConversationTurn) -> bool:
        """
        Record a single conversation turn.

        Turns are numbered per attempt so stored order matches the
        conversation even when timestamps tie.
        """
        try:
            with session_scope(self._factory) as db:
                sequence = db.scalar(
                    select(func.count())
                    .select_from(MessageRecord)
                    .where(MessageRecord.attempt_id == attempt_id)
                )
                db.add(
                    MessageRecord(
                        attempt_id=attempt_id,
                        sequence=sequence or 0,
                        role=ROLE_TO_DB[turn.role],
                        text=turn.text,
                        timestamp=turn.timestamp,
                        badge_type=turn.badge.value if turn.badge else None,
                        response_type=turn.response_type.value if turn.response_type else None,
                    )
                )
            return True
        except Exception as e:
            logger.error(f"Failed to record turn for attempt {attempt_id}: {e}")
            return False

    def finalize_attempt(
        self,
        attempt_id: str,
        final_status: FinalStatus,
        hints_used: int,
        mastery_check_passed: bool | None = None,
    ) -> bool:
        """Close an attempt with its final status and hint count."""
        try:
            with session_scope(self._factory) as db:
                record = db.get(AttemptRecord, attempt_id)
                if record is None:
                    logger.warning(f"Cannot finalize unknown attempt {attempt_id}")
                    return False
                record.final_status = FinalStatus(final_status).value
                record.hints_used = hints_used
                record.completed_at = datetime.now()
                if mastery_check_passed is not None:
                    record.mastery_check_passed = mastery_check_passed
            return True
        except Exception as e:
            logger.error(f"Failed to finalize attempt {attempt_id}: {e}")
            return False

    def record_mastery_result(self, attempt_id: str, passed: bool) -> bool:
        """Store the mastery check outcome on the original attempt."""
        try:
            with session_scope(self._factory) as db:
                record = db.get(AttemptRecord, attempt_id)
                if record is None:
                    logger.warning(f"Cannot record mastery result for unknown attempt {attempt_id}")
                    return False
                record.mastery_check_passed = passed
            return True
        except Exception as e:
            logger.error(f"Failed to record mastery result for {attempt_id}: {e}")
            return False

    def complete_session(self, session_id: str) -> bool:
        """Mark a session done and roll up its attempt metrics."""
        try:
            with session_scope(self._factory) as db:
                record = db.get(TutoringSessionRecord, session_id)
                if record is None:
                    logger.warning(f"Cannot complete unknown session {session_id}")
                    return False
                attempts = db.scalars(
                    select(AttemptRecord).where(AttemptRecord.session_id == session_id)
                ).all()
                record.completed_at = datetime.now()
                record.total_problems = len(attempts)
                record.total_hints_used = sum(a.hints_used or 0 for a in attempts)
            logger.info(f"Session {session_id} completed")
            return True
        except Exception as e:
            logger.error(f"Failed to complete session {session_id}: {e}")
            return False

    # ========================================
    # Reads
    # ========================================

    def get_session_attempts(self, session_id: str) -> list[AttemptInfo]:
        """All attempts of a session in start order."""
        try:
            with session_scope(self._factory) as db:
                records = db.scalars(
                    select(AttemptRecord)
                    .where(AttemptRecord.session_id == session_id)
                    .order_by(AttemptRecord.started_at)
                ).all()
                return [_attempt_info(r) for r in records]
        except Exception as e:
            logger.error(f"Failed to fetch attempts for session {session_id}: {e}")
            return []

    def get_current_attempt(self, session_id: str) -> AttemptInfo | None:
        """Most recent attempt of a session that has not completed."""
        try:
            with session_scope(self._factory) as db:
                record = db.scalars(
                    select(AttemptRecord)
                    .where(
                        AttemptRecord.session_id == session_id,
                        AttemptRecord.completed_at.is_(None),
                    )
                    .order_by(AttemptRecord.started_at.desc())
                    .limit(1)
                ).first()
                return _attempt_info(record) if record else None
        except Exception as e:
            logger.error(f"Failed to fetch current attempt for session {session_id}: {e}")
            return None

    def get_messages(self, attempt_id: str) -> list[ConversationTurn]:
        """Stored conversation of an attempt, in order."""
        try:
            with session_scope(self._factory) as db:
                records = db.scalars(
                    select(MessageRecord)
                    .where(MessageRecord.attempt_id == attempt_id)
                    .order_by(MessageRecord.sequence)
                ).all()
                return [
                    ConversationTurn(
                        role=ROLE_FROM_DB[r.role],
                        text=r.text,
                        timestamp=r.timestamp,
                        badge=BadgeType(r.badge_type) if r.badge_type else None,
                        response_type=ResponseType(r.response_type) if r.response_type else None,
                    )
                    for r in records
                ]
        except Exception as e:
            logger.error(f"Failed to fetch messages for attempt {attempt_id}: {e}")
            return []

    def session_summary(self, session_id: str) -> SessionSummary | None:
        """
        Aggregate a session for the summary view.

        Returns:
            SessionSummary, or None if the session does not exist or the
            read fails
        """
        try:
            with session_scope(self._factory) as db:
                session = db.get(TutoringSessionRecord, session_id)
                if session is None:
                    return None

                attempts = db.scalars(
                    select(AttemptRecord)
                    .where(AttemptRecord.session_id == session_id)
                    .order_by(AttemptRecord.started_at)
                ).all()

                details = []
                for attempt in attempts:
                    problem = db.get(ProblemRecord, attempt.problem_id)
                    details.append(
                        ProblemDetail(
                            problem_id=attempt.problem_id,
                            problem_text=problem.text if problem else None,
                            hints_used=attempt.hints_used or 0,
                            mastered=attempt.final_status == FinalStatus.MASTERED.value,
                            conversation_length=len(attempt.messages),
                            is_mastery_check=bool(attempt.is_mastery_check),
                            mastery_check_passed=attempt.mastery_check_passed,
                        )
                    )

                total = len(attempts)
                total_hints = sum(d.hints_used for d in details)
                return SessionSummary(
                    session_id=session.session_id,
                    student_name=session.student_name,
                    created_at=session.created_at,
                    completed_at=session.completed_at,
                    total_problems=total,
                    problems_mastered=sum(1 for d in details if d.mastered),
                    total_hints_used=total_hints,
                    average_hints_per_problem=total_hints / total if total else 0.0,
                    problem_details=details,
                )
        except Exception as e:
            logger.error(f"Failed to build summary for session {session_id}: {e}")
            return None
