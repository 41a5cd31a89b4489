"""
Tutoring Models.

SQLAlchemy models for the problem bank and tutoring history:
- NCERT problems
- Learner sessions
- Problem attempts, original and mastery check
- Conversation messages
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class ProblemRecord(Base):
    """A textbook problem from the problem bank."""

    __tablename__ = "problems"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    source_book: Mapped[str] = mapped_column(Text, nullable=False, default="NCERT")
    grade: Mapped[int] = mapped_column("class", Integer, nullable=False)
    chapter: Mapped[int] = mapped_column(Integer, nullable=False)
    problem_number: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    expected_answer: Mapped[str] = mapped_column(Text, nullable=False)
    explanation: Mapped[str | None] = mapped_column(Text)
    requires_multi_step: Mapped[bool] = mapped_column(Boolean, default=False)
    complexity: Mapped[str | None] = mapped_column(String(10))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    __table_args__ = (
        CheckConstraint("complexity IN ('easy', 'medium', 'hard')", name="ck_problem_complexity"),
        Index("idx_problems_class", "class"),
        Index("idx_problems_chapter", "class", "chapter"),
        Index("idx_problems_complexity", "complexity"),
    )

    def __repr__(self) -> str:
        return f"<ProblemRecord {self.id} class={self.grade} ch={self.chapter} #{self.problem_number}>"


class TutoringSessionRecord(Base):
    """One learner's sitting with the tutor."""

    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    student_name: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Session metadata
    total_problems: Mapped[int] = mapped_column(Integer, default=0)
    total_hints_used: Mapped[int] = mapped_column(Integer, default=0)

    attempts: Mapped[list[AttemptRecord]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="AttemptRecord.started_at",
    )

    def __repr__(self) -> str:
        return f"<TutoringSessionRecord {self.session_id} student={self.student_name}>"


class AttemptRecord(Base):
    """
    One attempt at one problem within a session.

    problem_id is not a foreign key: mastery check problems are generated
    on the fly and never stored in the problem bank.
    """

    __tablename__ = "problem_attempts"

    attempt_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False
    )
    problem_id: Mapped[str] = mapped_column(Text, nullable=False)

    # Timing
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Metrics
    hints_used: Mapped[int] = mapped_column(Integer, default=0)
    final_status: Mapped[str | None] = mapped_column(String(20))
    mastery_check_passed: Mapped[bool | None] = mapped_column(Boolean)

    # Original or mastery check
    is_mastery_check: Mapped[bool] = mapped_column(Boolean, default=False)
    original_problem_id: Mapped[str | None] = mapped_column(Text)

    session: Mapped[TutoringSessionRecord] = relationship(back_populates="attempts")
    messages: Mapped[list[MessageRecord]] = relationship(
        back_populates="attempt",
        cascade="all, delete-orphan",
        order_by="MessageRecord.sequence",
    )

    __table_args__ = (
        CheckConstraint(
            "final_status IN ('mastered', 'incomplete', 'struggling')",
            name="ck_attempt_final_status",
        ),
        Index("idx_attempts_session", "session_id"),
        Index("idx_attempts_problem", "problem_id"),
    )

    def __repr__(self) -> str:
        return f"<AttemptRecord {self.attempt_id} problem={self.problem_id} status={self.final_status}>"


class MessageRecord(Base):
    """One conversation turn of an attempt."""

    __tablename__ = "messages"

    message_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    attempt_id: Mapped[str] = mapped_column(
        ForeignKey("problem_attempts.attempt_id", ondelete="CASCADE"), nullable=False
    )
    # Position within the attempt; timestamps alone can tie
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # Message content
    role: Mapped[str] = mapped_column(String(10), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    # Tutor message metadata
    badge_type: Mapped[str | None] = mapped_column(String(30))
    response_type: Mapped[str | None] = mapped_column(String(30))

    attempt: Mapped[AttemptRecord] = relationship(back_populates="messages")

    __table_args__ = (
        CheckConstraint("role IN ('student', 'tutor')", name="ck_message_role"),
        Index("idx_messages_attempt", "attempt_id", "sequence"),
    )

    def __repr__(self) -> str:
        return f"<MessageRecord {self.role} attempt={self.attempt_id}>"
