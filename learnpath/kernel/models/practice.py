"""
Practice models - question batches, issued questions and the response ledger.

Responses are append-only. A partial unique index allows at most one
correct response per (batch, question), and the batch row carries a version
counter so two submissions racing on the same batch cannot both commit.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learnpath.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow


class QuestionBatchRecord(Base, TimestampMixin):
    """A batch of questions issued under one scope."""

    __tablename__ = "question_batches"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subject: Mapped[str] = mapped_column(String(255), nullable=False)

    # Scope: "checkpoint" with checkpoint_id, or "adhoc" with no checkpoint
    scope_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    checkpoint_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    source_session_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    # Touched on every submission so the version counter always moves
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    questions: Mapped[List["BatchQuestionRecord"]] = relationship(
        "BatchQuestionRecord",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchQuestionRecord.sequence",
        lazy="selectin",
    )
    responses: Mapped[List["ResponseRecord"]] = relationship(
        "ResponseRecord",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="ResponseRecord.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_question_batches_student_subject_status", "student_id", "subject", "status"),
    )

    def __repr__(self) -> str:
        return f"<QuestionBatchRecord {self.id} {self.scope_kind}:{self.checkpoint_id} {self.status}>"


class BatchQuestionRecord(Base):
    """
    A question issued in a batch. Never edited after insert except for
    `superseded_by`, which is set once when the question is replaced.

    `slot` is the position in the active list; a replacement takes over the
    slot of the question it supersedes.
    """

    __tablename__ = "batch_questions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    batch_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("question_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[str] = mapped_column(String(100), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    slot: Mapped[int] = mapped_column(Integer, nullable=False)

    text: Mapped[str] = mapped_column(Text, nullable=False)
    topic: Mapped[str] = mapped_column(String(255), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
    correct_answer: Mapped[str] = mapped_column(Text, nullable=False)
    points_value: Mapped[int] = mapped_column(Integer, nullable=False)
    hint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    explanation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    superseded_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    batch: Mapped["QuestionBatchRecord"] = relationship("QuestionBatchRecord", back_populates="questions")

    __table_args__ = (
        UniqueConstraint("batch_id", "question_id", name="uq_batch_questions_batch_question"),
    )


class ResponseRecord(Base):
    """One ledger entry."""

    __tablename__ = "responses"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    batch_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("question_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[str] = mapped_column(String(100), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    student_answer: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    feedback: Mapped[str] = mapped_column(Text, nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    graded_by: Mapped[str] = mapped_column(String(20), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    batch: Mapped["QuestionBatchRecord"] = relationship("QuestionBatchRecord", back_populates="responses")

    __table_args__ = (
        Index(
            "uq_responses_one_correct_per_question",
            "batch_id",
            "question_id",
            unique=True,
            postgresql_where=text("is_correct"),
            sqlite_where=text("is_correct = 1"),
        ),
    )
