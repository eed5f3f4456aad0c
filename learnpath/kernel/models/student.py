"""
Student and tutoring session models.

A session carries the topics extracted by session analysis; a session with
no topics has not been analyzed yet and does not feed the path builder.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learnpath.kernel.models.base import Base, TimestampMixin, generate_uuid


class Student(Base, TimestampMixin):
    """A learner."""

    __tablename__ = "students"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    display_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    sessions: Mapped[List["StudySessionRecord"]] = relationship(
        "StudySessionRecord",
        back_populates="student",
        cascade="all, delete-orphan",
        order_by="StudySessionRecord.occurred_at",
    )

    def __repr__(self) -> str:
        return f"<Student {self.id} {self.display_name}>"


class StudySessionRecord(Base, TimestampMixin):
    """A tutoring session and its analyzed topics."""

    __tablename__ = "study_sessions"

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
    subject: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    topics: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    analyzed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    student: Mapped["Student"] = relationship("Student", back_populates="sessions")

    __table_args__ = (
        Index("ix_study_sessions_student_subject", "student_id", "subject"),
    )
