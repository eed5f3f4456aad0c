"""
Learning path snapshot.

The checkpoint list is derived from sessions and the response ledger. This
row keeps the latest derivation so the current checkpoint and progress can
be queried without replaying the ledger; the service itself always
re-derives. It is overwritten wholesale on every rebuild, and its first
insert is what records the path_built audit event.
"""

import uuid
from typing import Optional

from sqlalchemy import Float, ForeignKey, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from learnpath.kernel.models.base import Base, TimestampMixin


class LearningPath(Base, TimestampMixin):
    """One row per (student, subject)."""

    __tablename__ = "learning_paths"

    id: Mapped[str] = mapped_column(
        String(300),
        primary_key=True,
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
    checkpoints: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    current_checkpoint_id: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    progress: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
    )

    __table_args__ = (
        UniqueConstraint("student_id", "subject", name="uq_learning_paths_student_subject"),
    )
