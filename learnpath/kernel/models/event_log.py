"""
Immutable event log for audit trail.

Every progression and reward change is logged here in the same transaction
as the change itself. Append-only.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, func, Index, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from learnpath.kernel.models.base import Base, generate_uuid


class EventType(str, Enum):
    """All event types for the audit log."""

    # Student events
    STUDENT_REGISTERED = "student.registered"
    SESSION_ANALYZED = "session.analyzed"

    # Path events
    PATH_BUILT = "path.built"
    CHECKPOINT_COMPLETED = "path.checkpoint_completed"
    PATH_COMPLETED = "path.completed"

    # Batch events
    BATCH_STARTED = "batch.started"
    BATCH_COMPLETED = "batch.completed"
    BATCH_SKIPPED = "batch.skipped"
    ANSWER_SUBMITTED = "batch.answer_submitted"
    QUESTION_REPLACED = "batch.question_replaced"

    # Reward events
    POINTS_AWARDED = "reward.points_awarded"
    LEVEL_UP = "reward.level_up"
    BADGE_EARNED = "reward.badge_earned"
    DAILY_GOAL_COMPLETED = "reward.daily_goal_completed"


class EventLog(Base):
    """
    Immutable audit event log.

    This table is append-only - no updates or deletes allowed.
    """

    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )

    event_type: Mapped[EventType] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    # Entity reference (path ids are strings, so ids are stored as text)
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    entity_id: Mapped[str] = mapped_column(
        String(300),
        nullable=False,
        index=True,
    )

    student_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
        index=True,
    )

    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    request_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_event_logs_entity", "entity_type", "entity_id"),
        Index("ix_event_logs_student_time", "student_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.event_type} {self.entity_type}:{self.entity_id}>"
