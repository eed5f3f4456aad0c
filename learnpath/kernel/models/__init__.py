"""
Kernel Data Models

SQLAlchemy models for students, sessions, paths, practice batches, the
response ledger, reward state and the audit log.
"""

from learnpath.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow
from learnpath.kernel.models.student import Student, StudySessionRecord
from learnpath.kernel.models.learning_path import LearningPath
from learnpath.kernel.models.practice import (
    QuestionBatchRecord,
    BatchQuestionRecord,
    ResponseRecord,
)
from learnpath.kernel.models.reward import RewardStateRecord
from learnpath.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "utcnow",
    # Students
    "Student",
    "StudySessionRecord",
    # Paths
    "LearningPath",
    # Practice
    "QuestionBatchRecord",
    "BatchQuestionRecord",
    "ResponseRecord",
    # Rewards
    "RewardStateRecord",
    # Event Log
    "EventLog",
    "EventType",
]
