"""
Kernel Layer

Persistent state and the audit trail:
- Students and their analyzed tutoring sessions
- Question batches and the append-only response ledger
- Per-student reward state
- Immutable event log (every progression/reward change is logged)
- Notification dispatch

Checkpoint state is never stored as the source of truth; it is re-derived
from the ledger by the progression engine.
"""

from learnpath.kernel.models import (
    Student,
    StudySessionRecord,
    LearningPath,
    QuestionBatchRecord,
    BatchQuestionRecord,
    ResponseRecord,
    RewardStateRecord,
    EventLog,
    EventType,
)

__all__ = [
    "Student",
    "StudySessionRecord",
    "LearningPath",
    "QuestionBatchRecord",
    "BatchQuestionRecord",
    "ResponseRecord",
    "RewardStateRecord",
    "EventLog",
    "EventType",
]
