"""
Progression Engine - checkpoint paths and practice batches.

Paths:
- Ten checkpoints per subject, all drawing from every analyzed session
- A checkpoint completes at 3 distinct correct answers in its scope
- Checkpoint i unlocks when checkpoint i-1 completes
- The success gate completes when every other checkpoint has

Batches:
- pending -> completed (every active question correct)
- pending -> skipped (abandoned; stops counting toward mastery)
- A wrong answer is replaced by a fresh question, never re-asked

The DB-backed ProgressTracker lives in
learnpath.engines.progression.progress_tracker.
"""

from learnpath.engines.progression.batch_lifecycle import BatchLifecycle
from learnpath.engines.progression.checkpoint_engine import (
    SUCCESS_CHECKPOINT_ID,
    CheckpointEngine,
    checkpoint_id_for,
)
from learnpath.engines.progression.grader import GradeResult, Grader
from learnpath.engines.progression.models import (
    AdhocScope,
    BatchStatus,
    Checkpoint,
    CheckpointScope,
    Difficulty,
    GradedBy,
    Question,
    QuestionBatch,
    Response,
    StudySession,
    SubjectPath,
)
from learnpath.engines.progression.path_builder import PathBuilder, path_id_for
from learnpath.engines.progression.question_bank import QuestionBank

__all__ = [
    "BatchLifecycle",
    "SUCCESS_CHECKPOINT_ID",
    "CheckpointEngine",
    "checkpoint_id_for",
    "GradeResult",
    "Grader",
    "AdhocScope",
    "BatchStatus",
    "Checkpoint",
    "CheckpointScope",
    "Difficulty",
    "GradedBy",
    "Question",
    "QuestionBatch",
    "Response",
    "StudySession",
    "SubjectPath",
    "PathBuilder",
    "path_id_for",
    "QuestionBank",
]
