"""
Progression domain values: questions, responses, batches, checkpoints, paths.

These are plain pydantic values. Nothing here touches the database; the
tracker converts rows to these models and back.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Difficulty(str, Enum):
    """Question difficulty."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class BatchStatus(str, Enum):
    """Question batch lifecycle states."""
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class GradedBy(str, Enum):
    """Who produced the correctness judgment."""
    SERVICE = "service"
    FALLBACK = "fallback"


# ---------------------------------------------------------------------------
# Batch scope: Checkpoint(id) | Adhoc
# ---------------------------------------------------------------------------

class CheckpointScope(BaseModel):
    """Batch issued for one checkpoint."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["checkpoint"] = "checkpoint"
    checkpoint_id: str


class AdhocScope(BaseModel):
    """Batch issued outside any checkpoint (free practice, legacy items)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["adhoc"] = "adhoc"


BatchScope = Annotated[Union[CheckpointScope, AdhocScope], Field(discriminator="kind")]


class Question(BaseModel):
    """A practice question. Immutable once issued."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    text: str
    topic: str
    difficulty: Difficulty
    correct_answer: str
    points_value: int
    hint: Optional[str] = None
    explanation: Optional[str] = None


class Response(BaseModel):
    """One ledger entry. Appended, never edited."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    student_answer: str
    is_correct: bool
    feedback: str
    points_awarded: int
    submitted_at: datetime
    graded_by: GradedBy = GradedBy.SERVICE


class QuestionBatch(BaseModel):
    """
    A set of questions issued together under one scope.

    `questions` keeps every question ever issued in the batch, in issue order.
    `superseded` maps a failed question id to the id of its replacement; the
    active list is `questions` minus superseded ids.
    """

    batch_id: uuid.UUID
    student_id: uuid.UUID
    subject: str
    scope: BatchScope
    source_session_id: Optional[uuid.UUID] = None
    difficulty: Difficulty = Difficulty.MEDIUM
    status: BatchStatus = BatchStatus.PENDING
    questions: List[Question] = []
    responses: List[Response] = []
    superseded: Dict[str, str] = {}

    @property
    def active_questions(self) -> List[Question]:
        return [q for q in self.questions if q.question_id not in self.superseded]

    @property
    def correct_question_ids(self) -> set:
        return {r.question_id for r in self.responses if r.is_correct}

    def question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.question_id == question_id:
                return q
        return None


class Checkpoint(BaseModel):
    """A mastery gate in a subject path."""

    id: str
    order: int
    unlocked: bool = False
    completed: bool = False
    correct_count: int = 0
    required_correct: int = 3
    source_session_ids: List[uuid.UUID] = []
    topics: List[str] = []
    is_terminal: bool = False


class StudySession(BaseModel):
    """An analyzed tutoring session feeding the path builder."""

    session_id: uuid.UUID
    student_id: uuid.UUID
    subject: str
    topics: List[str] = []
    occurred_at: datetime


class SubjectPath(BaseModel):
    """Ordered checkpoint list for one (student, subject)."""

    path_id: str
    student_id: uuid.UUID
    subject: str
    checkpoints: List[Checkpoint] = []
    current_checkpoint_id: Optional[str] = None
    progress: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.checkpoints

    def checkpoint(self, checkpoint_id: str) -> Optional[Checkpoint]:
        for cp in self.checkpoints:
            if cp.id == checkpoint_id:
                return cp
        return None

    @property
    def success_gate(self) -> Optional[Checkpoint]:
        for cp in self.checkpoints:
            if cp.is_terminal:
                return cp
        return None
