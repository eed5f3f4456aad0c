"""
Practice batch schemas.

Correct answers never leave the server before a question is answered.
"""

import uuid
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from learnpath.engines.progression.batch_lifecycle import BatchLifecycle
from learnpath.engines.progression.models import (
    CheckpointScope,
    Difficulty,
    Question,
    QuestionBatch,
)
from learnpath.schemas.path import PathResponse
from learnpath.schemas.reward import BadgeSchema


class BatchStartRequest(BaseModel):
    """Start (or resume) a batch. No checkpoint_id means free practice."""

    checkpoint_id: Optional[str] = None
    difficulty: Difficulty = Difficulty.MEDIUM


class PracticeQuestionSchema(BaseModel):
    """A question without its answer."""

    question_id: str
    text: str
    topic: str
    difficulty: Difficulty
    points_value: int
    hint: Optional[str] = None

    @classmethod
    def from_question(cls, question: Question) -> "PracticeQuestionSchema":
        return cls(
            question_id=question.question_id,
            text=question.text,
            topic=question.topic,
            difficulty=question.difficulty,
            points_value=question.points_value,
            hint=question.hint,
        )


class BatchResponse(BaseModel):
    """A batch's active questions and status."""

    batch_id: uuid.UUID
    student_id: uuid.UUID
    subject: str
    scope: Literal["checkpoint", "adhoc"]
    checkpoint_id: Optional[str] = None
    difficulty: Difficulty
    status: str
    questions: List[PracticeQuestionSchema]
    answered_question_ids: List[str]
    next_question_id: Optional[str] = None

    @classmethod
    def from_batch(cls, batch: QuestionBatch) -> "BatchResponse":
        correct = batch.correct_question_ids
        next_question = BatchLifecycle.next_question(batch)
        return cls(
            batch_id=batch.batch_id,
            student_id=batch.student_id,
            subject=batch.subject,
            scope=batch.scope.kind,
            checkpoint_id=batch.scope.checkpoint_id if isinstance(batch.scope, CheckpointScope) else None,
            difficulty=batch.difficulty,
            status=batch.status.value,
            questions=[PracticeQuestionSchema.from_question(q) for q in batch.active_questions],
            answered_question_ids=[q.question_id for q in batch.active_questions if q.question_id in correct],
            next_question_id=next_question.question_id if next_question else None,
        )


class BatchStartResponse(BaseModel):
    """Outcome of a start request."""

    status: Literal["started", "resumed", "locked"]
    review: bool = False
    checkpoint_id: Optional[str] = None
    batch: Optional[BatchResponse] = None
    path: PathResponse


class AnswerSubmitRequest(BaseModel):
    """One answer."""

    question_id: str = Field(..., min_length=1)
    answer: str = Field(..., max_length=5000)


class AnswerResultResponse(BaseModel):
    """Grading, progression and reward outcome of one answer."""

    batch_id: uuid.UUID
    question_id: str
    is_correct: bool
    feedback: str
    graded_by: str
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    points_awarded: int
    bonus_points: int
    total_points: int
    level: int
    level_up: bool
    new_badges: List[BadgeSchema]
    daily_goal_reached: bool
    current_streak: int
    checkpoint_id: str
    checkpoint_completed: bool
    correct_count: int
    required_correct: int
    next_unlocked_checkpoint_id: Optional[str] = None
    path_completed: bool
    progress: float
    batch_status: str
    replacement_question: Optional[PracticeQuestionSchema] = None
    next_question: Optional[PracticeQuestionSchema] = None
