"""
Batch endpoints - read, answer, skip.
"""

import uuid

from fastapi import APIRouter, BackgroundTasks

from learnpath.api.deps import Notifier, Tracker
from learnpath.schemas.common import ErrorResponse
from learnpath.schemas.practice import (
    AnswerResultResponse,
    AnswerSubmitRequest,
    BatchResponse,
    PracticeQuestionSchema,
)
from learnpath.schemas.reward import BadgeSchema

router = APIRouter()


@router.get("/{batch_id}", response_model=BatchResponse)
async def get_batch(batch_id: uuid.UUID, tracker: Tracker):
    """Active questions of a batch (answers hidden)."""
    return BatchResponse.from_batch(await tracker.get_batch(batch_id))


@router.post(
    "/{batch_id}/answers",
    response_model=AnswerResultResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def submit_answer(
    batch_id: uuid.UUID,
    data: AnswerSubmitRequest,
    tracker: Tracker,
    notifier: Notifier,
    background_tasks: BackgroundTasks,
):
    """
    Submit one answer.

    Returns 409 when the batch is closed, the question is no longer active,
    or another submission won a race (retry the whole submission).
    """
    result = await tracker.submit_answer(batch_id, data.question_id, data.answer)
    if result.notifications:
        background_tasks.add_task(notifier.dispatch_all, result.notifications)

    answered = None
    if not result.is_correct:
        # The failed question is retired, so its answer can be shown
        answered = (await tracker.get_batch(batch_id)).question(data.question_id)

    return AnswerResultResponse(
        batch_id=result.batch_id,
        question_id=result.question_id,
        is_correct=result.is_correct,
        feedback=result.feedback,
        graded_by=result.graded_by,
        correct_answer=answered.correct_answer if answered else None,
        explanation=answered.explanation if answered else None,
        points_awarded=result.points_awarded,
        bonus_points=result.bonus_points,
        total_points=result.total_points,
        level=result.level,
        level_up=result.level_up,
        new_badges=[BadgeSchema.from_badge(b) for b in result.new_badges],
        daily_goal_reached=result.daily_goal_reached,
        current_streak=result.current_streak,
        checkpoint_id=result.checkpoint_id,
        checkpoint_completed=result.checkpoint_completed,
        correct_count=result.correct_count,
        required_correct=result.required_correct,
        next_unlocked_checkpoint_id=result.next_unlocked_checkpoint_id,
        path_completed=result.path_completed,
        progress=result.progress,
        batch_status=result.batch_status.value,
        replacement_question=(
            PracticeQuestionSchema.from_question(result.replacement_question)
            if result.replacement_question
            else None
        ),
        next_question=(
            PracticeQuestionSchema.from_question(result.next_question)
            if result.next_question
            else None
        ),
    )


@router.post(
    "/{batch_id}/skip",
    response_model=BatchResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def skip_batch(batch_id: uuid.UUID, tracker: Tracker):
    """Abandon a pending batch."""
    return BatchResponse.from_batch(await tracker.skip_batch(batch_id))
