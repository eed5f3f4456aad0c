"""
Path endpoints - subject path and batch start.
"""

import uuid

from fastapi import APIRouter

from learnpath.api.deps import Tracker
from learnpath.schemas.common import ErrorResponse
from learnpath.schemas.path import PathResponse
from learnpath.schemas.practice import BatchResponse, BatchStartRequest, BatchStartResponse

router = APIRouter()


@router.get("/{student_id}/paths/{subject}", response_model=PathResponse)
async def get_path(student_id: uuid.UUID, subject: str, tracker: Tracker):
    """Get (and refresh) the student's checkpoint path for a subject."""
    path = await tracker.get_or_build_path(student_id, subject)
    return PathResponse.from_path(path)


@router.post(
    "/{student_id}/paths/{subject}/batches",
    response_model=BatchStartResponse,
    responses={404: {"model": ErrorResponse}},
)
async def start_batch(
    student_id: uuid.UUID,
    subject: str,
    data: BatchStartRequest,
    tracker: Tracker,
):
    """
    Get questions for a checkpoint, or free practice when no checkpoint is given.

    A locked checkpoint returns status "locked" with no batch.
    """
    outcome = await tracker.start_batch(student_id, subject, data.checkpoint_id, data.difficulty)
    return BatchStartResponse(
        status=outcome.status,
        review=outcome.review,
        checkpoint_id=outcome.checkpoint_id,
        batch=BatchResponse.from_batch(outcome.batch) if outcome.batch else None,
        path=PathResponse.from_path(outcome.path),
    )
