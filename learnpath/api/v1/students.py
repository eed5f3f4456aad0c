"""
Student endpoints - registration and session analysis results.
"""

import uuid

from fastapi import APIRouter, status

from learnpath.api.deps import Tracker
from learnpath.schemas.path import PathResponse
from learnpath.schemas.student import (
    SessionAnalysisCreate,
    SessionRecordedResponse,
    SessionResponse,
    StudentCreate,
    StudentResponse,
)

router = APIRouter()


@router.post("", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
async def register_student(data: StudentCreate, tracker: Tracker):
    """Register a student and create an empty reward record."""
    student = await tracker.register_student(data.display_name, student_id=data.student_id)
    return StudentResponse(student_id=student.id, display_name=student.display_name)


@router.post(
    "/{student_id}/sessions",
    response_model=SessionRecordedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_session(student_id: uuid.UUID, data: SessionAnalysisCreate, tracker: Tracker):
    """
    Record an analyzed tutoring session.

    Rebuilds the subject path so new topics reach every checkpoint.
    """
    session, path = await tracker.record_session_analysis(
        student_id,
        data.subject,
        data.topics,
        occurred_at=data.occurred_at,
        session_id=data.session_id,
    )
    return SessionRecordedResponse(
        session=SessionResponse(
            session_id=session.session_id,
            subject=session.subject,
            topics=session.topics,
            occurred_at=session.occurred_at,
            analyzed=bool(session.topics),
        ),
        path=PathResponse.from_path(path),
    )
