"""
Student and session schemas.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from learnpath.schemas.path import PathResponse


class StudentCreate(BaseModel):
    """Register a student."""

    display_name: str = Field(..., min_length=1, max_length=255)
    student_id: Optional[uuid.UUID] = None


class StudentResponse(BaseModel):
    """Registered student."""

    student_id: uuid.UUID
    display_name: str


class SessionAnalysisCreate(BaseModel):
    """An analyzed tutoring session."""

    subject: str = Field(..., min_length=1, max_length=255)
    topics: List[str] = Field(default_factory=list)
    occurred_at: Optional[datetime] = None
    session_id: Optional[uuid.UUID] = None


class SessionResponse(BaseModel):
    """Stored session."""

    session_id: uuid.UUID
    subject: str
    topics: List[str]
    occurred_at: datetime
    analyzed: bool


class SessionRecordedResponse(BaseModel):
    """Stored session plus the rebuilt path."""

    session: SessionResponse
    path: PathResponse
