"""
Subject path schemas.
"""

import uuid
from typing import List, Optional

from pydantic import BaseModel

from learnpath.engines.progression.models import SubjectPath


class CheckpointSchema(BaseModel):
    """One checkpoint as shown to the student."""

    id: str
    order: int
    unlocked: bool
    completed: bool
    correct_count: int
    required_correct: int
    topics: List[str]
    source_session_ids: List[uuid.UUID]
    is_terminal: bool


class PathResponse(BaseModel):
    """Subject path with derived state."""

    path_id: str
    student_id: uuid.UUID
    subject: str
    checkpoints: List[CheckpointSchema]
    current_checkpoint_id: Optional[str] = None
    progress: float = 0.0

    @classmethod
    def from_path(cls, path: SubjectPath) -> "PathResponse":
        return cls(
            path_id=path.path_id,
            student_id=path.student_id,
            subject=path.subject,
            checkpoints=[CheckpointSchema(**cp.model_dump()) for cp in path.checkpoints],
            current_checkpoint_id=path.current_checkpoint_id,
            progress=path.progress,
        )
