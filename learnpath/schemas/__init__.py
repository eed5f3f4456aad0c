"""
Pydantic schemas for API request/response validation.
"""

from learnpath.schemas.common import ErrorResponse, HealthResponse
from learnpath.schemas.student import (
    StudentCreate,
    StudentResponse,
    SessionAnalysisCreate,
    SessionRecordedResponse,
    SessionResponse,
)
from learnpath.schemas.path import CheckpointSchema, PathResponse
from learnpath.schemas.reward import BadgeSchema, DailyGoalSchema, RewardStateResponse
from learnpath.schemas.practice import (
    AnswerResultResponse,
    AnswerSubmitRequest,
    BatchResponse,
    BatchStartRequest,
    BatchStartResponse,
    PracticeQuestionSchema,
)

__all__ = [
    # Common
    "ErrorResponse",
    "HealthResponse",
    # Students
    "StudentCreate",
    "StudentResponse",
    "SessionAnalysisCreate",
    "SessionRecordedResponse",
    "SessionResponse",
    # Paths
    "CheckpointSchema",
    "PathResponse",
    # Rewards
    "BadgeSchema",
    "DailyGoalSchema",
    "RewardStateResponse",
    # Practice
    "AnswerResultResponse",
    "AnswerSubmitRequest",
    "BatchResponse",
    "BatchStartRequest",
    "BatchStartResponse",
    "PracticeQuestionSchema",
]
