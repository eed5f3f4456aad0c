"""
FastAPI dependencies for database sessions and progression services.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.ai.question_service import QuestionService
from learnpath.database import get_db
from learnpath.engines.progression.progress_tracker import ProgressTracker
from learnpath.kernel.notifications import NotificationDispatcher, build_dispatcher


DbSession = Annotated[AsyncSession, Depends(get_db)]


@lru_cache
def get_question_service() -> QuestionService:
    """One OpenAI client per process."""
    return QuestionService()


@lru_cache
def get_notifier() -> NotificationDispatcher:
    return build_dispatcher()


QuestionServiceDep = Annotated[QuestionService, Depends(get_question_service)]
Notifier = Annotated[NotificationDispatcher, Depends(get_notifier)]


def get_tracker(db: DbSession, question_service: QuestionServiceDep) -> ProgressTracker:
    """Progress tracker bound to the request's transaction."""
    return ProgressTracker(db, question_service=question_service)


Tracker = Annotated[ProgressTracker, Depends(get_tracker)]
