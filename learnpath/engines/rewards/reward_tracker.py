"""
Reward Tracker - loads, updates and stores per-student reward state (DB-backed).
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.config import Settings, get_settings
from learnpath.engines.rewards.reward_engine import (
    CorrectAnswerEvent,
    DailyGoal,
    RewardState,
    RewardUpdate,
    apply_correct_answer,
    level_for_points,
)
from learnpath.kernel.models import RewardStateRecord


def record_to_state(row: RewardStateRecord) -> RewardState:
    return RewardState(
        total_points=row.total_points,
        level=row.level,
        current_streak=row.current_streak,
        longest_streak=row.longest_streak,
        last_activity_date=row.last_activity_date,
        daily_goal=DailyGoal(
            date=row.daily_goal_date,
            target=row.daily_goal_target,
            completed=row.daily_goal_completed,
        ),
        badges=list(row.badges or []),
        badge_earned_on=dict(row.badge_earned_on or {}),
        total_correct_answers=row.total_correct_answers,
    )


def write_state(row: RewardStateRecord, state: RewardState) -> None:
    row.total_points = state.total_points
    row.level = state.level
    row.current_streak = state.current_streak
    row.longest_streak = state.longest_streak
    row.last_activity_date = state.last_activity_date
    row.daily_goal_date = state.daily_goal.date
    row.daily_goal_target = state.daily_goal.target
    row.daily_goal_completed = state.daily_goal.completed
    row.badges = list(state.badges)
    row.badge_earned_on = dict(state.badge_earned_on)
    row.total_correct_answers = state.total_correct_answers


class RewardTracker:
    """
    Database-backed reward state.

    The row is read FOR UPDATE (where the backend supports it) and carries a
    version counter, so two correct answers for the same student cannot both
    apply their update against the same snapshot.
    """

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()

    async def _load(self, student_id: uuid.UUID, for_update: bool = False) -> RewardStateRecord:
        query = select(RewardStateRecord).where(RewardStateRecord.student_id == student_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        row = result.scalar_one_or_none()
        if row is None:
            row = self.create(student_id)
            await self.session.flush()
        return row

    def create(self, student_id: uuid.UUID) -> RewardStateRecord:
        """Add a fresh reward row for a new student."""
        row = RewardStateRecord(
            student_id=student_id,
            daily_goal_target=self.settings.daily_goal_target,
            badges=[],
            badge_earned_on={},
        )
        self.session.add(row)
        return row

    async def get_state(self, student_id: uuid.UUID) -> RewardState:
        row = await self._load(student_id)
        state = record_to_state(row)
        # Level is always derived from points
        return state.model_copy(update={"level": level_for_points(state.total_points)})

    async def apply_correct_answer(self, student_id: uuid.UUID, points: int, today: str) -> RewardUpdate:
        """Fold one correct answer into the stored state and write it back."""
        row = await self._load(student_id, for_update=True)
        update = apply_correct_answer(
            record_to_state(row),
            CorrectAnswerEvent(points=points, today=today),
            daily_goal_bonus=self.settings.daily_goal_bonus,
        )
        write_state(row, update.state)
        return update
