"""
Reward schemas.
"""

from typing import List, Optional

from pydantic import BaseModel

from learnpath.engines.rewards.badges import BADGE_CATALOG, Badge, BadgeId
from learnpath.engines.rewards.reward_engine import LEVEL_THRESHOLDS, MAX_LEVEL, RewardState

_KNOWN_BADGES = {b.value for b in BadgeId}


class BadgeSchema(BaseModel):
    """Earned badge."""

    badge_id: str
    name: str
    emoji: str
    description: str
    earned_on: Optional[str] = None

    @classmethod
    def from_badge(cls, badge: Badge, earned_on: Optional[str] = None) -> "BadgeSchema":
        return cls(
            badge_id=badge.badge_id.value,
            name=badge.name,
            emoji=badge.emoji,
            description=badge.description,
            earned_on=earned_on,
        )


class DailyGoalSchema(BaseModel):
    date: Optional[str] = None
    target: int
    completed: int


class RewardStateResponse(BaseModel):
    """A student's reward record."""

    total_points: int
    level: int
    next_level_points: Optional[int] = None
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[str] = None
    daily_goal: DailyGoalSchema
    badges: List[BadgeSchema]
    total_correct_answers: int

    @classmethod
    def from_state(cls, state: RewardState) -> "RewardStateResponse":
        badges = [
            BadgeSchema.from_badge(BADGE_CATALOG[BadgeId(b)], state.badge_earned_on.get(b))
            for b in state.badges
            if b in _KNOWN_BADGES
        ]
        next_level_points = LEVEL_THRESHOLDS[state.level] if state.level < MAX_LEVEL else None
        return cls(
            total_points=state.total_points,
            level=state.level,
            next_level_points=next_level_points,
            current_streak=state.current_streak,
            longest_streak=state.longest_streak,
            last_activity_date=state.last_activity_date,
            daily_goal=DailyGoalSchema(**state.daily_goal.model_dump()),
            badges=badges,
            total_correct_answers=state.total_correct_answers,
        )
