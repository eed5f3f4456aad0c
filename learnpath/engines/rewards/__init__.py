"""
Reward Engine - points, levels, streaks, daily goal and badges.

Levels (total points):
- 1: 0+, 2: 100+, 3: 250+, 4: 500+, 5: 1000+, 6: 2000+, 7: 4000+, 8: 8000+

Daily goal: 3 correct answers per UTC day, +15 bonus once per day.

Badges: first_answer, three_day_streak, seven_day_streak,
thirty_day_streak, perfect_day.
"""

from learnpath.engines.rewards.badges import BADGE_CATALOG, Badge, BadgeId
from learnpath.engines.rewards.reward_engine import (
    CorrectAnswerEvent,
    DailyGoal,
    RewardState,
    RewardUpdate,
    apply_correct_answer,
    level_for_points,
    next_streak,
)
from learnpath.engines.rewards.reward_tracker import RewardTracker

__all__ = [
    "BADGE_CATALOG",
    "Badge",
    "BadgeId",
    "CorrectAnswerEvent",
    "DailyGoal",
    "RewardState",
    "RewardUpdate",
    "apply_correct_answer",
    "level_for_points",
    "next_streak",
    "RewardTracker",
]
