"""
Reward Engine - points, level, streak, daily goal and badges.

Reward state is a value: `apply_correct_answer(state, event)` returns the
next state and what changed. Only correct answers reach this module; an
incorrect answer never touches reward state. Persisting the result
atomically is the tracker's job.
"""

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from learnpath.engines.rewards.badges import Badge, evaluate_badges
from learnpath.errors import InvariantViolation

LEVEL_THRESHOLDS: List[int] = [0, 100, 250, 500, 1000, 2000, 4000, 8000]
MAX_LEVEL = len(LEVEL_THRESHOLDS)

DAILY_GOAL_TARGET = 3
DAILY_GOAL_BONUS = 15


class DailyGoal(BaseModel):
    """Correct answers toward today's goal (UTC calendar day)."""

    date: Optional[str] = None
    target: int = DAILY_GOAL_TARGET
    completed: int = 0

    @property
    def is_met(self) -> bool:
        return self.completed >= self.target


class RewardState(BaseModel):
    """Per-student reward record, independent of any subject path."""

    total_points: int = 0
    level: int = 1
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[str] = None
    daily_goal: DailyGoal = Field(default_factory=DailyGoal)
    badges: List[str] = []
    badge_earned_on: Dict[str, str] = {}  # badge id -> UTC day it was earned
    total_correct_answers: int = 0


class CorrectAnswerEvent(BaseModel):
    """A correct, scored submission."""

    points: int
    today: str  # YYYY-MM-DD, UTC


class RewardUpdate(BaseModel):
    """Result of applying one correct answer."""

    state: RewardState
    previous_level: int
    level_up: bool
    points_awarded: int  # question points + bonus
    bonus_points: int
    daily_goal_reached: bool
    new_badges: List[Badge] = []


def level_for_points(points: int) -> int:
    """
    Index of the first threshold that exceeds `points`.

    95 -> 1, 100 -> 2, 8000 and above -> 8. Negative totals map to 1.
    """
    for index, threshold in enumerate(LEVEL_THRESHOLDS):
        if points < threshold:
            return max(index, 1)
    return MAX_LEVEL


def parse_day(value: str) -> date:
    return date.fromisoformat(value)


def next_streak(current_streak: int, last_activity_date: Optional[str], today: str) -> int:
    """
    Streak after activity on `today`.

    Same day: unchanged. Exactly one day later: +1. Anything else resets to 1.
    """
    if not last_activity_date:
        return 1
    gap = (parse_day(today) - parse_day(last_activity_date)).days
    if gap == 0:
        return current_streak
    if gap == 1:
        return current_streak + 1
    return 1


def advance_daily_goal(goal: DailyGoal, today: str) -> DailyGoal:
    """Count one correct answer toward today's goal, resetting on a new day."""
    if goal.date != today:
        return DailyGoal(date=today, target=goal.target, completed=1)
    return goal.model_copy(update={"completed": goal.completed + 1})


def apply_correct_answer(
    state: RewardState,
    event: CorrectAnswerEvent,
    daily_goal_bonus: int = DAILY_GOAL_BONUS,
) -> RewardUpdate:
    """
    Fold one correct answer into reward state.

    Every sub-computation reads the same snapshot (`state`); the returned
    state is meant to be written back in one step.
    """
    if event.points < 0:
        raise InvariantViolation("Correct answers cannot award negative points")
    parse_day(event.today)

    goal_before = state.daily_goal
    completed_before = goal_before.completed if goal_before.date == event.today else 0
    goal = advance_daily_goal(goal_before, event.today)
    reached = completed_before < goal.target <= goal.completed
    bonus = daily_goal_bonus if reached else 0

    total_points = state.total_points + event.points + bonus
    streak = next_streak(state.current_streak, state.last_activity_date, event.today)
    total_correct = state.total_correct_answers + 1
    previous_level = level_for_points(state.total_points)
    level = level_for_points(total_points)

    new_badges = evaluate_badges(
        state.badges,
        first_correct=total_correct == 1,
        current_streak=streak,
        daily_goal_reached=reached,
    )

    next_state = RewardState(
        total_points=total_points,
        level=level,
        current_streak=streak,
        longest_streak=max(state.longest_streak, streak),
        last_activity_date=event.today,
        daily_goal=goal,
        badges=[*state.badges, *(b.badge_id.value for b in new_badges)],
        badge_earned_on={**state.badge_earned_on, **{b.badge_id.value: event.today for b in new_badges}},
        total_correct_answers=total_correct,
    )
    return RewardUpdate(
        state=next_state,
        previous_level=previous_level,
        level_up=level > previous_level,
        points_awarded=event.points + bonus,
        bonus_points=bonus,
        daily_goal_reached=reached,
        new_badges=new_badges,
    )
