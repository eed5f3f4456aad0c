"""
Badge catalog and unlock rules.
"""

from enum import Enum
from typing import Dict, List, Tuple

from pydantic import BaseModel


class BadgeId(str, Enum):
    """Stable badge identifiers."""
    FIRST_ANSWER = "first_answer"
    THREE_DAY_STREAK = "three_day_streak"
    SEVEN_DAY_STREAK = "seven_day_streak"
    THIRTY_DAY_STREAK = "thirty_day_streak"
    PERFECT_DAY = "perfect_day"


class Badge(BaseModel):
    """A badge definition."""

    badge_id: BadgeId
    name: str
    emoji: str
    description: str


BADGE_CATALOG: Dict[BadgeId, Badge] = {
    BadgeId.FIRST_ANSWER: Badge(
        badge_id=BadgeId.FIRST_ANSWER,
        name="First Answer",
        emoji="✨",
        description="Answer your first question correctly",
    ),
    BadgeId.THREE_DAY_STREAK: Badge(
        badge_id=BadgeId.THREE_DAY_STREAK,
        name="On Fire",
        emoji="🔥",
        description="Practice 3 days in a row",
    ),
    BadgeId.SEVEN_DAY_STREAK: Badge(
        badge_id=BadgeId.SEVEN_DAY_STREAK,
        name="Dedicated",
        emoji="💪",
        description="Practice 7 days in a row",
    ),
    BadgeId.THIRTY_DAY_STREAK: Badge(
        badge_id=BadgeId.THIRTY_DAY_STREAK,
        name="Unstoppable",
        emoji="🏆",
        description="Practice 30 days in a row",
    ),
    BadgeId.PERFECT_DAY: Badge(
        badge_id=BadgeId.PERFECT_DAY,
        name="Perfect Day",
        emoji="💯",
        description="Reach your daily goal",
    ),
}

STREAK_BADGES: List[Tuple[int, BadgeId]] = [
    (3, BadgeId.THREE_DAY_STREAK),
    (7, BadgeId.SEVEN_DAY_STREAK),
    (30, BadgeId.THIRTY_DAY_STREAK),
]


def evaluate_badges(
    owned: List[str],
    *,
    first_correct: bool,
    current_streak: int,
    daily_goal_reached: bool,
) -> List[Badge]:
    """
    Badges earned by the event that just happened, against post-update state.

    Badges already owned are never returned again.
    """
    earned: List[BadgeId] = []
    if first_correct:
        earned.append(BadgeId.FIRST_ANSWER)
    for threshold, badge_id in STREAK_BADGES:
        if current_streak >= threshold:
            earned.append(badge_id)
    if daily_goal_reached:
        earned.append(BadgeId.PERFECT_DAY)

    owned_ids = set(owned)
    return [BADGE_CATALOG[b] for b in earned if b.value not in owned_ids]
