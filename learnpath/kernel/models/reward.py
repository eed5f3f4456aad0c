"""
Reward state - one row per student, independent of any subject path.
"""

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from learnpath.kernel.models.base import Base, TimestampMixin


class RewardStateRecord(Base, TimestampMixin):
    """
    Points, level, streak, daily goal and badges.

    Written back in one UPDATE per correct answer; the version counter makes
    a concurrent writer fail instead of silently overwriting.
    """

    __tablename__ = "reward_states"

    student_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("students.id", ondelete="CASCADE"),
        primary_key=True,
    )

    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    daily_goal_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    daily_goal_target: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    daily_goal_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    badges: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    badge_earned_on: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    total_correct_answers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<RewardStateRecord {self.student_id} points={self.total_points} level={self.level}>"
