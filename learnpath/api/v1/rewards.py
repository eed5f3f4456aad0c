"""
Reward endpoints.
"""

import uuid

from fastapi import APIRouter

from learnpath.api.deps import Tracker
from learnpath.schemas.reward import RewardStateResponse

router = APIRouter()


@router.get("/{student_id}/rewards", response_model=RewardStateResponse)
async def get_rewards(student_id: uuid.UUID, tracker: Tracker):
    """Points, level, streak, daily goal and badges."""
    return RewardStateResponse.from_state(await tracker.get_reward_state(student_id))
