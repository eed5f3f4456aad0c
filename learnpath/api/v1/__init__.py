"""
API v1 routes.
"""

from fastapi import APIRouter

from learnpath.api.v1 import batches, paths, rewards, students

router = APIRouter()

router.include_router(students.router, prefix="/students", tags=["Students"])
router.include_router(paths.router, prefix="/students", tags=["Paths"])
router.include_router(rewards.router, prefix="/students", tags=["Rewards"])
router.include_router(batches.router, prefix="/batches", tags=["Batches"])
