"""
Stats API Router

Endpoints:
- GET /api/stats/behavior - Skill, question type and topic statistics
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.db.base import get_db
from learnpath.dependencies import get_current_user_id
from learnpath.middleware.error_handling import handle_endpoint_errors
from learnpath.models.learning import BehaviorSnapshot
from learnpath.services.learning import get_behavior_snapshot

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/behavior", response_model=BehaviorSnapshot)
@handle_endpoint_errors("Get learning behavior")
async def get_learning_behavior(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> BehaviorSnapshot:
    """
    Snapshot of the caller's learning statistics.

    Updated asynchronously after each submission, so a just-submitted lesson
    may not be reflected yet.
    """
    return await get_behavior_snapshot(db, user_id)
