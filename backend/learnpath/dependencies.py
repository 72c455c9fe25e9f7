"""
Shared FastAPI dependencies.

Authentication is handled upstream; requests reach this service with the
authenticated learner's id in the X-User-Id header.
"""

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.db.base import get_db
from learnpath.services.events import EventBus, get_event_bus
from learnpath.services.learning import RecommendationService, SubmissionService


async def get_current_user_id(
    x_user_id: int = Header(..., alias="X-User-Id", gt=0),
) -> int:
    """Id of the calling learner."""
    return x_user_id


def get_app_event_bus(request: Request) -> EventBus:
    """The event bus started by the app lifespan."""
    return getattr(request.app.state, "event_bus", None) or get_event_bus()


async def get_submission_service(
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_app_event_bus),
) -> SubmissionService:
    """Get submission service."""
    return SubmissionService(db, event_bus)


async def get_recommendation_service(
    db: AsyncSession = Depends(get_db),
) -> RecommendationService:
    """Get recommendation service."""
    return RecommendationService(db)
