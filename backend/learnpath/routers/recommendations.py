"""
Recommendations API Router

Endpoints:
- GET /api/recommendations - Active recommendations, highest priority first
- GET /api/recommendations/metrics - Acceptance and completion metrics
- POST /api/recommendations/{id}/shown - Mark as shown
- POST /api/recommendations/{id}/accept - Accept
- POST /api/recommendations/{id}/complete - Mark as completed
- POST /api/recommendations/{id}/dismiss - Dismiss
"""

import logging

from fastapi import APIRouter, Depends

from learnpath.dependencies import get_current_user_id, get_recommendation_service
from learnpath.middleware.error_handling import handle_endpoint_errors
from learnpath.models.learning import (
    RecommendationListResponse,
    RecommendationMetrics,
    RecommendationResponse,
)
from learnpath.services.learning import RecommendationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/recommendations", tags=["recommendations"])


# ===========================================
# Queries
# ===========================================


@router.get("", response_model=RecommendationListResponse)
@handle_endpoint_errors("List recommendations")
async def list_recommendations(
    user_id: int = Depends(get_current_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationListResponse:
    """
    Active recommendations for the caller.

    Expired and completed recommendations are excluded. Ordered by priority
    (highest first), then newest first.
    """
    items = await service.list_active(user_id)
    return RecommendationListResponse(items=items, total=len(items))


@router.get("/metrics", response_model=RecommendationMetrics)
@handle_endpoint_errors("Get recommendation metrics")
async def get_recommendation_metrics(
    user_id: int = Depends(get_current_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationMetrics:
    """Counts per lifecycle state with acceptance and completion rates."""
    return await service.get_metrics(user_id)


# ===========================================
# Lifecycle Transitions
# ===========================================


@router.post("/{recommendation_id}/shown", response_model=RecommendationResponse)
@handle_endpoint_errors("Mark recommendation shown")
async def mark_shown(
    recommendation_id: int,
    user_id: int = Depends(get_current_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationResponse:
    return await service.record_shown(user_id, recommendation_id)


@router.post("/{recommendation_id}/accept", response_model=RecommendationResponse)
@handle_endpoint_errors("Accept recommendation")
async def accept(
    recommendation_id: int,
    user_id: int = Depends(get_current_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationResponse:
    return await service.record_accepted(user_id, recommendation_id)


@router.post("/{recommendation_id}/complete", response_model=RecommendationResponse)
@handle_endpoint_errors("Complete recommendation")
async def complete(
    recommendation_id: int,
    user_id: int = Depends(get_current_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationResponse:
    return await service.record_completed(user_id, recommendation_id)


@router.post("/{recommendation_id}/dismiss", response_model=RecommendationResponse)
@handle_endpoint_errors("Dismiss recommendation")
async def dismiss(
    recommendation_id: int,
    user_id: int = Depends(get_current_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationResponse:
    """Dismiss a recommendation the caller is not interested in."""
    return await service.record_dismissed(user_id, recommendation_id)
