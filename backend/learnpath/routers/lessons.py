"""
Lessons API Router

Endpoints:
- POST /api/lessons/{lesson_id}/submit - Grade a lesson submission
"""

import logging

from fastapi import APIRouter, Depends, Request

from learnpath.dependencies import get_current_user_id, get_submission_service
from learnpath.middleware.rate_limit import limit_submission
from learnpath.models.base import ErrorDetail
from learnpath.models.learning import SubmissionRequest, SubmissionResponse
from learnpath.services.learning import SubmissionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/lessons", tags=["lessons"])


@router.post(
    "/{lesson_id}/submit",
    response_model=SubmissionResponse,
    responses={
        404: {"model": ErrorDetail},
        409: {"model": ErrorDetail},
        422: {"model": ErrorDetail},
    },
)
@limit_submission
async def submit_lesson(
    request: Request,
    lesson_id: int,
    submission: SubmissionRequest,
    user_id: int = Depends(get_current_user_id),
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionResponse:
    """
    Grade a lesson submission.

    Returns the per-question results, the overall score and pass state, and
    the points/level outcome. Statistics and recommendations are updated in
    the background after the response.
    """
    return await service.submit(user_id, lesson_id, submission)
