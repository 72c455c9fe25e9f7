"""
API-related enums.

Defines enums for rate limiting and other API concerns.
"""

from enum import Enum


class RateLimitType(str, Enum):
    """
    Rate limit categories for different endpoint types.

    Each category has a corresponding rate limit configured in settings.
    Usage:
        from learnpath.enums import RateLimitType
        from learnpath.config import settings

        limit = settings.get_rate_limit(RateLimitType.SUBMISSION)
    """

    # General API endpoints
    DEFAULT = "default"

    # Lesson submissions (grading + point accrual)
    SUBMISSION = "submission"
