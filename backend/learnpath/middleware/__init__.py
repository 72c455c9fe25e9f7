"""
Middleware Package

Provides FastAPI middleware for:
- Rate limiting
- Error handling
"""

from learnpath.middleware.error_handling import (
    AuthorizationError,
    ConcurrencyConflict,
    ErrorHandlingMiddleware,
    NotFoundError,
    ServiceError,
    UnsupportedTypeError,
    ValidationError,
)
from learnpath.middleware.rate_limit import limiter, setup_rate_limiting

__all__ = [
    "AuthorizationError",
    "ConcurrencyConflict",
    "ErrorHandlingMiddleware",
    "NotFoundError",
    "ServiceError",
    "UnsupportedTypeError",
    "ValidationError",
    "limiter",
    "setup_rate_limiting",
]
