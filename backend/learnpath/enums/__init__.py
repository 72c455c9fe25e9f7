"""
Centralized enum definitions for the application.

Usage:
    from learnpath.enums import ModuleType, QuestionType, EnglishLevel
"""

from learnpath.enums.api import RateLimitType
from learnpath.enums.learning import (
    EnglishLevel,
    ModuleType,
    QuestionType,
    RecommendationType,
)

__all__ = [
    "EnglishLevel",
    "ModuleType",
    "QuestionType",
    "RateLimitType",
    "RecommendationType",
]
