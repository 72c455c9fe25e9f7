"""Pydantic models for the application."""

from learnpath.models.learning import (
    GradedAnswer,
    LessonCompletedEvent,
    LevelUpgradeResult,
    SubmissionResult,
    SubmittedAnswer,
)
from learnpath.models.questions import Question, parse_question

__all__ = [
    "GradedAnswer",
    "LessonCompletedEvent",
    "LevelUpgradeResult",
    "SubmissionResult",
    "SubmittedAnswer",
    "Question",
    "parse_question",
]
