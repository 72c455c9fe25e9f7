"""
Pydantic Models for Scoring, Progress and Recommendations

ARCHITECTURE NOTE:
    This file contains PYDANTIC models for API validation and for values
    passed between services. The SQLAlchemy models live in
    learnpath/db/models.py and learnpath/db/models_learning.py.

    Data flows: API Request → Pydantic → Service → SQLAlchemy → Database
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import Field

from learnpath.enums import EnglishLevel, ModuleType, QuestionType, RecommendationType
from learnpath.models.base import FrozenModel, StrictRequest, StrictResponse


# ===========================================
# Submission Models
# ===========================================


class SubmittedAnswer(StrictRequest):
    """
    One answer of a submission.

    `raw_answer` is a string for text and choice questions. Structured
    questions accept either JSON or the decoded value:
    - matching: {"left": "right", ...} or [{"left": ..., "right": ...}, ...]
    - pronunciation: {"word": "category", ...}
    - reading comprehension: {"blank_id": "answer", ...} or a list in blank order
    - sentence building: list of words or a sentence
    - error correction: {"error": ..., "correction": ...}
    """

    question_id: int
    raw_answer: Optional[Union[str, list[Any], dict[str, Any]]] = None
    selected_option_id: Optional[str] = None


class SubmissionRequest(StrictRequest):
    """Request body for submitting a lesson."""

    module_type: Optional[ModuleType] = None
    answers: list[SubmittedAnswer] = Field(default_factory=list)


class GradedAnswer(FrozenModel):
    """Grading outcome for one question. Immutable once produced."""

    question_id: int
    question_type: QuestionType
    is_correct: bool
    points_awarded: int = 0
    max_points: int = 0
    correct_answer_text: Optional[str] = None
    explanation: Optional[str] = None
    feedback: Optional[str] = None
    needs_review: bool = False


class SubmissionResult(FrozenModel):
    """Aggregate grading outcome of a whole lesson submission."""

    total_questions: int
    correct_count: int
    total_score: int
    max_score: int
    score_percentage: int
    is_passed: bool
    results: list[GradedAnswer]


class LevelUpgradeResult(FrozenModel):
    """Outcome of point accrual and level evaluation for one submission."""

    did_upgrade: bool = False
    old_level: EnglishLevel
    new_level: EnglishLevel
    points_earned: int = 0
    total_points: int = 0
    has_unlocked_next: bool = False
    next_lesson_id: Optional[int] = None
    max_level_reached: bool = False
    message: str = ""


class SubmissionResponse(StrictResponse):
    """Response of POST /api/lessons/{lesson_id}/submit."""

    lesson_id: int
    result: SubmissionResult
    level: LevelUpgradeResult


# ===========================================
# Completion Event
# ===========================================


class QuestionResult(FrozenModel):
    question_id: int
    question_type: QuestionType
    is_correct: bool


class LessonCompletedEvent(FrozenModel):
    """
    Published once per graded submission, pass or fail.

    Consumers deduplicate on `event_id`, so redelivery is harmless.
    """

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: int
    lesson_id: int
    module_type: ModuleType
    topic_id: int
    topic_name: str = ""
    topic_total_lessons: int = 0
    score_percentage: int
    is_passed: bool
    next_lesson_id: Optional[int] = None
    question_results: list[QuestionResult] = Field(default_factory=list)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ===========================================
# Recommendation Models
# ===========================================


class RecommendationResponse(StrictResponse):
    id: int
    type: RecommendationType
    title: str
    description: Optional[str] = None
    reasoning: Optional[str] = None
    target_skill: Optional[str] = None
    target_lesson_id: Optional[int] = None
    target_topic_id: Optional[int] = None
    priority: int
    is_shown: bool
    is_accepted: Optional[bool] = None
    is_completed: bool
    created_at: datetime
    expires_at: datetime
    shown_at: Optional[datetime] = None


class RecommendationListResponse(StrictResponse):
    items: list[RecommendationResponse]
    total: int


class RecommendationMetrics(StrictResponse):
    """Lifecycle counters and rates over all of a user's recommendations."""

    total: int = 0
    shown: int = 0
    accepted: int = 0
    completed: int = 0
    ignored: int = 0
    acceptance_rate: float = 0.0  # % of shown that were accepted
    completion_rate: float = 0.0  # % of accepted that were completed


# ===========================================
# Stats Snapshot Models
# ===========================================


class SkillStatResponse(StrictResponse):
    module_type: ModuleType
    accuracy: float
    total_attempts: int
    correct_answers: int
    streak: int
    longest_streak: int


class QuestionTypeStatResponse(StrictResponse):
    question_type: QuestionType
    accuracy: float
    correct_count: int
    wrong_count: int


class TopicProgressResponse(StrictResponse):
    topic_id: int
    topic_name: str
    completion_percentage: float
    total_lessons: int
    completed_lessons: int
    average_score: float
    last_active_at: Optional[datetime] = None


class BehaviorSnapshot(StrictResponse):
    """Response of GET /api/stats/behavior."""

    user_id: int
    strongest_skill: Optional[ModuleType] = None
    weakest_skill: Optional[ModuleType] = None
    overall_accuracy: float = 0.0
    last_analyzed_at: Optional[datetime] = None
    skills: list[SkillStatResponse] = Field(default_factory=list)
    question_types: list[QuestionTypeStatResponse] = Field(default_factory=list)
    topics: list[TopicProgressResponse] = Field(default_factory=list)
