"""
Learning Services

Scoring, progress tracking and recommendation services.

Modules:
- grader: Per-question-type answer grading
- catalog: Read-only lesson and question access
- level_service: Point accrual and level progression
- stats_aggregator: Incremental skill/topic/question-type statistics
- recommendation_service: Recommendation queue and lifecycle
- submission_service: Lesson submission orchestration

Usage:
    from learnpath.services.learning import (
        SubmissionService,
        RecommendationService,
        StatsAggregator,
    )
"""

from learnpath.services.learning.catalog import LessonCatalog
from learnpath.services.learning.grader import grade, grade_by_id, grade_submission
from learnpath.services.learning.level_service import LevelService, decide_level
from learnpath.services.learning.recommendation_service import (
    RecommendationListener,
    RecommendationService,
)
from learnpath.services.learning.stats_aggregator import (
    StatsAggregator,
    get_behavior_snapshot,
)
from learnpath.services.learning.submission_service import SubmissionService

__all__ = [
    "LessonCatalog",
    "grade",
    "grade_by_id",
    "grade_submission",
    "LevelService",
    "decide_level",
    "RecommendationListener",
    "RecommendationService",
    "StatsAggregator",
    "get_behavior_snapshot",
    "SubmissionService",
]
