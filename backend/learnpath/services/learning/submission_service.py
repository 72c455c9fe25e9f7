"""
Lesson Submission Service

Orchestrates one lesson submission:

    validate answers → grade → record progress, points and level
    → publish LessonCompletedEvent → respond

Grading and the level decision happen inside the request and are returned to
the caller. Statistics and recommendations are updated afterwards by the
event bus listeners.
"""

import logging
from collections import Counter
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.config import settings
from learnpath.enums import ModuleType
from learnpath.middleware.error_handling import ValidationError
from learnpath.models.learning import (
    LessonCompletedEvent,
    QuestionResult,
    SubmissionRequest,
    SubmissionResponse,
)
from learnpath.services.events import EventBus
from learnpath.services.learning.catalog import LessonCatalog
from learnpath.services.learning.grader import grade_submission
from learnpath.services.learning.level_service import LevelService

logger = logging.getLogger(__name__)


class SubmissionService:
    def __init__(
        self,
        db: AsyncSession,
        event_bus: EventBus,
        catalog: Optional[LessonCatalog] = None,
        level_service: Optional[LevelService] = None,
    ):
        self.db = db
        self.event_bus = event_bus
        self.catalog = catalog or LessonCatalog(db)
        self.level_service = level_service or LevelService(db, self.catalog)

    async def submit(
        self, user_id: int, lesson_id: int, request: SubmissionRequest
    ) -> SubmissionResponse:
        """
        Grade a lesson submission and apply its progress.

        Raises:
            NotFoundError: Unknown lesson or user.
            ValidationError: No answers, duplicate question ids, answers to
                questions outside the lesson, or a module that does not match
                the lesson.
            ConcurrencyConflict: The user's totals kept changing concurrently.
        """
        lesson = await self.catalog.get_lesson(lesson_id)
        if request.module_type is not None and request.module_type.value != lesson.module_type:
            raise ValidationError(
                f"Lesson {lesson_id} belongs to {lesson.module_type}, "
                f"not {request.module_type.value}"
            )

        questions = await self.catalog.get_questions(lesson_id)
        self._validate_answers(request, {q.question_id for q in questions})

        result = grade_submission(questions, request.answers, settings.PASS_THRESHOLD_PERCENT)
        logger.info(
            f"User {user_id} scored {result.score_percentage}% on lesson {lesson_id} "
            f"({result.correct_count}/{result.total_questions} correct)"
        )

        level = await self.level_service.record_submission(user_id, lesson, result)

        topic = await self.catalog.get_topic(lesson.topic_id)
        event = LessonCompletedEvent(
            user_id=user_id,
            lesson_id=lesson.id,
            module_type=ModuleType(lesson.module_type),
            topic_id=lesson.topic_id,
            topic_name=topic.name if topic else "",
            topic_total_lessons=await self.catalog.count_topic_lessons(lesson.topic_id),
            score_percentage=result.score_percentage,
            is_passed=result.is_passed,
            next_lesson_id=await self.catalog.next_lesson_id(lesson),
            question_results=[
                QuestionResult(
                    question_id=r.question_id,
                    question_type=r.question_type,
                    is_correct=r.is_correct,
                )
                for r in result.results
            ],
        )
        await self.event_bus.publish(event)

        return SubmissionResponse(lesson_id=lesson.id, result=result, level=level)

    @staticmethod
    def _validate_answers(request: SubmissionRequest, question_ids: set[int]) -> None:
        if not request.answers:
            raise ValidationError("Submission contains no answers")

        counts = Counter(a.question_id for a in request.answers)
        duplicates = sorted(qid for qid, n in counts.items() if n > 1)
        if duplicates:
            raise ValidationError(
                "Duplicate answers for questions",
                details={"question_ids": duplicates},
            )

        unknown = sorted(set(counts) - question_ids)
        if unknown:
            raise ValidationError(
                "Answers reference questions outside this lesson",
                details={"question_ids": unknown},
            )
