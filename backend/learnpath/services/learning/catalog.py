"""
Lesson Catalog

Read-only access to topics, lessons and questions. Authoring and ordering of
the catalog happen elsewhere; the scoring engine only reads it.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.db.models import Lesson, Question as QuestionRow, Topic
from learnpath.middleware.error_handling import NotFoundError
from learnpath.models.questions import Question, parse_question

logger = logging.getLogger(__name__)


class LessonCatalog:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_lesson(self, lesson_id: int) -> Lesson:
        """
        Load an active lesson.

        Raises:
            NotFoundError: If the lesson does not exist or is inactive.
        """
        lesson = await self.db.get(Lesson, lesson_id)
        if lesson is None or not lesson.is_active:
            raise NotFoundError(f"Lesson {lesson_id} not found")
        return lesson

    async def get_topic(self, topic_id: int) -> Optional[Topic]:
        return await self.db.get(Topic, topic_id)

    async def get_questions(self, lesson_id: int) -> list[Question]:
        """Typed questions of a lesson, in lesson order."""
        result = await self.db.execute(
            select(QuestionRow)
            .where(QuestionRow.lesson_id == lesson_id)
            .order_by(QuestionRow.order_index, QuestionRow.id)
        )
        return [parse_question(row) for row in result.scalars().all()]

    async def count_topic_lessons(self, topic_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Lesson.id)).where(
                Lesson.topic_id == topic_id, Lesson.is_active.is_(True)
            )
        )
        return result.scalar_one()

    async def next_lesson_id(self, lesson: Lesson) -> Optional[int]:
        """The next active lesson of the same topic, if any."""
        result = await self.db.execute(
            select(Lesson.id)
            .where(
                Lesson.topic_id == lesson.topic_id,
                Lesson.is_active.is_(True),
                Lesson.order_index > lesson.order_index,
            )
            .order_by(Lesson.order_index, Lesson.id)
            .limit(1)
        )
        return result.scalar_one_or_none()
