"""
Repositories over the async SQLAlchemy session.

Each repository wraps the queries for one entity so services never build
SQL themselves. Repositories add rows but never commit: the calling
service owns the transaction.

Usage:
    from learnpath.db.repositories import RecommendationRepository

    repo = RecommendationRepository(db)
    active = await repo.find_active_for_user(user_id, now)
"""

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.db.models import User, UserLessonProgress
from learnpath.db.models_learning import (
    LearningBehavior,
    ProcessedEvent,
    Recommendation,
)


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_fresh(self, user_id: int) -> Optional[User]:
        """Load the user, overwriting any state cached in the session."""
        result = await self.db.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


class LessonProgressRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int, lesson_id: int) -> Optional[UserLessonProgress]:
        result = await self.db.execute(
            select(UserLessonProgress)
            .where(
                UserLessonProgress.user_id == user_id,
                UserLessonProgress.lesson_id == lesson_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert(self, user_id: int, lesson_id: int) -> UserLessonProgress:
        """Return the progress row for (user, lesson), creating an empty one."""
        progress = await self.get(user_id, lesson_id)
        if progress is None:
            progress = UserLessonProgress(
                user_id=user_id,
                lesson_id=lesson_id,
                is_completed=False,
                best_score=0.0,
                attempts=0,
            )
            self.db.add(progress)
        return progress


class LearningBehaviorRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int) -> Optional[LearningBehavior]:
        result = await self.db.execute(
            select(LearningBehavior)
            .where(LearningBehavior.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert(self, user_id: int) -> LearningBehavior:
        """Return the user's aggregate root, creating an empty one."""
        behavior = await self.get(user_id)
        if behavior is None:
            behavior = LearningBehavior(
                user_id=user_id,
                overall_accuracy=0.0,
                skill_stats=[],
                question_type_stats=[],
                topic_progress=[],
            )
            self.db.add(behavior)
        return behavior


class ProcessedEventRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def exists(self, event_id: str, consumer: str) -> bool:
        result = await self.db.execute(
            select(ProcessedEvent.id).where(
                ProcessedEvent.event_id == event_id,
                ProcessedEvent.consumer == consumer,
            )
        )
        return result.scalar_one_or_none() is not None

    def mark(self, event_id: str, consumer: str) -> None:
        self.db.add(ProcessedEvent(event_id=event_id, consumer=consumer))


class RecommendationRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, recommendation_id: int) -> Optional[Recommendation]:
        return await self.db.get(Recommendation, recommendation_id)

    def add(self, recommendation: Recommendation) -> Recommendation:
        self.db.add(recommendation)
        return recommendation

    async def find_active_for_user(
        self, user_id: int, now: datetime
    ) -> Sequence[Recommendation]:
        """Active recommendations, highest priority first, newest first on ties."""
        result = await self.db.execute(
            select(Recommendation)
            .where(
                Recommendation.user_id == user_id,
                Recommendation.expires_at > now,
                Recommendation.is_completed.is_(False),
            )
            .order_by(
                Recommendation.priority.desc(),
                Recommendation.created_at.desc(),
                Recommendation.id.desc(),
            )
        )
        return result.scalars().all()

    async def find_active_for_lesson(
        self, user_id: int, lesson_id: int, now: datetime
    ) -> Sequence[Recommendation]:
        result = await self.db.execute(
            select(Recommendation).where(
                Recommendation.user_id == user_id,
                Recommendation.target_lesson_id == lesson_id,
                Recommendation.expires_at > now,
                Recommendation.is_completed.is_(False),
            )
        )
        return result.scalars().all()

    @staticmethod
    def _expired(now: datetime):
        return and_(
            Recommendation.expires_at < now,
            Recommendation.is_completed.is_(False),
        )

    async def find_expired(self, now: datetime) -> Sequence[Recommendation]:
        result = await self.db.execute(
            select(Recommendation).where(self._expired(now)).order_by(Recommendation.id)
        )
        return result.scalars().all()

    async def count_expired(self, now: datetime) -> int:
        result = await self.db.execute(
            select(func.count(Recommendation.id)).where(self._expired(now))
        )
        return result.scalar_one()

    async def delete_expired(self, now: datetime) -> int:
        result = await self.db.execute(delete(Recommendation).where(self._expired(now)))
        return result.rowcount or 0

    async def count_by_state(self, user_id: int) -> dict[str, int]:
        """Lifecycle counters for all of a user's recommendations."""
        result = await self.db.execute(
            select(
                func.count(Recommendation.id),
                func.count(Recommendation.id).filter(
                    Recommendation.is_shown.is_(True)
                ),
                func.count(Recommendation.id).filter(
                    Recommendation.is_accepted.is_(True)
                ),
                func.count(Recommendation.id).filter(
                    Recommendation.is_completed.is_(True)
                ),
                func.count(Recommendation.id).filter(
                    and_(
                        Recommendation.is_shown.is_(True),
                        or_(
                            Recommendation.is_accepted.is_(None),
                            Recommendation.is_accepted.is_(False),
                        ),
                    )
                ),
            ).where(Recommendation.user_id == user_id)
        )
        total, shown, accepted, completed, ignored = result.one()
        return {
            "total": total,
            "shown": shown,
            "accepted": accepted,
            "completed": completed,
            "ignored": ignored,
        }
