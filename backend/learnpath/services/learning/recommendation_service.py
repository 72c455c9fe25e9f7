"""
Recommendation Manager

Maintains each learner's queue of study recommendations: generated by rules
from completion events, listed by priority, expired by time, and moved
through the shown → accepted → completed (or dismissed) lifecycle.

Generation rules (per completion event):
- REVIEW_TOPIC: the lesson was failed, or the topic's average score is below
  REVIEW_TOPIC_THRESHOLD.
- PRACTICE_WEAK_SKILL: the module's accuracy is below WEAK_SKILL_THRESHOLD
  after at least MASTERY_MIN_ATTEMPTS answers. Very weak skills (< 40%) get one
  extra priority point.
- NEXT_LESSON: the lesson was passed and the topic has a next lesson.

An active recommendation with the same type and target is never duplicated.
Passing a lesson completes the active recommendations that target it.

A recommendation is active iff `expires_at > now` and it is not completed.
Expiry is evaluated at query time; the scheduled sweep only counts stale rows,
and deletes them when RECOMMENDATION_CLEANUP_ENABLED is set.

Usage:
    service = RecommendationService(db)
    active = await service.list_active(user_id)
    await service.record_shown(user_id, recommendation_id)
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.config import settings, yaml_config
from learnpath.db.base import async_session_maker
from learnpath.db.models_learning import LearningBehavior, Recommendation
from learnpath.db.repositories import (
    LearningBehaviorRepository,
    ProcessedEventRepository,
    RecommendationRepository,
)
from learnpath.enums import RecommendationType
from learnpath.middleware.error_handling import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from learnpath.models.learning import (
    LessonCompletedEvent,
    RecommendationMetrics,
    RecommendationResponse,
)
from learnpath.services.locks import KeyedLocks, user_locks

logger = logging.getLogger(__name__)

CONSUMER_NAME = "recommendation_manager"

VERY_WEAK_SKILL_ACCURACY = 0.4

DEFAULT_PRIORITIES: dict[RecommendationType, int] = {
    RecommendationType.REVIEW_TOPIC: 4,
    RecommendationType.PRACTICE_WEAK_SKILL: 3,
    RecommendationType.NEXT_LESSON: 2,
    RecommendationType.GENERATED_LESSON: 3,
}


def _priorities() -> dict[RecommendationType, int]:
    configured = yaml_config.get("recommendations", {}).get("priorities", {}) or {}
    return {
        rec_type: int(configured.get(rec_type.value, default))
        for rec_type, default in DEFAULT_PRIORITIES.items()
    }


PRIORITIES = _priorities()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _target_key(rec: Recommendation) -> tuple:
    return (rec.type, rec.target_skill, rec.target_lesson_id, rec.target_topic_id)


def build_recommendations(
    event: LessonCompletedEvent,
    behavior: Optional[LearningBehavior],
    now: datetime,
) -> list[Recommendation]:
    """
    Candidate recommendations for a completion event, highest priority first.

    Pure: reads the event and the (already aggregated) stats, writes nothing.
    """
    expires_at = now + timedelta(days=settings.RECOMMENDATION_TTL_DAYS)
    module = event.module_type.value
    candidates: list[Recommendation] = []

    topic = behavior.topic(event.topic_id) if behavior else None
    topic_name = event.topic_name or f"topic {event.topic_id}"
    if not event.is_passed:
        candidates.append(
            Recommendation(
                user_id=event.user_id,
                type=RecommendationType.REVIEW_TOPIC.value,
                title=f"Review {topic_name}",
                description=f"Go over {topic_name} again before retrying the lesson.",
                reasoning=(
                    f"Scored {event.score_percentage}% on lesson {event.lesson_id}, "
                    f"below the {settings.PASS_THRESHOLD_PERCENT:g}% pass mark"
                ),
                target_lesson_id=event.lesson_id,
                target_topic_id=event.topic_id,
                priority=PRIORITIES[RecommendationType.REVIEW_TOPIC],
                created_at=now,
                expires_at=expires_at,
            )
        )
    elif topic is not None and topic.average_score < settings.REVIEW_TOPIC_THRESHOLD:
        candidates.append(
            Recommendation(
                user_id=event.user_id,
                type=RecommendationType.REVIEW_TOPIC.value,
                title=f"Review {topic_name}",
                description=f"Strengthen your results in {topic_name}.",
                reasoning=(
                    f"Average score {topic.average_score:.1f}% is below "
                    f"{settings.REVIEW_TOPIC_THRESHOLD:g}%"
                ),
                target_topic_id=event.topic_id,
                priority=PRIORITIES[RecommendationType.REVIEW_TOPIC],
                created_at=now,
                expires_at=expires_at,
            )
        )

    skill = behavior.skill(module) if behavior else None
    if (
        skill is not None
        and skill.total_attempts >= settings.MASTERY_MIN_ATTEMPTS
        and skill.accuracy < settings.WEAK_SKILL_THRESHOLD
    ):
        priority = PRIORITIES[RecommendationType.PRACTICE_WEAK_SKILL]
        if skill.accuracy < VERY_WEAK_SKILL_ACCURACY:
            priority += 1
        candidates.append(
            Recommendation(
                user_id=event.user_id,
                type=RecommendationType.PRACTICE_WEAK_SKILL.value,
                title=f"Practice {module}",
                description=f"Extra {module} practice will lift your accuracy.",
                reasoning=(
                    f"{module.capitalize()} accuracy is {skill.accuracy:.0%} "
                    f"over {skill.total_attempts} answers"
                ),
                target_skill=module,
                priority=priority,
                created_at=now,
                expires_at=expires_at,
            )
        )

    if event.is_passed and event.next_lesson_id is not None:
        candidates.append(
            Recommendation(
                user_id=event.user_id,
                type=RecommendationType.NEXT_LESSON.value,
                title="Continue with the next lesson",
                description=f"The next lesson in {topic_name} is unlocked.",
                reasoning=f"Passed lesson {event.lesson_id} with {event.score_percentage}%",
                target_lesson_id=event.next_lesson_id,
                target_topic_id=event.topic_id,
                priority=PRIORITIES[RecommendationType.NEXT_LESSON],
                created_at=now,
                expires_at=expires_at,
            )
        )

    return sorted(candidates, key=lambda r: r.priority, reverse=True)


class RecommendationService:
    """Recommendation queue operations within one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = RecommendationRepository(db)

    # ===========================================
    # Generation
    # ===========================================

    async def apply_event(
        self, event: LessonCompletedEvent, now: Optional[datetime] = None
    ) -> list[Recommendation]:
        """
        Complete satisfied recommendations and add new ones for an event.

        Commits its own transaction, together with the ProcessedEvent marker.

        Returns:
            The recommendations created (empty for an already processed event).
        """
        now = now or _utc_now()
        processed = ProcessedEventRepository(self.db)
        if await processed.exists(event.event_id, CONSUMER_NAME):
            logger.info(f"Event {event.event_id} already used for recommendations, skipping")
            return []

        try:
            if event.is_passed:
                for rec in await self.repo.find_active_for_lesson(
                    event.user_id, event.lesson_id, now
                ):
                    rec.is_completed = True
                    logger.info(
                        f"Recommendation {rec.id} completed by passing lesson {event.lesson_id}"
                    )

            behavior = await LearningBehaviorRepository(self.db).get(event.user_id)
            active = {
                _target_key(r)
                for r in await self.repo.find_active_for_user(event.user_id, now)
            }

            created = []
            for candidate in build_recommendations(event, behavior, now):
                key = _target_key(candidate)
                if key in active:
                    continue
                active.add(key)
                created.append(self.repo.add(candidate))

            processed.mark(event.event_id, CONSUMER_NAME)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if created:
            logger.info(
                f"Created {len(created)} recommendations for user {event.user_id}: "
                f"{', '.join(r.type for r in created)}"
            )
        return created

    # ===========================================
    # Queries
    # ===========================================

    async def list_active(
        self, user_id: int, now: Optional[datetime] = None
    ) -> list[RecommendationResponse]:
        """Active recommendations: priority descending, then newest first."""
        rows = await self.repo.find_active_for_user(user_id, now or _utc_now())
        return [RecommendationResponse.model_validate(r) for r in rows]

    async def get_metrics(self, user_id: int) -> RecommendationMetrics:
        """Acceptance rate is over shown recommendations, completion rate over accepted."""
        counts = await self.repo.count_by_state(user_id)
        shown, accepted = counts["shown"], counts["accepted"]
        return RecommendationMetrics(
            **counts,
            acceptance_rate=round(accepted / shown * 100, 2) if shown else 0.0,
            completion_rate=round(counts["completed"] / accepted * 100, 2)
            if accepted
            else 0.0,
        )

    async def expire_stale(self, now: Optional[datetime] = None) -> int:
        """
        Count recommendations past their expiry that were never completed.

        Listing already hides them; rows are only deleted when
        RECOMMENDATION_CLEANUP_ENABLED is set.
        """
        now = now or _utc_now()
        if not settings.RECOMMENDATION_CLEANUP_ENABLED:
            count = await self.repo.count_expired(now)
            logger.info(f"{count} expired recommendations pending cleanup")
            return count

        try:
            count = await self.repo.delete_expired(now)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info(f"Deleted {count} expired recommendations")
        return count

    # ===========================================
    # Lifecycle transitions
    # ===========================================

    async def _get_owned(self, user_id: int, recommendation_id: int) -> Recommendation:
        rec = await self.repo.get(recommendation_id)
        if rec is None:
            raise NotFoundError(f"Recommendation {recommendation_id} not found")
        if rec.user_id != user_id:
            raise AuthorizationError(
                f"Recommendation {recommendation_id} belongs to another user"
            )
        return rec

    def _mark_shown(self, rec: Recommendation) -> None:
        if not rec.is_shown:
            rec.is_shown = True
            rec.shown_at = _utc_now()

    async def _save(self, rec: Recommendation) -> RecommendationResponse:
        await self.db.commit()
        return RecommendationResponse.model_validate(rec)

    async def record_shown(self, user_id: int, recommendation_id: int) -> RecommendationResponse:
        """Mark as shown. Showing again keeps the first `shown_at`."""
        rec = await self._get_owned(user_id, recommendation_id)
        self._mark_shown(rec)
        logger.debug(f"Recommendation {rec.id} shown to user {user_id}")
        return await self._save(rec)

    async def record_accepted(
        self, user_id: int, recommendation_id: int
    ) -> RecommendationResponse:
        """Mark as accepted (and shown). A dismissed recommendation cannot be accepted."""
        rec = await self._get_owned(user_id, recommendation_id)
        if rec.is_accepted is False:
            raise ValidationError(f"Recommendation {rec.id} was dismissed")
        rec.is_accepted = True
        self._mark_shown(rec)
        logger.info(f"User {user_id} accepted recommendation {rec.id}: {rec.title}")
        return await self._save(rec)

    async def record_completed(
        self, user_id: int, recommendation_id: int
    ) -> RecommendationResponse:
        """Mark as completed; implies accepted and shown."""
        rec = await self._get_owned(user_id, recommendation_id)
        if rec.is_accepted is False:
            raise ValidationError(f"Recommendation {rec.id} was dismissed")
        rec.is_completed = True
        rec.is_accepted = True
        self._mark_shown(rec)
        logger.info(f"User {user_id} completed recommendation {rec.id}: {rec.title}")
        return await self._save(rec)

    async def record_dismissed(
        self, user_id: int, recommendation_id: int
    ) -> RecommendationResponse:
        """Mark as ignored. Accepted or completed recommendations cannot be dismissed."""
        rec = await self._get_owned(user_id, recommendation_id)
        if rec.is_accepted or rec.is_completed:
            raise ValidationError(f"Recommendation {rec.id} was already accepted")
        rec.is_accepted = False
        self._mark_shown(rec)
        logger.info(f"User {user_id} dismissed recommendation {rec.id}")
        return await self._save(rec)


class RecommendationListener:
    """Completion event consumer; one session per event, serialised per user."""

    def __init__(
        self,
        session_maker: Callable[[], AsyncSession] = async_session_maker,
        locks: KeyedLocks = user_locks,
    ):
        self.session_maker = session_maker
        self.locks = locks

    async def on_lesson_completed(self, event: LessonCompletedEvent) -> None:
        async with self.locks.hold(event.user_id):
            async with self.session_maker() as db:
                await RecommendationService(db).apply_event(event)
