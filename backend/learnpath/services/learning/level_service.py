"""
Level-Up Evaluator

Awards points for a graded submission and decides whether the learner moves
up a CEFR level. Runs synchronously inside the submission request.

Rules:
- Points: the submission's total score, awarded only the first time the user
  passes the lesson. Retrying a passed lesson earns nothing.
- Thresholds: minimum running point total to enter each level, from
  config/default.yaml (levels.thresholds).
- Mastery: with LEVEL_REQUIRE_MASTERY on, the lesson's module must also be
  mastered (accuracy >= MASTERY_ACCURACY_THRESHOLD over at least
  MASTERY_MIN_ATTEMPTS answers), judged on the stats before this submission.
- At most one level per evaluation; levels never go down; C2 is the top.

Point updates are serialised per user in-process and protected by the user's
version column across processes. A stale write is retried a bounded number of
times and then surfaced as ConcurrencyConflict.

Usage:
    service = LevelService(db)
    outcome = await service.record_submission(user_id, lesson, result)
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from learnpath.config import settings, yaml_config
from learnpath.db.models import Lesson
from learnpath.db.models_learning import SkillStat
from learnpath.db.repositories import (
    LearningBehaviorRepository,
    LessonProgressRepository,
    UserRepository,
)
from learnpath.enums import EnglishLevel
from learnpath.middleware.error_handling import ConcurrencyConflict, NotFoundError
from learnpath.models.learning import LevelUpgradeResult, SubmissionResult
from learnpath.services.learning.catalog import LessonCatalog
from learnpath.services.locks import KeyedLocks, user_locks

logger = logging.getLogger(__name__)

DEFAULT_LEVEL_THRESHOLDS: dict[EnglishLevel, int] = {
    EnglishLevel.A1: 0,
    EnglishLevel.A2: 100,
    EnglishLevel.B1: 300,
    EnglishLevel.B2: 600,
    EnglishLevel.C1: 1000,
    EnglishLevel.C2: 1500,
}


def load_level_thresholds(config: Optional[dict[str, Any]] = None) -> dict[EnglishLevel, int]:
    """Level thresholds from YAML config, falling back to the defaults per level."""
    config = yaml_config if config is None else config
    configured = config.get("levels", {}).get("thresholds", {}) or {}
    return {
        level: int(configured.get(level.value, default))
        for level, default in DEFAULT_LEVEL_THRESHOLDS.items()
    }


LEVEL_THRESHOLDS = load_level_thresholds()


def is_mastered(skill: Optional[SkillStat]) -> bool:
    if skill is None:
        return False
    return (
        skill.total_attempts >= settings.MASTERY_MIN_ATTEMPTS
        and skill.accuracy >= settings.MASTERY_ACCURACY_THRESHOLD
    )


def decide_level(
    current: EnglishLevel,
    total_points: int,
    mastered: bool,
    thresholds: Optional[dict[EnglishLevel, int]] = None,
) -> EnglishLevel:
    """
    Next level if the learner qualifies for it, else the current one.

    Never skips a level and never returns a lower one.
    """
    thresholds = LEVEL_THRESHOLDS if thresholds is None else thresholds
    next_level = current.next_level()
    if next_level is None:
        return current
    if total_points >= thresholds[next_level] and mastered:
        return next_level
    return current


def _message(
    result: SubmissionResult,
    points: int,
    old_level: EnglishLevel,
    new_level: EnglishLevel,
) -> str:
    if new_level != old_level:
        return f"Level up! {old_level.value} → {new_level.value}"
    if not result.is_passed:
        return (
            f"Score {result.score_percentage}%. Reach "
            f"{settings.PASS_THRESHOLD_PERCENT:g}% to complete the lesson"
        )
    if points:
        return f"Lesson completed! +{points} points"
    return "Lesson already completed, no points awarded"


class LevelService:
    """Point accrual and level progression for submissions."""

    def __init__(
        self,
        db: AsyncSession,
        catalog: Optional[LessonCatalog] = None,
        locks: KeyedLocks = user_locks,
    ):
        self.db = db
        self.catalog = catalog or LessonCatalog(db)
        self.locks = locks
        self.users = UserRepository(db)
        self.progress = LessonProgressRepository(db)
        self.behaviors = LearningBehaviorRepository(db)

    async def record_submission(
        self,
        user_id: int,
        lesson: Lesson,
        result: SubmissionResult,
    ) -> LevelUpgradeResult:
        """
        Record a graded attempt, award points and evaluate the level.

        Commits its own transaction.

        Raises:
            NotFoundError: If the user does not exist.
            ConcurrencyConflict: If the user row kept changing concurrently.
        """
        async with self.locks.hold(user_id):
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(settings.LEVEL_UPDATE_MAX_RETRIES),
                    wait=wait_exponential(multiplier=0.05, max=1),
                    retry=retry_if_exception_type(StaleDataError),
                    before_sleep=before_sleep_log(logger, logging.WARNING),
                    reraise=True,
                ):
                    with attempt:
                        outcome = await self._apply(user_id, lesson, result)
            except StaleDataError as e:
                raise ConcurrencyConflict(
                    f"Progress of user {user_id} changed concurrently, please retry",
                    details={"user_id": user_id, "lesson_id": lesson.id},
                ) from e

        if outcome.did_upgrade:
            logger.info(
                f"User {user_id} leveled up {outcome.old_level.value} → "
                f"{outcome.new_level.value} ({outcome.total_points} points)"
            )
        return outcome

    async def _apply(
        self, user_id: int, lesson: Lesson, result: SubmissionResult
    ) -> LevelUpgradeResult:
        try:
            user = await self.users.get_fresh(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")

            progress = await self.progress.upsert(user_id, lesson.id)
            first_pass = result.is_passed and not progress.is_completed

            progress.attempts += 1
            progress.best_score = max(progress.best_score, float(result.score_percentage))
            if first_pass:
                progress.is_completed = True
                progress.completed_at = datetime.now(timezone.utc)

            old_level = EnglishLevel(user.english_level)
            new_level = old_level
            points = result.total_score if first_pass else 0
            if points > 0:
                user.total_points += points
                mastered = True
                if settings.LEVEL_REQUIRE_MASTERY:
                    behavior = await self.behaviors.get(user_id)
                    mastered = is_mastered(
                        behavior.skill(lesson.module_type) if behavior else None
                    )
                new_level = decide_level(old_level, user.total_points, mastered)
                if new_level != old_level:
                    user.english_level = new_level.value

            next_lesson_id = (
                await self.catalog.next_lesson_id(lesson) if first_pass else None
            )
            total_points = user.total_points

            await self.db.commit()
        except StaleDataError:
            await self.db.rollback()
            # Rollback expires every loaded row; callers keep reading the lesson
            await self.db.refresh(lesson)
            raise
        except Exception:
            await self.db.rollback()
            raise

        return LevelUpgradeResult(
            did_upgrade=new_level != old_level,
            old_level=old_level,
            new_level=new_level,
            points_earned=points,
            total_points=total_points,
            has_unlocked_next=next_lesson_id is not None,
            next_lesson_id=next_lesson_id,
            max_level_reached=new_level.next_level() is None,
            message=_message(result, points, old_level, new_level),
        )
