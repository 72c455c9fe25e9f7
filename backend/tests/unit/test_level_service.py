"""
Unit tests for the level-up evaluator.

Tests threshold decisions, the mastery gate, first-pass-only point accrual,
lesson progress bookkeeping and concurrent submissions for one user.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from learnpath.config import settings
from learnpath.db.models import Lesson, User, UserLessonProgress
from learnpath.db.models_learning import LearningBehavior, SkillStat
from learnpath.enums import EnglishLevel
from learnpath.middleware.error_handling import ConcurrencyConflict, NotFoundError
from learnpath.models.learning import SubmissionResult
from learnpath.services.learning.level_service import (
    DEFAULT_LEVEL_THRESHOLDS,
    LevelService,
    decide_level,
    is_mastered,
    load_level_thresholds,
)
from learnpath.services.locks import KeyedLocks


def make_result(total_score: int = 10, max_score: int = 10) -> SubmissionResult:
    percentage = round(total_score * 100 / max_score)
    return SubmissionResult(
        total_questions=2,
        correct_count=2 if total_score == max_score else 0,
        total_score=total_score,
        max_score=max_score,
        score_percentage=percentage,
        is_passed=percentage >= 80,
        results=[],
    )


def mastered_grammar(user_id: int = 1) -> LearningBehavior:
    return LearningBehavior(
        user_id=user_id,
        overall_accuracy=0.9,
        skill_stats=[
            SkillStat(
                module_type="grammar",
                accuracy=0.9,
                total_attempts=10,
                correct_answers=9,
                streak=0,
                longest_streak=5,
            )
        ],
        question_type_stats=[],
        topic_progress=[],
    )


# ============================================================================
# Level Decision
# ============================================================================


class TestDecideLevel:
    def test_reaching_threshold_moves_up(self):
        assert decide_level(EnglishLevel.A1, 100, mastered=True) == EnglishLevel.A2

    def test_below_threshold_stays(self):
        assert decide_level(EnglishLevel.A1, 99, mastered=True) == EnglishLevel.A1

    def test_never_skips_a_level(self):
        assert decide_level(EnglishLevel.A1, 5000, mastered=True) == EnglishLevel.A2

    def test_mastery_required(self):
        assert decide_level(EnglishLevel.B1, 700, mastered=False) == EnglishLevel.B1

    def test_c2_is_the_top(self):
        assert decide_level(EnglishLevel.C2, 100000, mastered=True) == EnglishLevel.C2

    def test_custom_thresholds(self):
        thresholds = {**DEFAULT_LEVEL_THRESHOLDS, EnglishLevel.A2: 10}

        assert decide_level(EnglishLevel.A1, 10, True, thresholds) == EnglishLevel.A2


class TestLoadLevelThresholds:
    def test_reads_yaml_table(self):
        thresholds = load_level_thresholds({"levels": {"thresholds": {"A2": 50, "B1": 120}}})

        assert thresholds[EnglishLevel.A2] == 50
        assert thresholds[EnglishLevel.B1] == 120
        assert thresholds[EnglishLevel.C2] == DEFAULT_LEVEL_THRESHOLDS[EnglishLevel.C2]

    def test_missing_table_uses_defaults(self):
        assert load_level_thresholds({}) == DEFAULT_LEVEL_THRESHOLDS


class TestIsMastered:
    def test_no_stats(self):
        assert is_mastered(None) is False

    def test_needs_enough_attempts(self):
        skill = SkillStat(module_type="grammar", accuracy=1.0, total_attempts=3)

        assert is_mastered(skill) is False

    def test_needs_accuracy(self):
        skill = SkillStat(module_type="grammar", accuracy=0.7, total_attempts=20)

        assert is_mastered(skill) is False

    def test_mastered(self):
        skill = SkillStat(module_type="grammar", accuracy=0.8, total_attempts=10)

        assert is_mastered(skill) is True


# ============================================================================
# Recording Submissions
# ============================================================================


class TestRecordSubmission:
    @pytest.fixture
    def no_mastery(self, monkeypatch):
        monkeypatch.setattr(settings, "LEVEL_REQUIRE_MASTERY", False)

    async def _set_points(self, db, user_id: int, points: int) -> None:
        user = await db.get(User, user_id)
        user.total_points = points
        await db.commit()

    @pytest.mark.asyncio
    async def test_first_pass_awards_points(self, catalog, db_session):
        lesson = await db_session.get(Lesson, catalog.first_lesson_id)

        outcome = await LevelService(db_session, locks=KeyedLocks()).record_submission(
            catalog.user_id, lesson, make_result(10)
        )

        assert outcome.points_earned == 10
        assert outcome.total_points == 10
        assert outcome.did_upgrade is False
        assert outcome.has_unlocked_next is True
        assert outcome.next_lesson_id == catalog.second_lesson_id
        assert outcome.message == "Lesson completed! +10 points"

        progress = await db_session.scalar(
            select(UserLessonProgress).where(UserLessonProgress.lesson_id == lesson.id)
        )
        assert progress.is_completed is True
        assert progress.attempts == 1
        assert progress.best_score == 100
        assert progress.completed_at is not None

    @pytest.mark.asyncio
    async def test_points_follow_the_submission_score(self, catalog, db_session):
        lesson = await db_session.get(Lesson, catalog.first_lesson_id)

        outcome = await LevelService(db_session, locks=KeyedLocks()).record_submission(
            catalog.user_id, lesson, make_result(total_score=9, max_score=10)
        )

        assert outcome.points_earned == 9
        assert outcome.total_points == 9
        assert not hasattr(Lesson, "points_reward")

    @pytest.mark.asyncio
    async def test_passing_again_awards_nothing(self, catalog, db_session):
        lesson = await db_session.get(Lesson, catalog.first_lesson_id)
        service = LevelService(db_session, locks=KeyedLocks())

        await service.record_submission(catalog.user_id, lesson, make_result(8))
        outcome = await service.record_submission(catalog.user_id, lesson, make_result(10))

        assert outcome.points_earned == 0
        assert outcome.total_points == 8
        assert outcome.next_lesson_id is None
        assert outcome.message == "Lesson already completed, no points awarded"

        progress = await db_session.scalar(
            select(UserLessonProgress).where(UserLessonProgress.lesson_id == lesson.id)
        )
        assert progress.attempts == 2
        assert progress.best_score == 100

    @pytest.mark.asyncio
    async def test_failed_attempt_counts_but_earns_nothing(self, catalog, db_session):
        lesson = await db_session.get(Lesson, catalog.first_lesson_id)
        service = LevelService(db_session, locks=KeyedLocks())

        outcome = await service.record_submission(catalog.user_id, lesson, make_result(5))

        assert outcome.points_earned == 0
        assert outcome.has_unlocked_next is False
        assert outcome.message == "Score 50%. Reach 80% to complete the lesson"

        # Passing after a failure is still the first pass
        outcome = await service.record_submission(catalog.user_id, lesson, make_result(10))
        assert outcome.points_earned == 10

    @pytest.mark.asyncio
    async def test_last_lesson_of_topic_unlocks_nothing(self, catalog, db_session):
        lesson = await db_session.get(Lesson, catalog.second_lesson_id)

        outcome = await LevelService(db_session, locks=KeyedLocks()).record_submission(
            catalog.user_id, lesson, make_result(10)
        )

        # Lesson 12 follows but is inactive
        assert outcome.has_unlocked_next is False
        assert outcome.next_lesson_id is None

    @pytest.mark.asyncio
    async def test_level_up_when_threshold_reached(self, catalog, db_session, no_mastery):
        await self._set_points(db_session, catalog.user_id, 95)
        lesson = await db_session.get(Lesson, catalog.first_lesson_id)

        outcome = await LevelService(db_session, locks=KeyedLocks()).record_submission(
            catalog.user_id, lesson, make_result(10)
        )

        assert outcome.did_upgrade is True
        assert outcome.old_level == EnglishLevel.A1
        assert outcome.new_level == EnglishLevel.A2
        assert outcome.total_points == 105
        assert outcome.message == "Level up! A1 → A2"

        user = await db_session.get(User, catalog.user_id)
        assert user.english_level == "A2"

    @pytest.mark.asyncio
    async def test_level_up_waits_for_mastery(self, catalog, db_session):
        await self._set_points(db_session, catalog.user_id, 95)
        lesson = await db_session.get(Lesson, catalog.first_lesson_id)

        outcome = await LevelService(db_session, locks=KeyedLocks()).record_submission(
            catalog.user_id, lesson, make_result(10)
        )

        assert outcome.did_upgrade is False
        assert outcome.total_points == 105

    @pytest.mark.asyncio
    async def test_level_up_with_mastered_module(self, catalog, db_session):
        await self._set_points(db_session, catalog.user_id, 95)
        db_session.add(mastered_grammar(catalog.user_id))
        await db_session.commit()
        lesson = await db_session.get(Lesson, catalog.first_lesson_id)

        outcome = await LevelService(db_session, locks=KeyedLocks()).record_submission(
            catalog.user_id, lesson, make_result(10)
        )

        assert outcome.new_level == EnglishLevel.A2

    @pytest.mark.asyncio
    async def test_max_level_reached(self, catalog, db_session, no_mastery):
        user = await db_session.get(User, catalog.user_id)
        user.english_level = "C1"
        user.total_points = 1495
        await db_session.commit()
        lesson = await db_session.get(Lesson, catalog.first_lesson_id)

        outcome = await LevelService(db_session, locks=KeyedLocks()).record_submission(
            catalog.user_id, lesson, make_result(10)
        )

        assert outcome.new_level == EnglishLevel.C2
        assert outcome.max_level_reached is True

    @pytest.mark.asyncio
    async def test_unknown_user(self, catalog, db_session):
        lesson = await db_session.get(Lesson, catalog.first_lesson_id)

        with pytest.raises(NotFoundError):
            await LevelService(db_session, locks=KeyedLocks()).record_submission(
                999, lesson, make_result(10)
            )


class TestConcurrentSubmissions:
    @pytest.mark.asyncio
    async def test_points_from_parallel_lessons_are_not_lost(self, catalog, session_maker):
        locks = KeyedLocks()

        async def submit(lesson_id: int):
            async with session_maker() as db:
                lesson = await db.get(Lesson, lesson_id)
                return await LevelService(db, locks=locks).record_submission(
                    catalog.user_id, lesson, make_result(10)
                )

        await asyncio.gather(
            submit(catalog.first_lesson_id), submit(catalog.second_lesson_id)
        )

        async with session_maker() as db:
            user = await db.get(User, catalog.user_id)
        assert user.total_points == 20
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_points_are_not_lost_without_a_shared_lock(self, catalog, session_maker):
        """Separate lock tables, as in two processes; the version column guards."""

        async def submit(lesson_id: int):
            async with session_maker() as db:
                lesson = await db.get(Lesson, lesson_id)
                return await LevelService(db, locks=KeyedLocks()).record_submission(
                    catalog.user_id, lesson, make_result(10)
                )

        outcomes = await asyncio.gather(
            submit(catalog.first_lesson_id), submit(catalog.second_lesson_id)
        )

        async with session_maker() as db:
            user = await db.get(User, catalog.user_id)
        assert user.total_points == 20
        assert sorted(o.total_points for o in outcomes) == [10, 20]

    @pytest.mark.asyncio
    async def test_stale_user_row_is_reread_and_retried(self, catalog, session_maker):
        async with session_maker() as db:
            lesson = await db.get(Lesson, catalog.first_lesson_id)
            service = LevelService(db, locks=KeyedLocks())
            upsert = service.progress.upsert
            calls = 0

            async def upsert_after_outside_write(user_id: int, lesson_id: int):
                nonlocal calls
                calls += 1
                if calls == 1:
                    # Another writer commits after this attempt read the user
                    async with session_maker() as other:
                        user = await other.get(User, user_id)
                        user.total_points += 5
                        await other.commit()
                return await upsert(user_id, lesson_id)

            service.progress.upsert = upsert_after_outside_write
            outcome = await service.record_submission(
                catalog.user_id, lesson, make_result(10)
            )

        assert calls == 2
        assert outcome.points_earned == 10
        assert outcome.total_points == 15

        async with session_maker() as db:
            user = await db.get(User, catalog.user_id)
            progress = (
                await db.execute(
                    select(UserLessonProgress).where(
                        UserLessonProgress.user_id == catalog.user_id
                    )
                )
            ).scalar_one()
        assert user.total_points == 15
        assert progress.attempts == 1
        assert progress.is_completed is True

    @pytest.mark.asyncio
    async def test_persistent_stale_writes_raise_conflict(self, catalog, db_session):
        lesson = await db_session.get(Lesson, catalog.first_lesson_id)
        service = LevelService(db_session, locks=KeyedLocks())

        with patch.object(
            service, "_apply", AsyncMock(side_effect=StaleDataError("stale"))
        ) as apply:
            with pytest.raises(ConcurrencyConflict) as exc_info:
                await service.record_submission(catalog.user_id, lesson, make_result(10))

        assert apply.await_count == settings.LEVEL_UPDATE_MAX_RETRIES
        assert exc_info.value.status_code == 409
