"""
Stats Aggregator

Applies lesson completion events to a user's learning statistics. Every
update is incremental: counters are bumped and ratios recomputed from the
counters, history is never replayed.

Per event:
- one SkillStat (the event's module) and one QuestionTypeStat are updated for
  every graded question
- the topic's TopicProgress is updated when the lesson was passed
- strongest/weakest skill and overall accuracy are recomputed on the root

All changes for an event, together with its ProcessedEvent marker, commit in
one transaction. A redelivered event finds its marker and is skipped.

Only the completion event bus calls `on_lesson_completed`.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.db.base import async_session_maker
from learnpath.db.models_learning import (
    LearningBehavior,
    QuestionTypeStat,
    SkillStat,
    TopicProgress,
)
from learnpath.db.repositories import (
    LearningBehaviorRepository,
    ProcessedEventRepository,
)
from learnpath.models.learning import (
    BehaviorSnapshot,
    LessonCompletedEvent,
    QuestionTypeStatResponse,
    SkillStatResponse,
    TopicProgressResponse,
)
from learnpath.services.locks import KeyedLocks, user_locks

logger = logging.getLogger(__name__)

CONSUMER_NAME = "stats_aggregator"


# ===========================================
# Incremental update rules
# ===========================================


def apply_skill_result(stat: SkillStat, is_correct: bool) -> None:
    """
    Count one answer in a module.

    Example:
        {accuracy 0.5, attempts 4, correct 2, streak 0} + correct
        → {accuracy 0.6, attempts 5, correct 3, streak 1}
    """
    stat.total_attempts += 1
    if is_correct:
        stat.correct_answers += 1
        stat.streak += 1
        stat.longest_streak = max(stat.longest_streak, stat.streak)
    else:
        stat.streak = 0
    stat.accuracy = stat.correct_answers / stat.total_attempts


def apply_question_type_result(stat: QuestionTypeStat, is_correct: bool) -> None:
    if is_correct:
        stat.correct_count += 1
    else:
        stat.wrong_count += 1
    stat.accuracy = stat.correct_count / (stat.correct_count + stat.wrong_count)


def apply_topic_completion(
    progress: TopicProgress,
    lesson_id: int,
    score: float,
    total_lessons: int,
    now: datetime,
) -> bool:
    """
    Count a passed lesson in its topic.

    The running average is folded in before `completed_lessons` is bumped:
    new_avg = (old_avg * completed + score) / (completed + 1). A lesson
    already counted only refreshes `last_active_at`.

    Returns:
        True if the lesson was counted for the first time.
    """
    progress.last_active_at = now
    progress.total_lessons = max(progress.total_lessons, total_lessons)

    if lesson_id in progress.completed_lesson_ids:
        return False

    completed = progress.completed_lessons
    progress.average_score = (progress.average_score * completed + score) / (completed + 1)
    progress.completed_lessons = completed + 1
    # Reassign so the JSON column is flagged dirty
    progress.completed_lesson_ids = [*progress.completed_lesson_ids, lesson_id]
    # The catalog may have shrunk since the topic was first seen
    progress.total_lessons = max(progress.total_lessons, progress.completed_lessons)
    progress.completion_percentage = (
        progress.completed_lessons / progress.total_lessons * 100
    )
    return True


def recompute_summary(behavior: LearningBehavior, now: datetime) -> None:
    """Derive strongest/weakest skill and overall accuracy from the skill rows."""
    attempted = [s for s in behavior.skill_stats if s.total_attempts > 0]
    if attempted:
        behavior.strongest_skill = max(attempted, key=lambda s: s.accuracy).module_type
        behavior.weakest_skill = min(attempted, key=lambda s: s.accuracy).module_type
        behavior.overall_accuracy = sum(s.correct_answers for s in attempted) / sum(
            s.total_attempts for s in attempted
        )
    behavior.last_analyzed_at = now


def _new_skill_stat(module_type: str) -> SkillStat:
    return SkillStat(
        module_type=module_type,
        accuracy=0.0,
        total_attempts=0,
        correct_answers=0,
        streak=0,
        longest_streak=0,
    )


def _new_question_type_stat(question_type: str) -> QuestionTypeStat:
    return QuestionTypeStat(
        question_type=question_type, accuracy=0.0, correct_count=0, wrong_count=0
    )


def _new_topic_progress(topic_id: int, topic_name: str) -> TopicProgress:
    return TopicProgress(
        topic_id=topic_id,
        topic_name=topic_name,
        completion_percentage=0.0,
        total_lessons=0,
        completed_lessons=0,
        average_score=0.0,
        completed_lesson_ids=[],
    )


def apply_event(behavior: LearningBehavior, event: LessonCompletedEvent, now: datetime) -> None:
    """Apply one completion event to a loaded aggregate."""
    module = event.module_type.value
    skill = behavior.skill(module)
    if skill is None:
        skill = _new_skill_stat(module)
        behavior.skill_stats.append(skill)

    for result in event.question_results:
        apply_skill_result(skill, result.is_correct)

        question_type = result.question_type.value
        type_stat = behavior.question_type(question_type)
        if type_stat is None:
            type_stat = _new_question_type_stat(question_type)
            behavior.question_type_stats.append(type_stat)
        apply_question_type_result(type_stat, result.is_correct)

    if event.is_passed:
        progress = behavior.topic(event.topic_id)
        if progress is None:
            progress = _new_topic_progress(event.topic_id, event.topic_name)
            behavior.topic_progress.append(progress)
        apply_topic_completion(
            progress,
            event.lesson_id,
            float(event.score_percentage),
            event.topic_total_lessons,
            now,
        )

    recompute_summary(behavior, now)


# ===========================================
# Service
# ===========================================


class StatsAggregator:
    """
    Completion event consumer that maintains learning statistics.

    Opens its own session per event; runs on the event bus workers, off the
    request path.
    """

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
                processed = ProcessedEventRepository(db)
                if await processed.exists(event.event_id, CONSUMER_NAME):
                    logger.info(f"Event {event.event_id} already aggregated, skipping")
                    return

                behavior = await LearningBehaviorRepository(db).upsert(event.user_id)
                apply_event(behavior, event, datetime.now(timezone.utc))
                processed.mark(event.event_id, CONSUMER_NAME)

                try:
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise

        logger.info(
            f"Aggregated lesson {event.lesson_id} for user {event.user_id} "
            f"({len(event.question_results)} answers, passed={event.is_passed})"
        )


async def get_behavior_snapshot(db: AsyncSession, user_id: int) -> BehaviorSnapshot:
    """Current statistics of a user; empty when nothing was aggregated yet."""
    behavior: Optional[LearningBehavior] = await LearningBehaviorRepository(db).get(user_id)
    if behavior is None:
        return BehaviorSnapshot(user_id=user_id)

    return BehaviorSnapshot(
        user_id=user_id,
        strongest_skill=behavior.strongest_skill,
        weakest_skill=behavior.weakest_skill,
        overall_accuracy=behavior.overall_accuracy,
        last_analyzed_at=behavior.last_analyzed_at,
        skills=[
            SkillStatResponse.model_validate(s)
            for s in sorted(behavior.skill_stats, key=lambda s: s.module_type)
        ],
        question_types=[
            QuestionTypeStatResponse.model_validate(s)
            for s in sorted(behavior.question_type_stats, key=lambda s: s.question_type)
        ],
        topics=[
            TopicProgressResponse.model_validate(t)
            for t in sorted(behavior.topic_progress, key=lambda t: t.topic_id)
        ],
    )
