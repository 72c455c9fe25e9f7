"""
SQLAlchemy Database Models for Progress Statistics and Recommendations

Tables:
- learning_behaviors: Per-user aggregate root for all learning statistics
- skill_stats: Accuracy and streaks per learning module (grammar, reading, ...)
- question_type_stats: Accuracy per question type
- topic_progress: Completion and average score per topic
- processed_events: Completion events already applied by a consumer
- recommendations: Study recommendations with expiry and acceptance state

The stats tables are children of `learning_behaviors` and are only mutated by
the stats aggregator, one event per transaction. The root carries a version
column so two writers in different processes cannot both commit on top of the
same snapshot.

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    There is a corresponding Pydantic file: learnpath/models/learning.py
"""

from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learnpath.db.base import Base


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# ===========================================
# Learning Behavior (aggregate root)
# ===========================================


class LearningBehavior(Base):
    """
    Aggregate root for one user's learning statistics.

    Attributes:
        user_id: Owner. One row per user.
        strongest_skill: Module with the highest accuracy, None before any attempt.
        weakest_skill: Module with the lowest accuracy, None before any attempt.
        overall_accuracy: Correct answers over attempts across all modules.
        last_analyzed_at: When the last completion event was applied.
        version: Optimistic concurrency counter, bumped on every update.
    """

    __tablename__ = "learning_behaviors"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True)
    strongest_skill: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    weakest_skill: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    overall_accuracy: Mapped[float] = mapped_column(Float, default=0.0)
    last_analyzed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    skill_stats: Mapped[List["SkillStat"]] = relationship(
        back_populates="behavior", cascade="all, delete-orphan", lazy="selectin"
    )
    question_type_stats: Mapped[List["QuestionTypeStat"]] = relationship(
        back_populates="behavior", cascade="all, delete-orphan", lazy="selectin"
    )
    topic_progress: Mapped[List["TopicProgress"]] = relationship(
        back_populates="behavior", cascade="all, delete-orphan", lazy="selectin"
    )

    __mapper_args__ = {"version_id_col": version}

    def skill(self, module_type: str) -> Optional["SkillStat"]:
        return next((s for s in self.skill_stats if s.module_type == module_type), None)

    def question_type(self, question_type: str) -> Optional["QuestionTypeStat"]:
        return next(
            (s for s in self.question_type_stats if s.question_type == question_type),
            None,
        )

    def topic(self, topic_id: int) -> Optional["TopicProgress"]:
        return next((t for t in self.topic_progress if t.topic_id == topic_id), None)


class SkillStat(Base):
    """
    Accuracy of one user in one learning module.

    Invariants:
        accuracy == correct_answers / total_attempts when total_attempts > 0
        streak is the trailing run of correct answers
    """

    __tablename__ = "skill_stats"
    __table_args__ = (
        UniqueConstraint("behavior_id", "module_type", name="uq_skill_stats_module"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    behavior_id: Mapped[int] = mapped_column(
        ForeignKey("learning_behaviors.id", ondelete="CASCADE")
    )
    module_type: Mapped[str] = mapped_column(String(20))
    accuracy: Mapped[float] = mapped_column(Float, default=0.0)
    total_attempts: Mapped[int] = mapped_column(Integer, default=0)
    correct_answers: Mapped[int] = mapped_column(Integer, default=0)
    streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)

    behavior: Mapped["LearningBehavior"] = relationship(back_populates="skill_stats")


class QuestionTypeStat(Base):
    """Correct/wrong counts of one user for one question type."""

    __tablename__ = "question_type_stats"
    __table_args__ = (
        UniqueConstraint(
            "behavior_id", "question_type", name="uq_question_type_stats_type"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    behavior_id: Mapped[int] = mapped_column(
        ForeignKey("learning_behaviors.id", ondelete="CASCADE")
    )
    question_type: Mapped[str] = mapped_column(String(40))
    accuracy: Mapped[float] = mapped_column(Float, default=0.0)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    wrong_count: Mapped[int] = mapped_column(Integer, default=0)

    behavior: Mapped["LearningBehavior"] = relationship(
        back_populates="question_type_stats"
    )


class TopicProgress(Base):
    """
    Completion state of one user in one topic.

    `completed_lesson_ids` lists the lessons already counted, so passing the
    same lesson twice does not count twice. `completed_lessons` never
    decreases and never exceeds `total_lessons`.
    """

    __tablename__ = "topic_progress"
    __table_args__ = (
        UniqueConstraint("behavior_id", "topic_id", name="uq_topic_progress_topic"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    behavior_id: Mapped[int] = mapped_column(
        ForeignKey("learning_behaviors.id", ondelete="CASCADE")
    )
    topic_id: Mapped[int] = mapped_column(Integer)
    topic_name: Mapped[str] = mapped_column(String(200), default="")
    completion_percentage: Mapped[float] = mapped_column(Float, default=0.0)
    total_lessons: Mapped[int] = mapped_column(Integer, default=0)
    completed_lessons: Mapped[int] = mapped_column(Integer, default=0)
    average_score: Mapped[float] = mapped_column(Float, default=0.0)
    completed_lesson_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    last_active_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    behavior: Mapped["LearningBehavior"] = relationship(back_populates="topic_progress")


class ProcessedEvent(Base):
    """
    Marker that a consumer has applied a completion event.

    Written in the same transaction as the consumer's changes, so a redelivered
    event is skipped instead of being applied twice.
    """

    __tablename__ = "processed_events"
    __table_args__ = (
        UniqueConstraint("event_id", "consumer", name="uq_processed_event_consumer"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[str] = mapped_column(String(36))
    consumer: Mapped[str] = mapped_column(String(50))
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )


# ===========================================
# Recommendations
# ===========================================


class Recommendation(Base):
    """
    A study recommendation.

    Lifecycle: created → shown → accepted (→ completed) or dismissed. A
    recommendation is active while `expires_at` is in the future and it is not
    completed; shown/accepted state does not affect activity.

    Attributes:
        type: RecommendationType value.
        priority: Higher values are listed first.
        is_accepted: None until the user reacts, True when accepted, False
            when dismissed.
        generated_content: Lesson content for GENERATED_LESSON records.
        is_approved / approved_by: Teacher review of generated content.
    """

    __tablename__ = "recommendations"
    __table_args__ = (
        Index("ix_recommendations_user_expires", "user_id", "expires_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    type: Mapped[str] = mapped_column(String(30))
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    target_skill: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    target_lesson_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    target_topic_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    generated_content: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON, nullable=True
    )
    priority: Mapped[int] = mapped_column(Integer, default=3)
    is_shown: Mapped[bool] = mapped_column(Boolean, default=False)
    is_accepted: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    is_approved: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    shown_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
