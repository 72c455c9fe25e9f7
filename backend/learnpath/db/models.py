"""
SQLAlchemy Database Models for Users and the Lesson Catalog

Tables:
- users: Learners with their current level and running point total
- topics: Ordered groups of lessons within a learning module
- lessons: Gradable lessons belonging to a topic
- questions: Questions of a lesson, with type-specific payload in `data`
- user_lesson_progress: Per-user best score and attempt count per lesson

The catalog tables (topics, lessons, questions) are authored elsewhere and are
read-only to the scoring engine.

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    The matching Pydantic models live in learnpath/models/.

    Data flows: Service Layer → Pydantic → SQLAlchemy → Database
"""

from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learnpath.db.base import Base
from learnpath.enums import EnglishLevel


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# ===========================================
# Users
# ===========================================


class User(Base):
    """
    A learner.

    `total_points` and `english_level` are only written by the level service.
    Writes are guarded by the `version` column: a concurrent update from
    another session fails with StaleDataError instead of losing points.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(100), unique=True)
    english_level: Mapped[str] = mapped_column(
        String(2), default=EnglishLevel.A1.value
    )
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


# ===========================================
# Lesson Catalog
# ===========================================


class Topic(Base):
    """A topic groups the lessons of one module in a fixed order."""

    __tablename__ = "topics"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    module_type: Mapped[str] = mapped_column(String(20), index=True)
    level_required: Mapped[str] = mapped_column(
        String(2), default=EnglishLevel.A1.value
    )
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    lessons: Mapped[List["Lesson"]] = relationship(
        back_populates="topic", order_by="Lesson.order_index"
    )


class Lesson(Base):
    """A gradable lesson."""

    __tablename__ = "lessons"

    id: Mapped[int] = mapped_column(primary_key=True)
    topic_id: Mapped[int] = mapped_column(ForeignKey("topics.id"), index=True)
    module_type: Mapped[str] = mapped_column(String(20))
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    topic: Mapped["Topic"] = relationship(back_populates="lessons")
    questions: Mapped[List["Question"]] = relationship(
        back_populates="lesson", order_by="Question.order_index"
    )


class Question(Base):
    """
    A question of a lesson.

    Attributes:
        question_type: One of QuestionType values; selects the grading strategy.
        points: Points awarded for a fully correct answer.
        data: Type-specific payload (options, pairs, blanks, accepted answers,
            ...). Validated into a typed question model before grading.
    """

    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(primary_key=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id"), index=True)
    question_type: Mapped[str] = mapped_column(String(40))
    question_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    points: Mapped[int] = mapped_column(Integer, default=1)
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    explanation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    lesson: Mapped["Lesson"] = relationship(back_populates="questions")


# ===========================================
# Lesson Progress
# ===========================================


class UserLessonProgress(Base):
    """
    Per-user progress on one lesson.

    Keeps the best score seen, counts attempts and remembers the first passing
    completion, which is the only one that earns points.
    """

    __tablename__ = "user_lesson_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "lesson_id", name="uq_user_lesson_progress"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id"))
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    best_score: Mapped[float] = mapped_column(Float, default=0.0)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )
