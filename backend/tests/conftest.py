"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across unit and integration tests.

Tests run against a throwaway SQLite file (aiosqlite driver). The environment
is configured at import time: `learnpath.config.settings` is instantiated when
the package is first imported, so the variables must be in place before any
test module imports the application.
"""

import os
import tempfile
from pathlib import Path
from types import SimpleNamespace
from typing import AsyncGenerator, Generator

# ============================================================================
# Environment Configuration
# ============================================================================

_TEST_DB_PATH = Path(tempfile.mkdtemp(prefix="learnpath-tests-")) / "learnpath.db"

os.environ.update(
    {
        "DATABASE_URL": f"sqlite+aiosqlite:///{_TEST_DB_PATH}",
        "DEBUG": "false",
        "LOG_LEVEL": "DEBUG",
        "SCHEDULER_ENABLED": "false",
        "RATE_LIMIT_ENABLED": "false",
        "EVENT_HANDLER_BACKOFF_MIN": "0",
        "EVENT_HANDLER_BACKOFF_MAX": "0",
    }
)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session  # noqa: E402

from learnpath.db.base import Base  # noqa: E402
from learnpath.db.models import Lesson, Question, Topic, User  # noqa: E402


# ============================================================================
# Database
# ============================================================================


@pytest.fixture(scope="session")
def sync_engine():
    """
    Synchronous engine on the test database file.

    Used for schema setup and seeding, which avoids event loop issues.
    """
    engine = create_engine(f"sqlite:///{_TEST_DB_PATH}")
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def reset_database(sync_engine) -> Generator[None, None, None]:
    """Drop and recreate every table so each test starts from an empty schema."""
    Base.metadata.drop_all(sync_engine)
    Base.metadata.create_all(sync_engine)
    yield


@pytest_asyncio.fixture
async def session_maker() -> AsyncGenerator[async_sessionmaker, None]:
    """
    Session factory bound to a fresh async engine.

    Creates a fresh engine per test to avoid sharing connections between
    event loops.
    """
    engine = create_async_engine(os.environ["DATABASE_URL"], echo=False)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


# ============================================================================
# Sample Catalog
# ============================================================================


@pytest.fixture
def catalog(sync_engine) -> SimpleNamespace:
    """
    Seed two learners and a small lesson catalog.

    Topic 1 "Present Simple" (grammar):
        lesson 10 (order 1): q101 multiple choice (5 pts), q102 text answer (5 pts)
        lesson 11 (order 2): q111 true/false (10 pts)
        lesson 12 (order 3): inactive
    Topic 2 "Short Stories" (reading):
        lesson 20: q201 reading comprehension with two blanks (4 pts)
    """
    with Session(sync_engine) as session:
        session.add_all(
            [
                User(id=1, username="alice", english_level="A1", total_points=0),
                User(id=2, username="bob", english_level="A1", total_points=0),
                Topic(id=1, name="Present Simple", module_type="grammar", order_index=1),
                Topic(id=2, name="Short Stories", module_type="reading", order_index=1),
            ]
        )
        session.flush()
        session.add_all(
            [
                Lesson(id=10, topic_id=1, module_type="grammar", title="To be", order_index=1),
                Lesson(
                    id=11, topic_id=1, module_type="grammar", title="Questions", order_index=2
                ),
                Lesson(
                    id=12,
                    topic_id=1,
                    module_type="grammar",
                    title="Retired",
                    order_index=3,
                    is_active=False,
                ),
                Lesson(id=20, topic_id=2, module_type="reading", title="The Fox", order_index=1),
            ]
        )
        session.flush()
        session.add_all(
            [
                Question(
                    id=101,
                    lesson_id=10,
                    question_type="multiple_choice",
                    question_text="They ___ students.",
                    points=5,
                    order_index=1,
                    data={
                        "options": [
                            {"id": "a", "text": "is", "is_correct": False},
                            {"id": "b", "text": "are", "is_correct": True},
                        ]
                    },
                ),
                Question(
                    id=102,
                    lesson_id=10,
                    question_type="text_answer",
                    question_text="Past tense of 'go'",
                    points=5,
                    order_index=2,
                    data={"accepted_answers": ["went"]},
                ),
                Question(
                    id=111,
                    lesson_id=11,
                    question_type="true_false",
                    question_text="'Does she like tea?' is correct.",
                    points=10,
                    order_index=1,
                    data={
                        "options": [
                            {"id": "true", "text": "True", "is_correct": True},
                            {"id": "false", "text": "False", "is_correct": False},
                        ]
                    },
                ),
                Question(
                    id=201,
                    lesson_id=20,
                    question_type="reading_comprehension",
                    points=4,
                    order_index=1,
                    data={
                        "passage": "The quick ___ fox jumps over the lazy ___.",
                        "blanks": [
                            {"id": "1", "accepted_answers": ["brown"]},
                            {"id": "2", "accepted_answers": ["dog"]},
                        ],
                    },
                ),
            ]
        )
        session.commit()

    return SimpleNamespace(
        user_id=1,
        other_user_id=2,
        grammar_topic_id=1,
        reading_topic_id=2,
        first_lesson_id=10,
        second_lesson_id=11,
        inactive_lesson_id=12,
        reading_lesson_id=20,
    )


@pytest.fixture
def correct_first_lesson_answers() -> list[dict]:
    return [
        {"question_id": 101, "selected_option_id": "b"},
        {"question_id": 102, "raw_answer": "went"},
    ]


@pytest.fixture
def wrong_first_lesson_answers() -> list[dict]:
    return [
        {"question_id": 101, "selected_option_id": "a"},
        {"question_id": 102, "raw_answer": "goed"},
    ]
