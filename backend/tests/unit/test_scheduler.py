"""
Unit tests for scheduled jobs.

Tests job registration and the expired recommendation sweep.
"""

from datetime import datetime, timedelta, timezone

import pytest

from learnpath.db.base import engine
from learnpath.db.models_learning import Recommendation
from learnpath.services.scheduler import (
    get_scheduled_jobs,
    scheduler,
    setup_scheduled_jobs,
    sweep_expired_recommendations,
)


@pytest.fixture
def clean_scheduler():
    yield scheduler
    scheduler.remove_all_jobs()


def test_sweep_job_is_registered(clean_scheduler):
    setup_scheduled_jobs()

    jobs = {job["id"]: job for job in get_scheduled_jobs()}

    assert "recommendation_sweep" in jobs
    assert "cron" in jobs["recommendation_sweep"]["trigger"]


@pytest.mark.asyncio
async def test_sweep_counts_expired_recommendations(catalog, session_maker):
    now = datetime.now(timezone.utc)
    async with session_maker() as db:
        db.add_all(
            [
                Recommendation(
                    user_id=1,
                    type="next_lesson",
                    title="stale",
                    priority=2,
                    created_at=now - timedelta(days=8),
                    expires_at=now - timedelta(days=1),
                ),
                Recommendation(
                    user_id=1,
                    type="next_lesson",
                    title="fresh",
                    priority=2,
                    created_at=now,
                    expires_at=now + timedelta(days=7),
                ),
            ]
        )
        await db.commit()

    try:
        count = await sweep_expired_recommendations()
    finally:
        # The sweep runs on the application engine
        await engine.dispose()

    assert count == 1
