"""
Unit tests for the completion event bus.

Tests per-user ordering, handler ordering, retry and isolation of failing
handlers, and draining on stop.
"""

import asyncio
import logging

import pytest

from learnpath.enums import ModuleType
from learnpath.models.learning import LessonCompletedEvent
from learnpath.services.events import EventBus


def make_event(user_id: int = 1, lesson_id: int = 10) -> LessonCompletedEvent:
    return LessonCompletedEvent(
        user_id=user_id,
        lesson_id=lesson_id,
        module_type=ModuleType.GRAMMAR,
        topic_id=1,
        score_percentage=100,
        is_passed=True,
    )


@pytest.fixture
def bus() -> EventBus:
    return EventBus(workers=3, queue_size=50, max_attempts=3, backoff_min=0, backoff_max=0)


class TestPublish:
    @pytest.mark.asyncio
    async def test_publish_requires_running_bus(self, bus):
        with pytest.raises(RuntimeError):
            await bus.publish(make_event())

    @pytest.mark.asyncio
    async def test_start_and_stop(self, bus):
        await bus.start()
        assert bus.running is True

        await bus.stop()
        assert bus.running is False

    def test_handlers_in_subscription_order(self, bus):
        async def first(event):
            pass

        async def second(event):
            pass

        bus.subscribe(first)
        bus.subscribe(second)

        assert bus.handlers == (first, second)


class TestDelivery:
    @pytest.mark.asyncio
    async def test_events_of_one_user_keep_publish_order(self, bus):
        seen: list[int] = []

        async def record(event):
            # Yield so a concurrent worker could overtake if ordering were broken
            await asyncio.sleep(0)
            seen.append(event.lesson_id)

        bus.subscribe(record)
        await bus.start()
        for lesson_id in range(20):
            await bus.publish(make_event(user_id=7, lesson_id=lesson_id))
        await bus.stop()

        assert seen == list(range(20))

    @pytest.mark.asyncio
    async def test_handlers_run_in_subscription_order(self, bus):
        calls: list[str] = []

        async def aggregate(event):
            await asyncio.sleep(0.01)
            calls.append(f"aggregate:{event.lesson_id}")

        async def recommend(event):
            calls.append(f"recommend:{event.lesson_id}")

        bus.subscribe(aggregate)
        bus.subscribe(recommend)
        await bus.start()
        await bus.publish(make_event(lesson_id=1))
        await bus.publish(make_event(lesson_id=2))
        await bus.stop()

        assert calls == ["aggregate:1", "recommend:1", "aggregate:2", "recommend:2"]

    @pytest.mark.asyncio
    async def test_every_user_is_delivered(self, bus):
        seen: set[int] = set()

        async def record(event):
            seen.add(event.user_id)

        bus.subscribe(record)
        await bus.start()
        for user_id in range(1, 11):
            await bus.publish(make_event(user_id=user_id))
        await bus.drain()

        assert seen == set(range(1, 11))
        await bus.stop()


class TestFailures:
    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, bus):
        attempts = 0

        async def flaky(event):
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise RuntimeError("database is locked")

        bus.subscribe(flaky)
        await bus.start()
        await bus.publish(make_event())
        await bus.stop()

        assert attempts == 3

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, bus, caplog):
        attempts = 0
        delivered: list[int] = []

        async def broken(event):
            nonlocal attempts
            attempts += 1
            raise ValueError("boom")

        async def healthy(event):
            delivered.append(event.lesson_id)

        bus.subscribe(broken)
        bus.subscribe(healthy)
        await bus.start()
        with caplog.at_level(logging.ERROR, logger="learnpath.services.events"):
            await bus.publish(make_event(lesson_id=1))
            await bus.publish(make_event(lesson_id=2))
            await bus.stop()

        assert attempts == 6
        assert delivered == [1, 2]
        assert "broken failed for event" in caplog.text
