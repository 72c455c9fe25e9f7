"""
Completion Event Bus

In-process channel that decouples lesson submission from the downstream
statistics and recommendation updates.

Delivery model:
- A fixed pool of worker tasks, one bounded asyncio.Queue each. Every user is
  pinned to one worker (hash of user id), so events of one user are handled
  in publish order while different users proceed in parallel.
- Handlers of an event run one after another, in subscription order.
- Each handler is isolated: failures are retried with exponential backoff
  (tenacity), then logged. A failing handler never blocks the others and never
  reaches the submitter.
- Delivery is at-least-once; consumers deduplicate on `event_id`.

Execution Context:
    The bus runs IN-PROCESS inside the FastAPI event loop. It is started and
    stopped from the lifespan context manager in learnpath/main.py, after the
    listeners have subscribed.

Usage:
    bus = EventBus()
    bus.subscribe(StatsAggregator().on_lesson_completed)
    await bus.start()

    await bus.publish(event)
    await bus.drain()   # wait until everything queued has been handled
    await bus.stop()
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential,
)

from learnpath.config import settings
from learnpath.models.learning import LessonCompletedEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[LessonCompletedEvent], Awaitable[None]]


def _handler_name(handler: EventHandler) -> str:
    owner = getattr(handler, "__self__", None)
    name = getattr(handler, "__name__", repr(handler))
    return f"{type(owner).__name__}.{name}" if owner is not None else name


class EventBus:
    """Per-user FIFO dispatch of completion events to subscribed handlers."""

    def __init__(
        self,
        workers: Optional[int] = None,
        queue_size: Optional[int] = None,
        max_attempts: Optional[int] = None,
        backoff_min: Optional[float] = None,
        backoff_max: Optional[float] = None,
    ):
        self.workers = workers or settings.EVENT_BUS_WORKERS
        self.queue_size = queue_size or settings.EVENT_BUS_QUEUE_SIZE
        self.max_attempts = max_attempts or settings.EVENT_HANDLER_MAX_ATTEMPTS
        self.backoff_min = (
            settings.EVENT_HANDLER_BACKOFF_MIN if backoff_min is None else backoff_min
        )
        self.backoff_max = (
            settings.EVENT_HANDLER_BACKOFF_MAX if backoff_max is None else backoff_max
        )

        self._handlers: list[EventHandler] = []
        self._queues: list[asyncio.Queue] = []
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def handlers(self) -> tuple[EventHandler, ...]:
        return tuple(self._handlers)

    def subscribe(self, handler: EventHandler) -> None:
        """Register a handler. Handlers run in the order they subscribed."""
        self._handlers.append(handler)
        logger.info(f"Subscribed {_handler_name(handler)} to lesson completion events")

    async def start(self) -> None:
        if self.running:
            return
        self._queues = [asyncio.Queue(maxsize=self.queue_size) for _ in range(self.workers)]
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"event-bus-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info(f"Event bus started with {self.workers} workers")

    async def publish(self, event: LessonCompletedEvent) -> None:
        """
        Queue an event for its user's worker.

        Waits for space when the worker's queue is full.

        Raises:
            RuntimeError: If the bus has not been started.
        """
        if not self.running:
            raise RuntimeError("Event bus is not running")
        queue = self._queues[hash(event.user_id) % self.workers]
        await queue.put(event)
        logger.debug(f"Published event {event.event_id} for user {event.user_id}")

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await asyncio.gather(*(q.join() for q in self._queues))

    async def stop(self) -> None:
        """Drain pending events, then cancel the workers."""
        if not self.running:
            return
        await self.drain()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queues = []
        logger.info("Event bus stopped")

    async def _worker(self, index: int) -> None:
        queue = self._queues[index]
        while True:
            event = await queue.get()
            try:
                for handler in self._handlers:
                    await self._run_handler(handler, event)
            finally:
                queue.task_done()

    async def _run_handler(self, handler: EventHandler, event: LessonCompletedEvent) -> None:
        name = _handler_name(handler)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(
                    multiplier=self.backoff_min, min=self.backoff_min, max=self.backoff_max
                ),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    await handler(event)
        except Exception:
            logger.exception(
                f"{name} failed for event {event.event_id} "
                f"(user {event.user_id}, lesson {event.lesson_id}) "
                f"after {self.max_attempts} attempts"
            )


_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus (singleton)."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
