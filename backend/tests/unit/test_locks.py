"""Unit tests for per-key asyncio locks."""

import asyncio

import pytest

from learnpath.services.locks import KeyedLocks


@pytest.mark.asyncio
async def test_same_key_is_serialised():
    locks = KeyedLocks()
    trace: list[str] = []

    async def work(name: str):
        async with locks.hold(1):
            trace.append(f"{name}:start")
            await asyncio.sleep(0.01)
            trace.append(f"{name}:end")

    await asyncio.gather(work("a"), work("b"))

    assert trace == ["a:start", "a:end", "b:start", "b:end"]


@pytest.mark.asyncio
async def test_different_keys_run_concurrently():
    locks = KeyedLocks()
    inside = 0
    peak = 0

    async def work(key: int):
        nonlocal inside, peak
        async with locks.hold(key):
            inside += 1
            peak = max(peak, inside)
            await asyncio.sleep(0.01)
            inside -= 1

    await asyncio.gather(work(1), work(2), work(3))

    assert peak == 3


@pytest.mark.asyncio
async def test_lock_is_dropped_when_released():
    locks = KeyedLocks()

    async with locks.hold("user-1"):
        assert len(locks) == 1

    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_is_released_on_error():
    locks = KeyedLocks()

    with pytest.raises(ValueError):
        async with locks.hold(1):
            raise ValueError("boom")

    async with locks.hold(1):
        pass
    assert len(locks) == 0
