"""Unit tests for per-key asyncio locks."""

import asyncio

import pytest

from welcome_bot.services.keyed_locks import KeyedLockRegistry


@pytest.mark.asyncio
async def test_same_key_is_serialised():
    locks = KeyedLockRegistry()
    order: list[str] = []

    async def critical(name: str) -> None:
        async with locks.hold("room:user"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(critical("a"), critical("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]


@pytest.mark.asyncio
async def test_different_keys_overlap():
    locks = KeyedLockRegistry()
    inside = asyncio.Event()

    async def holder() -> None:
        async with locks.hold("one"):
            inside.set()
            await asyncio.sleep(0.05)

    task = asyncio.create_task(holder())
    await inside.wait()

    async with locks.hold("two"):
        assert locks.is_locked("one")
        assert locks.is_locked("two")

    await task


@pytest.mark.asyncio
async def test_locks_are_dropped_when_released():
    locks = KeyedLockRegistry()

    async with locks.hold("k"):
        assert len(locks) == 1

    assert len(locks) == 0
    assert not locks.is_locked("k")


@pytest.mark.asyncio
async def test_lock_released_on_error():
    locks = KeyedLockRegistry()

    with pytest.raises(RuntimeError):
        async with locks.hold("k"):
            raise RuntimeError("boom")

    assert len(locks) == 0
