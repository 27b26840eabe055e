"""Tests for the per-key lock shared by the managers."""

import asyncio

import pytest

from custom_components.pillaflow.managers.base_manager import KeyedLock


async def test_same_key_is_serialized() -> None:
    locks = KeyedLock()
    order: list[str] = []

    async def worker(name: str) -> None:
        async with locks.hold("2024-01-01"):
            order.append(f"{name}-in")
            await asyncio.sleep(0)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]


async def test_different_keys_run_independently() -> None:
    locks = KeyedLock()
    other_ran = asyncio.Event()

    async def holder() -> None:
        async with locks.hold("day-1"):
            await other_ran.wait()

    async def other() -> None:
        async with locks.hold("day-2"):
            other_ran.set()

    await asyncio.wait_for(asyncio.gather(holder(), other()), timeout=1)


async def test_locks_are_dropped_when_idle() -> None:
    """The map only holds keys that are in use."""
    locks = KeyedLock()
    release = asyncio.Event()

    async def holder() -> None:
        async with locks.hold("k"):
            await release.wait()

    task = asyncio.create_task(holder())
    waiter = asyncio.create_task(holder())
    await asyncio.sleep(0)
    assert len(locks) == 1
    assert locks.locked("k")

    release.set()
    await asyncio.gather(task, waiter)

    assert len(locks) == 0
    assert not locks.locked("k")


async def test_cancelled_waiter_does_not_leak() -> None:
    locks = KeyedLock()
    release = asyncio.Event()

    async def holder() -> None:
        async with locks.hold("k"):
            await release.wait()

    task = asyncio.create_task(holder())
    await asyncio.sleep(0)
    waiter = asyncio.create_task(holder())
    await asyncio.sleep(0)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    release.set()
    await task
    assert len(locks) == 0


async def test_hold_many_takes_every_key() -> None:
    locks = KeyedLock()

    async with locks.hold_many(["b", "a", "b"]):
        assert len(locks) == 2
        assert locks.locked("a")
        assert locks.locked("b")

    assert len(locks) == 0
