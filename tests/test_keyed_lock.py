import asyncio

import pytest

from makerspace_dash.core import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    locks = KeyedLock()
    order: list[str] = []

    async def worker(name: str, delay: float) -> None:
        async with locks.hold("printer-1"):
            order.append(f"{name}-start")
            await asyncio.sleep(delay)
            order.append(f"{name}-end")

    await asyncio.gather(worker("a", 0.02), worker("b", 0.0))

    assert order == ["a-start", "a-end", "b-start", "b-end"]


@pytest.mark.asyncio
async def test_distinct_keys_do_not_block_each_other():
    locks = KeyedLock()
    entered = asyncio.Event()

    async def holder() -> None:
        async with locks.hold("a"):
            entered.set()
            await asyncio.sleep(0.05)

    task = asyncio.create_task(holder())
    await entered.wait()

    async with locks.hold("b"):
        assert locks.is_locked("a")
        assert locks.is_locked("b")

    await task


@pytest.mark.asyncio
async def test_overlapping_key_sets_do_not_deadlock():
    locks = KeyedLock()

    async def worker(*keys: str) -> None:
        for _ in range(5):
            async with locks.hold(*keys):
                await asyncio.sleep(0)

    await asyncio.wait_for(
        asyncio.gather(worker("a", "b"), worker("b", "a"), worker("b", "c", "a")),
        timeout=2.0,
    )


@pytest.mark.asyncio
async def test_idle_locks_are_discarded():
    locks = KeyedLock()

    async with locks.hold("a", "b", "a"):
        assert len(locks) == 2

    assert len(locks) == 0
    assert not locks.is_locked("a")


@pytest.mark.asyncio
async def test_lock_released_when_body_raises():
    locks = KeyedLock()

    with pytest.raises(ValueError):
        async with locks.hold("a"):
            raise ValueError("boom")

    assert len(locks) == 0
    async with locks.hold("a"):
        pass
