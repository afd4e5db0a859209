import asyncio

import pytest

from chat_lobby.memory.cache.pending import PendingRequests


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_fetch():
    pending = PendingRequests()
    calls = []

    async def p1():
        calls.append("p1")
        await asyncio.sleep(0.01)
        return "A"

    async def p2():
        calls.append("p2")
        return "B"

    results = await asyncio.gather(
        pending.get_or_fetch("personas", p1),
        pending.get_or_fetch("personas", p2),
    )

    assert results == ["A", "A"]
    assert calls == ["p1"]
    assert len(pending) == 0


@pytest.mark.asyncio
async def test_failure_reaches_every_waiter_and_clears_entry():
    pending = PendingRequests()
    boom = RuntimeError("boom")

    async def failing():
        await asyncio.sleep(0)
        raise boom

    async def never():
        raise AssertionError("second producer must not run")

    results = await asyncio.gather(
        pending.get_or_fetch("chats:a.png", failing),
        pending.get_or_fetch("chats:a.png", never),
        return_exceptions=True,
    )

    assert results[0] is boom
    assert results[1] is boom
    assert "chats:a.png" not in pending


@pytest.mark.asyncio
async def test_after_settlement_next_call_fetches_again():
    pending = PendingRequests()
    counter = {"n": 0}

    async def producer():
        counter["n"] += 1
        return counter["n"]

    assert await pending.get_or_fetch("k", producer) == 1
    assert await pending.get_or_fetch("k", producer) == 2


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_fetch():
    pending = PendingRequests()
    release = asyncio.Event()

    async def producer():
        await release.wait()
        return "done"

    first = asyncio.create_task(pending.get_or_fetch("k", producer))
    second = asyncio.create_task(pending.get_or_fetch("k", producer))
    await asyncio.sleep(0)
    first.cancel()
    release.set()

    with pytest.raises(asyncio.CancelledError):
        await first
    assert await second == "done"


@pytest.mark.asyncio
async def test_discard_lets_next_caller_start_fresh():
    pending = PendingRequests()
    started = []

    async def slow():
        started.append("slow")
        await asyncio.sleep(0.01)
        return "old"

    async def fresh():
        started.append("fresh")
        return "new"

    old_task = asyncio.create_task(pending.get_or_fetch("personas", slow))
    await asyncio.sleep(0)
    assert pending.discard("personas")

    assert await pending.get_or_fetch("personas", fresh) == "new"
    assert await old_task == "old"
    assert started == ["slow", "fresh"]
