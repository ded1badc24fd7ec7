"""
Tests for request coalescing.
"""
import asyncio

import pytest

from catalogcache.cache.coalescer import RequestCoalescer


def test_concurrent_callers_share_one_call():
    coalescer = RequestCoalescer()
    calls = []

    async def fetch():
        calls.append(1)
        await asyncio.sleep(0.05)
        return ["Games"]

    async def scenario():
        results = await asyncio.gather(*(coalescer.get_or_fetch("categories", fetch) for _ in range(4)))
        assert not coalescer.is_in_flight("categories")
        return results

    results = asyncio.run(scenario())
    assert results == [["Games"]] * 4
    assert len(calls) == 1


def test_errors_reach_every_caller_and_release_key():
    coalescer = RequestCoalescer()

    async def fetch():
        await asyncio.sleep(0.01)
        raise ValueError("boom")

    async def scenario():
        results = await asyncio.gather(
            coalescer.get_or_fetch("featured", fetch),
            coalescer.get_or_fetch("featured", fetch),
            return_exceptions=True,
        )
        assert coalescer.active_requests == 0
        return results

    results = asyncio.run(scenario())
    assert all(isinstance(result, ValueError) for result in results)


def test_joiner_times_out():
    coalescer = RequestCoalescer(timeout=0.01)

    async def fetch():
        await asyncio.sleep(0.2)
        return 1

    async def scenario():
        task = coalescer.start("slow", fetch)
        with pytest.raises(TimeoutError):
            await coalescer.get_or_fetch("slow", fetch)
        # The shared fetch keeps running for everyone else
        assert await task == 1

    asyncio.run(scenario())


def test_drain_waits_for_background_fetches():
    coalescer = RequestCoalescer()
    done = []

    async def fetch():
        await asyncio.sleep(0.01)
        done.append(True)

    async def scenario():
        coalescer.start("a", fetch)
        coalescer.start("b", fetch)
        assert coalescer.get_stats()["active_keys"] == ["a", "b"]
        await coalescer.drain()
        assert coalescer.active_requests == 0

    asyncio.run(scenario())
    assert len(done) == 2
