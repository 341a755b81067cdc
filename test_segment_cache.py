import asyncio
import threading
import time

import httpx
import pytest

from conftest import BASE_URL
from hl7mapper.definition_client import DefinitionClient
from hl7mapper.errors import UpstreamStatusError
from hl7mapper.segment_cache import SegmentDefinitionCache, _Entry


def test_concurrent_calls_share_one_fetch(cache, catalog):
    async def run():
        return await asyncio.gather(cache.get_segments("2.5"), cache.get_segments("2.5"))

    first, second = asyncio.run(run())

    assert first == second
    assert len(catalog.calls) == 1


def test_versions_are_normalized_before_keying(cache, catalog):
    async def run():
        await cache.get_segments("2.5")
        await cache.get_segments(" 2.5 ")
        await cache.get_segments("5")
        await cache.get_segments("")

    asyncio.run(run())

    assert len(catalog.calls) == 1
    assert "2.5" in cache


def test_completed_results_are_reused(cache, catalog):
    async def run():
        await cache.get_segment_detail("2.5", "PID")
        return await cache.get_segment_detail("2.5", "PID")

    detail = asyncio.run(run())

    assert detail.segment == "PID"
    assert len(catalog.calls) == 1
    assert "2.5:PID" in cache


def test_empty_detail_is_not_retained(cache, catalog):
    async def run():
        first = await cache.get_segment_detail("2.5", "EMPTY")
        second = await cache.get_segment_detail("2.5", "EMPTY")
        return first, second

    first, second = asyncio.run(run())

    assert first.fields == [] and second.fields == []
    assert len(catalog.calls) == 2
    assert "2.5:EMPTY" not in cache


def test_concurrent_callers_still_share_an_empty_result(cache, catalog):
    async def run():
        return await asyncio.gather(
            cache.get_segment_detail("2.5", "EMPTY"),
            cache.get_segment_detail("2.5", "EMPTY"),
        )

    asyncio.run(run())

    assert len(catalog.calls) == 1


def test_failure_does_not_poison_the_cache(cache, catalog):
    catalog.fail_next = 5

    async def run():
        with pytest.raises(UpstreamStatusError):
            await cache.get_segments("2.5")
        assert "2.5" not in cache
        return await cache.get_segments("2.5")

    segments = asyncio.run(run())

    assert len(segments) == 3
    assert len(catalog.calls) == 6


def test_concurrent_callers_see_the_same_failure(cache, catalog):
    catalog.fail_next = 5

    async def run():
        return await asyncio.gather(
            cache.get_segments("2.5"),
            cache.get_segments("2.5"),
            return_exceptions=True,
        )

    results = asyncio.run(run())

    assert all(isinstance(r, UpstreamStatusError) for r in results)
    assert len(catalog.calls) == 5


def test_invalidate_forces_refetch(cache, catalog):
    async def run():
        await cache.get_segment_detail("2.5", "PID")
        assert cache.invalidate("2.5", "PID") is True
        assert cache.invalidate("2.5", "PID") is False
        await cache.get_segment_detail("2.5", "PID")

    asyncio.run(run())

    assert len(catalog.calls) == 2


def test_invalidate_segment_list(cache, catalog):
    async def run():
        await cache.get_segments("2.5")
        cache.invalidate("2.5")
        await cache.get_segments("2.5")

    asyncio.run(run())

    assert len(catalog.calls) == 2


def test_invalidate_while_in_flight_keeps_newer_entry(cache, catalog):
    async def run():
        first = asyncio.ensure_future(cache.get_segment_detail("2.5", "PID"))
        await asyncio.sleep(0)
        cache.invalidate("2.5", "PID")
        second = asyncio.ensure_future(cache.get_segment_detail("2.5", "PID"))
        await asyncio.gather(first, second)
        await asyncio.sleep(0)
        await cache.get_segment_detail("2.5", "PID")

    asyncio.run(run())

    assert len(catalog.calls) == 2


def test_cancelled_caller_does_not_cancel_shared_fetch(catalog):
    async def run():
        gate = asyncio.Event()

        async def slow_handler(request):
            await gate.wait()
            return catalog.handler(request)

        client = DefinitionClient(BASE_URL, transport=httpx.MockTransport(slow_handler))
        cache = SegmentDefinitionCache(client)

        impatient = asyncio.ensure_future(cache.get_segments("2.5"))
        patient = asyncio.ensure_future(cache.get_segments("2.5"))
        await asyncio.sleep(0)
        impatient.cancel()
        gate.set()
        return await patient, impatient

    segments, impatient = asyncio.run(run())

    assert impatient.cancelled()
    assert len(segments) == 3
    assert len(catalog.calls) == 1


def test_ttl_uses_injected_clock(client, catalog):
    now = [100.0]
    cache = SegmentDefinitionCache(client, ttl=60, clock=lambda: now[0])

    async def run():
        await cache.get_segments("2.5")
        now[0] += 30
        await cache.get_segments("2.5")
        now[0] += 31
        await cache.get_segments("2.5")

    asyncio.run(run())

    assert len(catalog.calls) == 2


def test_clear_drops_everything(cache, catalog):
    async def run():
        await cache.get_segments("2.5")
        await cache.get_segment_detail("2.5", "PID")
        cache.clear()
        await cache.get_segments("2.5")

    asyncio.run(run())

    assert "2.5:PID" not in cache
    assert len(catalog.calls) == 3


def test_callers_on_separate_event_loops_share_one_fetch(catalog):
    started = threading.Event()
    gate = threading.Event()

    async def slow_handler(request):
        started.set()
        while not gate.is_set():
            await asyncio.sleep(0.01)
        return catalog.handler(request)

    cache = SegmentDefinitionCache(DefinitionClient(BASE_URL, transport=httpx.MockTransport(slow_handler)))
    results = {}

    def session(name):
        try:
            results[name] = asyncio.run(cache.get_segments("2.5"))
        except Exception as e:  # noqa: BLE001 - surfaced by the assertions below
            results[name] = e

    first = threading.Thread(target=session, args=("first",))
    first.start()
    assert started.wait(timeout=5)

    second = threading.Thread(target=session, args=("second",))
    second.start()
    time.sleep(0.1)
    gate.set()

    first.join(timeout=5)
    second.join(timeout=5)

    assert not isinstance(results["first"], Exception), results["first"]
    assert not isinstance(results["second"], Exception), results["second"]
    assert results["first"] == results["second"]
    assert len(catalog.calls) == 1


def test_pending_fetch_from_closed_loop_is_replaced(cache, catalog):
    dead_loop = asyncio.new_event_loop()
    orphan = dead_loop.create_future()
    dead_loop.close()
    cache._segments["2.5"] = _Entry(task=orphan, stored_at=0.0)

    segments = asyncio.run(cache.get_segments("2.5"))

    assert len(segments) == 3
    assert len(catalog.calls) == 1
