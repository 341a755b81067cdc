# hl7mapper/segment_cache.py

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .definition_client import DefinitionClient
from .definitions import DEFAULT_VERSION, SegmentDetail, SegmentSummary, normalize_version

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _copy_outcome(source: "asyncio.Future[Any]", target: "asyncio.Future[Any]") -> None:
    if target.done():
        return
    if source.cancelled():
        target.cancel()
    elif source.exception() is not None:
        target.set_exception(source.exception())
    else:
        target.set_result(source.result())


@dataclass
class _Entry:
    task: "asyncio.Future[Any]"
    stored_at: float


class SegmentDefinitionCache:
    """
    Memoizes catalog lookups per version / `version:segmentId`.

    The pending task is stored before it resolves, so concurrent callers for
    one key share a single outbound request. Failed lookups and segment
    details with no parsed fields are dropped once they finish; everything
    else lives until invalidated (or until `ttl` seconds have passed, when a
    ttl is set).

    Callers may run on different threads with their own event loops (one
    per Streamlit session); they wait on a fetch owned by another loop
    through a thread-safe relay instead of awaiting it directly.
    """

    def __init__(
        self,
        client: DefinitionClient,
        *,
        default_version: str = DEFAULT_VERSION,
        ttl: Optional[float] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.client = client
        self.default_version = default_version
        self.ttl = ttl
        self._clock = clock
        self._segments: Dict[str, _Entry] = {}
        self._details: Dict[str, _Entry] = {}

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def normalize(self, version: Any) -> str:
        return normalize_version(version, default=self.default_version)

    @staticmethod
    def detail_key(version: str, segment_id: str) -> str:
        return f"{version}:{segment_id}"

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_segments(self, version: Any) -> List[SegmentSummary]:
        normalized = self.normalize(version)
        return await self._get(
            self._segments,
            normalized,
            lambda: self.client.fetch_segments(normalized),
        )

    async def get_segment_detail(self, version: Any, segment_id: str) -> SegmentDetail:
        normalized = self.normalize(version)
        return await self._get(
            self._details,
            self.detail_key(normalized, segment_id),
            lambda: self.client.fetch_segment_detail(normalized, segment_id),
            keep=lambda detail: bool(detail.fields),
        )

    def invalidate(self, version: Any, segment_id: Optional[str] = None) -> bool:
        """
        Drop a cached detail (or, without `segment_id`, the segment list).
        Returns True when something was removed.
        """
        normalized = self.normalize(version)
        if segment_id is None:
            return self._segments.pop(normalized, None) is not None
        return self._details.pop(self.detail_key(normalized, segment_id), None) is not None

    def clear(self) -> None:
        self._segments.clear()
        self._details.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._segments or key in self._details

    # ------------------------------------------------------------------
    # Single-flight core
    # ------------------------------------------------------------------

    async def _get(
        self,
        store: Dict[str, _Entry],
        key: str,
        load: Callable[[], Awaitable[Any]],
        keep: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        entry = store.get(key)
        if entry is not None and self._expired(entry):
            logger.debug("Cache entry %s expired", key)
            store.pop(key, None)
            entry = None
        elif entry is not None and not entry.task.done() and entry.task.get_loop().is_closed():
            # its loop is gone, so the pending fetch will never finish
            logger.debug("Cache entry %s orphaned by a closed event loop", key)
            store.pop(key, None)
            entry = None

        if entry is None:
            task = asyncio.ensure_future(load())
            entry = _Entry(task=task, stored_at=self._clock())
            store[key] = entry
            task.add_done_callback(lambda t: self._settle(store, key, t, keep))
        else:
            logger.debug("Cache hit for %s", key)

        task = entry.task
        if task.done():
            return task.result()
        loop = asyncio.get_running_loop()
        if task.get_loop() is not loop:
            return await self._wait_on_other_loop(task, loop)
        # A cancelled caller must not cancel the fetch the others are waiting on
        return await asyncio.shield(task)

    @staticmethod
    async def _wait_on_other_loop(task: "asyncio.Future[Any]", loop: asyncio.AbstractEventLoop) -> Any:
        """
        Wait for a fetch started by another thread's event loop.

        The outcome is relayed through call_soon_threadsafe; the foreign task
        is never awaited (or cancelled) from this loop.
        """
        waiter = loop.create_future()

        def relay(done: "asyncio.Future[Any]") -> None:
            loop.call_soon_threadsafe(_copy_outcome, done, waiter)

        task.get_loop().call_soon_threadsafe(task.add_done_callback, relay)
        return await waiter

    def _expired(self, entry: _Entry) -> bool:
        if self.ttl is None or not entry.task.done():
            return False
        return self._clock() - entry.stored_at >= self.ttl

    @staticmethod
    def _settle(
        store: Dict[str, _Entry],
        key: str,
        task: "asyncio.Future[Any]",
        keep: Optional[Callable[[Any], bool]],
    ) -> None:
        current = store.get(key)
        # invalidated (and maybe re-requested) while in flight
        if current is None or current.task is not task:
            return

        if task.cancelled() or task.exception() is not None:
            logger.debug("Dropping failed cache entry %s", key)
            store.pop(key, None)
        elif keep is not None and not keep(task.result()):
            logger.debug("Dropping empty cache entry %s", key)
            store.pop(key, None)
