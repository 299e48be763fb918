"""
FetchCache — TTL cache with in-flight dedup and retry.

    cache = FetchCache()

    # read: served from cache while fresh, one network call per key at a time
    result = await cache.get("cart:sess_1", lambda: transport.request("GET", "/cart"))

    # write: never cached, still one in-flight request per key
    result = await cache.execute("cart:item:42", put_item, FetchPolicy().no_retry())
"""

from __future__ import annotations

import asyncio
import fnmatch
import time
from collections.abc import Callable, Awaitable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import structlog
from kungfu import Result, Ok, Error, LazyCoroResult
from combinators import retry

from storefront.fetch._types import CacheEntry, EntryState
from storefront.fetch._policy import FetchPolicy


logger = structlog.get_logger(__name__)

type Fetcher[T, E] = Callable[[], Awaitable[Result[T, E]]]


# ═══════════════════════════════════════════════════════════════════════════════
# In-flight Request
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class _Flight:
    task: asyncio.Task[Result[Any, Any]]
    cached: bool


# ═══════════════════════════════════════════════════════════════════════════════
# FetchCache
# ═══════════════════════════════════════════════════════════════════════════════


class FetchCache:
    """
    Request cache keyed by string.

    Note: every caller awaits the shared task through asyncio.shield, so a
    cancelled caller never cancels the request other callers are waiting on.
    Use cancel(key) to stop a request explicitly.

    Note: put()/invalidate() bump a per-key version; a fetch that started
    before the bump still answers its waiters but does not overwrite the
    newer entry.
    """

    def __init__(
        self,
        policy: FetchPolicy | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._policy = policy or FetchPolicy()
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._inflight: dict[str, _Flight] = {}
        self._versions: dict[str, int] = {}

    @property
    def policy(self) -> FetchPolicy:
        return self._policy

    # ───────────────────────────────────────────────────────────────────────────
    # Reads
    # ───────────────────────────────────────────────────────────────────────────

    async def get[T, E](
        self,
        key: str,
        fetcher: Fetcher[T, E],
        policy: FetchPolicy | None = None,
    ) -> Result[T, E]:
        """
        Return the cached value while fresh, otherwise fetch it.

        Errors are returned to every waiter and never cached.
        """
        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self._clock()):
            logger.debug("cache_hit", key=key)
            return Ok(entry.value)
        return await self._schedule(key, fetcher, policy or self._policy, cached=True)

    async def execute[T, E](
        self,
        key: str,
        fetcher: Fetcher[T, E],
        policy: FetchPolicy | None = None,
    ) -> Result[T, E]:
        """Run a write through the same dedup/retry machinery, without caching."""
        return await self._schedule(key, fetcher, policy or self._policy, cached=False)

    def peek(self, key: str) -> Any | None:
        """Last stored value for key, fresh or not."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def entry(self, key: str) -> CacheEntry[Any] | None:
        return self._entries.get(key)

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    # ───────────────────────────────────────────────────────────────────────────
    # Writes
    # ───────────────────────────────────────────────────────────────────────────

    def put[T](self, key: str, value: T, ttl: timedelta | None = None) -> CacheEntry[T]:
        """Store a value obtained elsewhere (e.g. a mutation response)."""
        self._bump(key)
        entry = CacheEntry(
            key=key,
            value=value,
            timestamp=self._clock(),
            ttl=ttl if ttl is not None else self._policy.ttl,
        )
        self._entries[key] = entry
        return entry

    def invalidate(self, key: str) -> bool:
        """Mark entry STALE; the next get() goes to the network."""
        self._bump(key)
        entry = self._entries.get(key)
        if entry is None:
            return False
        self._entries[key] = entry.with_state(EntryState.STALE)
        logger.debug("cache_invalidated", key=key)
        return True

    def invalidate_pattern(self, pattern: str) -> int:
        """
        Invalidate all keys matching a glob pattern.

        Example:
            cache.invalidate_pattern("checkout:tax:*")
        """
        keys = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
        for key in keys:
            self.invalidate(key)
        return len(keys)

    def forget(self, key: str) -> bool:
        self._bump(key)
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        for key in list(self._entries):
            self._bump(key)
        self._entries.clear()

    def cancel(self, key: str) -> bool:
        """Cancel the in-flight request for key. Waiters see CancelledError."""
        flight = self._inflight.get(key)
        if flight is None:
            return False
        return flight.task.cancel()

    # ───────────────────────────────────────────────────────────────────────────
    # Scheduling
    # ───────────────────────────────────────────────────────────────────────────

    async def _schedule(
        self,
        key: str,
        fetcher: Fetcher[Any, Any],
        policy: FetchPolicy,
        *,
        cached: bool,
    ) -> Result[Any, Any]:
        while (flight := self._inflight.get(key)) is not None:
            if policy.dedupe and flight.cached == cached:
                logger.debug("request_deduplicated", key=key)
                return await asyncio.shield(flight.task)
            # One writer per key: wait for the current request, then issue ours.
            await asyncio.wait({flight.task})

        task = asyncio.create_task(self._run(key, fetcher, policy, cached=cached))
        self._inflight[key] = _Flight(task=task, cached=cached)
        task.add_done_callback(lambda t: self._finish(key, t))
        return await asyncio.shield(task)

    async def _run(
        self,
        key: str,
        fetcher: Fetcher[Any, Any],
        policy: FetchPolicy,
        *,
        cached: bool,
    ) -> Result[Any, Any]:
        version = self._versions.get(key, 0)
        previous = self._entries.get(key)
        if cached and previous is not None:
            self._entries[key] = previous.with_state(EntryState.PENDING)

        attempts = 0

        async def attempt() -> Result[Any, Any]:
            nonlocal attempts
            attempts += 1
            if attempts > 1:
                logger.info("request_retry", key=key, attempt=attempts)
            return await fetcher()

        try:
            result = await retry(LazyCoroResult(attempt), policy=policy.retry_policy())
        finally:
            current = self._entries.get(key)
            if current is not None and current.state == EntryState.PENDING:
                self._entries[key] = current.with_state(EntryState.STALE)

        match result:
            case Ok(value):
                if cached and self._versions.get(key, 0) == version:
                    self._entries[key] = CacheEntry(
                        key=key,
                        value=value,
                        timestamp=self._clock(),
                        ttl=policy.ttl,
                    )
            case Error(error):
                logger.warning("request_failed", key=key, attempts=attempts, error=str(error))
        return result

    def _finish(self, key: str, task: asyncio.Task[Result[Any, Any]]) -> None:
        flight = self._inflight.get(key)
        if flight is not None and flight.task is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.error("request_crashed", key=key, exc_info=task.exception())

    def _bump(self, key: str) -> None:
        self._versions[key] = self._versions.get(key, 0) + 1


__all__ = (
    "Fetcher",
    "FetchCache",
)
