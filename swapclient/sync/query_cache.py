"""
QueryCache - in-memory store of query results keyed by tuple.

Features:
- Subscribers notified on every write to a key
- Prefix invalidation (next fetch goes to the query function)
- Staleness by age
- Concurrent fetches of one key share a single in-flight call
- In-flight fetches can be cancelled; a fetch that finishes after its key
  was invalidated is stored as invalidated
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from swapclient.sync.query_keys import QueryKey, is_prefix

Subscriber = Callable[[QueryKey, Any], None]


@dataclass
class QueryState:
    """Stored result for one query key."""

    data: Any
    updated_at: float
    invalidated: bool = False

    def is_stale(self, stale_time: float, now: float) -> bool:
        return self.invalidated or now - self.updated_at >= stale_time


@dataclass
class QueryCacheStats:
    fetches: int = 0
    deduplicated: int = 0
    fresh_hits: int = 0
    invalidations: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "fetches": self.fetches,
            "deduplicated": self.deduplicated,
            "fresh_hits": self.fresh_hits,
            "invalidations": self.invalidations,
        }


class QueryCache:
    """
    Usage:
        queries = QueryCache()
        unsubscribe = queries.subscribe(key, lambda k, data: render(data))

        data = await queries.fetch_query(key, load_enrollments, stale_time=120)
        queries.invalidate(("rosca", "enrollments"))
    """

    def __init__(self, clock: Callable[[], float] = time.time, debug: bool = False):
        self._queries: dict[QueryKey, QueryState] = {}
        self._subscribers: dict[QueryKey, list[Subscriber]] = {}
        self._in_flight: dict[QueryKey, asyncio.Task[Any]] = {}
        self._generations: dict[QueryKey, int] = {}
        self._clock = clock
        self._debug = debug
        self.stats = QueryCacheStats()

    # Reads and writes

    def get_query_data(self, key: QueryKey) -> Any:
        state = self._queries.get(key)
        return state.data if state else None

    def get_query_state(self, key: QueryKey) -> QueryState | None:
        return self._queries.get(key)

    def set_query_data(self, key: QueryKey, data: Any) -> None:
        """Store data as fresh and notify subscribers of the key."""
        self._queries[key] = QueryState(data=data, updated_at=self._clock())
        self._log(f"SET: {key}")
        self._notify(key, data)

    def remove_queries(self, prefix: QueryKey) -> int:
        keys = [key for key in self._queries if is_prefix(prefix, key)]
        for key in keys:
            del self._queries[key]
        return len(keys)

    # Staleness

    def invalidate(self, prefix: QueryKey) -> int:
        """Mark every query under prefix invalid. Returns the number marked."""
        count = 0
        for key, state in self._queries.items():
            if is_prefix(prefix, key):
                state.invalidated = True
                count += 1
        for key in set(self._queries) | set(self._in_flight):
            if is_prefix(prefix, key):
                self._generations[key] = self._generations.get(key, 0) + 1
        self.stats.invalidations += count
        logger.debug(f"Invalidated {count} queries under {prefix}")
        return count

    def is_stale(self, key: QueryKey, stale_time: float = 0) -> bool:
        state = self._queries.get(key)
        if state is None:
            return True
        return state.is_stale(stale_time, self._clock())

    async def fetch_query(
        self,
        key: QueryKey,
        query_fn: Callable[[], Awaitable[Any]],
        stale_time: float = 0,
    ) -> Any:
        """
        Return fresh cached data, or run query_fn and store its result.

        A call made while another fetch of the same key is running waits
        for that fetch instead of starting a second one.
        """
        if not self.is_stale(key, stale_time):
            self.stats.fresh_hits += 1
            self._log(f"FRESH: {key}")
            return self._queries[key].data

        task = self._in_flight.get(key)
        if task is not None:
            self.stats.deduplicated += 1
            self._log(f"DEDUPE: Waiting for in-flight fetch: {key}")
        else:
            self.stats.fetches += 1
            self._log(f"FETCH: {key}")
            generation = self._generations.get(key, 0)
            task = asyncio.create_task(self._execute_and_store(key, query_fn, generation))
            self._in_flight[key] = task

        return await task

    async def cancel_queries(self, key: QueryKey) -> bool:
        """
        Cancel the in-flight fetch of key, if any, and wait for it to stop.

        Callers waiting on that fetch receive CancelledError.

        Returns:
            True when a fetch was cancelled
        """
        task = self._in_flight.pop(key, None)
        if task is None:
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.debug(f"Cancelled in-flight fetch of {key}")
        return True

    async def _execute_and_store(
        self, key: QueryKey, query_fn: Callable[[], Awaitable[Any]], generation: int
    ) -> Any:
        task = asyncio.current_task()
        try:
            data = await query_fn()
        finally:
            if self._in_flight.get(key) is task:
                del self._in_flight[key]
        self.set_query_data(key, data)
        if self._generations.get(key, 0) != generation:
            # Invalidated while fetching
            self._queries[key].invalidated = True
            self._log(f"STALE ON ARRIVAL: {key}")
        return data

    # Subscriptions

    def subscribe(self, key: QueryKey, handler: Subscriber) -> Callable[[], None]:
        """Register handler for writes to key. Returns an unsubscribe callable."""
        handlers = self._subscribers.setdefault(key, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def _notify(self, key: QueryKey, data: Any) -> None:
        for handler in list(self._subscribers.get(key, [])):
            try:
                handler(key, data)
            except Exception as e:
                logger.error(f"Query subscriber for {key} failed: {e}")

    def clear(self) -> None:
        self._queries.clear()
        self._generations.clear()
        logger.info("Query cache cleared")

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[QueryCache] {message}")
