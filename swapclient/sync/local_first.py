"""
LocalFirstReader - serve the local mirror first, reconcile in the background.

Read path:
1. Load the local mirror
2. Non-empty (and fresh, when a max age is set): return it and schedule a
   delayed background fetch that overwrites the mirror and pushes the
   server list into the query cache
3. Empty or stale: fetch from the network, save, return

Background failures are logged and dropped; the caller keeps the local data.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from swapclient.sync.query_cache import QueryCache
from swapclient.sync.query_keys import QueryKey

T = TypeVar("T")


@dataclass
class LocalFirstSource(Generic[T]):
    """How to load, save and fetch one list resource."""

    name: str
    key: QueryKey
    load_local: Callable[[], Awaitable[list[T]]]
    save_local: Callable[[list[T]], Awaitable[None]]
    fetch_remote: Callable[[], Awaitable[list[T]]]
    sync_delay: float = 0.0
    # Seconds; None serves any non-empty mirror
    max_age: float | None = None
    cache_timestamp: Callable[[], Awaitable[float | None]] | None = None
    # Checked before and after the background fetch
    can_apply: Callable[[], bool] | None = None


class LocalFirstReader:
    """
    Usage:
        reader = LocalFirstReader(query_cache)
        enrollments = await reader.read(source)
        ...
        await reader.wait_for_sync()
    """

    def __init__(
        self,
        query_cache: QueryCache,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._query_cache = query_cache
        self._clock = clock
        self._sleep = sleep
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_syncs(self) -> int:
        return len(self._tasks)

    async def read(self, source: LocalFirstSource[T]) -> list[T]:
        local = await self._load_local(source)

        if local:
            if await self._is_fresh(source):
                logger.debug(f"[{source.name}] Serving {len(local)} items from local cache")
                self.schedule_sync(source)
                return local
            logger.debug(f"[{source.name}] Local cache is stale, fetching from API")
        else:
            logger.debug(f"[{source.name}] No local cache, fetching from API")

        try:
            remote = await source.fetch_remote()
        except Exception as e:
            if not local:
                raise
            logger.warning(f"[{source.name}] API fetch failed, serving stale local cache: {e}")
            return local

        if remote:
            await self._save_local(source, remote)
        return remote

    def schedule_sync(self, source: LocalFirstSource[T]) -> asyncio.Task[None]:
        task = asyncio.create_task(self._background_sync(source))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_for_sync(self) -> None:
        """Wait for every scheduled background sync to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_pending(self) -> int:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)

    async def _background_sync(self, source: LocalFirstSource[T]) -> None:
        if source.sync_delay > 0:
            await self._sleep(source.sync_delay)

        if not self._can_apply(source):
            logger.debug(f"[{source.name}] Background sync skipped: profile changed")
            return

        try:
            remote = await source.fetch_remote()
        except Exception as e:
            logger.debug(f"[{source.name}] Background sync failed: {e}")
            return

        if not self._can_apply(source):
            logger.debug(f"[{source.name}] Background sync discarded: profile changed")
            return

        if not remote:
            return

        await self._save_local(source, remote)
        self._query_cache.set_query_data(source.key, remote)
        logger.debug(f"[{source.name}] Background sync updated {len(remote)} items")

    async def _load_local(self, source: LocalFirstSource[T]) -> list[T]:
        try:
            return await source.load_local()
        except Exception as e:
            logger.warning(f"[{source.name}] Local cache read failed: {e}")
            return []

    async def _save_local(self, source: LocalFirstSource[T], items: list[T]) -> None:
        try:
            await source.save_local(items)
        except Exception as e:
            logger.warning(f"[{source.name}] Failed to save to local cache: {e}")

    async def _is_fresh(self, source: LocalFirstSource[T]) -> bool:
        if source.max_age is None or source.cache_timestamp is None:
            return True
        try:
            synced_at = await source.cache_timestamp()
        except Exception as e:
            logger.warning(f"[{source.name}] Cache timestamp read failed: {e}")
            return False
        return synced_at is not None and self._clock() - synced_at < source.max_age

    @staticmethod
    def _can_apply(source: LocalFirstSource[T]) -> bool:
        return source.can_apply is None or source.can_apply()
