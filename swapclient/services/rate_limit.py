"""
RateLimitLedger - per-path "retry not before" timestamps from HTTP 429.
"""

import asyncio
import time
from typing import Awaitable, Callable

from loguru import logger


class RateLimitLedger:
    """
    Tracks rate-limited endpoints so callers wait instead of hammering them.

    Usage:
        ledger = RateLimitLedger()

        await ledger.wait_if_limited("/transactions")
        ...
        if response.status_code == 429:
            ledger.record("/transactions", retry_after=5)
    """

    def __init__(
        self,
        default_retry_after: float = 30,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._not_before: dict[str, float] = {}
        self._default_retry_after = default_retry_after
        self._clock = clock
        self._sleep = sleep

    @staticmethod
    def parse_retry_after(value: str | None, default: float = 30) -> float:
        """Parse a `retry-after` header in seconds, falling back to `default`."""
        if value is None:
            return default
        try:
            seconds = int(float(value.strip()))
        except (ValueError, OverflowError):
            return default
        return float(max(seconds, 0))

    def record(self, path: str, retry_after: float | None = None) -> float:
        """Mark `path` as limited for `retry_after` seconds. Returns the expiry."""
        seconds = self._default_retry_after if retry_after is None else retry_after
        expiry = self._clock() + seconds
        self._not_before[path] = expiry
        logger.warning(f"Rate limited for endpoint {path}. Retry after {seconds:g}s")
        return expiry

    def retry_at(self, path: str) -> float | None:
        return self._not_before.get(path)

    def is_limited(self, path: str) -> bool:
        expiry = self._not_before.get(path)
        return expiry is not None and self._clock() < expiry

    async def wait_if_limited(self, path: str) -> float:
        """
        Suspend until `path` may be called again, then drop its ledger entry.

        Returns:
            Seconds waited (0 when the path was not limited)
        """
        waited = 0.0
        # Loops because a newer 429 may extend the limit while we sleep
        while True:
            expiry = self._not_before.get(path)
            if expiry is None:
                return waited

            remaining = expiry - self._clock()
            if remaining <= 0:
                del self._not_before[path]
                return waited

            logger.warning(
                f"Endpoint {path} is rate limited. Waiting {remaining:.1f}s before retrying."
            )
            await self._sleep(remaining)
            waited += remaining

    def clear(self) -> None:
        self._not_before.clear()

    @property
    def limited_paths(self) -> list[str]:
        now = self._clock()
        return [path for path, expiry in self._not_before.items() if now < expiry]
