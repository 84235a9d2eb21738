"""
RefreshCoordinator - single-flight token refresh with a FIFO wait list.

States:
- IDLE: No refresh in flight
- REFRESHING: One caller (the driver) is running the refresh call

Transitions:
- IDLE → REFRESHING: A caller needs a fresh token and nobody is refreshing
- REFRESHING → IDLE: The driver's refresh settles (success, failure or error)

Callers arriving while REFRESHING are queued and settled, in enqueue order,
with the driver's outcome. The state flag is flipped before the first await,
so concurrent coroutines on one event loop never start a second refresh.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger

from swapclient.services.errors import TokenRefreshError
from swapclient.services.events import AuthEvent, AuthEventBus


class RefreshState(str, Enum):
    """Refresh coordinator states."""

    IDLE = "IDLE"
    REFRESHING = "REFRESHING"


@dataclass
class QueuedRequest:
    """A caller suspended until the in-flight refresh settles."""

    future: "asyncio.Future[str]"
    context: Any = None
    enqueued_at: float = field(default_factory=time.time)


class RefreshCoordinator:
    """
    Owns the refresh state; no module-level globals.

    Usage:
        coordinator = RefreshCoordinator(token_store.refresh_access_token)

        try:
            token = await coordinator.acquire_or_wait(context)
        except TokenRefreshError:
            ...  # refresh failed (for the driver and every waiter alike)
    """

    def __init__(
        self,
        refresh_fn: Callable[[], Awaitable[str | None]],
        events: AuthEventBus | None = None,
    ):
        self._refresh_fn = refresh_fn
        self._events = events
        self._state = RefreshState.IDLE
        self._wait_list: list[QueuedRequest] = []
        self._background: set[asyncio.Task[Any]] = set()

        self.refresh_count = 0
        self.failure_count = 0
        self._last_refreshed_at: float | None = None

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def is_refreshing(self) -> bool:
        return self._state == RefreshState.REFRESHING

    @property
    def pending_count(self) -> int:
        return len(self._wait_list)

    async def acquire_or_wait(self, context: Any = None) -> str:
        """
        Get a refreshed token.

        Starts the refresh when IDLE, otherwise joins the wait list.

        Returns:
            The new access token

        Raises:
            TokenRefreshError: If the refresh produced no token
        """
        if self._state == RefreshState.REFRESHING:
            return await self.wait(context)
        return await self._drive(context)

    async def wait(self, context: Any = None) -> str:
        """Suspend until the in-flight refresh settles."""
        if self._state != RefreshState.REFRESHING:
            raise RuntimeError("No token refresh in progress")

        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._wait_list.append(QueuedRequest(future=future, context=context))
        logger.debug(
            f"Token refresh in progress, queued {_path_of(context)} "
            f"(position {len(self._wait_list)})"
        )
        return await future

    async def _drive(self, context: Any) -> str:
        self._state = RefreshState.REFRESHING
        self.refresh_count += 1
        logger.debug(f"Refreshing token (driver: {_path_of(context)})")

        token: str | None = None
        try:
            token = await self._refresh_fn()
        except Exception as e:
            logger.error(f"Error refreshing token: {e}")
            token = None
        finally:
            self._state = RefreshState.IDLE
            self._drain(token)

        if not token:
            self.failure_count += 1
            raise TokenRefreshError(_path_of(context))

        self._last_refreshed_at = time.time()
        if self._events:
            self._events.emit(AuthEvent.TOKEN_REFRESHED)
        return token

    def _drain(self, token: str | None) -> None:
        """Settle every queued caller in enqueue order, then clear the list."""
        waiting, self._wait_list = self._wait_list, []
        if waiting:
            outcome = "new token" if token else "failure"
            logger.debug(f"Settling {len(waiting)} queued request(s) with {outcome}")

        for entry in waiting:
            if entry.future.done():
                # Waiter was cancelled while suspended
                continue
            if token:
                entry.future.set_result(token)
            else:
                entry.future.set_exception(TokenRefreshError(_path_of(entry.context)))

    def schedule_background_refresh(self) -> bool:
        """
        Start a refresh without blocking the caller. No-op while REFRESHING.
        """
        if self._state == RefreshState.REFRESHING:
            return False

        async def run() -> None:
            try:
                await self.acquire_or_wait(None)
                logger.debug("Background token refresh successful")
            except TokenRefreshError:
                logger.warning("Background token refresh failed")

        task = asyncio.create_task(run())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    async def wait_for_background(self) -> None:
        """Await background refreshes that are still running."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def get_status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "pending": len(self._wait_list),
            "refresh_count": self.refresh_count,
            "failure_count": self.failure_count,
            "last_refreshed_at": self._last_refreshed_at,
        }


def _path_of(context: Any) -> str | None:
    return getattr(context, "path", None)
