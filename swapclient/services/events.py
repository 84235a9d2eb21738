"""
AuthEventBus - typed pub/sub for authentication lifecycle events.

The set of event kinds is closed; handlers receive the event kind and
an optional human readable reason.
"""

from enum import Enum
from typing import Callable

from loguru import logger


class AuthEvent(str, Enum):
    """Authentication events published by the API client."""

    AUTH_ERROR = "AUTH_ERROR"  # Refresh failed, session likely invalid
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    LOGGED_OUT = "LOGGED_OUT"


AuthEventHandler = Callable[[AuthEvent, str | None], None]
Unsubscribe = Callable[[], None]


class AuthEventBus:
    """
    Synchronous event bus for auth events.

    Usage:
        bus = AuthEventBus()
        unsubscribe = bus.subscribe(AuthEvent.AUTH_ERROR, on_auth_error)
        ...
        unsubscribe()
    """

    def __init__(self):
        self._handlers: dict[AuthEvent, list[AuthEventHandler]] = {}

    def subscribe(self, kind: AuthEvent, handler: AuthEventHandler) -> Unsubscribe:
        """Register a handler and return a callable that removes it."""
        self._handlers.setdefault(kind, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(kind, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def emit(self, kind: AuthEvent, reason: str | None = None) -> None:
        """Notify every handler of `kind`. Handler errors are logged, not raised."""
        for handler in list(self._handlers.get(kind, [])):
            try:
                handler(kind, reason)
            except Exception as e:
                logger.error(f"Error in auth event handler for {kind.value}: {e}")

    def handler_count(self, kind: AuthEvent) -> int:
        return len(self._handlers.get(kind, []))
