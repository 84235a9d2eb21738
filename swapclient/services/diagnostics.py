"""
CallDiagnostics - bounded history of outgoing calls with loop detection.

Never blocks a call; only warns when the same path is hit repeatedly
within a short window (usually a refresh loop in a caller).
"""

import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger


@dataclass
class ApiCallInfo:
    """One recorded call."""

    path: str
    method: str
    timestamp: float


class CallDiagnostics:
    def __init__(
        self,
        history_size: int = 20,
        window_seconds: float = 5.0,
        loop_threshold: int = 2,
        clock: Callable[[], float] = time.time,
    ):
        self._history: deque[ApiCallInfo] = deque(maxlen=history_size)
        self._window = window_seconds
        self._threshold = loop_threshold
        self._clock = clock
        self.loop_warnings = 0

    def record(self, method: str, path: str) -> int:
        """
        Record a call and return how many calls to `path` fall inside the window.
        """
        now = self._clock()
        self._history.append(ApiCallInfo(path=path, method=method.upper(), timestamp=now))

        recent = sum(
            1 for call in self._history if call.path == path and now - call.timestamp < self._window
        )
        if recent > self._threshold:
            self.loop_warnings += 1
            logger.warning(
                f"Potential refresh loop: {recent} calls to {path} in {self._window:g} seconds"
            )
        return recent

    @property
    def history(self) -> list[ApiCallInfo]:
        return list(self._history)

    def to_dict(self) -> dict[str, Any]:
        return {
            "recorded": len(self._history),
            "loop_warnings": self.loop_warnings,
        }
