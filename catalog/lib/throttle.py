"""Minimum-interval rate limiting for user-triggered operations."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class RateLimiter:
    """Drops invocations that arrive within ``min_interval`` of the last one.

    Calls are never queued: callers check :meth:`ready` and skip the work when
    it returns ``False``. Only completed invocations are recorded with
    :meth:`mark`.
    """

    __slots__ = ("_clock", "last_invocation_at", "min_interval")

    def __init__(self, min_interval: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.min_interval = min_interval
        self.last_invocation_at: float | None = None
        self._clock = clock

    def ready(self) -> bool:
        if self.last_invocation_at is None:
            return True
        return self._clock() - self.last_invocation_at >= self.min_interval

    def mark(self) -> None:
        self.last_invocation_at = self._clock()

    def reset(self) -> None:
        self.last_invocation_at = None
