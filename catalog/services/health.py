"""Backing-store health probing and classification."""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from catalog.schemas import HealthState, HealthStatus
from catalog.services.store import classify_error

if TYPE_CHECKING:
    from collections.abc import Callable

    from catalog.services.store import ListingBackend

logger = structlog.get_logger()

DOWN_ERROR_COUNT = 5
DEGRADED_ERROR_COUNT = 2
SLOW_RESPONSE_MS = 3000


@dataclass(frozen=True)
class QueryProfile:
    """Data-fetch tuning for the current health state."""

    timeout: float
    minimal_fields: bool


def classify(status: HealthStatus) -> HealthState:
    """Classify a health status.

    ``error_count > 5`` is down and ``> 2`` degraded; otherwise a successful
    probe slower than 3000 ms is slow.
    """
    if status.error_count > DOWN_ERROR_COUNT:
        return HealthState.DOWN
    if status.error_count > DEGRADED_ERROR_COUNT:
        return HealthState.DEGRADED
    if status.last_ok and status.response_time_ms is not None and status.response_time_ms > SLOW_RESPONSE_MS:
        return HealthState.SLOW
    return HealthState.HEALTHY


class HealthMonitor:
    """Probes the backing store on an interval and tracks its health.

    Data fetches report their outcome through :meth:`record_success` and
    :meth:`record_failure`; probes run in their own task with their own
    timeout and never wait on data fetches.
    """

    def __init__(
        self,
        store: ListingBackend,
        interval: float = 30.0,
        probe_timeout: float = 1.5,
        fetch_timeout: float = 8.0,
        degraded_fetch_timeout: float = 5.0,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.store = store
        self.interval = interval
        self.probe_timeout = probe_timeout
        self.fetch_timeout = fetch_timeout
        self.degraded_fetch_timeout = degraded_fetch_timeout
        self.status = HealthStatus()
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._observers: list[Callable[[HealthState, HealthState], None]] = []

    @property
    def state(self) -> HealthState:
        return classify(self.status)

    async def check(self) -> bool:
        """Run one probe and fold the outcome into the status.

        Returns:
            Whether the probe succeeded
        """
        start = self._clock()
        try:
            async with asyncio.timeout(self.probe_timeout):
                await self.store.probe()
        except Exception as e:  # noqa: BLE001
            error = classify_error(e)
            logger.warning("Health probe failed", kind=error.kind, error=error.message)
            self.record_failure(self._elapsed_ms(start))
            return False
        self.record_success(self._elapsed_ms(start))
        return True

    def record_success(self, response_time_ms: int | None = None) -> None:
        """Decay the error count by one and store the latency."""
        self._update(
            HealthStatus(
                last_checked=datetime.now(UTC),
                response_time_ms=response_time_ms,
                error_count=max(0, self.status.error_count - 1),
                last_ok=True,
            ),
        )

    def record_failure(self, response_time_ms: int | None = None) -> None:
        self._update(
            HealthStatus(
                last_checked=datetime.now(UTC),
                response_time_ms=response_time_ms,
                error_count=self.status.error_count + 1,
                last_ok=False,
            ),
        )

    def query_profile(self) -> QueryProfile:
        """Fetch timeout and field width suited to the current state."""
        if self.state is HealthState.HEALTHY:
            return QueryProfile(timeout=self.fetch_timeout, minimal_fields=False)
        return QueryProfile(timeout=self.degraded_fetch_timeout, minimal_fields=True)

    def subscribe(self, callback: Callable[[HealthState, HealthState], None]) -> Callable[[], None]:
        """Register ``callback(previous, current)`` for state changes.

        Returns:
            A function that removes the registration
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._observers.remove(callback)

        return unsubscribe

    def start(self) -> None:
        """Probe once now, then every ``interval`` seconds."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="inventory-health-monitor")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.interval)

    def _update(self, status: HealthStatus) -> None:
        previous = self.state
        self.status = status
        current = self.state
        if current is previous:
            return
        logger.info("Backing store health changed", previous=previous, current=current, errors=status.error_count)
        for callback in list(self._observers):
            try:
                callback(previous, current)
            except Exception:
                logger.exception("Health observer failed")

    def _elapsed_ms(self, start: float) -> int:
        return int((self._clock() - start) * 1000)
