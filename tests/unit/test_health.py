from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from catalog.schemas import HealthState, HealthStatus
from catalog.services.health import HealthMonitor, classify

if TYPE_CHECKING:
    from tests.conftest import FakeStore


@pytest.mark.parametrize(
    ("error_count", "expected"),
    [
        (0, HealthState.HEALTHY),
        (1, HealthState.HEALTHY),
        (2, HealthState.HEALTHY),
        (3, HealthState.DEGRADED),
        (5, HealthState.DEGRADED),
        (6, HealthState.DOWN),
    ],
)
def test_error_count_thresholds(error_count: int, expected: HealthState) -> None:
    assert classify(HealthStatus(error_count=error_count, response_time_ms=10, last_ok=True)) is expected


def test_slow_successful_probe() -> None:
    assert classify(HealthStatus(response_time_ms=3001, last_ok=True)) is HealthState.SLOW
    assert classify(HealthStatus(response_time_ms=3000, last_ok=True)) is HealthState.HEALTHY


def test_error_count_outranks_latency() -> None:
    assert classify(HealthStatus(error_count=3, response_time_ms=5000, last_ok=True)) is HealthState.DEGRADED


async def test_failures_accumulate_until_down(store: FakeStore) -> None:
    store.probe_error = ConnectionRefusedError("refused")
    monitor = HealthMonitor(store)
    states = []

    for _ in range(6):
        await monitor.check()
        states.append(monitor.state)

    assert states == [
        HealthState.HEALTHY,
        HealthState.HEALTHY,
        HealthState.DEGRADED,
        HealthState.DEGRADED,
        HealthState.DEGRADED,
        HealthState.DOWN,
    ]
    assert monitor.status.error_count == 6


async def test_success_decays_error_count_by_one(store: FakeStore) -> None:
    monitor = HealthMonitor(store)
    for _ in range(4):
        monitor.record_failure()

    assert await monitor.check()
    assert monitor.status.error_count == 3
    assert monitor.state is HealthState.DEGRADED


def test_query_profile_narrows_when_unhealthy(store: FakeStore) -> None:
    monitor = HealthMonitor(store, fetch_timeout=8.0, degraded_fetch_timeout=5.0)

    healthy = monitor.query_profile()
    for _ in range(3):
        monitor.record_failure()
    degraded = monitor.query_profile()

    assert (healthy.timeout, healthy.minimal_fields) == (8.0, False)
    assert (degraded.timeout, degraded.minimal_fields) == (5.0, True)


def test_observers_see_state_changes_only(store: FakeStore) -> None:
    monitor = HealthMonitor(store)
    seen: list[tuple[HealthState, HealthState]] = []
    unsubscribe = monitor.subscribe(lambda previous, current: seen.append((previous, current)))

    monitor.record_failure()
    monitor.record_failure()
    monitor.record_failure()
    unsubscribe()
    for _ in range(3):
        monitor.record_failure()

    assert seen == [(HealthState.HEALTHY, HealthState.DEGRADED)]


async def test_probe_timeout_counts_as_failure() -> None:
    class HangingStore:
        async def probe(self) -> None:
            await asyncio.sleep(10)

    monitor = HealthMonitor(HangingStore(), probe_timeout=0.01)  # type: ignore[arg-type]

    assert not await monitor.check()
    assert monitor.status.error_count == 1
    assert not monitor.status.last_ok


async def test_start_probes_immediately_and_stop_cancels(store: FakeStore) -> None:
    monitor = HealthMonitor(store, interval=60)
    monitor.start()
    for _ in range(10):
        if store.probe_calls:
            break
        await asyncio.sleep(0)
    await monitor.stop()

    assert store.probe_calls == 1
    assert monitor.status.last_ok
