from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from catalog.lib.exceptions import ErrorKind
from catalog.lib.fields import BASE_COLUMNS, SUMMARY_COLUMNS
from catalog.schemas import FilterSpec, HealthState, Source
from catalog.services.identity import Identity
from tests.conftest import USER_ID, make_rows

if TYPE_CHECKING:
    from catalog.services.fallback import FallbackStore
    from catalog.services.identity import IdentityService
    from catalog.services.inventory import InventoryOrchestrator
    from tests.conftest import FakeClock, FakeStore


class PostgresError(Exception):
    def __init__(self, message: str, sqlstate: str) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


SPEC = FilterSpec(page_size=12)


async def test_first_load_comes_from_network(orchestrator: InventoryOrchestrator, store: FakeStore) -> None:
    result = await orchestrator.load(SPEC)

    assert result.source is Source.NETWORK
    assert result.error is None
    assert len(result.listings) == 12
    assert result.has_more
    assert store.page_calls[0]["limit"] == 13
    assert store.page_calls[0]["columns"] == SUMMARY_COLUMNS
    assert result.listings[0].first_photo_ref == "photo-0.jpg"


async def test_repeat_load_within_ttl_is_served_from_cache(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
    clock: FakeClock,
) -> None:
    first = await orchestrator.load(SPEC)
    clock.advance(11)
    second = await orchestrator.load(SPEC)

    assert second.source is Source.CACHE
    assert second.listings == first.listings
    assert len(store.page_calls) == 1


async def test_expired_entry_is_refetched(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
    clock: FakeClock,
) -> None:
    await orchestrator.load(SPEC)
    clock.advance(12)

    result = await orchestrator.load(SPEC)

    assert result.source is Source.NETWORK
    assert len(store.page_calls) == 2


async def test_concurrent_loads_for_one_filter_share_a_fetch(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
) -> None:
    store.gate = asyncio.Event()

    first = asyncio.create_task(orchestrator.load(SPEC))
    second = asyncio.create_task(orchestrator.load(SPEC))
    await asyncio.sleep(0)
    store.gate.set()
    results = await asyncio.gather(first, second)

    assert len(store.page_calls) == 1
    assert results[0].listings == results[1].listings


async def test_new_filter_supersedes_in_flight_load(orchestrator: InventoryOrchestrator, store: FakeStore) -> None:
    store.gate = asyncio.Event()
    active = FilterSpec(status_filter="active", page_size=12)

    stale = asyncio.create_task(orchestrator.load(SPEC))
    await asyncio.sleep(0)
    fresh = asyncio.create_task(orchestrator.load(active))
    await asyncio.sleep(0)
    store.gate.set()
    superseded, current = await asyncio.gather(stale, fresh)

    assert superseded.error is not None
    assert superseded.error.kind is ErrorKind.CANCELLED
    assert superseded.listings == []
    assert current.source is Source.NETWORK
    assert {listing.status for listing in current.listings} == {"active"}
    assert orchestrator.cache.peek(SPEC.cache_key()) is None


async def test_results_for_a_departed_view_are_not_committed(
    orchestrator: InventoryOrchestrator,
    fallback: FallbackStore,
) -> None:
    result = await orchestrator.load(SPEC, is_alive=lambda: False)

    assert result.discarded
    assert len(result.listings) == 12
    assert orchestrator.cache.peek(SPEC.cache_key()) is None
    assert not fallback.has()
    assert orchestrator.pagination.window == []


async def test_live_caller_commits_a_fetch_started_by_a_departed_view(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
    fallback: FallbackStore,
) -> None:
    store.gate = asyncio.Event()

    departed = asyncio.create_task(orchestrator.load(SPEC, is_alive=lambda: False))
    await asyncio.sleep(0)
    live = asyncio.create_task(orchestrator.load(SPEC))
    await asyncio.sleep(0)
    store.gate.set()
    gone, current = await asyncio.gather(departed, live)

    assert gone.discarded
    assert not current.discarded
    assert len(store.page_calls) == 1
    assert orchestrator.cache.peek(SPEC.cache_key()) is not None
    assert fallback.has()
    assert len(orchestrator.pagination.window) == 12


async def test_successful_load_saves_fallback_snapshot(
    orchestrator: InventoryOrchestrator,
    fallback: FallbackStore,
) -> None:
    await orchestrator.load(SPEC)

    snapshot = fallback.load()
    assert snapshot is not None
    assert len(snapshot.listings) == 12
    assert snapshot.owner == USER_ID


async def test_timeout_serves_fallback_snapshot(orchestrator: InventoryOrchestrator, store: FakeStore) -> None:
    await orchestrator.load(SPEC)
    store.error = TimeoutError()

    result = await orchestrator.force_refresh(SPEC)

    assert result.source is Source.FALLBACK
    assert len(result.listings) == 12
    assert result.error is not None
    assert result.error.kind is ErrorKind.TIMEOUT
    assert result.error.recoverable
    assert not result.stale
    assert orchestrator.health.status.error_count == 1


async def test_network_failure_without_snapshot_surfaces_error(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
) -> None:
    store.error = ConnectionRefusedError("connection refused")

    result = await orchestrator.load(SPEC)

    assert result.source is Source.NETWORK
    assert result.listings == []
    assert result.error is not None
    assert result.error.kind is ErrorKind.NETWORK


async def test_permission_error_never_falls_back(orchestrator: InventoryOrchestrator, store: FakeStore) -> None:
    await orchestrator.load(SPEC)
    store.error = PostgresError("permission denied for table listings", "42501")

    result = await orchestrator.force_refresh(SPEC)

    assert result.source is Source.NETWORK
    assert result.listings == []
    assert result.error is not None
    assert result.error.kind is ErrorKind.PERMISSION
    assert not result.error.recoverable
    assert orchestrator.health.status.error_count == 0


async def test_signed_out_user_fails_fast(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
    identity: IdentityService,
) -> None:
    identity.sign_out()

    result = await orchestrator.load(SPEC)

    assert result.error is not None
    assert result.error.kind is ErrorKind.UNAUTHENTICATED
    assert store.page_calls == []


async def test_snapshot_saved_for_another_user_is_ignored(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
    fallback: FallbackStore,
) -> None:
    fallback.save([], owner="someone-else")
    store.error = ConnectionRefusedError()

    result = await orchestrator.load(SPEC)

    assert result.source is Source.NETWORK
    assert result.error is not None
    assert result.error.kind is ErrorKind.NETWORK


async def test_down_store_serves_snapshot_without_querying(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
) -> None:
    await orchestrator.load(SPEC)
    orchestrator.cache.clear()
    for _ in range(6):
        orchestrator.health.record_failure()
    assert orchestrator.health.state is HealthState.DOWN

    result = await orchestrator.load(SPEC)

    assert result.source is Source.FALLBACK
    assert len(result.listings) == 12
    assert len(store.page_calls) == 1


async def test_down_store_with_unreadable_snapshot_queries_the_store(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
    fallback: FallbackStore,
) -> None:
    fallback.path.parent.mkdir(parents=True, exist_ok=True)
    fallback.path.write_bytes(b"not a snapshot")
    for _ in range(6):
        orchestrator.health.record_failure()

    result = await orchestrator.load(SPEC)

    assert result.source is Source.NETWORK
    assert result.error is None
    assert len(result.listings) == 12
    assert len(store.page_calls) == 1


async def test_degraded_store_gets_minimal_columns(orchestrator: InventoryOrchestrator, store: FakeStore) -> None:
    for _ in range(3):
        orchestrator.health.record_failure()

    result = await orchestrator.load(SPEC)

    assert store.page_calls[0]["columns"] == BASE_COLUMNS
    assert result.listings[0].first_photo_ref is None
    assert orchestrator.health.status.error_count == 2


async def test_offline_mode_round_trip(orchestrator: InventoryOrchestrator, store: FakeStore) -> None:
    await orchestrator.load(SPEC)

    offline = orchestrator.force_offline_mode()
    cached = await orchestrator.load(SPEC)
    more = await orchestrator.advance(SPEC)
    online = await orchestrator.force_refresh(SPEC)

    assert offline.source is Source.FALLBACK
    assert len(offline.listings) == 12
    assert offline.error is None
    assert cached.source is Source.FALLBACK
    assert more.error is not None
    assert more.appended == []
    assert online.source is Source.NETWORK
    assert not orchestrator.offline_mode
    assert len(store.page_calls) == 2


def test_offline_mode_without_snapshot(orchestrator: InventoryOrchestrator) -> None:
    result = orchestrator.force_offline_mode()

    assert result.source is Source.FALLBACK
    assert result.listings == []
    assert result.error is not None
    assert result.error.message == "No offline data available"


async def test_load_more_extends_the_view(orchestrator: InventoryOrchestrator, store: FakeStore) -> None:
    await orchestrator.load(SPEC)

    result = await orchestrator.load_more(SPEC)

    assert len(result.appended) == 3
    assert result.end_of_data
    assert orchestrator.stats().total_items == 15
    assert store.page_calls[-1]["limit"] == 7


async def test_cache_hit_rewinds_the_window_to_the_first_page(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
    clock: FakeClock,
) -> None:
    store.rows = make_rows(30)
    await orchestrator.load(SPEC)
    await orchestrator.advance(SPEC)
    assert len(orchestrator.pagination.window) == 18

    clock.advance(3)
    cached = await orchestrator.load(SPEC)
    clock.advance(3)
    result = await orchestrator.advance(SPEC)

    assert cached.source is Source.CACHE
    assert result.appended[0].id == f"{USER_ID}-listing-12"
    assert len(orchestrator.pagination.window) == 18
    assert len({listing.id for listing in orchestrator.pagination.window}) == 18


async def test_load_more_for_a_departed_view_is_not_applied(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
) -> None:
    store.rows = make_rows(30)
    await orchestrator.load(SPEC)
    cursor = orchestrator.pagination.cursor

    gone = await orchestrator.advance(SPEC, is_alive=lambda: False)

    assert gone.discarded
    assert len(gone.appended) == 6
    assert len(orchestrator.pagination.window) == 12
    assert orchestrator.pagination.cursor == cursor
    assert orchestrator.pagination.current_limit == 12

    result = await orchestrator.advance(SPEC)

    assert not result.skipped
    assert result.appended[0].id == f"{USER_ID}-listing-12"


async def test_identity_change_clears_state(
    orchestrator: InventoryOrchestrator,
    store: FakeStore,
    identity: IdentityService,
) -> None:
    await orchestrator.init()
    try:
        await orchestrator.load(SPEC)
        await orchestrator.load_detail(f"{USER_ID}-listing-01", ["description"])
        orchestrator.force_offline_mode()

        identity.sign_in(Identity(user_id="user-2"))
        result = await orchestrator.load(SPEC)
    finally:
        await orchestrator.dispose()

    assert orchestrator.cache_stats()["details"]["entries"] == 0
    assert not orchestrator.offline_mode
    assert store.page_calls[-1]["user_id"] == "user-2"
    assert result.source is Source.NETWORK
    assert result.listings == []


async def test_invalidate_listing_drops_derived_data(orchestrator: InventoryOrchestrator) -> None:
    await orchestrator.load(SPEC)
    await orchestrator.load_detail(f"{USER_ID}-listing-01", ["description", "keywords"])

    orchestrator.invalidate_listing(f"{USER_ID}-listing-01")

    assert orchestrator.cache.peek(SPEC.cache_key()) is None
    assert orchestrator.cache_stats()["details"]["entries"] == 0


async def test_detail_loads_through_orchestrator(orchestrator: InventoryOrchestrator) -> None:
    result = await orchestrator.load_detail(f"{USER_ID}-listing-02", ["purchasePrice", "netProfit"])

    assert result.source is Source.NETWORK
    assert result.detail is not None
    assert result.detail.purchase_price == 6.0
    assert not orchestrator.is_loading_details(f"{USER_ID}-listing-02")


async def test_health_report(orchestrator: InventoryOrchestrator) -> None:
    await orchestrator.load(SPEC)

    report = orchestrator.health_report()

    assert report.state is HealthState.HEALTHY
    assert report.has_fallback
    assert not report.offline_mode
