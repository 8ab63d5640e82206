"""Inventory read orchestration: cache, pagination, detail and degraded mode."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import msgspec
import structlog

from catalog.lib.exceptions import ErrorKind, StoreError
from catalog.lib.fields import BASE_COLUMNS, SUMMARY_COLUMNS
from catalog.lib.settings import InventorySettings
from catalog.schemas import (
    AdvanceResult,
    HealthReport,
    HealthState,
    InventoryFailure,
    InventoryStats,
    ListingSummary,
    LoadResult,
    Source,
)
from catalog.services.cache import QueryCache
from catalog.services.details import DetailCache
from catalog.services.health import HealthMonitor
from catalog.services.pagination import PaginationController
from catalog.services.store import classify_error

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from catalog.lib.fields import FieldGroup
    from catalog.schemas import DetailResult, FallbackSnapshot, FilterSpec
    from catalog.services.fallback import FallbackStore
    from catalog.services.identity import Identity, IdentityService
    from catalog.services.store import ListingBackend

logger = structlog.get_logger()


class CachedPage(msgspec.Struct, gc=False):
    listings: list[ListingSummary]
    has_more: bool


@dataclass
class _PendingLoad:
    key: str
    task: asyncio.Task[CachedPage]


def _always_alive() -> bool:
    return True


def build_health_monitor(store: ListingBackend, settings: InventorySettings) -> HealthMonitor:
    """Create a health monitor for ``store`` tuned by ``settings``."""
    return HealthMonitor(
        store,
        interval=settings.HEALTH_CHECK_INTERVAL_SECONDS,
        probe_timeout=settings.HEALTH_PROBE_TIMEOUT_SECONDS,
        fetch_timeout=settings.FETCH_TIMEOUT_SECONDS,
        degraded_fetch_timeout=settings.DEGRADED_FETCH_TIMEOUT_SECONDS,
    )


class InventoryOrchestrator:
    """The single entry point listing views use to read inventory.

    Every public operation returns a tagged result instead of raising, so
    callers branch on ``source`` and ``error``. At most one list fetch is in
    flight per instance: a load for another filter cancels it, and a load for
    the same filter awaits it.
    """

    def __init__(
        self,
        store: ListingBackend,
        identity: IdentityService,
        fallback: FallbackStore,
        settings: InventorySettings | None = None,
        clock: Callable[[], float] = time.monotonic,
        health: HealthMonitor | None = None,
    ) -> None:
        """Initialize the orchestrator and its collaborators.

        Args:
            store: Backing store gateway
            identity: Current-user accessor; all queries are scoped to it
            fallback: Durable snapshot used during outages
            settings: Cache, timeout and pagination tuning
            clock: Monotonic time source for cache and debounce windows
            health: Shared monitor for ``store``; when omitted the instance
                creates, starts and stops its own
        """
        self.settings = settings or InventorySettings()
        self.store = store
        self.identity = identity
        self.fallback = fallback
        self.cache: QueryCache[CachedPage] = QueryCache(self.settings.LIST_CACHE_TTL_SECONDS, clock=clock)
        self._owns_health = health is None
        self.health = health if health is not None else build_health_monitor(store, self.settings)
        self.details = DetailCache(
            store,
            identity,
            timeout=lambda: self.health.query_profile().timeout,
            clock=clock,
        )
        self.pagination = PaginationController(
            self._fetch_summaries,
            increment=self.settings.PAGE_INCREMENT,
            max_limit=self.settings.MAX_LIMIT,
            debounce=self.settings.ADVANCE_DEBOUNCE_SECONDS,
            clock=clock,
        )
        self.offline_mode = False
        self._pending: _PendingLoad | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._user_id = self._current_user_id()
        self._epoch = 0

    async def init(self) -> None:
        """Watch for identity changes and start health probing if this instance owns the monitor."""
        self._unsubscribe = self.identity.subscribe(self._on_identity_change)
        if self._owns_health:
            self.health.start()

    async def dispose(self) -> None:
        """Cancel in-flight work and stop background tasks."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._pending is not None and not self._pending.task.done():
            self._pending.task.cancel()
        self._pending = None
        await self.details.close()
        if self._owns_health:
            await self.health.stop()

    async def load(
        self,
        spec: FilterSpec,
        *,
        force: bool = False,
        is_alive: Callable[[], bool] | None = None,
    ) -> LoadResult:
        """Load the first page of listings for ``spec``.

        Args:
            spec: Filters of the requesting view
            force: Skip the in-memory cache and the offline shortcuts
            is_alive: Returns False once the requesting view is torn down

        Returns:
            Listings tagged with their source and any error
        """
        alive = is_alive or _always_alive
        key = spec.cache_key()
        if self.pagination.key != key:
            self.pagination.reset(spec)

        if not force:
            if self.offline_mode:
                return self._serve_fallback(
                    InventoryFailure(kind=ErrorKind.NETWORK, message="Offline mode", recoverable=True),
                )
            entry = self.cache.get(key)
            if entry is not None:
                self.pagination.prime(spec, entry.data.listings, entry.data.has_more)
                return LoadResult(listings=entry.data.listings, source=Source.CACHE, has_more=entry.data.has_more)
            if self.health.state is HealthState.DOWN:
                snapshot = self._load_snapshot()
                if snapshot is not None:
                    logger.info("Backing store down, serving fallback snapshot", key=key)
                    return self._fallback_result(
                        snapshot,
                        InventoryFailure(kind=ErrorKind.NETWORK, message="Backing store is down", recoverable=True),
                    )

        epoch = self._epoch
        task = self._start_load(spec, key)
        try:
            page = await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or current.cancelling() == 0):
                return LoadResult(
                    listings=[],
                    source=Source.NETWORK,
                    error=InventoryFailure(
                        kind=ErrorKind.CANCELLED,
                        message="Superseded by a newer request",
                        recoverable=True,
                    ),
                )
            raise
        except StoreError as e:
            return self._handle_failure(e)

        if not alive():
            logger.debug("Requesting view is gone, not committing results", key=key)
            return LoadResult(listings=page.listings, source=Source.NETWORK, has_more=page.has_more, discarded=True)
        self._commit(spec, key, page, epoch)
        return LoadResult(listings=page.listings, source=Source.NETWORK, has_more=page.has_more)

    async def advance(self, spec: FilterSpec, *, is_alive: Callable[[], bool] | None = None) -> AdvanceResult:
        """Load the next slice for ``spec`` ("load more")."""
        if self.offline_mode:
            return AdvanceResult(
                error=InventoryFailure(kind=ErrorKind.NETWORK, message="Offline mode", recoverable=True),
            )
        return await self.pagination.advance(spec, is_alive=is_alive)

    load_more = advance

    def reset(self, spec: FilterSpec) -> None:
        """Reset pagination for a filter change."""
        self.pagination.reset(spec)

    async def load_detail(self, listing_id: str, groups: Iterable[str | FieldGroup]) -> DetailResult:
        return await self.details.resolve(listing_id, groups)

    def is_loading_details(self, listing_id: str) -> bool:
        return self.details.is_loading_details(listing_id)

    async def force_refresh(self, spec: FilterSpec) -> LoadResult:
        """Leave offline mode and reload ``spec`` from the backing store."""
        self.offline_mode = False
        self.cache.invalidate(spec.cache_key())
        self.pagination.reset(spec)
        return await self.load(spec, force=True)

    def force_offline_mode(self) -> LoadResult:
        """Serve the fallback snapshot until the next forced refresh."""
        self.offline_mode = True
        logger.info("Forcing offline mode")
        return self._serve_fallback(None)

    def invalidate_listing(self, listing_id: str) -> None:
        """Forget everything derived from a listing after it was edited."""
        self.details.invalidate(listing_id)
        self.cache.clear()

    def health_report(self) -> HealthReport:
        status = self.health.status
        return HealthReport(
            state=self.health.state,
            error_count=status.error_count,
            response_time_ms=status.response_time_ms,
            last_checked=status.last_checked,
            offline_mode=self.offline_mode,
            has_fallback=self.fallback.has(),
        )

    def stats(self) -> InventoryStats:
        return InventoryStats.from_listings(self.pagination.window)

    def cache_stats(self) -> dict[str, Any]:
        return {"lists": self.cache.stats(), "details": self.details.stats()}

    def _start_load(self, spec: FilterSpec, key: str) -> asyncio.Task[CachedPage]:
        pending = self._pending
        if pending is not None and not pending.task.done():
            if pending.key == key:
                logger.debug("Joining in-flight listing fetch", key=key)
                return pending.task
            logger.debug("Cancelling superseded listing fetch", key=pending.key)
            pending.task.cancel()

        task = asyncio.create_task(self._fetch_first_page(spec))
        self._pending = _PendingLoad(key=key, task=task)
        task.add_done_callback(self._on_load_done)
        return task

    def _on_load_done(self, task: asyncio.Task[CachedPage]) -> None:
        if self._pending is not None and self._pending.task is task:
            self._pending = None
        if not task.cancelled():
            task.exception()

    async def _fetch_first_page(self, spec: FilterSpec) -> CachedPage:
        rows = await self._fetch_summaries(spec, spec.page_size + 1, None)
        return CachedPage(listings=rows[: spec.page_size], has_more=len(rows) > spec.page_size)

    def _commit(self, spec: FilterSpec, key: str, page: CachedPage, epoch: int) -> None:
        """Publish a fetched first page on behalf of a caller that is still alive.

        Every live caller sharing a fetch reaches this; only the first one
        writes. Pages fetched before an identity change are dropped.
        """
        if epoch != self._epoch:
            logger.debug("Identity changed during fetch, not committing results", key=key)
            return
        entry = self.cache.peek(key)
        if entry is not None and entry.data is page:
            return
        self.cache.set(key, page)
        self.fallback.save(page.listings, owner=self._current_user_id())
        if self.pagination.key == key:
            self.pagination.prime(spec, page.listings, page.has_more)
        logger.debug("Loaded listings", key=key, count=len(page.listings), has_more=page.has_more)

    async def _fetch_summaries(self, spec: FilterSpec, limit: int, cursor: datetime | None) -> list[ListingSummary]:
        auth = self.identity.current()
        if not auth.ok or auth.identity is None:
            msg = "No authenticated user"
            raise StoreError(msg, ErrorKind.UNAUTHENTICATED)

        profile = self.health.query_profile()
        columns = BASE_COLUMNS if profile.minimal_fields else SUMMARY_COLUMNS
        start = time.perf_counter()
        try:
            async with asyncio.timeout(profile.timeout):
                rows = await self.store.fetch_page(
                    auth.identity.user_id,
                    spec,
                    columns=columns,
                    limit=limit,
                    cursor=cursor,
                )
            listings = [ListingSummary.from_row(row) for row in rows]
        except Exception as e:
            error = e if isinstance(e, StoreError) else classify_error(e)
            if error.kind.is_infrastructure:
                self.health.record_failure(int((time.perf_counter() - start) * 1000))
            if error is e:
                raise
            raise error from e

        self.health.record_success(int((time.perf_counter() - start) * 1000))
        return listings

    def _handle_failure(self, error: StoreError) -> LoadResult:
        failure = InventoryFailure.from_error(error)
        if error.kind.is_access:
            logger.warning("Listing load denied", kind=error.kind, error=error.message)
            return LoadResult(listings=[], source=Source.NETWORK, error=failure)
        if error.kind is ErrorKind.VALIDATION:
            logger.error("Listing query rejected", error=error.message)
            return LoadResult(listings=[], source=Source.NETWORK, error=failure)
        if error.kind.is_infrastructure:
            snapshot = self._load_snapshot()
            if snapshot is not None:
                logger.warning("Serving fallback snapshot", kind=error.kind, items=len(snapshot.listings))
                return self._fallback_result(snapshot, failure)
        logger.warning("Listing load failed", kind=error.kind, error=error.message)
        return LoadResult(listings=[], source=Source.NETWORK, error=failure)

    def _serve_fallback(self, failure: InventoryFailure | None) -> LoadResult:
        snapshot = self._load_snapshot()
        if snapshot is None:
            return LoadResult(
                listings=[],
                source=Source.FALLBACK,
                error=InventoryFailure(kind=ErrorKind.NETWORK, message="No offline data available", recoverable=True),
            )
        return self._fallback_result(snapshot, failure)

    def _fallback_result(self, snapshot: FallbackSnapshot, failure: InventoryFailure | None) -> LoadResult:
        return LoadResult(
            listings=snapshot.listings,
            source=Source.FALLBACK,
            error=failure,
            stale=self.fallback.is_stale(snapshot),
        )

    def _load_snapshot(self) -> FallbackSnapshot | None:
        snapshot = self.fallback.load()
        if snapshot is None:
            return None
        if snapshot.owner is not None and snapshot.owner != self._current_user_id():
            logger.warning("Ignoring fallback snapshot saved for another user")
            return None
        return snapshot

    def _current_user_id(self) -> str | None:
        auth = self.identity.current()
        return auth.identity.user_id if auth.identity is not None else None

    def _on_identity_change(self, identity: Identity | None) -> None:
        user_id = identity.user_id if identity is not None else None
        if user_id == self._user_id:
            return
        logger.info("Identity changed, clearing inventory caches")
        self._user_id = user_id
        self._epoch += 1
        if self._pending is not None and not self._pending.task.done():
            self._pending.task.cancel()
        self.cache.clear()
        self.details.clear()
        self.pagination.clear()
        self.offline_mode = False

