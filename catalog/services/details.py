"""Per-listing cache of detail projections."""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from typing import TYPE_CHECKING, Any

import structlog

from catalog.lib.exceptions import ErrorKind, StoreError, ValidationError
from catalog.lib.fields import parse_groups, resolve, tier_signature
from catalog.schemas import DetailEntry, DetailResult, InventoryFailure, ListingDetail, Source
from catalog.services.store import classify_error

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from catalog.lib.fields import FieldGroup
    from catalog.services.identity import IdentityService
    from catalog.services.store import ListingBackend

logger = structlog.get_logger()


class DetailCache:
    """Memoizes detail fetches keyed by ``(listing_id, tier signature)``.

    A cached entry satisfies a request only when its field groups are a
    superset of the requested ones. On a miss the fetch asks for the union of
    the requested groups and every group already cached for that listing, and
    the result replaces those entries.

    At most one fetch runs per ``(listing_id, tier signature)``. A request
    whose groups are covered by a fetch already in flight awaits that fetch.
    Failed fetches are never cached and leave existing entries untouched.
    """

    def __init__(
        self,
        store: ListingBackend,
        identity: IdentityService,
        timeout: Callable[[], float] = lambda: 8.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.identity = identity
        self._timeout = timeout
        self._clock = clock
        self._entries: dict[str, dict[str, DetailEntry]] = defaultdict(dict)
        self._inflight: dict[tuple[str, str], tuple[frozenset[FieldGroup], asyncio.Task[ListingDetail | None]]] = {}
        self._generation: dict[str, int] = defaultdict(int)
        self._hits = 0
        self._misses = 0

    async def load_detail(self, listing_id: str, groups: Iterable[str | FieldGroup]) -> ListingDetail | None:
        """Get the detail projection for ``groups``, or None on failure."""
        return (await self.resolve(listing_id, groups)).detail

    async def resolve(self, listing_id: str, groups: Iterable[str | FieldGroup]) -> DetailResult:
        """Get the detail projection for ``groups`` as a tagged result.

        Args:
            listing_id: Listing to load
            groups: Requested field groups

        Returns:
            The detail and where it came from, or the classified error
        """
        try:
            requested = parse_groups(groups)
        except ValidationError as e:
            logger.error("Rejected detail request", listing_id=listing_id, error=e.message)
            return DetailResult(detail=None, error=InventoryFailure.from_error(e))

        entry = self._covering_entry(listing_id, requested)
        if entry is not None:
            self._hits += 1
            return DetailResult(detail=entry.data, source=Source.CACHE)
        self._misses += 1

        task = self._covering_fetch(listing_id, requested) or self._start_fetch(listing_id, requested)
        try:
            detail = await asyncio.shield(task)
        except StoreError as e:
            logger.warning("Failed to load listing details", listing_id=listing_id, kind=e.kind, error=e.message)
            return DetailResult(detail=None, error=InventoryFailure.from_error(e))
        if detail is None:
            return DetailResult(
                detail=None,
                error=InventoryFailure(kind=ErrorKind.UNKNOWN, message=f"Listing {listing_id} not found"),
            )
        return DetailResult(detail=detail, source=Source.NETWORK)

    def is_loading_details(self, listing_id: str) -> bool:
        return any(key[0] == listing_id for key in self._inflight)

    def invalidate(self, listing_id: str) -> int:
        """Drop every cached tier for one listing.

        Returns:
            Number of entries removed
        """
        self._generation[listing_id] += 1
        return len(self._entries.pop(listing_id, {}))

    def clear(self) -> None:
        for listing_id in list(self._entries):
            self._generation[listing_id] += 1
        for listing_id, _ in self._inflight:
            self._generation[listing_id] += 1
        self._entries.clear()

    async def close(self) -> None:
        """Cancel fetches still in flight."""
        tasks = [task for _, task in self._inflight.values()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

    def stats(self) -> dict[str, Any]:
        return {
            "entries": sum(len(tiers) for tiers in self._entries.values()),
            "listings": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "in_flight": len(self._inflight),
        }

    def _covering_entry(self, listing_id: str, requested: frozenset[FieldGroup]) -> DetailEntry | None:
        for entry in self._entries.get(listing_id, {}).values():
            if requested <= entry.groups:
                return entry
        return None

    def _covering_fetch(
        self,
        listing_id: str,
        requested: frozenset[FieldGroup],
    ) -> asyncio.Task[ListingDetail | None] | None:
        for (pending_id, _), (groups, task) in self._inflight.items():
            if pending_id == listing_id and requested <= groups and not task.done():
                return task
        return None

    def _start_fetch(self, listing_id: str, requested: frozenset[FieldGroup]) -> asyncio.Task[ListingDetail | None]:
        fetch_groups = requested.union(*(entry.groups for entry in self._entries.get(listing_id, {}).values()))
        key = (listing_id, tier_signature(fetch_groups))
        task = asyncio.create_task(self._fetch(listing_id, fetch_groups, self._generation[listing_id]))
        self._inflight[key] = (fetch_groups, task)
        task.add_done_callback(lambda done: self._forget(key, done))
        return task

    def _forget(self, key: tuple[str, str], task: asyncio.Task[ListingDetail | None]) -> None:
        current = self._inflight.get(key)
        if current is not None and current[1] is task:
            del self._inflight[key]
        if not task.cancelled():
            task.exception()

    async def _fetch(self, listing_id: str, groups: frozenset[FieldGroup], generation: int) -> ListingDetail | None:
        auth = self.identity.current()
        if not auth.ok or auth.identity is None:
            msg = "No authenticated user"
            raise StoreError(msg, ErrorKind.UNAUTHENTICATED)

        try:
            async with asyncio.timeout(self._timeout()):
                row = await self.store.fetch_one(auth.identity.user_id, listing_id, columns=resolve(groups))
            detail = ListingDetail.from_row(row) if row is not None else None
        except StoreError:
            raise
        except Exception as e:
            raise classify_error(e) from e

        if detail is None:
            return None
        if self._generation[listing_id] != generation:
            logger.debug("Listing invalidated during fetch, not caching", listing_id=listing_id)
            return detail

        signature = tier_signature(groups)
        tiers = self._entries[listing_id]
        for stale_signature in [sig for sig, entry in tiers.items() if entry.groups <= groups]:
            del tiers[stale_signature]
        tiers[signature] = DetailEntry(groups=groups, data=detail, timestamp=self._clock())
        logger.debug("Cached listing details", listing_id=listing_id, tier=signature)
        return detail
