"""Tagged results returned by the inventory orchestrator."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

import msgspec

from catalog.lib.exceptions import RECOVERABLE_KINDS, ErrorKind, InventoryError
from catalog.schemas.base import CamelizedBaseStruct
from catalog.schemas.listing import ListingDetail, ListingSummary

__all__ = (
    "AdvanceResult",
    "DetailResult",
    "HealthReport",
    "HealthState",
    "InventoryFailure",
    "InventoryStats",
    "LoadResult",
    "Source",
)


class Source(StrEnum):
    CACHE = "cache"
    NETWORK = "network"
    FALLBACK = "fallback"


class HealthState(StrEnum):
    HEALTHY = "healthy"
    SLOW = "slow"
    DEGRADED = "degraded"
    DOWN = "down"


class InventoryFailure(CamelizedBaseStruct):
    """A classified, non-raising error attached to a result."""

    kind: ErrorKind
    message: str
    recoverable: bool = False

    @classmethod
    def from_error(cls, error: InventoryError) -> InventoryFailure:
        return cls(kind=error.kind, message=error.message, recoverable=error.kind in RECOVERABLE_KINDS)


class LoadResult(CamelizedBaseStruct):
    """Outcome of a list load.

    ``discarded`` is set when the requesting view went away before the fetch
    completed; nothing was committed on its behalf.
    """

    listings: list[ListingSummary]
    source: Source
    error: InventoryFailure | None = None
    has_more: bool = False
    stale: bool = False
    discarded: bool = False


class AdvanceResult(CamelizedBaseStruct):
    """Outcome of a "load more".

    ``exhausted`` means the window hit its maximum size; ``end_of_data`` means
    the store has no further rows. ``skipped`` marks a call dropped by the
    debounce window or by an advance already in flight. ``discarded`` marks
    rows fetched for a view that was torn down before they arrived; they were
    not added to the window.
    """

    appended: list[ListingSummary] = msgspec.field(default_factory=list)
    exhausted: bool = False
    end_of_data: bool = False
    skipped: bool = False
    discarded: bool = False
    error: InventoryFailure | None = None


class DetailResult(CamelizedBaseStruct):
    detail: ListingDetail | None
    source: Source | None = None
    error: InventoryFailure | None = None


class HealthReport(CamelizedBaseStruct):
    state: HealthState
    error_count: int
    response_time_ms: int | None = None
    last_checked: datetime | None = None
    offline_mode: bool = False
    has_fallback: bool = False


class InventoryStats(CamelizedBaseStruct):
    """Totals over the currently visible window."""

    total_items: int = 0
    total_value: float = 0.0
    active_items: int = 0
    draft_items: int = 0

    @classmethod
    def from_listings(cls, listings: list[ListingSummary]) -> InventoryStats:
        return cls(
            total_items=len(listings),
            total_value=sum(listing.price for listing in listings),
            active_items=sum(1 for listing in listings if listing.status == "active"),
            draft_items=sum(1 for listing in listings if listing.status == "draft"),
        )
