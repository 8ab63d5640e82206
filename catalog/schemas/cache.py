"""Cache-related schemas."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Generic, TypeVar

import msgspec

from catalog.schemas.base import CamelizedBaseStruct
from catalog.schemas.listing import ListingDetail, ListingSummary

__all__ = (
    "CacheEntry",
    "DetailEntry",
    "FallbackSnapshot",
    "HealthStatus",
)

T = TypeVar("T")


class CacheEntry(msgspec.Struct, Generic[T], gc=False):
    """A cached value and the monotonic time it was stored."""

    data: T
    timestamp: float

    def is_fresh(self, now: float, ttl: float) -> bool:
        return now - self.timestamp < ttl


class DetailEntry(msgspec.Struct, gc=False):
    """A detail projection and the field groups it was fetched with."""

    groups: frozenset[str]
    data: ListingDetail
    timestamp: float


class HealthStatus(CamelizedBaseStruct):
    """Rolling backing-store health.

    ``error_count`` grows by one per failure and shrinks by at most one per
    success, so a single good probe does not clear a run of failures.
    """

    last_checked: datetime | None = None
    response_time_ms: int | None = None
    error_count: int = 0
    last_ok: bool = False


class FallbackSnapshot(CamelizedBaseStruct):
    """Last-known-good listing set persisted for outages."""

    listings: list[ListingSummary]
    saved_at: datetime
    owner: str | None = None

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or datetime.now(UTC)) - self.saved_at

    def is_stale(self, max_age: timedelta = timedelta(hours=24), now: datetime | None = None) -> bool:
        """Advisory only; stale snapshots are still served."""
        return self.age(now) > max_age
