"""Data schemas using msgspec for high-performance serialization."""

from catalog.schemas.base import BaseStruct, CamelizedBaseStruct
from catalog.schemas.cache import CacheEntry, DetailEntry, FallbackSnapshot, HealthStatus
from catalog.schemas.inventory import (
    AdvanceResult,
    DetailResult,
    HealthReport,
    HealthState,
    InventoryFailure,
    InventoryStats,
    LoadResult,
    Source,
)
from catalog.schemas.listing import DEFAULT_PAGE_SIZE, FilterSpec, ListingDetail, ListingSummary

__all__ = (
    "DEFAULT_PAGE_SIZE",
    "AdvanceResult",
    "BaseStruct",
    "CacheEntry",
    "CamelizedBaseStruct",
    "DetailEntry",
    "DetailResult",
    "FallbackSnapshot",
    "FilterSpec",
    "HealthReport",
    "HealthState",
    "HealthStatus",
    "InventoryFailure",
    "InventoryStats",
    "ListingDetail",
    "ListingSummary",
    "LoadResult",
    "Source",
)
