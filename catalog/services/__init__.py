"""Inventory read-path services."""

from __future__ import annotations

from catalog.services.base import SQLSpecService
from catalog.services.cache import QueryCache
from catalog.services.details import DetailCache
from catalog.services.fallback import FallbackStore
from catalog.services.health import HealthMonitor
from catalog.services.identity import AuthResult, Identity, IdentityService
from catalog.services.inventory import InventoryOrchestrator
from catalog.services.pagination import PaginationController
from catalog.services.registry import InventoryRegistry
from catalog.services.store import ListingRepository, ListingStore

__all__ = (
    "AuthResult",
    "DetailCache",
    "FallbackStore",
    "HealthMonitor",
    "Identity",
    "IdentityService",
    "InventoryOrchestrator",
    "InventoryRegistry",
    "ListingRepository",
    "ListingStore",
    "PaginationController",
    "QueryCache",
    "SQLSpecService",
)
