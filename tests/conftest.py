from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import pytest

from catalog.lib.settings import InventorySettings
from catalog.services.fallback import FallbackStore
from catalog.services.identity import Identity, IdentityService
from catalog.services.inventory import InventoryOrchestrator

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from catalog.schemas import FilterSpec

USER_ID = "user-1"
START = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def make_rows(count: int, user_id: str = USER_ID, start: datetime = START) -> list[dict[str, Any]]:
    """Listing rows, newest first, one minute apart."""
    return [
        {
            "id": f"{user_id}-listing-{i:02d}",
            "user_id": user_id,
            "title": f"Listing {i}",
            "price": 10.0 + i,
            "status": "draft" if i % 3 == 0 else "active",
            "category": "shoes" if i % 2 == 0 else "bags",
            "condition": "good",
            "created_at": start - timedelta(minutes=i),
            "updated_at": start - timedelta(minutes=i),
            "photos": [f"photo-{i}.jpg", f"photo-{i}-b.jpg"],
            "description": f"Description {i}",
            "measurements": {"width": i},
            "keywords": ["vintage", f"kw-{i}"],
            "purchase_price": 4.0 + i,
            "net_profit": 6.0,
            "profit_margin": 0.5,
            "purchase_date": "2025-12-01",
            "is_consignment": False,
            "source_type": "thrift",
            "source_location": "Downtown",
            "cost_basis": 4.0 + i,
            "days_to_sell": 3,
            "performance_notes": "steady",
        }
        for i in range(count)
    ]


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStore:
    """In-memory listing backend that records every call."""

    def __init__(self, rows: list[dict[str, Any]] | None = None) -> None:
        self.rows = list(rows or [])
        self.page_calls: list[dict[str, Any]] = []
        self.one_calls: list[dict[str, Any]] = []
        self.probe_calls = 0
        self.error: BaseException | None = None
        self.probe_error: BaseException | None = None
        self.gate: asyncio.Event | None = None

    async def fetch_page(
        self,
        user_id: str,
        spec: FilterSpec,
        *,
        columns: Sequence[str],
        limit: int,
        cursor: datetime | None = None,
    ) -> list[dict[str, Any]]:
        self.page_calls.append(
            {"user_id": user_id, "key": spec.cache_key(), "columns": tuple(columns), "limit": limit, "cursor": cursor},
        )
        await self._wait()
        if self.error is not None:
            raise self.error
        rows = [
            row
            for row in self.rows
            if row["user_id"] == user_id
            and (spec.status is None or row["status"] == spec.status)
            and (spec.category is None or row["category"] == spec.category)
            and (spec.search is None or spec.search.lower() in row["title"].lower())
            and (cursor is None or row["created_at"] < cursor)
        ]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [{column: row.get(column) for column in columns} for row in rows[:limit]]

    async def fetch_one(self, user_id: str, listing_id: str, *, columns: Sequence[str]) -> dict[str, Any] | None:
        self.one_calls.append({"user_id": user_id, "listing_id": listing_id, "columns": tuple(columns)})
        await self._wait()
        if self.error is not None:
            raise self.error
        for row in self.rows:
            if row["id"] == listing_id and row["user_id"] == user_id:
                return {column: row.get(column) for column in columns}
        return None

    async def probe(self) -> None:
        self.probe_calls += 1
        if self.probe_error is not None:
            raise self.probe_error

    async def _wait(self) -> None:
        if self.gate is not None:
            await self.gate.wait()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore(make_rows(15))


@pytest.fixture
def identity() -> IdentityService:
    service = IdentityService()
    service.init()
    service.sign_in(Identity(user_id=USER_ID, email="seller@example.com"))
    return service


@pytest.fixture
def fallback(tmp_path: Path) -> FallbackStore:
    return FallbackStore.for_user(tmp_path / "fallback", USER_ID)


@pytest.fixture
def inventory_settings(tmp_path: Path) -> InventorySettings:
    return InventorySettings(
        LIST_CACHE_TTL_SECONDS=12.0,
        FETCH_TIMEOUT_SECONDS=8.0,
        DEGRADED_FETCH_TIMEOUT_SECONDS=5.0,
        PAGE_SIZE=12,
        PAGE_INCREMENT=6,
        MAX_LIMIT=50,
        ADVANCE_DEBOUNCE_SECONDS=2.0,
        HEALTH_CHECK_INTERVAL_SECONDS=30.0,
        HEALTH_PROBE_TIMEOUT_SECONDS=1.5,
        FALLBACK_DIR=tmp_path / "fallback",
        FALLBACK_STALE_HOURS=24,
        MAX_ACTIVE_USERS=256,
        IDLE_EVICT_SECONDS=900.0,
    )


@pytest.fixture
def orchestrator(
    store: FakeStore,
    identity: IdentityService,
    fallback: FallbackStore,
    inventory_settings: InventorySettings,
    clock: FakeClock,
) -> InventoryOrchestrator:
    """Orchestrator without the background health task."""
    return InventoryOrchestrator(store, identity, fallback, settings=inventory_settings, clock=clock)
