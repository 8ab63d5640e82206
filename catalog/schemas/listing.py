"""Listing-related schemas."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import msgspec

from catalog.lib.exceptions import ValidationError
from catalog.schemas.base import CamelizedBaseStruct

__all__ = (
    "DEFAULT_PAGE_SIZE",
    "FilterSpec",
    "ListingDetail",
    "ListingSummary",
)

DEFAULT_PAGE_SIZE = 12
MATCH_ALL = "all"


class FilterSpec(CamelizedBaseStruct, frozen=True, omit_defaults=True):
    """Filters for one listing query session.

    Two specs address the same cache entry iff their :meth:`cache_key` matches.
    Blank values and the ``"all"`` choice are treated as "no filter".
    """

    search_term: str | None = None
    status_filter: str | None = None
    category_filter: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if not isinstance(self.page_size, int) or isinstance(self.page_size, bool) or self.page_size < 1:
            msg = f"page_size must be a positive integer, got {self.page_size!r}"
            raise ValidationError(msg)

    @property
    def search(self) -> str | None:
        term = (self.search_term or "").strip()
        return term or None

    @property
    def status(self) -> str | None:
        return _choice(self.status_filter)

    @property
    def category(self) -> str | None:
        return _choice(self.category_filter)

    def cache_key(self) -> str:
        """Canonical sorted-key JSON of the normalized filters."""
        payload = {
            "searchTerm": self.search,
            "statusFilter": self.status,
            "categoryFilter": self.category,
            "pageSize": self.page_size,
        }
        return msgspec.json.encode(
            {key: value for key, value in payload.items() if value is not None},
            order="sorted",
        ).decode()


class ListingSummary(CamelizedBaseStruct, omit_defaults=True):
    """Minimal projection shown in list views."""

    id: str
    title: str
    price: float
    created_at: datetime
    status: str | None = None
    category: str | None = None
    condition: str | None = None
    first_photo_ref: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ListingSummary:
        """Coerce a loosely typed store row into a summary."""
        photos = _to_str_list(row.get("photos"))
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "Untitled",
            price=_to_float(row.get("price")) or 0.0,
            created_at=_to_datetime(row.get("created_at")) or datetime.now(UTC),
            status=row.get("status") or None,
            category=row.get("category") or None,
            condition=row.get("condition") or None,
            first_photo_ref=row.get("first_photo_ref") or (photos[0] if photos else None),
        )


class ListingDetail(CamelizedBaseStruct, omit_defaults=True):
    """Full projection; only the requested field groups are populated."""

    id: str
    title: str
    price: float
    created_at: datetime
    status: str | None = None
    category: str | None = None
    condition: str | None = None
    updated_at: datetime | None = None
    description: str | None = None
    photos: list[str] = msgspec.field(default_factory=list)
    measurements: dict[str, Any] = msgspec.field(default_factory=dict)
    keywords: list[str] = msgspec.field(default_factory=list)
    shipping_cost: float | None = None
    purchase_price: float | None = None
    net_profit: float | None = None
    profit_margin: float | None = None
    purchase_date: str | None = None
    is_consignment: bool = False
    consignment_percentage: float | None = None
    consignor_name: str | None = None
    consignor_contact: str | None = None
    source_type: str | None = None
    source_location: str | None = None
    cost_basis: float | None = None
    days_to_sell: int | None = None
    listed_date: str | None = None
    sold_date: str | None = None
    performance_notes: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ListingDetail:
        """Coerce a projected store row; absent columns keep their defaults."""
        days_to_sell = _to_float(row.get("days_to_sell"))
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "Untitled",
            price=_to_float(row.get("price")) or 0.0,
            created_at=_to_datetime(row.get("created_at")) or datetime.now(UTC),
            status=row.get("status") or None,
            category=row.get("category") or None,
            condition=row.get("condition") or None,
            updated_at=_to_datetime(row.get("updated_at")),
            description=row.get("description") or None,
            photos=_to_str_list(row.get("photos")),
            measurements=dict(row["measurements"]) if isinstance(row.get("measurements"), Mapping) else {},
            keywords=_to_str_list(row.get("keywords")),
            shipping_cost=_to_float(row.get("shipping_cost")),
            purchase_price=_to_float(row.get("purchase_price")),
            net_profit=_to_float(row.get("net_profit")),
            profit_margin=_to_float(row.get("profit_margin")),
            purchase_date=_to_text(row.get("purchase_date")),
            is_consignment=bool(row.get("is_consignment")),
            consignment_percentage=_to_float(row.get("consignment_percentage")),
            consignor_name=row.get("consignor_name") or None,
            consignor_contact=row.get("consignor_contact") or None,
            source_type=row.get("source_type") or None,
            source_location=row.get("source_location") or None,
            cost_basis=_to_float(row.get("cost_basis")),
            days_to_sell=int(days_to_sell) if days_to_sell is not None else None,
            listed_date=_to_text(row.get("listed_date")),
            sold_date=_to_text(row.get("sold_date")),
            performance_notes=row.get("performance_notes") or None,
        )


def _choice(value: str | None) -> str | None:
    value = (value or "").strip()
    if not value or value == MATCH_ALL:
        return None
    return value


def _to_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_str_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str) and item]


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def _to_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
