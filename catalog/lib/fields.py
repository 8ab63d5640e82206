"""Field groups and their column projections.

A listing view asks for a set of optional field groups; the resolver turns that
set into the smallest column list that satisfies it. The base columns are always
selected, so every projection can be coerced into a ``ListingDetail``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from catalog.lib.exceptions import ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = (
    "BASE_COLUMNS",
    "FULL_DETAIL",
    "GROUP_COLUMNS",
    "SUMMARY",
    "SUMMARY_COLUMNS",
    "FieldGroup",
    "parse_groups",
    "resolve",
    "tier_signature",
)


class FieldGroup(StrEnum):
    """Optional detail column groups a view may request."""

    IMAGE = "image"
    MEASUREMENTS = "measurements"
    KEYWORDS = "keywords"
    DESCRIPTION = "description"
    PURCHASE_PRICE = "purchasePrice"
    NET_PROFIT = "netProfit"
    PROFIT_MARGIN = "profitMargin"
    PURCHASE_DATE = "purchaseDate"
    CONSIGNMENT_STATUS = "consignmentStatus"
    SOURCE_TYPE = "sourceType"
    SOURCE_LOCATION = "sourceLocation"
    COST_BASIS = "costBasis"
    DAYS_TO_SELL = "daysToSell"
    PERFORMANCE_NOTES = "performanceNotes"


BASE_COLUMNS: tuple[str, ...] = (
    "id",
    "title",
    "price",
    "status",
    "category",
    "condition",
    "created_at",
    "updated_at",
)

GROUP_COLUMNS: dict[FieldGroup, tuple[str, ...]] = {
    FieldGroup.IMAGE: ("photos",),
    FieldGroup.MEASUREMENTS: ("measurements",),
    FieldGroup.KEYWORDS: ("keywords",),
    FieldGroup.DESCRIPTION: ("description",),
    FieldGroup.PURCHASE_PRICE: ("purchase_price",),
    FieldGroup.NET_PROFIT: ("net_profit",),
    FieldGroup.PROFIT_MARGIN: ("profit_margin",),
    FieldGroup.PURCHASE_DATE: ("purchase_date",),
    FieldGroup.CONSIGNMENT_STATUS: (
        "is_consignment",
        "consignment_percentage",
        "consignor_name",
        "consignor_contact",
    ),
    FieldGroup.SOURCE_TYPE: ("source_type",),
    FieldGroup.SOURCE_LOCATION: ("source_location",),
    FieldGroup.COST_BASIS: ("cost_basis",),
    FieldGroup.DAYS_TO_SELL: ("days_to_sell", "listed_date", "sold_date"),
    FieldGroup.PERFORMANCE_NOTES: ("performance_notes",),
}

SUMMARY: frozenset[FieldGroup] = frozenset({FieldGroup.IMAGE})
"""List rows: base columns plus photos for the thumbnail."""
FULL_DETAIL: frozenset[FieldGroup] = frozenset(FieldGroup)
"""Every optional group, used by the editor view."""


def parse_groups(groups: Iterable[str | FieldGroup]) -> frozenset[FieldGroup]:
    """Coerce group names into ``FieldGroup`` members.

    Raises:
        ValidationError: If a name is not a known field group
    """
    parsed: set[FieldGroup] = set()
    for group in groups:
        try:
            parsed.add(FieldGroup(group))
        except ValueError:
            msg = f"Unknown field group: {group!r}"
            raise ValidationError(msg) from None
    return frozenset(parsed)


def resolve(groups: Iterable[str | FieldGroup]) -> tuple[str, ...]:
    """Map requested field groups to a column projection.

    Base columns come first, then group columns in ``FieldGroup`` order. Each
    column appears exactly once.

    Args:
        groups: Requested field groups

    Returns:
        Ordered column names
    """
    requested = parse_groups(groups)
    columns = dict.fromkeys(BASE_COLUMNS)
    for group in FieldGroup:
        if group in requested:
            columns.update(dict.fromkeys(GROUP_COLUMNS[group]))
    return tuple(columns)


def tier_signature(groups: Iterable[str | FieldGroup]) -> str:
    """Canonical text form of a group set, used in detail cache keys."""
    return ",".join(sorted(str(group) for group in parse_groups(groups)))


SUMMARY_COLUMNS: tuple[str, ...] = resolve(SUMMARY)

