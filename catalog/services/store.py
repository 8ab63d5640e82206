"""Backing-store access for listing rows."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from catalog.lib.exceptions import ErrorKind, StoreError, ValidationError
from catalog.lib.fields import BASE_COLUMNS, GROUP_COLUMNS
from catalog.services.base import SQLSpecService

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator, Sequence
    from datetime import datetime

    from sqlspec.adapters.asyncpg import AsyncpgConfig
    from sqlspec.driver import AsyncDriverAdapterBase
    from sqlspec.extensions.litestar import SQLSpec

    from catalog.schemas import FilterSpec

logger = structlog.get_logger()

KNOWN_COLUMNS = frozenset(BASE_COLUMNS).union(*GROUP_COLUMNS.values(), {"user_id", "shipping_cost"})
IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Postgres SQLSTATE codes, see https://www.postgresql.org/docs/current/errcodes-appendix.html
TIMEOUT_STATES = frozenset({"57014"})
PERMISSION_STATES = frozenset({"42501", "28000", "28P01"})
NETWORK_STATE_CLASSES = ("08", "53", "57P", "58")
VALIDATION_STATE_CLASSES = ("22", "42")


class ListingBackend(Protocol):
    """What the orchestrator needs from a backing store."""

    async def fetch_page(
        self,
        user_id: str,
        spec: FilterSpec,
        *,
        columns: Sequence[str],
        limit: int,
        cursor: datetime | None = None,
    ) -> list[dict[str, Any]]: ...

    async def fetch_one(self, user_id: str, listing_id: str, *, columns: Sequence[str]) -> dict[str, Any] | None: ...

    async def probe(self) -> None: ...


def classify_error(exc: BaseException) -> StoreError:
    """Map a driver exception onto the store error taxonomy.

    Walks the ``__cause__``/``__context__`` chain so errors wrapped by SQLSpec
    are classified by the underlying asyncpg exception.
    """
    for err in _exception_chain(exc):
        if isinstance(err, StoreError):
            return err
        if isinstance(err, ValidationError):
            return StoreError(err.message, ErrorKind.VALIDATION)
        if isinstance(err, TimeoutError):
            return StoreError("Backing store timed out", ErrorKind.TIMEOUT)
        sqlstate = getattr(err, "sqlstate", None)
        if isinstance(sqlstate, str):
            if sqlstate in TIMEOUT_STATES:
                return StoreError(str(err) or "Statement timeout", ErrorKind.TIMEOUT)
            if sqlstate in PERMISSION_STATES:
                return StoreError(str(err) or "Permission denied", ErrorKind.PERMISSION)
            if sqlstate.startswith(NETWORK_STATE_CLASSES):
                return StoreError(str(err) or "Backing store unavailable", ErrorKind.NETWORK)
            if sqlstate.startswith(VALIDATION_STATE_CLASSES):
                return StoreError(str(err) or "Invalid query", ErrorKind.VALIDATION)
        if isinstance(err, (ConnectionError, OSError)):
            return StoreError(str(err) or "Backing store unreachable", ErrorKind.NETWORK)
    return StoreError(str(exc) or type(exc).__name__, ErrorKind.UNKNOWN)


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _projection(columns: Sequence[str]) -> str:
    unknown = [column for column in columns if column not in KNOWN_COLUMNS]
    if unknown or not columns:
        msg = f"Invalid column projection: {unknown or 'empty'}"
        raise ValidationError(msg)
    return ", ".join(columns)


class ListingRepository(SQLSpecService):
    """Session-scoped listing queries."""

    def __init__(self, driver: AsyncDriverAdapterBase, table: str = "listings") -> None:
        super().__init__(driver)
        if not IDENTIFIER.match(table):
            msg = f"Invalid table name: {table!r}"
            raise ValidationError(msg)
        self.table = table

    async def select_page(
        self,
        user_id: str,
        spec: FilterSpec,
        columns: Sequence[str],
        limit: int,
        cursor: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Select one page of listings, newest first.

        Args:
            user_id: Owner of the listings
            spec: Status, category and title filters
            columns: Column projection
            limit: Maximum number of rows
            cursor: Only rows created strictly before this instant

        Returns:
            Raw rows
        """
        clauses = ["user_id = :user_id"]
        params: dict[str, Any] = {"user_id": user_id, "limit_count": limit}
        if spec.status is not None:
            clauses.append("status = :status")
            params["status"] = spec.status
        if spec.category is not None:
            clauses.append("category = :category")
            params["category"] = spec.category
        if spec.search is not None:
            clauses.append("title ILIKE :search")
            params["search"] = f"%{spec.search}%"
        if cursor is not None:
            clauses.append("created_at < :cursor")
            params["cursor"] = cursor

        return await self.driver.select(
            f"""
            SELECT {_projection(columns)}
            FROM {self.table}
            WHERE {" AND ".join(clauses)}
            ORDER BY created_at DESC
            LIMIT :limit_count
            """,  # noqa: S608
            **params,
        )

    async def select_one(self, user_id: str, listing_id: str, columns: Sequence[str]) -> dict[str, Any] | None:
        return await self.driver.select_one_or_none(
            f"""
            SELECT {_projection(columns)}
            FROM {self.table}
            WHERE id = :listing_id
              AND user_id = :user_id
            """,  # noqa: S608
            listing_id=listing_id,
            user_id=user_id,
        )

    async def ping(self) -> None:
        await self.driver.select_value_or_none(f"SELECT id FROM {self.table} LIMIT 1")  # noqa: S608


class ListingStore:
    """Long-lived gateway that opens a session per call and classifies failures.

    Every public method raises :class:`StoreError` on failure; cancellation
    propagates unchanged.
    """

    def __init__(self, manager: SQLSpec, config: AsyncpgConfig, table: str = "listings") -> None:
        self._manager = manager
        self._config = config
        self.table = table

    async def fetch_page(
        self,
        user_id: str,
        spec: FilterSpec,
        *,
        columns: Sequence[str],
        limit: int,
        cursor: datetime | None = None,
    ) -> list[dict[str, Any]]:
        return await self._run(lambda repo: repo.select_page(user_id, spec, columns, limit, cursor))

    async def fetch_one(self, user_id: str, listing_id: str, *, columns: Sequence[str]) -> dict[str, Any] | None:
        return await self._run(lambda repo: repo.select_one(user_id, listing_id, columns))

    async def probe(self) -> None:
        await self._run(lambda repo: repo.ping())

    async def _run(self, operation: Callable[[ListingRepository], Awaitable[Any]]) -> Any:
        try:
            async with self._manager.provide_session(self._config) as session:
                return await operation(ListingRepository(session, self.table))
        except Exception as e:
            error = classify_error(e)
            logger.debug("Listing store call failed", kind=error.kind, error=error.message)
            raise error from e
