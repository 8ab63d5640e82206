"""Cursor-based incremental loading of listing summaries."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from catalog.lib.exceptions import StoreError
from catalog.lib.throttle import RateLimiter
from catalog.schemas import AdvanceResult, InventoryFailure

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from catalog.schemas import FilterSpec, ListingSummary

    FetchPage = Callable[[FilterSpec, int, datetime | None], Awaitable[list[ListingSummary]]]

logger = structlog.get_logger()


class PaginationController:
    """Grows a visible window over the ``created_at``-descending result set.

    The window starts at the filter's page size and grows by ``increment`` up
    to ``max_limit``. Each advance asks the store for rows strictly older than
    the cursor. The cursor and limit belong to one filter key; :meth:`reset`
    must run before a different filter is paged.
    """

    def __init__(
        self,
        fetch_page: FetchPage,
        increment: int = 6,
        max_limit: int = 50,
        debounce: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch_page = fetch_page
        self.increment = increment
        self.max_limit = max_limit
        self.limiter = RateLimiter(debounce, clock)
        self.key: str | None = None
        self.current_limit = 0
        self.cursor: datetime | None = None
        self.window: list[ListingSummary] = []
        self.end_of_data = False
        self._advancing = False
        self._generation = 0

    @property
    def exhausted(self) -> bool:
        return self.key is not None and self.current_limit >= self.max_limit

    @property
    def can_load_more(self) -> bool:
        return not self.exhausted and not self.end_of_data

    def reset(self, spec: FilterSpec) -> None:
        """Start over for ``spec``: page one, no cursor, empty window."""
        self._generation += 1
        self.key = spec.cache_key()
        self.current_limit = min(spec.page_size, self.max_limit)
        self.cursor = None
        self.window = []
        self.end_of_data = False
        self._advancing = False
        self.limiter.reset()

    def clear(self) -> None:
        """Forget the current filter entirely."""
        self._generation += 1
        self.key = None
        self.current_limit = 0
        self.cursor = None
        self.window = []
        self.end_of_data = False
        self._advancing = False
        self.limiter.reset()

    def prime(self, spec: FilterSpec, listings: list[ListingSummary], has_more: bool) -> None:
        """Seed the window with a freshly loaded first page."""
        self.reset(spec)
        self.window = list(listings)
        self.cursor = listings[-1].created_at if listings else None
        self.end_of_data = not has_more

    async def advance(
        self,
        spec: FilterSpec,
        is_alive: Callable[[], bool] | None = None,
    ) -> AdvanceResult:
        """Append the next slice of rows to the window.

        Calls inside the debounce window, or while another advance is running,
        are dropped and return a skipped no-op. Rows fetched for a view that
        went away meanwhile are returned as discarded and leave the window,
        cursor and debounce window untouched.

        Args:
            spec: Filters of the current view
            is_alive: Returns False once the requesting view is torn down

        Returns:
            The appended rows and whether more can be loaded
        """
        if spec.cache_key() != self.key:
            logger.warning("Pagination filter changed without reset", key=spec.cache_key())
            self.reset(spec)
        if not self.can_load_more:
            return AdvanceResult(exhausted=self.exhausted, end_of_data=self.end_of_data)
        if self._advancing or not self.limiter.ready():
            logger.debug("Dropping load-more request", in_flight=self._advancing)
            return AdvanceResult(skipped=True)

        if self.window:
            new_limit = min(self.current_limit + self.increment, self.max_limit)
            wanted = new_limit - self.current_limit
        else:
            new_limit = wanted = self.current_limit

        generation = self._generation
        self._advancing = True
        try:
            rows = await self._fetch_page(spec, wanted + 1, self.cursor)
        except StoreError as e:
            logger.warning("Load more failed", kind=e.kind, error=e.message)
            return AdvanceResult(error=InventoryFailure.from_error(e))
        finally:
            if generation == self._generation:
                self._advancing = False

        if generation != self._generation:
            return AdvanceResult(skipped=True)
        if is_alive is not None and not is_alive():
            logger.debug("Requesting view is gone, not extending the window", key=self.key)
            return AdvanceResult(appended=rows[:wanted], discarded=True)

        seen = {listing.id for listing in self.window}
        page = [listing for listing in rows[:wanted] if listing.id not in seen]
        self.window.extend(page)
        if page:
            self.cursor = page[-1].created_at
        self.current_limit = new_limit
        self.end_of_data = len(rows) <= wanted
        self.limiter.mark()
        logger.debug(
            "Loaded more listings",
            appended=len(page),
            limit=self.current_limit,
            end_of_data=self.end_of_data,
        )
        return AdvanceResult(appended=page, exhausted=self.exhausted, end_of_data=self.end_of_data)
