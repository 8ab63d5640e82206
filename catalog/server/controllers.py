"""HTTP controllers for inventory list and detail views."""

from __future__ import annotations

from typing import Annotated

from litestar import Controller, Response, delete, get, post
from litestar.di import Provide
from litestar.params import Parameter
from litestar.status_codes import HTTP_200_OK

from catalog.schemas import (
    DEFAULT_PAGE_SIZE,
    AdvanceResult,
    DetailResult,
    FilterSpec,
    HealthReport,
    InventoryStats,
    LoadResult,
)
from catalog.server import deps
from catalog.server.exceptions import status_for
from catalog.services.inventory import InventoryOrchestrator  # noqa: TC001

SearchParam = Annotated[str | None, Parameter(query="search", required=False)]
StatusParam = Annotated[str | None, Parameter(query="status", required=False)]
CategoryParam = Annotated[str | None, Parameter(query="category", required=False)]
PageSizeParam = Annotated[int, Parameter(query="pageSize")]


class InventoryController(Controller):
    """Listing reads for the signed-in user.

    Results are tagged: a failed load still answers 200 with ``source`` and
    ``error`` set, except for access and validation failures which also set
    the HTTP status.
    """

    path = "/api"
    dependencies = {
        "registry": Provide(deps.provide_registry, sync_to_thread=False),
        "user_id": Provide(deps.provide_user_id, sync_to_thread=False),
        "inventory": Provide(deps.provide_inventory),
    }

    @staticmethod
    def filter_spec(
        search: str | None,
        status: str | None,
        category: str | None,
        page_size: int,
    ) -> FilterSpec:
        return FilterSpec(
            search_term=search,
            status_filter=status,
            category_filter=category,
            page_size=page_size,
        )

    @get(path="/listings", name="inventory.list")
    async def list_listings(
        self,
        inventory: InventoryOrchestrator,
        search: SearchParam = None,
        status: StatusParam = None,
        category: CategoryParam = None,
        page_size: PageSizeParam = DEFAULT_PAGE_SIZE,
        force: bool = False,
    ) -> Response[LoadResult]:
        """Load the first page of listings."""
        result = await inventory.load(self.filter_spec(search, status, category, page_size), force=force)
        return Response(content=result, status_code=status_for(result.error, HTTP_200_OK))

    @post(path="/listings/more", name="inventory.more", status_code=HTTP_200_OK)
    async def load_more(
        self,
        inventory: InventoryOrchestrator,
        search: SearchParam = None,
        status: StatusParam = None,
        category: CategoryParam = None,
        page_size: PageSizeParam = DEFAULT_PAGE_SIZE,
    ) -> Response[AdvanceResult]:
        """Append the next slice to the current view."""
        result = await inventory.advance(self.filter_spec(search, status, category, page_size))
        return Response(content=result, status_code=status_for(result.error, HTTP_200_OK))

    @post(path="/listings/refresh", name="inventory.refresh", status_code=HTTP_200_OK)
    async def refresh(
        self,
        inventory: InventoryOrchestrator,
        search: SearchParam = None,
        status: StatusParam = None,
        category: CategoryParam = None,
        page_size: PageSizeParam = DEFAULT_PAGE_SIZE,
    ) -> Response[LoadResult]:
        """Leave offline mode and reload from the database."""
        result = await inventory.force_refresh(self.filter_spec(search, status, category, page_size))
        return Response(content=result, status_code=status_for(result.error, HTTP_200_OK))

    @post(path="/listings/offline", name="inventory.offline", status_code=HTTP_200_OK)
    async def go_offline(self, inventory: InventoryOrchestrator) -> LoadResult:
        """Serve the fallback snapshot until the next refresh."""
        return inventory.force_offline_mode()

    @get(path="/listings/stats", name="inventory.stats")
    async def listing_stats(self, inventory: InventoryOrchestrator) -> InventoryStats:
        """Totals over the currently loaded listings."""
        return inventory.stats()

    @get(path="/listings/{listing_id:str}/details", name="inventory.details")
    async def listing_details(
        self,
        inventory: InventoryOrchestrator,
        listing_id: str,
        groups: Annotated[str | None, Parameter(query="groups", required=False)] = None,
    ) -> Response[DetailResult]:
        """Load the requested field groups of one listing."""
        requested = [group.strip() for group in (groups or "").split(",") if group.strip()]
        result = await inventory.load_detail(listing_id, requested)
        return Response(content=result, status_code=status_for(result.error, HTTP_200_OK))

    @get(path="/health", name="inventory.health")
    async def health(self, inventory: InventoryOrchestrator) -> HealthReport:
        """Database health as seen by this user's orchestrator."""
        return inventory.health_report()

    @delete(path="/fallback", name="inventory.fallback.clear")
    async def clear_fallback(self, inventory: InventoryOrchestrator) -> None:
        """Delete the user's offline snapshot."""
        inventory.fallback.clear()
