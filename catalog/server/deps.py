"""Dependency providers for the inventory HTTP surface."""

from __future__ import annotations

from litestar import Request  # noqa: TC002
from litestar.datastructures import State  # noqa: TC002

from catalog.lib.exceptions import ErrorKind, InventoryError
from catalog.lib.settings import get_settings
from catalog.services.inventory import InventoryOrchestrator  # noqa: TC001
from catalog.services.registry import InventoryRegistry  # noqa: TC001


def provide_registry(state: State) -> InventoryRegistry:
    """Provide the per-user orchestrator registry created by the app lifespan."""
    return state.inventory


def provide_user_id(request: Request) -> str:
    """Read the signed-in user id forwarded by the auth gateway."""
    header = get_settings().app.USER_HEADER
    user_id = (request.headers.get(header) or "").strip()
    if not user_id:
        msg = f"Missing {header} header"
        raise InventoryError(msg, ErrorKind.UNAUTHENTICATED)
    return user_id


async def provide_inventory(registry: InventoryRegistry, user_id: str) -> InventoryOrchestrator:
    """Provide the orchestrator for the requesting user."""
    return await registry.get(user_id)
