from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from litestar import Litestar
from litestar.datastructures import State
from litestar.testing import AsyncTestClient

from catalog.server.controllers import InventoryController
from catalog.server.exceptions import exception_handlers
from catalog.services.registry import InventoryRegistry

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from catalog.lib.settings import InventorySettings
    from tests.conftest import FakeStore


@pytest.fixture
async def client(app: Litestar) -> AsyncGenerator[AsyncTestClient, None]:
    """Create test client."""
    async with AsyncTestClient(app=app) as c:
        yield c


@pytest.fixture
async def registry(store: FakeStore, inventory_settings: InventorySettings) -> AsyncGenerator[InventoryRegistry, None]:
    registry = InventoryRegistry(store, inventory_settings)
    yield registry
    await registry.close()


@pytest.fixture
def app(registry: InventoryRegistry) -> Litestar:
    """Create test app instance backed by the in-memory store."""
    return Litestar(
        route_handlers=[InventoryController],
        exception_handlers=exception_handlers,  # type: ignore[arg-type]
        state=State({"inventory": registry}),
    )
