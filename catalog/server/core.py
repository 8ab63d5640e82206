"""Application core plugin."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from litestar.plugins import CLIPluginProtocol, InitPluginProtocol

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from click import Group
    from litestar import Litestar
    from litestar.config.app import AppConfig


logger = structlog.get_logger()


class ApplicationCore(InitPluginProtocol, CLIPluginProtocol):
    """Application core configuration plugin.

    This class is responsible for configuring the main Litestar application
    with routes, dependencies, and various plugins following SQLStack patterns.
    """

    __slots__ = ("app_name",)
    app_name: str

    def __init__(self) -> None:
        """Initialize the plugin."""

    def on_cli_init(self, cli: Group) -> None:
        """Configure CLI commands."""
        from catalog.cli.commands import inventory_group
        from catalog.lib.settings import get_settings

        settings = get_settings()
        self.app_name = settings.app.NAME
        cli.add_command(inventory_group)

    @asynccontextmanager
    async def server_lifespan(self, app: Litestar) -> AsyncGenerator[None, None]:
        """Manage the per-user inventory orchestrators.

        Args:
            app: The Litestar application instance.

        Yields:
            None during application runtime.
        """
        from catalog import config
        from catalog.lib.settings import get_settings
        from catalog.services.registry import InventoryRegistry
        from catalog.services.store import ListingStore

        settings = get_settings()
        store = ListingStore(config.sqlspec, config.db, settings.db.LISTING_TABLE)
        registry = InventoryRegistry(store, settings.inventory)
        app.state.inventory = registry
        logger.info("Starting inventory registry...")

        try:
            yield
        finally:
            logger.info("Shutting down inventory registry...", orchestrators=len(registry))
            await registry.close()

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Configure application for use with SQLSpec and our services.

        Args:
            app_config: The AppConfig instance.

        Returns:
            The configured app config.
        """

        from litestar.openapi import OpenAPIConfig
        from litestar.openapi.plugins import ScalarRenderPlugin

        from catalog import config
        from catalog.lib.log import after_exception_hook_handler
        from catalog.lib.settings import get_settings
        from catalog.server import plugins
        from catalog.server.controllers import InventoryController
        from catalog.server.exceptions import exception_handlers

        settings = get_settings()
        self.app_name = settings.app.NAME
        app_config.debug = settings.app.DEBUG

        # Registry lives for the whole server lifetime
        app_config.lifespan = [self.server_lifespan]

        app_config.after_exception.append(after_exception_hook_handler)

        # OpenAPI configuration
        app_config.openapi_config = OpenAPIConfig(
            title=settings.app.NAME,
            version=settings.app.VERSION,
            use_handler_docstrings=True,
            render_plugins=[ScalarRenderPlugin(version="latest")],
        )
        app_config.cors_config = config.cors
        app_config.compression_config = config.compression
        app_config.plugins.extend(
            [
                plugins.structlog,
                plugins.granian,
                plugins.sqlspec,
                plugins.problem_details,
            ],
        )

        app_config.exception_handlers.update(exception_handlers)  # type: ignore[arg-type]
        app_config.route_handlers.append(InventoryController)
        return app_config
