"""Base class for services that run statements through a SQLSpec driver."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlspec.driver import AsyncDriverAdapterBase


class SQLSpecService:
    """Holds the session-scoped driver that concrete services query through."""

    def __init__(self, driver: AsyncDriverAdapterBase) -> None:
        self.driver = driver
