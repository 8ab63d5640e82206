"""Per-user orchestrator registry for the HTTP surface."""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog

from catalog.services.fallback import FallbackStore
from catalog.services.identity import Identity, IdentityService
from catalog.services.inventory import InventoryOrchestrator, build_health_monitor

if TYPE_CHECKING:
    from collections.abc import Callable

    from catalog.lib.settings import InventorySettings
    from catalog.services.store import ListingBackend

logger = structlog.get_logger()


@dataclass
class _Slot:
    orchestrator: InventoryOrchestrator
    last_used: float


class InventoryRegistry:
    """Creates one orchestrator per signed-in user and reuses it.

    Each orchestrator gets its own identity service and fallback file, so no
    cache or snapshot is shared between users. All of them share one health
    monitor, since they all read the same backing store. Orchestrators idle
    for ``IDLE_EVICT_SECONDS``, or beyond ``MAX_ACTIVE_USERS`` in least
    recently used order, are disposed.
    """

    def __init__(
        self,
        store: ListingBackend,
        settings: InventorySettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.settings = settings
        self.health = build_health_monitor(store, settings)
        self._clock = clock
        self._slots: OrderedDict[str, _Slot] = OrderedDict()
        self._lock = asyncio.Lock()

    async def get(self, user_id: str) -> InventoryOrchestrator:
        """Get or create the orchestrator for ``user_id``."""
        async with self._lock:
            now = self._clock()
            slot = self._slots.get(user_id)
            if slot is None:
                slot = _Slot(orchestrator=await self._create(user_id), last_used=now)
                self._slots[user_id] = slot
            else:
                slot.last_used = now
                self._slots.move_to_end(user_id)
            await self._evict(now)
            return slot.orchestrator

    async def _create(self, user_id: str) -> InventoryOrchestrator:
        self.health.start()
        identity = IdentityService()
        identity.init()
        identity.sign_in(Identity(user_id=user_id))
        fallback = FallbackStore.for_user(
            self.settings.FALLBACK_DIR,
            user_id,
            stale_after=timedelta(hours=self.settings.FALLBACK_STALE_HOURS),
        )
        orchestrator = InventoryOrchestrator(
            self.store,
            identity,
            fallback,
            settings=self.settings,
            clock=self._clock,
            health=self.health,
        )
        await orchestrator.init()
        logger.debug("Created inventory orchestrator", orchestrators=len(self._slots) + 1)
        return orchestrator

    async def _evict(self, now: float) -> None:
        # The most recently used entry is never evicted.
        while len(self._slots) > 1:
            user_id, slot = next(iter(self._slots.items()))
            idle = now - slot.last_used
            if len(self._slots) <= self.settings.MAX_ACTIVE_USERS and idle < self.settings.IDLE_EVICT_SECONDS:
                break
            del self._slots[user_id]
            logger.debug("Evicting inventory orchestrator", idle_seconds=round(idle, 1), orchestrators=len(self._slots))
            await self._dispose(slot.orchestrator)

    @staticmethod
    async def _dispose(orchestrator: InventoryOrchestrator) -> None:
        await orchestrator.dispose()
        orchestrator.identity.dispose()

    async def close(self) -> None:
        """Dispose every orchestrator and stop the shared health monitor."""
        slots = list(self._slots.values())
        self._slots.clear()
        for slot in slots:
            await self._dispose(slot.orchestrator)
        await self.health.stop()

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._slots

    def __len__(self) -> int:
        return len(self._slots)
