"""Durable last-known-good snapshot of a user's listings."""

from __future__ import annotations

import hashlib
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import msgspec
import structlog

from catalog.schemas import FallbackSnapshot

if TYPE_CHECKING:
    from collections.abc import Callable

    from catalog.schemas import ListingSummary

logger = structlog.get_logger()


class FallbackStore:
    """File-backed snapshot used only when the backing store is down.

    This is a best-effort convenience layer: no method raises. Storage
    failures are logged and reported as "nothing saved" or "nothing found".
    """

    def __init__(
        self,
        path: Path,
        stale_after: timedelta = timedelta(hours=24),
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.path = path
        self.stale_after = stale_after
        self._now = now
        self._decoder = msgspec.json.Decoder(FallbackSnapshot)

    @classmethod
    def for_user(cls, directory: Path, user_id: str, stale_after: timedelta = timedelta(hours=24)) -> FallbackStore:
        """Build a store whose file name is derived from the user id."""
        digest = hashlib.sha256(user_id.encode()).hexdigest()[:32]
        return cls(Path(directory) / f"{digest}.json", stale_after=stale_after)

    def save(self, listings: list[ListingSummary], owner: str | None = None) -> bool:
        """Persist ``listings`` as the new snapshot.

        Args:
            listings: Listings from the latest successful fetch
            owner: User the listings belong to

        Returns:
            Whether the snapshot was written
        """
        snapshot = FallbackSnapshot(listings=list(listings), saved_at=self._now(), owner=owner)
        tmp_path = self.path.with_suffix(f"{self.path.suffix}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(msgspec.json.encode(snapshot))
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, msgspec.EncodeError) as e:
            logger.warning("Failed to save fallback snapshot", path=str(self.path), error=str(e))
            return False
        logger.debug("Fallback snapshot saved", items=len(snapshot.listings))
        return True

    def load(self) -> FallbackSnapshot | None:
        """Read the snapshot, or None if there is none or it is unreadable."""
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read fallback snapshot", path=str(self.path), error=str(e))
            return None
        try:
            snapshot = self._decoder.decode(raw)
        except msgspec.DecodeError as e:
            logger.warning("Discarding unreadable fallback snapshot", path=str(self.path), error=str(e))
            return None
        logger.debug(
            "Loaded fallback snapshot",
            items=len(snapshot.listings),
            stale=self.is_stale(snapshot),
        )
        return snapshot

    def is_stale(self, snapshot: FallbackSnapshot) -> bool:
        return snapshot.is_stale(self.stale_after, now=self._now())

    def has(self) -> bool:
        return self.path.is_file()

    def clear(self) -> bool:
        """Delete the snapshot.

        Returns:
            Whether a snapshot was removed
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Failed to clear fallback snapshot", path=str(self.path), error=str(e))
            return False
        logger.info("Fallback snapshot cleared", path=str(self.path))
        return True
