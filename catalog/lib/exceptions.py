"""Error taxonomy for the inventory read path."""

from __future__ import annotations

from enum import StrEnum

__all__ = (
    "RECOVERABLE_KINDS",
    "ErrorKind",
    "InventoryError",
    "StoreError",
    "ValidationError",
)


class ErrorKind(StrEnum):
    """Classified failure kinds."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    PERMISSION = "permission"
    UNAUTHENTICATED = "unauthenticated"
    VALIDATION = "validation"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @property
    def is_infrastructure(self) -> bool:
        """Whether stale data may stand in for a failure of this kind."""
        return self in {ErrorKind.TIMEOUT, ErrorKind.NETWORK}

    @property
    def is_access(self) -> bool:
        return self in {ErrorKind.PERMISSION, ErrorKind.UNAUTHENTICATED}


RECOVERABLE_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.NETWORK, ErrorKind.UNKNOWN, ErrorKind.CANCELLED})


class InventoryError(Exception):
    """Base exception for the inventory package."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class StoreError(InventoryError):
    """A backing-store call failed; ``kind`` says how."""


class ValidationError(InventoryError):
    """Malformed filter or projection. Indicates a programming error."""

    kind = ErrorKind.VALIDATION
