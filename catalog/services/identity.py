"""Authenticated-identity accessor with an explicit lifecycle."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import msgspec
import structlog

from catalog.lib.exceptions import ErrorKind

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()


class Identity(msgspec.Struct, frozen=True):
    user_id: str
    email: str | None = None


class AuthResult(msgspec.Struct, frozen=True):
    """Tagged identity lookup; ``kind`` is set when ``ok`` is False."""

    ok: bool
    identity: Identity | None = None
    kind: ErrorKind | None = None

    @classmethod
    def unauthenticated(cls) -> AuthResult:
        return cls(ok=False, kind=ErrorKind.UNAUTHENTICATED)


class IdentityService:
    """Holds the current identity and notifies observers when it changes.

    Instances are independent; nothing is shared at module level.
    """

    def __init__(self, identity: Identity | None = None) -> None:
        self._identity = identity
        self._observers: list[Callable[[Identity | None], None]] = []
        self._active = False

    def init(self) -> None:
        self._active = True

    def dispose(self) -> None:
        self._active = False
        self._observers.clear()
        self._identity = None

    @property
    def active(self) -> bool:
        return self._active

    def current(self) -> AuthResult:
        if not self._active or self._identity is None:
            return AuthResult.unauthenticated()
        return AuthResult(ok=True, identity=self._identity)

    def sign_in(self, identity: Identity) -> None:
        self._identity = identity
        self._notify()

    def sign_out(self) -> None:
        self._identity = None
        self._notify()

    def subscribe(self, callback: Callable[[Identity | None], None]) -> Callable[[], None]:
        """Register ``callback(identity)`` for sign-in and sign-out.

        Returns:
            A function that removes the registration
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._observers):
            try:
                callback(self._identity)
            except Exception:
                logger.exception("Identity observer failed")
