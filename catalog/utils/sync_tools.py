"""Helpers for calling async code from synchronous entry points."""

from __future__ import annotations

import asyncio
import functools
from typing import TYPE_CHECKING, ParamSpec, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from typing import Any

P = ParamSpec("P")
R = TypeVar("R")


def run_(async_function: Callable[P, Coroutine[Any, Any, R]]) -> Callable[P, R]:
    """Wrap an async callable so click commands can invoke it directly."""

    @functools.wraps(async_function)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        return asyncio.run(async_function(*args, **kwargs))

    return wrapper
