"""Structlog processor chains shared by the server and the CLI."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from litestar.types import Scope
    from structlog.typing import Processor

logger = structlog.get_logger()


def is_tty() -> bool:
    return bool(sys.stderr.isatty() or sys.stdout.isatty())


def structlog_processors(as_json: bool = True) -> list[Processor]:
    """Processors for structlog-native loggers.

    Args:
        as_json: Render events as JSON instead of the console renderer

    Returns:
        The processor chain
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if as_json:
        return [
            *processors,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    return [*processors, structlog.dev.ConsoleRenderer(colors=True)]


def stdlib_logger_processors(as_json: bool = True) -> list[Processor]:
    """Processors used by the stdlib ``ProcessorFormatter``.

    Args:
        as_json: Render events as JSON instead of the console renderer

    Returns:
        The processor chain
    """
    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if as_json:
        return [
            *processors,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    return [*processors, structlog.dev.ConsoleRenderer(colors=True)]


async def after_exception_hook_handler(exc: Exception, _scope: Scope) -> None:
    """Bind the exception type to the request log context."""
    structlog.contextvars.bind_contextvars(exc_type=type(exc).__name__)
    logger.debug("Request raised", exc_info=exc)
