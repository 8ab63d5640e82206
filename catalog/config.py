"""Application configuration management."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, cast

import structlog
from litestar.config.compression import CompressionConfig
from litestar.config.cors import CORSConfig
from litestar.exceptions import (
    NotAuthorizedException,
    PermissionDeniedException,
)
from litestar.logging.config import (
    LoggingConfig,
    StructLoggingConfig,
    default_logger_factory,
)
from litestar.middleware.logging import LoggingMiddlewareConfig
from litestar.plugins.problem_details import ProblemDetailsConfig
from litestar.plugins.structlog import StructlogConfig
from sqlspec.adapters.asyncpg import AsyncpgConfig
from sqlspec.extensions.litestar import DatabaseConfig, SQLSpec

from catalog.lib import log as log_conf
from catalog.lib.settings import get_settings

if TYPE_CHECKING:
    from catalog.lib.settings import DatabaseSettings

settings = get_settings()


compression = CompressionConfig(backend="gzip")
cors = CORSConfig(allow_origins=cast("list[str]", settings.app.ALLOWED_CORS_ORIGINS))
problem_details = ProblemDetailsConfig(enable_for_all_http_exceptions=True)


def pool_config(db_settings: DatabaseSettings) -> dict[str, Any]:
    """asyncpg pool arguments for ``db_settings``."""
    return {
        "dsn": db_settings.URL,
        "min_size": db_settings.POOL_MIN_SIZE,
        "max_size": db_settings.POOL_MAX_SIZE,
        "timeout": db_settings.POOL_TIMEOUT,
        "command_timeout": db_settings.COMMAND_TIMEOUT,
        "max_inactive_connection_lifetime": db_settings.POOL_RECYCLE,
    }


db = AsyncpgConfig(pool_config=pool_config(settings.db))

# SQLSpec database manager
sqlspec = SQLSpec(config=DatabaseConfig(commit_mode="autocommit", config=db))


def _queue_logger(level: int) -> dict[str, Any]:
    return {"propagate": False, "level": level, "handlers": ["queue_listener"]}


log = StructlogConfig(
    enable_middleware_logging=False,
    structlog_logging_config=StructLoggingConfig(
        log_exceptions="always",
        processors=log_conf.structlog_processors(as_json=not log_conf.is_tty()),  # type: ignore[has-type,unused-ignore]
        logger_factory=default_logger_factory(as_json=not log_conf.is_tty()),  # type: ignore[has-type,unused-ignore]
        disable_stack_trace={404, 401, 403, NotAuthorizedException, PermissionDeniedException},
        standard_lib_logging_config=LoggingConfig(
            log_exceptions="always",
            disable_stack_trace={404, 401, 403, NotAuthorizedException, PermissionDeniedException},
            root={"level": logging.getLevelName(settings.log.LEVEL), "handlers": ["queue_listener"]},
            formatters={
                "standard": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "processors": log_conf.stdlib_logger_processors(as_json=not log_conf.is_tty()),  # type: ignore[has-type,unused-ignore]
                },
            },
            loggers={
                "sqlspec": _queue_logger(settings.log.SQLSPEC_LEVEL),
                "_granian": _queue_logger(settings.log.ASGI_ERROR_LEVEL),
                "granian.server": _queue_logger(settings.log.ASGI_ERROR_LEVEL),
                "granian.access": _queue_logger(settings.log.ASGI_ACCESS_LEVEL),
            },
        ),
    ),
    middleware_logging_config=LoggingMiddlewareConfig(
        request_log_fields=settings.log.REQUEST_FIELDS,
        response_log_fields=settings.log.RESPONSE_FIELDS,
    ),
)


def setup_logging() -> None:
    """Configure stdlib logging and structlog outside of a running app (CLI commands)."""
    if log.structlog_logging_config.standard_lib_logging_config:
        log.structlog_logging_config.standard_lib_logging_config.configure()
    log.structlog_logging_config.configure()
    structlog.configure(
        cache_logger_on_first_use=True,
        logger_factory=log.structlog_logging_config.logger_factory,
        processors=log.structlog_logging_config.processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.log.LEVEL),
    )
