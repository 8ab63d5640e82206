"""Exception handlers mapping inventory errors onto HTTP responses."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from litestar import MediaType, Response
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from catalog.lib.exceptions import ErrorKind, InventoryError
from catalog.schemas import InventoryFailure

if TYPE_CHECKING:
    from litestar import Request

logger = structlog.get_logger()

PROBLEM_JSON = "application/problem+json"

STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: HTTP_401_UNAUTHORIZED,
    ErrorKind.PERMISSION: HTTP_403_FORBIDDEN,
    ErrorKind.VALIDATION: HTTP_400_BAD_REQUEST,
}


def status_for(failure: InventoryFailure | None, default: int) -> int:
    """HTTP status for a tagged result; only access and validation errors change it."""
    if failure is None:
        return default
    return STATUS_BY_KIND.get(failure.kind, default)


def inventory_error_handler(request: Request, exc: InventoryError) -> Response:
    """Render an :class:`InventoryError` raised outside the orchestrator."""
    if exc.kind is ErrorKind.VALIDATION:
        logger.error("Rejected request", path=request.url.path, error=exc.message)
        return Response(
            content={"title": "Bad Request", "status": HTTP_400_BAD_REQUEST, "detail": exc.message},
            status_code=HTTP_400_BAD_REQUEST,
            media_type=PROBLEM_JSON,
        )
    status_code = STATUS_BY_KIND.get(exc.kind, HTTP_500_INTERNAL_SERVER_ERROR)
    return Response(
        content=InventoryFailure.from_error(exc),
        status_code=status_code,
        media_type=MediaType.JSON,
    )


exception_handlers = {InventoryError: inventory_error_handler}
