"""Exception handlers mapping catalog errors to HTTP responses."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from kiddos.errors import CatalogError

logger = logging.getLogger(__name__)


async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    """Render a CatalogError with its status code, error code and retry hint."""
    if exc.status_code >= 500:
        logger.error(
            f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
            extra={"error_code": exc.code},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "retryable": exc.retryable},
    )
