"""
BlockServed Error Handling
Exception taxonomy for the staging API and the handlers that keep every
response body JSON, including on crash paths.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class StagingError(Exception):
    """Base error for staging operations. Rendered as JSON."""

    status_code: int = 500

    def __init__(self, message: str, *, transaction_id: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.transaction_id = transaction_id
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.message}
        if self.field:
            body["field"] = self.field
        if self.transaction_id:
            body["transactionId"] = self.transaction_id
        return body


class ValidationError(StagingError):
    """Missing or malformed input. Raised before any database work."""

    status_code = 400


class NotFoundOrExpiredError(StagingError):
    """
    The staged transaction does not exist, has expired, or (for execute)
    was already executed. None of these is retryable with the same request.
    """

    status_code = 404


class StorageError(StagingError):
    """Filesystem failure in the staging area."""

    status_code = 500


def error_response(exc: StagingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def staging_error_handler(request: Request, exc: StagingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "form", "query", "path"))
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": first.get("msg", "Invalid request"),
            "field": field or None,
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc) or exc.__class__.__name__})


def setup_exception_handlers(app: FastAPI) -> None:
    """Register JSON error handlers on the app."""
    app.add_exception_handler(StagingError, staging_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
