"""Mapping of classified service errors onto HTTP responses."""

from __future__ import annotations

import logging

import psycopg
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..domain.errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.invalid_identity: status.HTTP_400_BAD_REQUEST,
    ErrorKind.validation: status.HTTP_400_BAD_REQUEST,
    ErrorKind.unauthorized: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.forbidden: status.HTTP_403_FORBIDDEN,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.slug_taken: status.HTTP_409_CONFLICT,
    ErrorKind.rate_limited: status.HTTP_429_TOO_MANY_REQUESTS,
}


def error_response(kind: ErrorKind, message: str) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if kind is ErrorKind.unauthorized else None
    return JSONResponse(
        status_code=STATUS_BY_KIND[kind],
        content={"detail": message, "type": kind.value},
        headers=headers,
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return error_response(exc.kind, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request shapes as ``validation_error`` with the offending fields."""
    fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
    message = "Invalid request: " + ", ".join(fields) if fields else "Invalid request"
    return error_response(ErrorKind.validation, message)


async def storage_error_handler(request: Request, exc: psycopg.Error) -> JSONResponse:
    """Hide storage failures behind an opaque internal error."""
    logger.error(
        "storage failure handling %s %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "type": "internal_error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(psycopg.Error, storage_error_handler)
