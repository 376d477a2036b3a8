"""Exception handlers rendering every error as ``{timestamp, path, message}``."""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def error_response(
    request: Request,
    status_code: int,
    message: Any,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the error body shared by all handlers."""
    return JSONResponse(
        status_code=status_code,
        content={
            "timestamp": datetime.now(UTC).isoformat(),
            "path": request.url.path,
            "message": jsonable_encoder(message),
        },
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error envelope on the application."""

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code >= 500:
            logger.error(
                f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}"
            )
        return error_response(request, exc.status_code, exc.detail, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error_response(request, 422, exc.errors())

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
            exc_info=exc,
        )
        return error_response(request, 500, "Internal Server Error")
