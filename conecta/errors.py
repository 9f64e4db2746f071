"""
Error taxonomy and the exception handlers that turn errors into JSON.

Route handlers raise these errors instead of building error responses; the
handlers registered by ``install_exception_handlers`` pick the status code
and log the original error.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ApiError):
    status_code = 400
    default_message = "Invalid request data"


class NotFoundError(ApiError):
    status_code = 404
    default_message = "Resource not found"


class AuthenticationError(ApiError):
    status_code = 401
    default_message = "Not authorized"


class AuthorizationError(ApiError):
    status_code = 403
    default_message = "Forbidden"


class ConflictError(ApiError):
    # Unique-constraint violations are reported as bad requests to match the
    # responses the mobile client already handles.
    status_code = 400
    default_message = "Resource already exists"


def format_validation_errors(exc) -> str:
    """Flatten pydantic errors (request or model validation) into one line."""
    messages = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = ".".join(location)
        text = error.get("msg", "Invalid value")
        messages.append(f"{field}: {text}" if field else text)
    return "; ".join(messages) or "Invalid request data"


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "%s %s -> %d %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    message = format_validation_errors(exc)
    logger.info("%s %s -> 400 %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"message": message})


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Not Found - {request.url.path}"
    else:
        message = str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": message},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
