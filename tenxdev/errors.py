"""
Error types and the JSON error envelope used by every route.

Failures render as `{"success": false, "error": <message>, "statusCode": <code>}`.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenxdev.types import ModelListResult, ModelResult

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An expected failure with an HTTP status and a user-facing message."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    @classmethod
    def from_result(cls, result: ModelResult | ModelListResult) -> "ApiError":
        return cls(result.status_code or 500, result.error or "Request failed")


def error_body(status_code: int, message: str) -> dict:
    return {"success": False, "error": message, "statusCode": status_code}


def register_error_handlers(app: FastAPI) -> None:
    """Install handlers so every failure uses the same envelope."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s", request.method, request.url.path, exc.message
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, exc.message),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        problems = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"] if part != "body")
            problems.append(f"{location}: {error['msg']}" if location else error["msg"])
        logger.warning(
            "Validation error on %s %s: %s", request.method, request.url.path, problems
        )
        return JSONResponse(
            status_code=422,
            content=error_body(422, "; ".join(problems) or "Invalid request"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = str(exc.detail) if exc.detail else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(500, "Internal server error"),
        )


def unwrap(result):
    """Return a successful model result or raise its failure as ApiError."""
    if not result.success:
        raise ApiError.from_result(result)
    return result
