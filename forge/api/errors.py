"""
forge.api.errors — Response envelopes & exception handlers
===========================================================

Every response shares one envelope::

    {"success": true,  "data": {...}, "timestamp": "..."}
    {"success": false, "error": {"code": "...", "message": "..."}, "timestamp": "..."}
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from forge.exceptions import ForgeError

logger = logging.getLogger(__name__)

_HTTP_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def ok(data: Any) -> dict:
    """Wrap *data* in the success envelope."""
    return {"success": True, "data": data, "timestamp": _timestamp()}


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message},
            "timestamp": _timestamp(),
        },
    )


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ForgeError)
    async def forge_error_handler(request: Request, exc: ForgeError):
        return error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
        return error_response(exc.status_code, code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()))
        message = f"{where}: {first.get('msg', 'invalid request')}" if where else "Invalid request"
        return error_response(400, "VALIDATION_ERROR", message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")
