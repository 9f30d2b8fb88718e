"""
Uniform JSON error envelope.

Every error leaving a service has the shape the SPA expects:

    {"error": "<human message>", "code": "<SCREAMING_SNAKE_CASE>", ...extra}

Domain exceptions are ``HTTPException`` subclasses carrying ``code`` and an
optional ``extra`` dict (e.g. ``lockedUntil``); anything else is mapped from
its status code.  Unhandled exceptions become a 500 whose message is generic
unless the app was built with ``expose_errors=True`` (development only).
"""
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_REQUIRED",
    402: "PAYMENT_REQUIRED",
    403: "FORBIDDEN",
    404: "ROUTE_NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    423: "LOCKED",
    429: "RATE_LIMIT_EXCEEDED",
}


def error_body(message: str, code: str, **extra: Any) -> dict[str, Any]:
    return jsonable_encoder({"error": message, "code": code, **extra})


def _http_exception_body(exc: StarletteHTTPException) -> dict[str, Any]:
    code = getattr(exc, "code", None) or _STATUS_CODES.get(exc.status_code, "SERVER_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return error_body(message, code, **getattr(exc, "extra", {}))


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_http_exception_body(exc),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Validation failed", "VALIDATION_ERROR", details=details),
    )


async def error_envelope_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    try:
        return await call_next(request)
    except Exception as exc:
        logger.exception(
            "Unhandled exception on %s %s", request.method, request.url.path
        )
        expose = getattr(request.app.state, "expose_errors", False)
        message = str(exc) if expose and str(exc) else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(
                message,
                "INTERNAL_SERVER_ERROR",
                requestId=getattr(request.state, "request_id", None),
            ),
        )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
