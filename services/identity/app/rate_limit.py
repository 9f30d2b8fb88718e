"""
Global slowapi rate limiter.

Imported by auth/router.py for per-endpoint limits.  Mounted onto app.state in
main.py so slowapi can find it.

Storage defaults to in-process memory; point RATE_LIMIT_STORAGE_URI at Redis
(redis://host:6379/0) when running more than one worker.
RATE_LIMIT_ENABLED=false turns every limit off (test suite, load tests).
"""
import os

from fastapi import Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from shared.middleware.error_handler import error_body

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() not in {"0", "false", "no"},
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 in the shared error envelope, keeping slowapi's Retry-After header."""
    response = JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=error_body(
            f"Too many requests: {exc.detail}. Please try again later.",
            "RATE_LIMIT_EXCEEDED",
        ),
    )
    return request.app.state.limiter._inject_headers(
        response, request.state.view_rate_limit
    )
