import uuid
from collections.abc import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import Response

_MAX_REQUEST_ID_LENGTH = 128


async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    # Client-supplied ids are echoed back only when they look sane; they end
    # up in security log lines.
    request_id = request.headers.get("X-Request-ID", "")
    if not request_id or len(request_id) > _MAX_REQUEST_ID_LENGTH or not request_id.isprintable():
        request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response
