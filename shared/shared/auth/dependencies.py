from fastapi import Request
from fastapi.security import HTTPBearer

# Missing header or a non-Bearer scheme yields None instead of a 403
http_bearer = HTTPBearer(auto_error=False)


def client_ip(request: Request) -> str | None:
    """Extract client IP from the request, honouring X-Forwarded-For."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None
