import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from slowapi.errors import RateLimitExceeded

from app.auth.router import router as auth_router
from app.config import Settings, get_settings
from app.database import init_db
from app.rate_limit import limiter, rate_limit_exceeded_handler
from shared.middleware.error_handler import (
    error_envelope_middleware,
    register_exception_handlers,
)
from shared.middleware.request_id import request_id_middleware


# ── OpenAPI metadata ──────────────────────────────────────────────────────────

_DESCRIPTION = """
## Identity Service

Authentication and authorization core of the care platform:

* **Authentication**: email/password login, stateless JWT access + refresh
  tokens, per-account lockout after repeated failures.
* **Two-factor**: TOTP (RFC 6238) enrolment with single-use backup codes.
* **Registration**: self sign-up for patients and clinical staff; patients get
  a patient record on creation.
* **Password reset**: 1-hour link token; **email verification**: 24-hour token.
* **Access control**: role, facility, patient-ownership and subscription
  guards (`app.access.dependencies`) used by the business services.

### Authentication
All protected endpoints require:
```
Authorization: Bearer <access_token>
```

### Error shape
All errors return a consistent JSON envelope:
```json
{ "error": "Human-readable message", "code": "MACHINE_READABLE_CODE" }
```
Some codes carry extra fields (`lockedUntil`, `required`, `current`,
`expiresAt`, `subscriptionStatus`). Validation errors are `400
VALIDATION_ERROR` with a `details` list of `{field, message}`.

### Rate limits
`429 RATE_LIMIT_EXCEEDED` is returned when a rate limit is exceeded, with a
`Retry-After` header.
"""

_TAGS_METADATA = [
    {
        "name": "auth",
        "description": (
            "Registration, login (with optional TOTP / backup code), token refresh, "
            "logout, password reset, email verification, profile, 2FA management "
            "and account deletion."
        ),
    },
]


# ── Health schema ─────────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    service: str


# ── App factory ───────────────────────────────────────────────────────────────

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(settings.identity_database_url, pool_timeout=settings.db_pool_timeout)
        yield

    app = FastAPI(
        title="Identity Service",
        version="1.0.0",
        description=_DESCRIPTION,
        openapi_tags=_TAGS_METADATA,
        license_info={"name": "Proprietary"},
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Attach rate limiter state before middleware
    app.state.limiter = limiter
    # Exception text reaches 500 responses only in development
    app.state.expose_errors = settings.is_development
    register_exception_handlers(app)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Middleware is applied in reverse-registration order (last added = outermost).
    # CORS must be outermost so ALL responses (including 429s) carry CORS headers.
    app.middleware("http")(error_envelope_middleware)
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    app.include_router(auth_router, prefix="/api/v1")

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", service="identity")

    return app


app = create_app()
