"""
Audit trail for authentication and authorization decisions.

Security events (invalid tokens, lockouts, denied access) go to the
``identity.security`` logger at WARNING so they survive production log
levels; business events (registration, login, 2FA changes) go to
``identity.events`` at INFO.  Context is attached both to the message and as
``extra`` so JSON log shippers can index it.
"""
import logging
from typing import Any

security_logger = logging.getLogger("identity.security")
events_logger = logging.getLogger("identity.events")


def _render(context: dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in context.items() if value is not None)


def log_security_event(event: str, **context: Any) -> None:
    security_logger.warning(
        "%s %s", event, _render(context),
        extra={"security_event": event, "context": context},
    )


def log_business_event(event: str, **context: Any) -> None:
    events_logger.info(
        "%s %s", event, _render(context),
        extra={"business_event": event, "context": context},
    )
