"""
Per-account login lockout.

After ``max_attempts`` consecutive failed credential checks the account is
locked for ``lockout_duration``.  There is no background unlock: every login
re-evaluates ``locked_until`` against the clock.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from shared.database.types import utcnow

from app.auth.models import User
from app.auth.store import IdentityStore
from app.security_log import log_security_event

logger = logging.getLogger(__name__)


def is_account_locked(user: User, now: datetime | None = None) -> bool:
    if user.locked_until is None:
        return False
    return user.locked_until > (now or utcnow())


class LockoutPolicy:
    def __init__(
        self,
        store: IdentityStore,
        *,
        max_attempts: int = 5,
        lockout_duration: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.max_attempts = max_attempts
        self.lockout_duration = lockout_duration
        self.clock = clock

    def is_locked(self, user: User, now: datetime | None = None) -> bool:
        return is_account_locked(user, now or self.clock())

    async def record_failure(self, user: User) -> User:
        """
        Count a failed attempt and lock the account once the limit is hit.

        Commits immediately: the caller raises right after, which would
        otherwise roll the counter back with the request.
        """
        locked_until = self.clock() + self.lockout_duration
        user = await self.store.increment_failed_attempts(
            user, max_attempts=self.max_attempts, locked_until=locked_until
        )
        await self.store.commit()
        if user.failed_login_attempts >= self.max_attempts:
            log_security_event(
                "account_locked",
                user_id=user.id,
                attempts=user.failed_login_attempts,
                locked_until=user.locked_until,
            )
        else:
            logger.debug(
                "Failed login %d/%d for user %s",
                user.failed_login_attempts, self.max_attempts, user.id,
            )
        return user

    async def record_success(self, user: User) -> User:
        if user.failed_login_attempts or user.locked_until is not None:
            user = await self.store.reset_failed_attempts(user)
            await self.store.commit()
        return user
