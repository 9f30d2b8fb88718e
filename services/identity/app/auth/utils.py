import hashlib
import secrets
from functools import lru_cache

from passlib.context import CryptContext

from app.auth.constants import PASSWORD_MAX_BYTES

DEFAULT_BCRYPT_ROUNDS = 12


def _bcrypt_context(rounds: int) -> CryptContext:
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=rounds,
        # Refuse to hash past bcrypt's 72-byte input instead of truncating
        bcrypt__truncate_error=True,
    )


@lru_cache(maxsize=None)
def _placeholder_digest(rounds: int) -> str:
    return _bcrypt_context(rounds).hash(secrets.token_hex(16))


def _too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > PASSWORD_MAX_BYTES


class PasswordHasher:
    """
    Salted bcrypt hashing with a configurable cost factor.

    ``verify`` never raises for a bad or unknown digest; it simply returns
    False so callers can treat every mismatch the same way.  Passwords longer
    than 72 bytes are rejected outright: bcrypt would otherwise compare only
    their prefix.
    """

    def __init__(self, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        self.rounds = rounds
        self._context = _bcrypt_context(rounds)

    def hash(self, password: str) -> str:
        if not password:
            raise ValueError("password must not be empty")
        if _too_long(password):
            raise ValueError(f"password must not exceed {PASSWORD_MAX_BYTES} bytes")
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str | None) -> bool:
        if not password or not password_hash or _too_long(password):
            return False
        try:
            return self._context.verify(password, password_hash)
        except ValueError:
            # Unrecognised hash format
            return False

    def verify_placeholder(self) -> bool:
        """
        Spend one full bcrypt verification on a throwaway digest.

        Used when no account matches, so an unknown email costs as much time
        as a wrong password.  Always False.
        """
        self._context.verify("placeholder", _placeholder_digest(self.rounds))
        return False


def hash_token(token: str) -> str:
    """SHA-256 digest for one-off tokens stored at rest (reset links, backup codes)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def normalize_email(email: str) -> str:
    return email.strip().lower()
