"""
Time-based one-time passwords (RFC 6238) and backup recovery codes.

The secret is shared with the user's authenticator app through an
``otpauth://totp/...`` provisioning URI (rendered as a QR code by the SPA).
Verification accepts the current 30-second step and ``window`` steps either
side to absorb clock drift between server and phone.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import struct
import time
from urllib.parse import quote, urlencode

from app.auth.constants import (
    BACKUP_CODE_BYTES,
    BACKUP_CODE_COUNT,
    TOTP_DIGITS,
    TOTP_PERIOD,
    TOTP_SECRET_BYTES,
    TOTP_WINDOW,
)
from app.auth.utils import hash_token


class TOTPGenerator:
    def __init__(self, digits: int = TOTP_DIGITS, period: int = TOTP_PERIOD) -> None:
        self.digits = digits
        self.period = period

    def generate_secret(self) -> str:
        """Random base32 secret, padding stripped (authenticator apps reject '=')."""
        raw = secrets.token_bytes(TOTP_SECRET_BYTES)
        return base64.b32encode(raw).decode("ascii").rstrip("=")

    def provisioning_uri(self, secret: str, account: str, issuer: str) -> str:
        label = quote(f"{issuer}:{account}")
        query = urlencode(
            {
                "secret": secret,
                "issuer": issuer,
                "algorithm": "SHA1",
                "digits": self.digits,
                "period": self.period,
            },
            quote_via=quote,
        )
        return f"otpauth://totp/{label}?{query}"

    def _counter(self, timestamp: float | None) -> int:
        if timestamp is None:
            timestamp = time.time()
        return int(timestamp // self.period)

    def _hotp(self, secret: str, counter: int) -> str:
        # RFC 4226 dynamic truncation over HMAC-SHA1
        key = base64.b32decode(secret.upper() + "=" * (-len(secret) % 8))
        digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()
        offset = digest[-1] & 0x0F
        value = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
        return str(value % 10**self.digits).zfill(self.digits)

    def generate(self, secret: str, timestamp: float | None = None) -> str:
        return self._hotp(secret, self._counter(timestamp))

    def verify(
        self,
        secret: str | None,
        code: str | None,
        timestamp: float | None = None,
        window: int = TOTP_WINDOW,
    ) -> bool:
        if not secret or not code:
            return False
        code = code.replace(" ", "")
        if len(code) != self.digits or not code.isdigit():
            return False
        try:
            counter = self._counter(timestamp)
            candidates = [
                self._hotp(secret, counter + step) for step in range(-window, window + 1)
            ]
        except (ValueError, TypeError):
            # Secret is not valid base32
            return False
        # Compare against every step so timing does not reveal which one matched
        matched = False
        for expected in candidates:
            matched |= hmac.compare_digest(code, expected)
        return matched


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> list[str]:
    return [secrets.token_hex(BACKUP_CODE_BYTES).upper() for _ in range(count)]


def hash_backup_code(code: str) -> str:
    return hash_token(code.replace("-", "").replace(" ", "").upper())
