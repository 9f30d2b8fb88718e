import enum

# ── Two-factor (RFC 6238 defaults understood by every authenticator app) ────
TOTP_DIGITS: int = 6
TOTP_PERIOD: int = 30              # seconds per time step
TOTP_WINDOW: int = 2               # ±2 steps ≈ ±60 s of clock skew
TOTP_SECRET_BYTES: int = 20        # 160 bits
BACKUP_CODE_COUNT: int = 10
BACKUP_CODE_BYTES: int = 4         # 8 hex characters

# ── One-off link tokens ───────────────────────────────────────────────────────
LINK_TOKEN_BYTES: int = 32

# ── Password policy (mirrored in the SPA sign-up form) ───────────────────────
PASSWORD_MIN_LENGTH: int = 8
PASSWORD_MAX_LENGTH: int = 128
# bcrypt reads at most 72 bytes; anything past that would be silently ignored
PASSWORD_MAX_BYTES: int = 72
PASSWORD_SPECIAL_CHARS: str = "@$!%*?&"


class Gender(str, enum.Enum):
    MALE = "M"
    FEMALE = "F"
    OTHER = "Other"
