from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_files() -> list[str]:
    """Load .env from backend root so JWT_* vars are always available."""
    base = Path(__file__).resolve().parents[3]  # shared/shared/auth/ → backend root
    return [str(base / ".env"), ".env"]


class AuthSettings(BaseSettings):
    """
    Signing material for the two token kinds.

    Access and refresh tokens use different secrets *and* different audiences
    so that neither can be replayed as the other.
    """

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        env_file=_env_files(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    secret: str = "change-me"
    refresh_secret: str = "change-me-refresh"
    algorithm: str = "HS256"
    issuer: str = "platform"
    audience: str = "platform-users"
    refresh_audience: str = "platform-refresh"
    expires_in: int = 604_800  # 7 days (access token)
