"""Runtime settings, read from the environment.

Token lifetimes and the guest session TTL are configuration, not constants.
Every duration must be strictly positive; a bad value fails loudly at load time
instead of producing tokens that are born dead.
"""

import os
from dataclasses import dataclass
from datetime import timedelta

_settings = None


def _duration(name: str, default_seconds: int) -> timedelta:
    raw = os.environ.get(name)
    seconds = int(raw) if raw else default_seconds
    if seconds <= 0:
        raise ValueError(f"{name} must be a positive number of seconds, got {seconds}")
    return timedelta(seconds=seconds)


def _flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    access_token_ttl: timedelta = timedelta(minutes=15)
    refresh_token_ttl: timedelta = timedelta(days=7)
    email_verify_ttl: timedelta = timedelta(hours=1)
    password_reset_ttl: timedelta = timedelta(hours=1)
    session_ttl: timedelta = timedelta(days=7)
    store_timeout: float = 5.0
    bcrypt_rounds: int = 12
    public_url: str = "http://localhost:8000"
    cookie_secure: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        store_timeout = float(os.environ.get("STOREFRONT_STORE_TIMEOUT", "5.0"))
        if store_timeout <= 0:
            raise ValueError(f"STOREFRONT_STORE_TIMEOUT must be positive, got {store_timeout}")

        bcrypt_rounds = int(os.environ.get("STOREFRONT_BCRYPT_ROUNDS", "12"))
        if not 4 <= bcrypt_rounds <= 31:
            raise ValueError(f"STOREFRONT_BCRYPT_ROUNDS must be between 4 and 31, got {bcrypt_rounds}")

        return cls(
            access_token_ttl=_duration("STOREFRONT_ACCESS_TOKEN_TTL", 15 * 60),
            refresh_token_ttl=_duration("STOREFRONT_REFRESH_TOKEN_TTL", 7 * 24 * 3600),
            email_verify_ttl=_duration("STOREFRONT_EMAIL_VERIFY_TTL", 3600),
            password_reset_ttl=_duration("STOREFRONT_PASSWORD_RESET_TTL", 3600),
            session_ttl=_duration("STOREFRONT_SESSION_TTL", 7 * 24 * 3600),
            store_timeout=store_timeout,
            bcrypt_rounds=bcrypt_rounds,
            public_url=os.environ.get("STOREFRONT_PUBLIC_URL", "http://localhost:8000").rstrip("/"),
            cookie_secure=_flag("STOREFRONT_COOKIE_SECURE", False),
        )


def get_settings() -> Settings:
    """Return the process-wide settings, loading them from the environment once."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next call re-reads the environment (useful for tests)."""
    global _settings
    _settings = None
