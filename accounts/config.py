"""Accounts configuration management."""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)
else:
    load_dotenv()


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


_DEFAULT_JWT_SECRET = secrets.token_urlsafe(32)


@dataclass(frozen=True)
class AccountsConfig:
    """Configuration values for registration, login and session flows.

    Defaults are read from the environment when the module is imported.
    Services accept an instance so individual values can be overridden.
    """

    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
    REFRESH_TOKEN_EXPIRE_DAYS: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
    JWT_ALGORITHM: str = os.getenv("ACCOUNTS_JWT_ALGORITHM", "HS256")
    JWT_SECRET: str = os.getenv("ACCOUNTS_JWT_SECRET", _DEFAULT_JWT_SECRET)

    OTP_LENGTH: int = int(os.getenv("OTP_LENGTH", "6"))
    OTP_EXPIRY_MINUTES: int = int(os.getenv("OTP_EXPIRY_MINUTES", "10"))
    # Development only: every issued OTP uses this code.
    FIXED_OTP: str | None = os.getenv("FIXED_OTP") or None

    REGISTRATION_SESSION_EXPIRY_MINUTES: int = int(
        os.getenv("REGISTRATION_SESSION_EXPIRY_MINUTES", "30")
    )
    MIN_PASSWORD_LENGTH: int = int(os.getenv("MIN_PASSWORD_LENGTH", "8"))

    LOGIN_RATE_LIMIT_PER_MINUTE: int = int(os.getenv("LOGIN_RATE_LIMIT_PER_MINUTE", "10"))
    REGISTER_RATE_LIMIT_PER_HOUR: int = int(os.getenv("REGISTER_RATE_LIMIT_PER_HOUR", "10"))
    RATE_LIMIT_ENABLED: bool = _parse_bool(os.getenv("RATE_LIMIT_ENABLED"), True)

    EMAIL_PROVIDER: str = os.getenv("EMAIL_PROVIDER", "resend")
    EMAIL_FROM_NAME: str = os.getenv("EMAIL_FROM_NAME", "Accounts")
    EMAIL_FROM_ADDRESS: str = os.getenv("EMAIL_FROM_ADDRESS", "no-reply@example.com")
    RESEND_API_KEY: str | None = os.getenv("RESEND_API_KEY")

    # Accounts store: "sql" (production) or "memory" (development/testing)
    ACCOUNTS_STORE: str = os.getenv("ACCOUNTS_STORE", "sql")
    CLEANUP_INTERVAL_SECONDS: int = int(os.getenv("CLEANUP_INTERVAL_SECONDS", "300"))
