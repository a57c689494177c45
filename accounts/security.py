"""Security utilities for accounts."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

import bcrypt
from jose import JWTError, jwt

from accounts.exceptions import InvalidTokenError

# bcrypt only looks at the first 72 bytes of its input.
BCRYPT_MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    try:
        password_bytes = password.encode("utf-8")
        hashed_bytes = hashed_password.encode("utf-8")
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        return False


def generate_numeric_code(length: int) -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def generate_opaque_token(nbytes: int = 32) -> str:
    return secrets.token_urlsafe(nbytes)


def encode_token(
    claims: dict[str, Any],
    secret: str,
    algorithm: str,
    issued_at: datetime,
    ttl: timedelta,
) -> str:
    payload: dict[str, Any] = dict(claims)
    payload.update(
        {
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + ttl).timestamp()),
            "jti": uuid4().hex,
        }
    )
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(
    token: str, secret: str, algorithm: str, verify_exp: bool = True
) -> dict[str, Any]:
    try:
        return jwt.decode(
            token, secret, algorithms=[algorithm], options={"verify_exp": verify_exp}
        )
    except JWTError as exc:
        raise InvalidTokenError() from exc
