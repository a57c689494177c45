"""Access and refresh token issuance."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable

from accounts.config import AccountsConfig
from accounts.exceptions import InvalidTokenError
from accounts.models import Principal, utcnow
from accounts.security import decode_token, encode_token, generate_opaque_token

REFRESH_TOKEN_BYTES = 64


class TokenService:
    """Signs access tokens and mints opaque refresh tokens.

    Access tokens are validated purely by signature and expiry. Refresh
    tokens carry no structure; they are secrets looked up in the session store.
    """

    def __init__(
        self,
        config: AccountsConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or AccountsConfig()
        self._clock = clock

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(minutes=self._config.ACCESS_TOKEN_EXPIRE_MINUTES)

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(days=self._config.REFRESH_TOKEN_EXPIRE_DAYS)

    def issue_access_token(self, user_id: str, email: str, username: str | None) -> str:
        claims = {
            "sub": user_id,
            "userId": user_id,
            "email": email,
            "username": username,
            "type": "access",
        }
        return encode_token(
            claims,
            self._config.JWT_SECRET,
            self._config.JWT_ALGORITHM,
            issued_at=self._clock(),
            ttl=self.access_ttl,
        )

    def issue_refresh_token(self) -> str:
        return generate_opaque_token(REFRESH_TOKEN_BYTES)

    def validate_access_token(self, token: str | None) -> dict[str, Any]:
        """Return the token's claims or raise InvalidTokenError.

        Malformed, expired, wrongly signed and non-access tokens all fail
        the same way.
        """
        if not token or not isinstance(token, str):
            raise InvalidTokenError()
        # Expiry is checked against the service clock, not the wall clock.
        claims = decode_token(
            token, self._config.JWT_SECRET, self._config.JWT_ALGORITHM, verify_exp=False
        )
        if claims.get("type") != "access" or not claims.get("sub"):
            raise InvalidTokenError()
        expires_at = claims.get("exp")
        if not isinstance(expires_at, (int, float)) or self._clock().timestamp() >= expires_at:
            raise InvalidTokenError()
        return claims

    def extract_user_id(self, token: str) -> str:
        claims = self.validate_access_token(token)
        return str(claims.get("userId") or claims["sub"])

    def extract_email(self, token: str) -> str:
        return self._required_claim(token, "email")

    def extract_username(self, token: str) -> str:
        return self._required_claim(token, "username")

    def to_principal(self, token: str) -> Principal:
        claims = self.validate_access_token(token)
        if not claims.get("email"):
            raise InvalidTokenError()
        return Principal(
            user_id=str(claims.get("userId") or claims["sub"]),
            email=claims["email"],
            username=claims.get("username"),
        )

    def _required_claim(self, token: str, name: str) -> str:
        value = self.validate_access_token(token).get(name)
        if not value:
            raise InvalidTokenError()
        return str(value)
