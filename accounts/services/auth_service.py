"""Core authentication service."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable

from accounts.config import AccountsConfig
from accounts.exceptions import (
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidTokenError,
    InvalidUsernameError,
    UserNotFoundError,
    UsernameTakenError,
)
from accounts.interfaces.user_store import UserStore
from accounts.models import Principal, TokenBundle, User, UserSession, utcnow
from accounts.security import verify_password
from accounts.services.registration_service import (
    is_valid_username,
    normalize_email,
    profile_updates,
)
from accounts.services.session_manager import SessionManager
from accounts.services.token_service import TokenService

logger = logging.getLogger(__name__)


class AuthenticationService:
    def __init__(
        self,
        user_store: UserStore,
        session_manager: SessionManager,
        token_service: TokenService,
        config: AccountsConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._users = user_store
        self._sessions = session_manager
        self._tokens = token_service
        self._config = config or AccountsConfig()
        self._clock = clock

    async def login(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        device_info: str | None = None,
    ) -> TokenBundle:
        email = normalize_email(email)

        user = await self._users.get_by_email(email)
        if not user:
            logger.warning(f"Login failed for {email}: unknown email")
            raise InvalidCredentialsError()

        if not user.is_email_verified:
            logger.warning(f"Login refused for {email}: email not verified")
            raise EmailNotVerifiedError()

        if not verify_password(password or "", user.password_hash):
            logger.warning(f"Login failed for {email}: wrong password")
            raise InvalidCredentialsError()

        session = await self._sessions.create_session(
            user, ip_address=ip_address, device_info=device_info
        )
        access_token = self._tokens.issue_access_token(user.id, user.email, user.username)

        logger.info(f"User logged in: {user.username} ({user.id})")
        return self._bundle(user, access_token, session, "Login successful")

    async def logout(self, refresh_token: str | None) -> None:
        if not refresh_token:
            return
        await self._sessions.delete_session(refresh_token)
        logger.info("Session logged out")

    async def logout_all(self, principal: Principal) -> int:
        removed = await self._sessions.delete_all_sessions_for_user(principal.user_id)
        logger.info(f"Logged out {removed} session(s) for user {principal.user_id}")
        return removed

    async def refresh(self, refresh_token: str) -> TokenBundle:
        access_token, _, session, user = await self._sessions.rotate_on_refresh(refresh_token)
        return self._bundle(user, access_token, session, "Token refreshed successfully")

    def validate_token(self, access_token: str | None) -> Principal:
        """Check signature and expiry only; no store is consulted."""
        return self._tokens.to_principal(access_token)

    async def authenticate_request(self, access_token: str | None) -> Principal:
        """Validate the token and require the user to still hold a live session.

        Logging out everywhere therefore revokes access tokens that have not
        expired yet.
        """
        principal = self.validate_token(access_token)
        if not await self._sessions.has_active_session(principal.user_id):
            raise InvalidTokenError()
        return principal

    async def get_profile(self, principal: Principal) -> User:
        return await self.get_user_by_id(principal.user_id)

    async def get_user_by_id(self, user_id: str) -> User:
        user = await self._users.get_by_id(user_id)
        if not user:
            raise UserNotFoundError()
        return user

    async def get_user_by_username(self, username: str) -> User:
        user = await self._users.get_by_username((username or "").strip())
        if not user:
            raise UserNotFoundError()
        return user

    async def update_profile(
        self,
        principal: Principal,
        full_name: str | None = None,
        username: str | None = None,
        date_of_birth: date | None = None,
    ) -> tuple[User, dict[str, dict[str, Any]]]:
        """Apply the supplied profile fields and report what changed.

        Fields left as ``None`` are untouched. Returns the stored user and a
        ``{field: {"old": ..., "new": ...}}`` map of the fields whose value moved.
        """
        user = await self.get_user_by_id(principal.user_id)
        updates = profile_updates(
            self._clock().date(), full_name=full_name, date_of_birth=date_of_birth
        )

        if username is not None:
            username = username.strip()
            if not is_valid_username(username):
                raise InvalidUsernameError()
            owner = await self._users.get_by_username(username)
            if owner and owner.id != user.id:
                raise UsernameTakenError()
            updates["username"] = username

        changes = {
            field: {"old": getattr(user, field), "new": value}
            for field, value in updates.items()
            if getattr(user, field) != value
        }
        if not changes:
            return user, changes

        values = {field: change["new"] for field, change in changes.items()}
        values["updated_at"] = self._clock()
        updated = await self._users.update_user(user.id, values)
        if not updated:
            raise UserNotFoundError()

        logger.info(f"Profile updated for user {user.id}: {', '.join(sorted(changes))}")
        return updated, changes

    def _bundle(
        self, user: User, access_token: str, session: UserSession, message: str
    ) -> TokenBundle:
        return TokenBundle(
            access_token=access_token,
            refresh_token=session.refresh_token,
            user_id=user.id,
            email=user.email,
            username=user.username,
            full_name=user.full_name,
            expires_in=int(self._tokens.access_ttl.total_seconds()),
            refresh_expires_in=int(self._tokens.refresh_ttl.total_seconds()),
            message=message,
        )
