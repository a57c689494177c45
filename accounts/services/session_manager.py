"""Refresh-token session management."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from accounts.exceptions import (
    InvalidRefreshTokenError,
    NoActiveSessionError,
    SessionOwnershipError,
    UserSessionNotFoundError,
)
from accounts.interfaces.session_store import SessionStore
from accounts.interfaces.user_store import UserStore
from accounts.models import Principal, User, UserSession, utcnow
from accounts.services.token_service import TokenService

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns UserSession records and the single-active-session policy.

    A new login removes every earlier session of the same user. Refreshing
    rotates the refresh token so a stolen one can be replayed at most once.
    """

    def __init__(
        self,
        session_store: SessionStore,
        user_store: UserStore,
        token_service: TokenService,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sessions = session_store
        self._users = user_store
        self._tokens = token_service
        self._clock = clock

    async def create_session(
        self,
        user: User,
        ip_address: str | None = None,
        device_info: str | None = None,
    ) -> UserSession:
        try:
            removed = await self._sessions.delete_all_for_user(user.id)
            if removed:
                logger.info(f"Removed {removed} previous session(s) for user {user.id}")
        except Exception:
            # Login must not fail because old sessions could not be cleared.
            logger.warning(
                f"Failed to clear previous sessions for user {user.id}, continuing login",
                exc_info=True,
            )

        now = self._clock()
        session = UserSession(
            user_id=user.id,
            refresh_token=self._tokens.issue_refresh_token(),
            ip_address=ip_address,
            device_info=device_info,
            expires_at=now + self._tokens.refresh_ttl,
            created_at=now,
            last_used_at=now,
        )
        return await self._sessions.create_session(session)

    async def find_active_session(self, refresh_token: str) -> UserSession | None:
        if not refresh_token:
            return None
        return await self._sessions.get_active_by_refresh_token(refresh_token, self._clock())

    async def has_active_session(self, user_id: str) -> bool:
        return bool(await self._sessions.list_active_for_user(user_id, self._clock()))

    async def list_active_sessions(self, principal: Principal) -> list[UserSession]:
        return await self._sessions.list_active_for_user(principal.user_id, self._clock())

    async def get_current_session_refresh_token(self, access_token: str) -> str:
        user_id = self._tokens.extract_user_id(access_token)
        sessions = await self._sessions.list_active_for_user(user_id, self._clock())
        if not sessions:
            raise NoActiveSessionError()
        return sessions[0].refresh_token

    async def rotate_on_refresh(
        self, old_refresh_token: str
    ) -> tuple[str, str, UserSession, User]:
        """Exchange a live refresh token for a new access/refresh pair."""
        session = await self.find_active_session(old_refresh_token)
        if not session:
            raise InvalidRefreshTokenError()

        user = await self._users.get_by_id(session.user_id)
        if not user:
            await self._sessions.delete_by_refresh_token(old_refresh_token)
            raise InvalidRefreshTokenError()

        new_refresh_token = self._tokens.issue_refresh_token()
        rotated = await self._sessions.rotate_refresh_token(
            old_refresh_token, new_refresh_token, last_used_at=self._clock()
        )
        if not rotated:
            # Another request rotated this token first.
            raise InvalidRefreshTokenError()

        access_token = self._tokens.issue_access_token(user.id, user.email, user.username)
        logger.info(f"Rotated refresh token for session {rotated.id}")
        return access_token, new_refresh_token, rotated, user

    async def delete_session(self, refresh_token: str) -> None:
        await self._sessions.delete_by_refresh_token(refresh_token)

    async def delete_all_sessions_for_user(self, user_id: str) -> int:
        return await self._sessions.delete_all_for_user(user_id)

    async def delete_session_by_id(self, session_id: str, principal: Principal) -> None:
        session = await self._sessions.get_by_id(session_id)
        if not session:
            raise UserSessionNotFoundError()
        if session.user_id != principal.user_id:
            raise SessionOwnershipError()
        await self._sessions.delete_by_id(session_id)

    async def delete_other_sessions(
        self, principal: Principal, keep_refresh_token: str | None = None
    ) -> int:
        """Remove every active session except one; returns how many were removed.

        The kept session is ``keep_refresh_token`` when given, otherwise the
        most recently used one.
        """
        sessions = await self.list_active_sessions(principal)
        if not sessions:
            return 0
        keep = next(
            (s for s in sessions if keep_refresh_token and s.refresh_token == keep_refresh_token),
            sessions[0],
        )
        removed = 0
        for session in sessions:
            if session.id != keep.id:
                await self._sessions.delete_by_id(session.id)
                removed += 1
        return removed

    async def purge_expired(self) -> int:
        return await self._sessions.delete_expired(self._clock())
