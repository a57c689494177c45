"""Session store interface for refresh tokens."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from accounts.models import UserSession


class SessionStore(Protocol):
    async def create_session(self, session: UserSession) -> UserSession:
        ...

    async def get_by_id(self, session_id: str) -> UserSession | None:
        ...

    async def get_active_by_refresh_token(
        self, refresh_token: str, now: datetime
    ) -> UserSession | None:
        ...

    async def list_active_for_user(self, user_id: str, now: datetime) -> list[UserSession]:
        """Active sessions, most recently used first, then most recently created."""
        ...

    async def rotate_refresh_token(
        self,
        old_refresh_token: str,
        new_refresh_token: str,
        last_used_at: datetime,
    ) -> UserSession | None:
        """Swap the refresh token if ``old_refresh_token`` is still current."""
        ...

    async def delete_by_id(self, session_id: str) -> None:
        ...

    async def delete_by_refresh_token(self, refresh_token: str) -> None:
        ...

    async def delete_all_for_user(self, user_id: str) -> int:
        ...

    async def delete_expired(self, now: datetime) -> int:
        ...
