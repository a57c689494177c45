"""User store interface."""

from __future__ import annotations

from typing import Any, Protocol

from accounts.models import User


class UserStore(Protocol):
    async def get_by_id(self, user_id: str) -> User | None:
        ...

    async def get_by_email(self, email: str) -> User | None:
        ...

    async def get_by_username(self, username: str) -> User | None:
        ...

    async def exists_by_email(self, email: str) -> bool:
        ...

    async def exists_by_username(self, username: str) -> bool:
        ...

    async def create_user(self, user: User) -> User:
        """Raises EmailAlreadyRegisteredError or UsernameTakenError on a duplicate."""
        ...

    async def update_user(self, user_id: str, updates: dict[str, Any]) -> User | None:
        """Returns None for an unknown id; raises UsernameTakenError on a duplicate."""
        ...
