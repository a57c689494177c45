"""Registration session store interface."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from accounts.models import RegistrationSession, RegistrationStep


class RegistrationStore(Protocol):
    async def create(self, session: RegistrationSession) -> RegistrationSession:
        ...

    async def get_by_token(self, session_token: str) -> RegistrationSession | None:
        ...

    async def get_by_email(self, email: str) -> RegistrationSession | None:
        ...

    async def update_if_step(
        self,
        session_token: str,
        expected_step: RegistrationStep,
        updates: dict[str, Any],
    ) -> RegistrationSession | None:
        """Apply ``updates`` only while the session is still at ``expected_step``.

        Returns the updated session, or None when the session is gone or has
        already moved on.
        """
        ...

    async def delete_by_token(self, session_token: str) -> None:
        ...

    async def delete_expired(self, now: datetime) -> int:
        ...
