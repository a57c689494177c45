"""Email OTP store interface."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from accounts.models import EmailOtp


class OtpStore(Protocol):
    async def save(self, otp: EmailOtp) -> EmailOtp:
        ...

    async def consume(self, email: str, otp_code: str, now: datetime) -> EmailOtp | None:
        """Mark a matching unused, unexpired OTP as used and return it."""
        ...

    async def find(self, email: str, otp_code: str) -> EmailOtp | None:
        ...

    async def delete_by_email(self, email: str) -> None:
        ...

    async def delete_expired(self, now: datetime) -> int:
        ...
