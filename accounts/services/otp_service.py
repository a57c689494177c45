"""One-time email verification codes."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from accounts.config import AccountsConfig
from accounts.interfaces.otp_store import OtpStore
from accounts.models import EmailOtp, utcnow
from accounts.security import generate_numeric_code

logger = logging.getLogger(__name__)


class OtpIssuer:
    """Issues and validates numeric codes bound to an email address.

    Issuing a code never invalidates earlier ones; callers that want a
    resend to supersede previous codes call ``revoke`` first.
    """

    def __init__(
        self,
        otp_store: OtpStore,
        config: AccountsConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._otps = otp_store
        self._config = config or AccountsConfig()
        self._clock = clock

    def generate(self, length: int | None = None) -> str:
        if self._config.FIXED_OTP:
            return self._config.FIXED_OTP
        return generate_numeric_code(length or self._config.OTP_LENGTH)

    async def issue(self, email: str) -> EmailOtp:
        now = self._clock()
        otp = EmailOtp(
            email=email,
            otp_code=self.generate(),
            expiry=now + timedelta(minutes=self._config.OTP_EXPIRY_MINUTES),
            is_used=False,
            created_at=now,
        )
        return await self._otps.save(otp)

    async def validate(self, email: str, code: str) -> EmailOtp | None:
        """Consume a matching unused, unexpired code.

        Wrong, expired and already-used codes all return None so callers
        cannot tell them apart.
        """
        if not code:
            return None
        consumed = await self._otps.consume(email, code.strip(), self._clock())
        if consumed:
            return consumed

        previous = await self._otps.find(email, code.strip())
        if previous and previous.is_used:
            logger.warning(f"Replay of an already used OTP for {email}")
        return None

    async def revoke(self, email: str) -> None:
        await self._otps.delete_by_email(email)

    async def purge_expired(self) -> int:
        return await self._otps.delete_expired(self._clock())
