"""Periodic removal of expired accounts records."""

from __future__ import annotations

import asyncio
import logging

from accounts.services.otp_service import OtpIssuer
from accounts.services.registration_service import RegistrationService
from accounts.services.session_manager import SessionManager

logger = logging.getLogger(__name__)


class CleanupService:
    def __init__(
        self,
        registration_service: RegistrationService,
        otp_issuer: OtpIssuer,
        session_manager: SessionManager,
    ) -> None:
        self._registrations = registration_service
        self._otp = otp_issuer
        self._sessions = session_manager

    async def run_once(self) -> dict[str, int]:
        removed = {
            "registration_sessions": await self._registrations.purge_expired(),
            "email_otps": await self._otp.purge_expired(),
            "user_sessions": await self._sessions.purge_expired(),
        }
        if any(removed.values()):
            logger.info(f"Cleanup removed expired records: {removed}")
        return removed

    async def run_forever(self, interval_seconds: int) -> None:
        """Run ``run_once`` every ``interval_seconds`` until cancelled."""
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Cleanup run failed")
            await asyncio.sleep(interval_seconds)
