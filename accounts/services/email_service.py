"""Email delivery service."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable

import httpx

from accounts.config import AccountsConfig

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailService:
    def __init__(self, config: AccountsConfig | None = None) -> None:
        self._config = config or AccountsConfig()

    async def send_otp_email(self, email: str, otp: str) -> bool:
        return await self._send(
            email,
            subject="Your email verification code",
            html=(
                f"<p>Your verification code is <strong>{otp}</strong>.</p>"
                f"<p>It expires in {self._config.OTP_EXPIRY_MINUTES} minutes.</p>"
            ),
        )

    async def send_welcome_email(self, email: str, username: str) -> bool:
        return await self._send(
            email,
            subject="Welcome aboard",
            html=f"<p>Hi @{username}, your account is ready.</p>",
        )

    async def _send(self, email: str, subject: str, html: str) -> bool:
        if self._config.EMAIL_PROVIDER != "resend":
            logger.warning(f"Unsupported email provider: {self._config.EMAIL_PROVIDER}")
            return False
        if not self._config.RESEND_API_KEY:
            logger.warning("RESEND_API_KEY not set, email not sent")
            return False

        payload = {
            "from": f"{self._config.EMAIL_FROM_NAME} <{self._config.EMAIL_FROM_ADDRESS}>",
            "to": [email],
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self._config.RESEND_API_KEY}"}

        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(RESEND_API_URL, headers=headers, json=payload)
        if response.status_code != 200:
            logger.error(f"[Resend] Error sending to {email}: HTTP {response.status_code}")
            return False
        logger.info(f"[Resend] Email sent to {email}")
        return True


class EmailDispatcher:
    """Sends emails in the background so requests never wait on delivery.

    A failed delivery is logged and otherwise ignored; whatever triggered
    the email has already been committed.
    """

    def __init__(self, email_service: EmailService) -> None:
        self._email_service = email_service
        self._pending: set[asyncio.Task] = set()

    def dispatch_otp(self, email: str, otp: str) -> None:
        self._schedule(self._email_service.send_otp_email(email, otp), email)

    def dispatch_welcome(self, email: str, username: str) -> None:
        self._schedule(self._email_service.send_welcome_email(email, username), email)

    async def flush(self) -> None:
        """Wait for every delivery scheduled so far."""
        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _schedule(self, send: Awaitable[bool], email: str) -> None:
        task = asyncio.create_task(self._deliver(send, email))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, send: Awaitable[bool], email: str) -> None:
        try:
            if not await send:
                logger.warning(f"Email to {email} was not delivered")
        except Exception:
            logger.exception(f"Email delivery to {email} failed")
