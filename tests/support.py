"""Shared fixtures for the accounts tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from accounts.config import AccountsConfig
from accounts.models import utcnow
from accounts.services.auth_service import AuthenticationService
from accounts.services.cleanup_service import CleanupService
from accounts.services.otp_service import OtpIssuer
from accounts.services.registration_service import RegistrationService
from accounts.services.session_manager import SessionManager
from accounts.services.token_service import TokenService
from accounts.stores.memory_store import (
    MemoryOtpStore,
    MemoryRegistrationStore,
    MemorySessionStore,
    MemoryUserStore,
)

PASSWORD = "Str0ngPassw0rd"


def make_config(**overrides) -> AccountsConfig:
    values = {
        "JWT_SECRET": "test-secret",
        "JWT_ALGORITHM": "HS256",
        "FIXED_OTP": None,
        "RESEND_API_KEY": None,
        "ACCOUNTS_STORE": "memory",
        "RATE_LIMIT_ENABLED": False,
    }
    values.update(overrides)
    return AccountsConfig(**values)


class FakeClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingDispatcher:
    """Stands in for EmailDispatcher and remembers what would have been sent."""

    def __init__(self) -> None:
        self.otps: list[tuple[str, str]] = []
        self.welcomes: list[tuple[str, str]] = []

    def dispatch_otp(self, email: str, otp: str) -> None:
        self.otps.append((email, otp))

    def dispatch_welcome(self, email: str, username: str) -> None:
        self.welcomes.append((email, username))

    def last_otp(self, email: str) -> str:
        return [code for recipient, code in self.otps if recipient == email][-1]


@dataclass
class Stack:
    config: AccountsConfig
    clock: FakeClock
    users: MemoryUserStore
    registrations: MemoryRegistrationStore
    otps: MemoryOtpStore
    sessions: MemorySessionStore
    dispatcher: RecordingDispatcher
    otp_issuer: OtpIssuer
    tokens: TokenService
    registration: RegistrationService
    session_manager: SessionManager
    auth: AuthenticationService
    cleanup: CleanupService

    async def register(self, email: str, username: str, password: str = PASSWORD) -> str:
        """Run the whole signup flow and return the new user's id."""
        started = await self.registration.start_registration(email)
        token = started.session_token
        await self.registration.verify_otp(token, self.dispatcher.last_otp(started.email))
        await self.registration.set_password(token, password, password)
        await self.registration.set_username(token, username)
        await self.registration.complete_registration(token, full_name="Test User")
        user = await self.users.get_by_email(started.email)
        return user.id


def build_stack(**config_overrides) -> Stack:
    config = make_config(**config_overrides)
    clock = FakeClock()
    users = MemoryUserStore()
    registrations = MemoryRegistrationStore()
    otps = MemoryOtpStore()
    sessions = MemorySessionStore()
    dispatcher = RecordingDispatcher()

    otp_issuer = OtpIssuer(otps, config, clock=clock)
    tokens = TokenService(config, clock=clock)
    registration = RegistrationService(
        registrations, users, otp_issuer, dispatcher, config, clock=clock
    )
    session_manager = SessionManager(sessions, users, tokens, clock=clock)
    auth = AuthenticationService(users, session_manager, tokens, config, clock=clock)
    cleanup = CleanupService(registration, otp_issuer, session_manager)
    return Stack(
        config=config,
        clock=clock,
        users=users,
        registrations=registrations,
        otps=otps,
        sessions=sessions,
        dispatcher=dispatcher,
        otp_issuer=otp_issuer,
        tokens=tokens,
        registration=registration,
        session_manager=session_manager,
        auth=auth,
        cleanup=cleanup,
    )
