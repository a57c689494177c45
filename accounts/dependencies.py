"""Accounts dependency helpers."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, Request

from accounts.config import AccountsConfig
from accounts.exceptions import InvalidTokenError, RateLimitedError
from accounts.interfaces.otp_store import OtpStore
from accounts.interfaces.rate_limiter import RateLimiter
from accounts.interfaces.registration_store import RegistrationStore
from accounts.interfaces.session_store import SessionStore
from accounts.interfaces.user_store import UserStore
from accounts.models import Principal
from accounts.services.auth_service import AuthenticationService
from accounts.services.cleanup_service import CleanupService
from accounts.services.email_service import EmailDispatcher, EmailService
from accounts.services.otp_service import OtpIssuer
from accounts.services.registration_service import RegistrationService
from accounts.services.session_manager import SessionManager
from accounts.services.token_service import TokenService
from accounts.stores.memory_store import (
    MemoryOtpStore,
    MemoryRateLimiter,
    MemoryRegistrationStore,
    MemorySessionStore,
    MemoryUserStore,
)
from accounts.stores.sql_store import (
    SqlOtpStore,
    SqlRegistrationStore,
    SqlSessionStore,
    SqlUserStore,
)


@dataclass(frozen=True)
class AccountsStores:
    users: UserStore
    registrations: RegistrationStore
    otps: OtpStore
    sessions: SessionStore


_memory_stores = AccountsStores(
    users=MemoryUserStore(),
    registrations=MemoryRegistrationStore(),
    otps=MemoryOtpStore(),
    sessions=MemorySessionStore(),
)
_memory_rate_limiter = MemoryRateLimiter()
_email_dispatcher = EmailDispatcher(EmailService())

_sql_stores: AccountsStores | None = None


def get_accounts_config() -> AccountsConfig:
    return AccountsConfig()


def select_stores(config: AccountsConfig) -> AccountsStores:
    """Get accounts stores based on ACCOUNTS_STORE config."""
    if config.ACCOUNTS_STORE == "sql":
        global _sql_stores
        if _sql_stores is None:
            _sql_stores = AccountsStores(
                users=SqlUserStore(),
                registrations=SqlRegistrationStore(),
                otps=SqlOtpStore(),
                sessions=SqlSessionStore(),
            )
        return _sql_stores
    # Memory store for development/testing
    return _memory_stores


def get_stores(config: AccountsConfig = Depends(get_accounts_config)) -> AccountsStores:
    return select_stores(config)


def get_email_dispatcher() -> EmailDispatcher:
    return _email_dispatcher


def get_rate_limiter() -> RateLimiter:
    return _memory_rate_limiter


def get_token_service(config: AccountsConfig = Depends(get_accounts_config)) -> TokenService:
    return TokenService(config)


def get_otp_issuer(
    stores: AccountsStores = Depends(get_stores),
    config: AccountsConfig = Depends(get_accounts_config),
) -> OtpIssuer:
    return OtpIssuer(stores.otps, config)


def get_session_manager(
    stores: AccountsStores = Depends(get_stores),
    tokens: TokenService = Depends(get_token_service),
) -> SessionManager:
    return SessionManager(stores.sessions, stores.users, tokens)


def get_registration_service(
    stores: AccountsStores = Depends(get_stores),
    otp_issuer: OtpIssuer = Depends(get_otp_issuer),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    config: AccountsConfig = Depends(get_accounts_config),
) -> RegistrationService:
    return RegistrationService(stores.registrations, stores.users, otp_issuer, dispatcher, config)


def get_auth_service(
    stores: AccountsStores = Depends(get_stores),
    session_manager: SessionManager = Depends(get_session_manager),
    tokens: TokenService = Depends(get_token_service),
    config: AccountsConfig = Depends(get_accounts_config),
) -> AuthenticationService:
    return AuthenticationService(stores.users, session_manager, tokens, config)


def build_cleanup_service(config: AccountsConfig) -> CleanupService:
    """Wire a CleanupService outside of a request, for the background job."""
    stores = select_stores(config)
    tokens = TokenService(config)
    otp_issuer = OtpIssuer(stores.otps, config)
    registrations = RegistrationService(
        stores.registrations, stores.users, otp_issuer, _email_dispatcher, config
    )
    sessions = SessionManager(stores.sessions, stores.users, tokens)
    return CleanupService(registrations, otp_issuer, sessions)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def enforce_login_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    config: AccountsConfig = Depends(get_accounts_config),
) -> None:
    if not config.RATE_LIMIT_ENABLED:
        return
    key = f"login:{_client_ip(request)}"
    if not await limiter.allow(key, config.LOGIN_RATE_LIMIT_PER_MINUTE, 60):
        raise RateLimitedError("Too many login attempts")


async def enforce_register_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    config: AccountsConfig = Depends(get_accounts_config),
) -> None:
    if not config.RATE_LIMIT_ENABLED:
        return
    key = f"register:{_client_ip(request)}"
    if not await limiter.allow(key, config.REGISTER_RATE_LIMIT_PER_HOUR, 3600):
        raise RateLimitedError("Too many registrations")


def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidTokenError("Not authenticated")
    return token.strip()


async def get_current_principal(
    access_token: str = Depends(get_bearer_token),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> Principal:
    return await auth_service.authenticate_request(access_token)


def client_metadata(request: Request) -> tuple[str, str | None]:
    return _client_ip(request), request.headers.get("user-agent")
