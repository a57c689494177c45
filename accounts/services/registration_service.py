"""Multi-step registration.

A registration session moves strictly forward through
EMAIL -> OTP -> PASSWORD -> USERNAME -> COMPLETED. The session token is a
bearer capability: whoever holds it may continue the signup, so it is
random, unguessable and dies with the session.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Callable

from accounts.config import AccountsConfig
from accounts.exceptions import (
    EmailAlreadyRegisteredError,
    EmailNotVerifiedForStepError,
    EmptyEmailError,
    InvalidEmailError,
    InvalidOtpError,
    InvalidStepError,
    InvalidUsernameError,
    PasswordMismatchError,
    SessionCompletedError,
    SessionExpiredError,
    SessionNotFoundError,
    UsernameTakenError,
    ValidationFailed,
    WeakPasswordError,
)
from accounts.interfaces.registration_store import RegistrationStore
from accounts.interfaces.user_store import UserStore
from accounts.models import (
    RegistrationResult,
    RegistrationSession,
    RegistrationStep,
    User,
    utcnow,
)
from accounts.security import (
    BCRYPT_MAX_PASSWORD_BYTES,
    generate_opaque_token,
    hash_password,
)
from accounts.services.email_service import EmailDispatcher
from accounts.services.otp_service import OtpIssuer

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-z0-9_]{3,50}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SESSION_TOKEN_BYTES = 32
MAX_AGE_YEARS = 150

# Steps during which profile details may be filled in.
_DETAIL_STEPS = (RegistrationStep.OTP, RegistrationStep.PASSWORD, RegistrationStep.USERNAME)


def normalize_email(email: str | None) -> str:
    normalized = (email or "").strip().lower()
    if not normalized:
        raise EmptyEmailError()
    return normalized


def is_valid_username(username: str | None) -> bool:
    return bool(username) and USERNAME_PATTERN.fullmatch(username) is not None


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # 29 February in a non-leap target year
        return day.replace(year=day.year - years, day=28)


def profile_updates(
    today: date,
    full_name: str | None = None,
    phone_number: str | None = None,
    country_code: str | None = None,
    date_of_birth: date | None = None,
) -> dict[str, Any]:
    """Validate optional profile fields and return the ones that were supplied."""
    updates: dict[str, Any] = {}
    if full_name is not None:
        if not full_name.strip():
            raise ValidationFailed("Full name is required")
        updates["full_name"] = full_name.strip()
    if phone_number is not None:
        updates["phone_number"] = phone_number.strip()
    if country_code is not None:
        updates["country_code"] = country_code.strip()
    if date_of_birth is not None:
        if date_of_birth > today:
            raise ValidationFailed("Date of birth cannot be in the future")
        if date_of_birth < _years_before(today, MAX_AGE_YEARS):
            raise ValidationFailed("Date of birth is too far in the past")
        updates["date_of_birth"] = date_of_birth
    return updates


class RegistrationService:
    def __init__(
        self,
        registration_store: RegistrationStore,
        user_store: UserStore,
        otp_issuer: OtpIssuer,
        email_dispatcher: EmailDispatcher,
        config: AccountsConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._registrations = registration_store
        self._users = user_store
        self._otp = otp_issuer
        self._emails = email_dispatcher
        self._config = config or AccountsConfig()
        self._clock = clock

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(minutes=self._config.REGISTRATION_SESSION_EXPIRY_MINUTES)

    async def start_registration(self, email: str) -> RegistrationResult:
        email = normalize_email(email)
        if not EMAIL_PATTERN.fullmatch(email):
            raise InvalidEmailError()

        if await self._users.exists_by_email(email):
            raise EmailAlreadyRegisteredError()

        previous = await self._registrations.get_by_email(email)
        if previous:
            await self._otp.revoke(email)
            await self._registrations.delete_by_token(previous.session_token)

        now = self._clock()
        session = await self._registrations.create(
            RegistrationSession(
                session_token=generate_opaque_token(SESSION_TOKEN_BYTES),
                email=email,
                current_step=RegistrationStep.EMAIL,
                is_email_verified=False,
                expiry=now + self.session_ttl,
                created_at=now,
                updated_at=now,
            )
        )

        otp = await self._otp.issue(email)
        self._emails.dispatch_otp(email, otp.otp_code)

        logger.info(f"Registration initiated for email: {email}")
        return self._result(session, "OTP sent to your email. Please verify.")

    async def resend_otp(self, session_token: str) -> RegistrationResult:
        session = await self._get_valid_session(session_token)
        self._require_step(
            session,
            RegistrationStep.EMAIL,
            "OTP can only be resent during email verification step.",
        )

        await self._otp.revoke(session.email)
        otp = await self._otp.issue(session.email)
        session = await self._advance(session, {})
        self._emails.dispatch_otp(session.email, otp.otp_code)

        logger.info(f"OTP resent for registration of {session.email}")
        return self._result(session, "New OTP sent to your email.")

    async def verify_otp(self, session_token: str, code: str) -> RegistrationResult:
        session = await self._get_valid_session(session_token)
        self._require_step(session, RegistrationStep.EMAIL)

        if not await self._otp.validate(session.email, (code or "").strip()):
            logger.warning(f"Invalid OTP submitted for registration of {session.email}")
            raise InvalidOtpError()

        session = await self._advance(
            session,
            {"is_email_verified": True, "current_step": RegistrationStep.OTP},
        )
        await self._otp.revoke(session.email)

        logger.info(f"Email verified for registration of {session.email}")
        return self._result(session, "Email verified successfully. Please create a password.")

    async def update_details(
        self,
        session_token: str,
        full_name: str | None = None,
        phone_number: str | None = None,
        country_code: str | None = None,
        date_of_birth: date | None = None,
    ) -> RegistrationResult:
        session = await self._get_valid_session(session_token)
        if session.current_step not in _DETAIL_STEPS:
            raise InvalidStepError("Invalid registration step. Please verify OTP first.")
        if not session.is_email_verified:
            raise EmailNotVerifiedForStepError()

        updates = profile_updates(
            self._clock().date(), full_name, phone_number, country_code, date_of_birth
        )
        session = await self._advance(session, updates)

        logger.info(f"Details saved for registration of {session.email}")
        return self._result(session, "Details saved.")

    async def set_password(
        self, session_token: str, password: str, confirm_password: str
    ) -> RegistrationResult:
        session = await self._get_valid_session(session_token)
        self._require_step(
            session,
            RegistrationStep.OTP,
            "Invalid registration step. Please verify your email first.",
        )
        if not session.is_email_verified:
            raise EmailNotVerifiedForStepError()

        password = password or ""
        if password != (confirm_password or ""):
            raise PasswordMismatchError()
        if len(password) < self._config.MIN_PASSWORD_LENGTH:
            raise WeakPasswordError(
                f"Password must be at least {self._config.MIN_PASSWORD_LENGTH} characters long"
            )
        if len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
            raise WeakPasswordError(
                f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes long"
            )

        session = await self._advance(
            session,
            {"password_hash": hash_password(password), "current_step": RegistrationStep.PASSWORD},
        )

        logger.info(f"Password created for registration of {session.email}")
        return self._result(session, "Password created. Please choose a username.")

    async def set_username(self, session_token: str, username: str) -> RegistrationResult:
        session = await self._get_valid_session(session_token)
        self._require_step(
            session,
            RegistrationStep.PASSWORD,
            "Invalid registration step. Please create password first.",
        )

        username = (username or "").strip()
        if not is_valid_username(username):
            raise InvalidUsernameError()
        if await self._users.exists_by_username(username):
            raise UsernameTakenError()

        session = await self._advance(
            session,
            {"username": username, "current_step": RegistrationStep.USERNAME},
        )

        logger.info(f"Username chosen for registration of {session.email}")
        return self._result(session, "Username saved. Please complete your registration.")

    async def complete_registration(
        self,
        session_token: str,
        full_name: str | None = None,
        phone_number: str | None = None,
        country_code: str | None = None,
        date_of_birth: date | None = None,
    ) -> RegistrationResult:
        session = await self._get_valid_session(session_token)
        self._require_step(
            session,
            RegistrationStep.USERNAME,
            "Invalid registration step. Please choose a username first.",
        )

        now = self._clock()
        profile = session.model_copy(
            update=profile_updates(
                now.date(), full_name, phone_number, country_code, date_of_birth
            )
        )
        if await self._users.exists_by_username(profile.username):
            raise UsernameTakenError()
        if await self._users.exists_by_email(profile.email):
            raise EmailAlreadyRegisteredError()

        # Only the caller that moves USERNAME -> COMPLETED may create the user.
        claimed = await self._registrations.update_if_step(
            session.session_token,
            RegistrationStep.USERNAME,
            {"current_step": RegistrationStep.COMPLETED, "updated_at": now},
        )
        if claimed is None:
            logger.warning(f"Registration of {session.email} completed concurrently")
            raise InvalidStepError()

        try:
            user = await self._users.create_user(
                User(
                    full_name=profile.full_name,
                    username=profile.username,
                    email=profile.email,
                    phone_number=profile.phone_number,
                    country_code=profile.country_code,
                    date_of_birth=profile.date_of_birth,
                    password_hash=profile.password_hash,
                    is_email_verified=True,
                    created_at=now,
                    updated_at=now,
                )
            )
        except (UsernameTakenError, EmailAlreadyRegisteredError):
            await self._registrations.update_if_step(
                session.session_token,
                RegistrationStep.COMPLETED,
                {"current_step": RegistrationStep.USERNAME, "updated_at": now},
            )
            logger.warning(f"User creation lost a uniqueness race for {session.email}")
            raise
        await self._registrations.delete_by_token(session.session_token)

        self._emails.dispatch_welcome(user.email, user.username)
        logger.info(f"User registration completed: {user.username} ({user.email})")
        return RegistrationResult(
            session_token=None,
            current_step=RegistrationStep.COMPLETED,
            next_step=None,
            email=user.email,
            message="Registration completed successfully!",
        )

    async def is_username_available(self, username: str) -> bool:
        username = (username or "").strip()
        if not is_valid_username(username):
            return False
        return not await self._users.exists_by_username(username)

    async def purge_expired(self) -> int:
        return await self._registrations.delete_expired(self._clock())

    async def _get_valid_session(self, session_token: str) -> RegistrationSession:
        if not session_token:
            raise SessionNotFoundError()
        session = await self._registrations.get_by_token(session_token)
        if not session:
            raise SessionNotFoundError()
        if session.is_expired(self._clock()):
            await self._registrations.delete_by_token(session_token)
            raise SessionExpiredError()
        if session.current_step == RegistrationStep.COMPLETED:
            raise SessionCompletedError()
        return session

    @staticmethod
    def _require_step(
        session: RegistrationSession,
        expected: RegistrationStep,
        message: str | None = None,
    ) -> None:
        if session.current_step != expected:
            raise InvalidStepError(message)

    async def _advance(
        self, session: RegistrationSession, updates: dict[str, Any]
    ) -> RegistrationSession:
        """Write ``updates`` if nobody moved the session meanwhile; refreshes expiry."""
        now = self._clock()
        payload = {"expiry": now + self.session_ttl, "updated_at": now, **updates}
        updated = await self._registrations.update_if_step(
            session.session_token, session.current_step, payload
        )
        if updated is None:
            raise InvalidStepError()
        return updated

    @staticmethod
    def _result(session: RegistrationSession, message: str) -> RegistrationResult:
        return RegistrationResult(
            session_token=session.session_token,
            current_step=session.current_step,
            next_step=session.current_step.next_step,
            email=session.email,
            message=message,
        )
