"""Accounts exceptions.

Every error surfaced to callers is an ``AuthException`` carrying an
``ErrorKind`` from the taxonomy, a stable ``code`` and an HTTP status.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    CONFLICT = "CONFLICT"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL = "INTERNAL"


class AuthException(Exception):
    """Base accounts exception with HTTP status."""

    kind: ErrorKind = ErrorKind.VALIDATION
    code: str = "BAD_REQUEST"
    status_code: int = 400
    default_message: str = "Bad request"

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "kind": self.kind.value, **self.details}


# Validation


class ValidationFailed(AuthException):
    code = "VALIDATION_ERROR"


class EmptyEmailError(ValidationFailed):
    code = "EMPTY_EMAIL"
    default_message = "Email is required"


class InvalidEmailError(ValidationFailed):
    code = "INVALID_EMAIL"
    default_message = "Please enter a valid email address"


class PasswordMismatchError(ValidationFailed):
    code = "PASSWORD_MISMATCH"
    default_message = "Passwords do not match"


class WeakPasswordError(ValidationFailed):
    code = "WEAK_PASSWORD"
    default_message = "Password is too weak"


class InvalidUsernameError(ValidationFailed):
    code = "INVALID_FORMAT"
    default_message = (
        "Username must be 3-50 characters long and contain only lowercase letters, "
        "numbers and underscores"
    )


class InvalidStepError(ValidationFailed):
    code = "INVALID_STEP"
    default_message = "Invalid registration step."


class EmailNotVerifiedForStepError(ValidationFailed):
    code = "EMAIL_NOT_VERIFIED"
    default_message = "Please verify your email with OTP first."


class InvalidOtpError(ValidationFailed):
    code = "INVALID_OTP"
    default_message = "Invalid or expired OTP"


# Registration session lifecycle


class SessionNotFoundError(AuthException):
    kind = ErrorKind.NOT_FOUND
    code = "SESSION_NOT_FOUND"
    status_code = 404
    default_message = "Invalid or expired session"


class SessionExpiredError(AuthException):
    kind = ErrorKind.EXPIRED
    code = "SESSION_EXPIRED"
    status_code = 410
    default_message = "Session expired. Please start registration again."


class SessionCompletedError(AuthException):
    kind = ErrorKind.CONFLICT
    code = "SESSION_COMPLETED"
    status_code = 409
    default_message = "Registration already completed. Please login."


# Conflicts


class EmailAlreadyRegisteredError(AuthException):
    kind = ErrorKind.CONFLICT
    code = "EMAIL_TAKEN"
    status_code = 409
    default_message = "Email is already registered. Please login instead."


class UsernameTakenError(AuthException):
    kind = ErrorKind.CONFLICT
    code = "USERNAME_TAKEN"
    status_code = 409
    default_message = "Username is already taken. Please choose another."


# Authentication


class InvalidCredentialsError(AuthException):
    kind = ErrorKind.UNAUTHORIZED
    code = "INVALID_CREDENTIALS"
    status_code = 401
    default_message = "Incorrect email or password"


class EmailNotVerifiedError(AuthException):
    kind = ErrorKind.UNAUTHORIZED
    code = "EMAIL_NOT_VERIFIED"
    status_code = 401
    default_message = "Please verify your email before logging in"


class InvalidTokenError(AuthException):
    kind = ErrorKind.UNAUTHORIZED
    code = "INVALID_TOKEN"
    status_code = 401
    default_message = "Invalid or expired session"


class InvalidRefreshTokenError(AuthException):
    kind = ErrorKind.UNAUTHORIZED
    code = "INVALID_REFRESH_TOKEN"
    status_code = 401
    default_message = "Invalid or expired refresh token"


class NoActiveSessionError(AuthException):
    kind = ErrorKind.UNAUTHORIZED
    code = "NO_ACTIVE_SESSION"
    status_code = 401
    default_message = "No active session found"


class UserSessionNotFoundError(AuthException):
    kind = ErrorKind.NOT_FOUND
    code = "USER_SESSION_NOT_FOUND"
    status_code = 404
    default_message = "Session not found"


class SessionOwnershipError(AuthException):
    kind = ErrorKind.FORBIDDEN
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Unauthorized to logout this session"


class UserNotFoundError(AuthException):
    kind = ErrorKind.NOT_FOUND
    code = "USER_NOT_FOUND"
    status_code = 404
    default_message = "User not found"


class RateLimitedError(AuthException):
    kind = ErrorKind.RATE_LIMITED
    code = "RATE_LIMITED"
    status_code = 429
    default_message = "Too many requests"
