"""Accounts domain records.

These are the shapes stores read and write. Stores map them to and from
their backing representation (SQLAlchemy rows, in-memory dicts).
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class RegistrationStep(str, Enum):
    """Registration steps in their only permitted order."""

    EMAIL = "EMAIL"
    OTP = "OTP"
    PASSWORD = "PASSWORD"
    USERNAME = "USERNAME"
    COMPLETED = "COMPLETED"

    @property
    def next_step(self) -> RegistrationStep | None:
        order = list(RegistrationStep)
        index = order.index(self)
        return order[index + 1] if index + 1 < len(order) else None


class User(BaseModel):
    id: str = Field(default_factory=new_id)
    full_name: str | None = None
    username: str
    email: str
    phone_number: str | None = None
    country_code: str | None = None
    date_of_birth: date | None = None
    password_hash: str = Field(min_length=1)
    is_email_verified: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class RegistrationSession(BaseModel):
    id: str = Field(default_factory=new_id)
    session_token: str
    email: str
    full_name: str | None = None
    phone_number: str | None = None
    country_code: str | None = None
    date_of_birth: date | None = None
    password_hash: str | None = None
    username: str | None = None
    is_email_verified: bool = False
    current_step: RegistrationStep = RegistrationStep.EMAIL
    expiry: datetime
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_expired(self, now: datetime) -> bool:
        return self.expiry <= now


class EmailOtp(BaseModel):
    id: str = Field(default_factory=new_id)
    email: str
    otp_code: str
    expiry: datetime
    is_used: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class UserSession(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    refresh_token: str
    ip_address: str | None = None
    device_info: str | None = None
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    last_used_at: datetime = Field(default_factory=utcnow)

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now


class Principal(BaseModel):
    """The authenticated caller, passed explicitly to operations that need it."""

    user_id: str
    email: str
    username: str | None = None

    model_config = {"frozen": True}


class RegistrationResult(BaseModel):
    session_token: str | None
    current_step: RegistrationStep
    next_step: RegistrationStep | None = None
    email: str | None = None
    message: str


class TokenBundle(BaseModel):
    access_token: str
    refresh_token: str
    user_id: str
    email: str
    username: str
    full_name: str | None = None
    expires_in: int
    refresh_expires_in: int
    message: str
