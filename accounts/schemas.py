"""Accounts request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field


class ApiResponse(BaseModel):
    success: bool
    message: str
    data: dict[str, Any] | None = None


class RegisterEmailRequest(BaseModel):
    email: EmailStr


class SessionTokenRequest(BaseModel):
    session_token: str = Field(min_length=1)


class VerifyOtpRequest(SessionTokenRequest):
    otp: str = Field(min_length=4, max_length=8)


class RegisterDetailsRequest(SessionTokenRequest):
    full_name: str | None = Field(default=None, max_length=100)
    phone_number: str | None = Field(default=None, max_length=20)
    country_code: str | None = Field(default=None, max_length=5)
    date_of_birth: date | None = None


class SetPasswordRequest(SessionTokenRequest):
    password: str = Field(max_length=128)
    confirm_password: str = Field(max_length=128)


class SetUsernameRequest(SessionTokenRequest):
    username: str = Field(max_length=50)


class CompleteRegistrationRequest(RegisterDetailsRequest):
    pass


class LoginRequest(BaseModel):
    # Plain str so blank or odd casing reaches the service's own normalization.
    email: str = Field(max_length=254)
    password: str = Field(max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: str | None = None


class SessionLogoutRequest(BaseModel):
    session_id: str = Field(min_length=1)


class LogoutOtherSessionsRequest(BaseModel):
    refresh_token: str | None = None


class UserProfile(BaseModel):
    id: str
    full_name: str | None = None
    username: str
    email: str
    phone_number: str | None = None
    country_code: str | None = None
    date_of_birth: date | None = None
    is_email_verified: bool
    created_at: datetime


class PublicProfile(BaseModel):
    id: str
    username: str
    full_name: str | None = None
    is_email_verified: bool
    created_at: datetime


class UpdateFullNameRequest(BaseModel):
    full_name: str = Field(max_length=100)


class UpdateUsernameRequest(BaseModel):
    username: str = Field(max_length=50)


class UpdateDateOfBirthRequest(BaseModel):
    date_of_birth: date


class UpdateProfileRequest(BaseModel):
    full_name: str | None = Field(default=None, max_length=100)
    username: str | None = Field(default=None, max_length=50)
    date_of_birth: date | None = None


class SessionInfo(BaseModel):
    id: str
    ip_address: str | None = None
    device_info: str | None = None
    created_at: datetime
    last_used_at: datetime
    expires_at: datetime
