"""
Auth models for registration and session management.

RegistrationSessionRecord: multi-step signup state
EmailOtpRecord: one-time email verification codes
UserSessionRecord: refresh-token-bound login sessions
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from db.engine import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegistrationSessionRecord(Base):
    """
    In-progress registration.

    The session token is a bearer capability for continuing the signup.
    """
    __tablename__ = "registration_sessions"

    id = Column(String(36), primary_key=True)
    session_token = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    phone_number = Column(String(32), nullable=True)
    country_code = Column(String(8), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    password_hash = Column(Text, nullable=True)
    username = Column(String(50), nullable=True)
    is_email_verified = Column(Boolean, nullable=False, default=False)
    current_step = Column(String(20), nullable=False, default="EMAIL")
    expiry = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<RegistrationSessionRecord(email={self.email}, step={self.current_step})>"


class EmailOtpRecord(Base):
    """
    Verification code sent to an email address.
    """
    __tablename__ = "email_otps"
    __table_args__ = (Index("ix_email_otps_email_code", "email", "otp_code"),)

    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    otp_code = Column(String(10), nullable=False)
    expiry = Column(DateTime(timezone=True), nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<EmailOtpRecord(email={self.email}, used={self.is_used})>"


class UserSessionRecord(Base):
    """
    Login session for refresh token management.
    """
    __tablename__ = "user_sessions"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    refresh_token = Column(String(255), unique=True, nullable=False, index=True)
    ip_address = Column(String(64), nullable=True)
    device_info = Column(String(512), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    last_used_at = Column(DateTime(timezone=True), default=_utcnow)

    # Relationship
    user = relationship("UserRecord", back_populates="sessions")

    def __repr__(self):
        return f"<UserSessionRecord(id={self.id}, user_id={self.user_id})>"
