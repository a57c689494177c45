"""
User model.

UserRecord: durable identity created when a registration completes.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, String, Text
from sqlalchemy.orm import relationship

from db.engine import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRecord(Base):
    """
    User account for authentication.

    Email and username are unique; password_hash is always set.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    full_name = Column(String(255), nullable=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone_number = Column(String(32), nullable=True)
    country_code = Column(String(8), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    password_hash = Column(Text, nullable=False)
    is_email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    sessions = relationship("UserSessionRecord", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<UserRecord(id={self.id}, username={self.username})>"
