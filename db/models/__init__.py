"""
SQLAlchemy models for the accounts database.

All models inherit from db.engine.Base.
"""

from db.models.user import UserRecord
from db.models.auth import EmailOtpRecord, RegistrationSessionRecord, UserSessionRecord

__all__ = [
    # User
    "UserRecord",
    # Auth
    "RegistrationSessionRecord",
    "EmailOtpRecord",
    "UserSessionRecord",
]
