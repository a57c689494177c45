"""SQL accounts stores using SQLAlchemy."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from accounts.exceptions import EmailAlreadyRegisteredError, UsernameTakenError
from accounts.models import (
    EmailOtp,
    RegistrationSession,
    RegistrationStep,
    User,
    UserSession,
    utcnow,
)
from db.engine import SessionLocal
from db.models import (
    EmailOtpRecord,
    RegistrationSessionRecord,
    UserRecord,
    UserSessionRecord,
)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class SqlStoreBase:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def _get_session(self) -> Session:
        return self._session_factory()


class SqlUserStore(SqlStoreBase):
    """User store backed by a SQL database."""

    @staticmethod
    def _to_user(row: UserRecord) -> User:
        return User(
            id=row.id,
            full_name=row.full_name,
            username=row.username,
            email=row.email,
            phone_number=row.phone_number,
            country_code=row.country_code,
            date_of_birth=row.date_of_birth,
            password_hash=row.password_hash,
            is_email_verified=row.is_email_verified,
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
        )

    async def get_by_id(self, user_id: str) -> User | None:
        return self._get_one(UserRecord.id == user_id)

    async def get_by_email(self, email: str) -> User | None:
        return self._get_one(UserRecord.email == email.lower())

    async def get_by_username(self, username: str) -> User | None:
        return self._get_one(UserRecord.username == username)

    async def exists_by_email(self, email: str) -> bool:
        return self._get_one(UserRecord.email == email.lower()) is not None

    async def exists_by_username(self, username: str) -> bool:
        return self._get_one(UserRecord.username == username) is not None

    async def create_user(self, user: User) -> User:
        with self._get_session() as db:
            email = user.email.lower()
            row = UserRecord(**user.model_dump())
            row.email = email
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                if self._get_one(UserRecord.email == email) is not None:
                    raise EmailAlreadyRegisteredError()
                raise UsernameTakenError()
            db.refresh(row)
            return self._to_user(row)

    async def update_user(self, user_id: str, updates: dict[str, Any]) -> User | None:
        values = dict(updates)
        values.setdefault("updated_at", utcnow())
        with self._get_session() as db:
            try:
                result = db.execute(
                    update(UserRecord).where(UserRecord.id == user_id).values(**values)
                )
                db.commit()
            except IntegrityError:
                db.rollback()
                raise UsernameTakenError()
            if result.rowcount != 1:
                return None
        return self._get_one(UserRecord.id == user_id)

    def _get_one(self, condition) -> User | None:
        with self._get_session() as db:
            row = db.execute(select(UserRecord).where(condition)).scalar_one_or_none()
            return self._to_user(row) if row else None


class SqlRegistrationStore(SqlStoreBase):
    """Registration session store backed by a SQL database."""

    @staticmethod
    def _to_session(row: RegistrationSessionRecord) -> RegistrationSession:
        return RegistrationSession(
            id=row.id,
            session_token=row.session_token,
            email=row.email,
            full_name=row.full_name,
            phone_number=row.phone_number,
            country_code=row.country_code,
            date_of_birth=row.date_of_birth,
            password_hash=row.password_hash,
            username=row.username,
            is_email_verified=row.is_email_verified,
            current_step=RegistrationStep(row.current_step),
            expiry=_aware(row.expiry),
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
        )

    async def create(self, session: RegistrationSession) -> RegistrationSession:
        with self._get_session() as db:
            payload = {k: _column_value(v) for k, v in session.model_dump().items()}
            row = RegistrationSessionRecord(**payload)
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._to_session(row)

    async def get_by_token(self, session_token: str) -> RegistrationSession | None:
        with self._get_session() as db:
            row = db.execute(
                select(RegistrationSessionRecord).where(
                    RegistrationSessionRecord.session_token == session_token
                )
            ).scalar_one_or_none()
            return self._to_session(row) if row else None

    async def get_by_email(self, email: str) -> RegistrationSession | None:
        with self._get_session() as db:
            row = db.execute(
                select(RegistrationSessionRecord)
                .where(RegistrationSessionRecord.email == email.lower())
                .order_by(RegistrationSessionRecord.created_at.desc())
            ).scalars().first()
            return self._to_session(row) if row else None

    async def update_if_step(
        self,
        session_token: str,
        expected_step: RegistrationStep,
        updates: dict[str, Any],
    ) -> RegistrationSession | None:
        values = {k: _column_value(v) for k, v in updates.items()}
        values.setdefault("updated_at", utcnow())
        with self._get_session() as db:
            result = db.execute(
                update(RegistrationSessionRecord)
                .where(
                    RegistrationSessionRecord.session_token == session_token,
                    RegistrationSessionRecord.current_step == expected_step.value,
                )
                .values(**values)
            )
            if result.rowcount != 1:
                db.rollback()
                return None
            db.commit()
            row = db.execute(
                select(RegistrationSessionRecord).where(
                    RegistrationSessionRecord.session_token == session_token
                )
            ).scalar_one()
            return self._to_session(row)

    async def delete_by_token(self, session_token: str) -> None:
        with self._get_session() as db:
            db.execute(
                delete(RegistrationSessionRecord).where(
                    RegistrationSessionRecord.session_token == session_token
                )
            )
            db.commit()

    async def delete_expired(self, now: datetime) -> int:
        with self._get_session() as db:
            result = db.execute(
                delete(RegistrationSessionRecord).where(RegistrationSessionRecord.expiry <= now)
            )
            db.commit()
            return result.rowcount


class SqlOtpStore(SqlStoreBase):
    """Email OTP store backed by a SQL database."""

    @staticmethod
    def _to_otp(row: EmailOtpRecord) -> EmailOtp:
        return EmailOtp(
            id=row.id,
            email=row.email,
            otp_code=row.otp_code,
            expiry=_aware(row.expiry),
            is_used=row.is_used,
            created_at=_aware(row.created_at),
        )

    async def save(self, otp: EmailOtp) -> EmailOtp:
        with self._get_session() as db:
            row = EmailOtpRecord(**otp.model_dump())
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._to_otp(row)

    async def consume(self, email: str, otp_code: str, now: datetime) -> EmailOtp | None:
        with self._get_session() as db:
            row = db.execute(
                select(EmailOtpRecord)
                .where(
                    EmailOtpRecord.email == email,
                    EmailOtpRecord.otp_code == otp_code,
                    EmailOtpRecord.is_used.is_(False),
                    EmailOtpRecord.expiry > now,
                )
                .order_by(EmailOtpRecord.created_at.desc())
            ).scalars().first()
            if not row:
                return None
            # Conditional update so two concurrent validations cannot both win.
            result = db.execute(
                update(EmailOtpRecord)
                .where(EmailOtpRecord.id == row.id, EmailOtpRecord.is_used.is_(False))
                .values(is_used=True)
            )
            if result.rowcount != 1:
                db.rollback()
                return None
            db.commit()
            db.refresh(row)
            return self._to_otp(row)

    async def find(self, email: str, otp_code: str) -> EmailOtp | None:
        with self._get_session() as db:
            row = db.execute(
                select(EmailOtpRecord)
                .where(EmailOtpRecord.email == email, EmailOtpRecord.otp_code == otp_code)
                .order_by(EmailOtpRecord.created_at.desc())
            ).scalars().first()
            return self._to_otp(row) if row else None

    async def delete_by_email(self, email: str) -> None:
        with self._get_session() as db:
            db.execute(delete(EmailOtpRecord).where(EmailOtpRecord.email == email))
            db.commit()

    async def delete_expired(self, now: datetime) -> int:
        with self._get_session() as db:
            result = db.execute(delete(EmailOtpRecord).where(EmailOtpRecord.expiry <= now))
            db.commit()
            return result.rowcount


class SqlSessionStore(SqlStoreBase):
    """User session store backed by a SQL database."""

    @staticmethod
    def _to_session(row: UserSessionRecord) -> UserSession:
        return UserSession(
            id=row.id,
            user_id=row.user_id,
            refresh_token=row.refresh_token,
            ip_address=row.ip_address,
            device_info=row.device_info,
            expires_at=_aware(row.expires_at),
            created_at=_aware(row.created_at),
            last_used_at=_aware(row.last_used_at),
        )

    async def create_session(self, session: UserSession) -> UserSession:
        with self._get_session() as db:
            row = UserSessionRecord(**session.model_dump())
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._to_session(row)

    async def get_by_id(self, session_id: str) -> UserSession | None:
        with self._get_session() as db:
            row = db.get(UserSessionRecord, session_id)
            return self._to_session(row) if row else None

    async def get_active_by_refresh_token(
        self, refresh_token: str, now: datetime
    ) -> UserSession | None:
        with self._get_session() as db:
            row = db.execute(
                select(UserSessionRecord).where(
                    UserSessionRecord.refresh_token == refresh_token,
                    UserSessionRecord.expires_at > now,
                )
            ).scalar_one_or_none()
            return self._to_session(row) if row else None

    async def list_active_for_user(self, user_id: str, now: datetime) -> list[UserSession]:
        with self._get_session() as db:
            rows = db.execute(
                select(UserSessionRecord)
                .where(
                    UserSessionRecord.user_id == user_id,
                    UserSessionRecord.expires_at > now,
                )
                .order_by(
                    UserSessionRecord.last_used_at.desc(),
                    UserSessionRecord.created_at.desc(),
                )
            ).scalars().all()
            return [self._to_session(row) for row in rows]

    async def rotate_refresh_token(
        self,
        old_refresh_token: str,
        new_refresh_token: str,
        last_used_at: datetime,
    ) -> UserSession | None:
        with self._get_session() as db:
            result = db.execute(
                update(UserSessionRecord)
                .where(UserSessionRecord.refresh_token == old_refresh_token)
                .values(refresh_token=new_refresh_token, last_used_at=last_used_at)
            )
            if result.rowcount != 1:
                db.rollback()
                return None
            db.commit()
            row = db.execute(
                select(UserSessionRecord).where(
                    UserSessionRecord.refresh_token == new_refresh_token
                )
            ).scalar_one()
            return self._to_session(row)

    async def delete_by_id(self, session_id: str) -> None:
        with self._get_session() as db:
            db.execute(delete(UserSessionRecord).where(UserSessionRecord.id == session_id))
            db.commit()

    async def delete_by_refresh_token(self, refresh_token: str) -> None:
        with self._get_session() as db:
            db.execute(
                delete(UserSessionRecord).where(UserSessionRecord.refresh_token == refresh_token)
            )
            db.commit()

    async def delete_all_for_user(self, user_id: str) -> int:
        with self._get_session() as db:
            result = db.execute(
                delete(UserSessionRecord).where(UserSessionRecord.user_id == user_id)
            )
            db.commit()
            return result.rowcount

    async def delete_expired(self, now: datetime) -> int:
        with self._get_session() as db:
            result = db.execute(
                delete(UserSessionRecord).where(UserSessionRecord.expires_at <= now)
            )
            db.commit()
            return result.rowcount
