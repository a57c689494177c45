"""In-memory accounts stores."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any, Callable

from accounts.exceptions import EmailAlreadyRegisteredError, UsernameTakenError
from accounts.models import (
    EmailOtp,
    RegistrationSession,
    RegistrationStep,
    User,
    UserSession,
    utcnow,
)


class MemoryUserStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._users_by_id: dict[str, User] = {}

    async def get_by_id(self, user_id: str) -> User | None:
        async with self._lock:
            user = self._users_by_id.get(user_id)
            return user.model_copy() if user else None

    async def get_by_email(self, email: str) -> User | None:
        async with self._lock:
            return self._find(lambda user: user.email == email.lower())

    async def get_by_username(self, username: str) -> User | None:
        async with self._lock:
            return self._find(lambda user: user.username == username)

    async def exists_by_email(self, email: str) -> bool:
        return await self.get_by_email(email) is not None

    async def exists_by_username(self, username: str) -> bool:
        return await self.get_by_username(username) is not None

    async def create_user(self, user: User) -> User:
        async with self._lock:
            email = user.email.lower()
            for existing in self._users_by_id.values():
                if existing.email == email:
                    raise EmailAlreadyRegisteredError()
                if existing.username == user.username:
                    raise UsernameTakenError()
            stored = user.model_copy(update={"email": email})
            self._users_by_id[stored.id] = stored
            return stored.model_copy()

    async def update_user(self, user_id: str, updates: dict[str, Any]) -> User | None:
        async with self._lock:
            user = self._users_by_id.get(user_id)
            if not user:
                return None
            username = updates.get("username")
            if username is not None and any(
                other.username == username
                for other in self._users_by_id.values()
                if other.id != user_id
            ):
                raise UsernameTakenError()
            payload = dict(updates)
            payload.setdefault("updated_at", utcnow())
            updated = user.model_copy(update=payload)
            self._users_by_id[user_id] = updated
            return updated.model_copy()

    def _find(self, predicate) -> User | None:
        for user in self._users_by_id.values():
            if predicate(user):
                return user.model_copy()
        return None


class MemoryRegistrationStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._by_token: dict[str, RegistrationSession] = {}

    async def create(self, session: RegistrationSession) -> RegistrationSession:
        async with self._lock:
            if session.session_token in self._by_token:
                raise ValueError("Session token already exists")
            self._by_token[session.session_token] = session.model_copy()
            return session.model_copy()

    async def get_by_token(self, session_token: str) -> RegistrationSession | None:
        async with self._lock:
            session = self._by_token.get(session_token)
            return session.model_copy() if session else None

    async def get_by_email(self, email: str) -> RegistrationSession | None:
        async with self._lock:
            for session in self._by_token.values():
                if session.email == email.lower():
                    return session.model_copy()
            return None

    async def update_if_step(
        self,
        session_token: str,
        expected_step: RegistrationStep,
        updates: dict[str, Any],
    ) -> RegistrationSession | None:
        async with self._lock:
            session = self._by_token.get(session_token)
            if not session or session.current_step != expected_step:
                return None
            payload = dict(updates)
            payload.setdefault("updated_at", utcnow())
            updated = session.model_copy(update=payload)
            self._by_token[session_token] = updated
            return updated.model_copy()

    async def delete_by_token(self, session_token: str) -> None:
        async with self._lock:
            self._by_token.pop(session_token, None)

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [token for token, s in self._by_token.items() if s.expiry <= now]
            for token in expired:
                del self._by_token[token]
            return len(expired)


class MemoryOtpStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._otps: dict[str, EmailOtp] = {}

    async def save(self, otp: EmailOtp) -> EmailOtp:
        async with self._lock:
            self._otps[otp.id] = otp.model_copy()
            return otp.model_copy()

    async def consume(self, email: str, otp_code: str, now: datetime) -> EmailOtp | None:
        async with self._lock:
            for otp_id, otp in self._otps.items():
                if (
                    otp.email == email
                    and otp.otp_code == otp_code
                    and not otp.is_used
                    and otp.expiry > now
                ):
                    used = otp.model_copy(update={"is_used": True})
                    self._otps[otp_id] = used
                    return used.model_copy()
            return None

    async def find(self, email: str, otp_code: str) -> EmailOtp | None:
        async with self._lock:
            for otp in self._otps.values():
                if otp.email == email and otp.otp_code == otp_code:
                    return otp.model_copy()
            return None

    async def delete_by_email(self, email: str) -> None:
        async with self._lock:
            for otp_id in [k for k, otp in self._otps.items() if otp.email == email]:
                del self._otps[otp_id]

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [k for k, otp in self._otps.items() if otp.expiry <= now]
            for otp_id in expired:
                del self._otps[otp_id]
            return len(expired)


class MemorySessionStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, UserSession] = {}

    async def create_session(self, session: UserSession) -> UserSession:
        async with self._lock:
            for existing in self._sessions.values():
                if existing.refresh_token == session.refresh_token:
                    raise ValueError("Refresh token already exists")
            self._sessions[session.id] = session.model_copy()
            return session.model_copy()

    async def get_by_id(self, session_id: str) -> UserSession | None:
        async with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy() if session else None

    async def get_active_by_refresh_token(
        self, refresh_token: str, now: datetime
    ) -> UserSession | None:
        async with self._lock:
            for session in self._sessions.values():
                if session.refresh_token == refresh_token and session.expires_at > now:
                    return session.model_copy()
            return None

    async def list_active_for_user(self, user_id: str, now: datetime) -> list[UserSession]:
        async with self._lock:
            active = [
                s.model_copy()
                for s in self._sessions.values()
                if s.user_id == user_id and s.expires_at > now
            ]
        active.sort(key=lambda s: (s.last_used_at, s.created_at), reverse=True)
        return active

    async def rotate_refresh_token(
        self,
        old_refresh_token: str,
        new_refresh_token: str,
        last_used_at: datetime,
    ) -> UserSession | None:
        async with self._lock:
            for session_id, session in self._sessions.items():
                if session.refresh_token == old_refresh_token:
                    rotated = session.model_copy(
                        update={"refresh_token": new_refresh_token, "last_used_at": last_used_at}
                    )
                    self._sessions[session_id] = rotated
                    return rotated.model_copy()
            return None

    async def delete_by_id(self, session_id: str) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)

    async def delete_by_refresh_token(self, refresh_token: str) -> None:
        async with self._lock:
            for session_id in [
                k for k, s in self._sessions.items() if s.refresh_token == refresh_token
            ]:
                del self._sessions[session_id]

    async def delete_all_for_user(self, user_id: str) -> int:
        async with self._lock:
            owned = [k for k, s in self._sessions.items() if s.user_id == user_id]
            for session_id in owned:
                del self._sessions[session_id]
            return len(owned)

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [k for k, s in self._sessions.items() if s.expires_at <= now]
            for session_id in expired:
                del self._sessions[session_id]
            return len(expired)


class MemoryRateLimiter:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._lock = asyncio.Lock()
        self._clock = clock
        self._hits: dict[str, list[float]] = {}
        self._windows: dict[str, int] = {}
        self._last_sweep = clock()

    async def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = self._clock()
        async with self._lock:
            if now - self._last_sweep >= window_seconds:
                self._sweep(now)
            self._windows[key] = window_seconds
            hits = self._hits.get(key, [])
            hits = [timestamp for timestamp in hits if (now - timestamp) < window_seconds]
            if len(hits) >= limit:
                self._hits[key] = hits
                return False
            hits.append(now)
            self._hits[key] = hits
            return True

    def tracked_keys(self) -> int:
        return len(self._hits)

    def _sweep(self, now: float) -> None:
        # Drop keys whose newest hit has left its window.
        stale = [
            key
            for key, hits in self._hits.items()
            if not hits or now - hits[-1] >= self._windows.get(key, 0)
        ]
        for key in stale:
            self._hits.pop(key, None)
            self._windows.pop(key, None)
        self._last_sweep = now
