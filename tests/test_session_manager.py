import asyncio
import unittest
from unittest.mock import AsyncMock

from accounts.exceptions import (
    InvalidRefreshTokenError,
    NoActiveSessionError,
    SessionOwnershipError,
    UserSessionNotFoundError,
)
from accounts.models import Principal, User
from accounts.security import hash_password
from tests.support import build_stack


class TestSessionManager(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.stack = build_stack()
        self.manager = self.stack.session_manager
        self.user = await self.stack.users.create_user(
            User(
                username="alice",
                email="alice@x.com",
                password_hash=hash_password("Str0ngPassw0rd"),
                is_email_verified=True,
            )
        )
        self.principal = Principal(user_id=self.user.id, email=self.user.email, username="alice")

    def access_token(self):
        return self.stack.tokens.issue_access_token(self.user.id, self.user.email, "alice")

    async def test_create_session_replaces_previous_sessions(self):
        first = await self.manager.create_session(self.user, ip_address="10.0.0.1")
        second = await self.manager.create_session(self.user, device_info="curl")

        active = await self.manager.list_active_sessions(self.principal)
        self.assertEqual([s.id for s in active], [second.id])
        self.assertIsNone(await self.manager.find_active_session(first.refresh_token))
        self.assertEqual(second.expires_at - second.created_at, self.stack.tokens.refresh_ttl)

    async def test_create_session_survives_cleanup_failure(self):
        self.stack.sessions.delete_all_for_user = AsyncMock(side_effect=RuntimeError("db down"))

        with self.assertLogs("accounts.services.session_manager", level="WARNING"):
            session = await self.manager.create_session(self.user)

        active = await self.manager.list_active_sessions(self.principal)
        self.assertEqual([s.id for s in active], [session.id])

    async def test_find_active_session_ignores_expired(self):
        session = await self.manager.create_session(self.user)
        self.stack.clock.advance(days=7)

        self.assertIsNone(await self.manager.find_active_session(session.refresh_token))
        self.assertIsNone(await self.manager.find_active_session(""))
        self.assertFalse(await self.manager.has_active_session(self.user.id))

    async def test_current_session_without_sessions(self):
        with self.assertRaises(NoActiveSessionError) as ctx:
            await self.manager.get_current_session_refresh_token(self.access_token())
        self.assertIn("No active session found", ctx.exception.message)

    async def test_current_session_prefers_latest_use(self):
        older = await self.manager.create_session(self.user)
        self.stack.clock.advance(minutes=1)
        newer = await self.manager.create_session(self.user)
        # Put both back so the user holds two sessions.
        await self.stack.sessions.create_session(older)

        self.assertEqual(
            await self.manager.get_current_session_refresh_token(self.access_token()),
            newer.refresh_token,
        )

        self.stack.clock.advance(minutes=1)
        _, rotated_token, _, _ = await self.manager.rotate_on_refresh(older.refresh_token)
        self.assertEqual(
            await self.manager.get_current_session_refresh_token(self.access_token()),
            rotated_token,
        )

    async def test_rotation_invalidates_old_token(self):
        session = await self.manager.create_session(self.user)
        self.stack.clock.advance(minutes=5)

        access, new_refresh, rotated, user = await self.manager.rotate_on_refresh(
            session.refresh_token
        )

        self.assertNotEqual(new_refresh, session.refresh_token)
        self.assertEqual(rotated.id, session.id)
        self.assertEqual(rotated.last_used_at, self.stack.clock())
        self.assertEqual(user.id, self.user.id)
        self.assertEqual(self.stack.tokens.extract_user_id(access), self.user.id)
        with self.assertRaises(InvalidRefreshTokenError):
            await self.manager.rotate_on_refresh(session.refresh_token)

    async def test_concurrent_rotation_has_single_winner(self):
        session = await self.manager.create_session(self.user)

        results = await asyncio.gather(
            self.manager.rotate_on_refresh(session.refresh_token),
            self.manager.rotate_on_refresh(session.refresh_token),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], InvalidRefreshTokenError)

    async def test_rotation_rejects_unknown_and_expired_tokens(self):
        session = await self.manager.create_session(self.user)
        self.stack.clock.advance(days=8)

        for token in ("unknown", session.refresh_token, ""):
            with self.assertRaises(InvalidRefreshTokenError):
                await self.manager.rotate_on_refresh(token)

    async def test_delete_session_by_id_enforces_ownership(self):
        session = await self.manager.create_session(self.user)
        stranger = Principal(user_id="someone-else", email="eve@x.com")

        with self.assertRaises(SessionOwnershipError):
            await self.manager.delete_session_by_id(session.id, stranger)
        with self.assertRaises(UserSessionNotFoundError):
            await self.manager.delete_session_by_id("missing", self.principal)

        await self.manager.delete_session_by_id(session.id, self.principal)
        self.assertFalse(await self.manager.has_active_session(self.user.id))

    async def test_delete_other_sessions_keeps_one(self):
        kept = await self.manager.create_session(self.user)
        self.stack.clock.advance(minutes=1)
        newest = await self.manager.create_session(self.user)
        await self.stack.sessions.create_session(kept)

        removed = await self.manager.delete_other_sessions(
            self.principal, keep_refresh_token=kept.refresh_token
        )

        self.assertEqual(removed, 1)
        remaining = await self.manager.list_active_sessions(self.principal)
        self.assertEqual([s.id for s in remaining], [kept.id])
        self.assertIsNone(await self.manager.find_active_session(newest.refresh_token))

    async def test_delete_other_sessions_defaults_to_most_recent(self):
        older = await self.manager.create_session(self.user)
        self.stack.clock.advance(minutes=1)
        newest = await self.manager.create_session(self.user)
        await self.stack.sessions.create_session(older)

        self.assertEqual(await self.manager.delete_other_sessions(self.principal), 1)
        remaining = await self.manager.list_active_sessions(self.principal)
        self.assertEqual([s.id for s in remaining], [newest.id])

    async def test_purge_expired(self):
        await self.manager.create_session(self.user)
        self.stack.clock.advance(days=7, seconds=1)

        self.assertEqual(await self.manager.purge_expired(), 1)
        self.assertEqual(await self.manager.delete_all_sessions_for_user(self.user.id), 0)


if __name__ == "__main__":
    unittest.main()
