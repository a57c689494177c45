import asyncio
import unittest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

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
from accounts.models import RegistrationStep
from accounts.security import verify_password
from tests.support import PASSWORD, build_stack


class RegistrationTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.stack = build_stack()
        self.registration = self.stack.registration

    async def start(self, email="new@x.com"):
        result = await self.registration.start_registration(email)
        return result.session_token

    async def verified(self, email="new@x.com"):
        token = await self.start(email)
        await self.registration.verify_otp(token, self.stack.dispatcher.last_otp(email))
        return token

    async def with_password(self, email="new@x.com"):
        token = await self.verified(email)
        await self.registration.set_password(token, PASSWORD, PASSWORD)
        return token

    async def with_username(self, email="new@x.com", username="validname"):
        token = await self.with_password(email)
        await self.registration.set_username(token, username)
        return token


class TestStartRegistration(RegistrationTestCase):
    async def test_creates_session_and_sends_otp(self):
        result = await self.registration.start_registration("  New@X.com ")

        self.assertEqual(result.email, "new@x.com")
        self.assertEqual(result.current_step, RegistrationStep.EMAIL)
        self.assertEqual(result.next_step, RegistrationStep.OTP)
        self.assertEqual(result.message, "OTP sent to your email. Please verify.")
        self.assertGreaterEqual(len(result.session_token), 43)
        self.assertEqual(len(self.stack.dispatcher.otps), 1)
        self.assertEqual(self.stack.dispatcher.otps[0][0], "new@x.com")

        session = await self.stack.registrations.get_by_token(result.session_token)
        self.assertFalse(session.is_email_verified)
        self.assertEqual(session.expiry - session.created_at, timedelta(minutes=30))

    async def test_rejects_blank_and_malformed_email(self):
        with self.assertRaises(EmptyEmailError):
            await self.registration.start_registration("   ")
        with self.assertRaises(InvalidEmailError):
            await self.registration.start_registration("not-an-email")

    async def test_rejects_registered_email(self):
        await self.stack.register("taken@x.com", "taken_user")

        with self.assertRaises(EmailAlreadyRegisteredError) as ctx:
            await self.registration.start_registration("TAKEN@x.com")
        self.assertEqual(
            ctx.exception.message, "Email is already registered. Please login instead."
        )

    async def test_restart_discards_previous_session_and_codes(self):
        first = await self.start()
        old_code = self.stack.dispatcher.last_otp("new@x.com")
        second = await self.start()

        self.assertNotEqual(first, second)
        self.assertIsNone(await self.stack.registrations.get_by_token(first))
        with self.assertRaises(SessionNotFoundError):
            await self.registration.verify_otp(first, old_code)
        self.assertIsNone(await self.stack.otps.find("new@x.com", old_code))


class TestResendOtp(RegistrationTestCase):
    async def test_resend_supersedes_previous_code(self):
        token = await self.start()
        old_code = self.stack.dispatcher.last_otp("new@x.com")

        result = await self.registration.resend_otp(token)
        new_code = self.stack.dispatcher.last_otp("new@x.com")

        self.assertEqual(result.current_step, RegistrationStep.EMAIL)
        self.assertEqual(result.message, "New OTP sent to your email.")
        self.assertEqual(len(self.stack.dispatcher.otps), 2)
        if old_code != new_code:
            with self.assertRaises(InvalidOtpError):
                await self.registration.verify_otp(token, old_code)
        await self.registration.verify_otp(token, new_code)

    async def test_resend_only_during_email_step(self):
        token = await self.verified()

        with self.assertRaises(InvalidStepError) as ctx:
            await self.registration.resend_otp(token)
        self.assertEqual(
            ctx.exception.message, "OTP can only be resent during email verification step."
        )


class TestVerifyOtp(RegistrationTestCase):
    async def test_correct_code_advances_to_otp_step(self):
        token = await self.start()

        result = await self.registration.verify_otp(
            token, self.stack.dispatcher.last_otp("new@x.com")
        )

        self.assertEqual(result.current_step, RegistrationStep.OTP)
        self.assertEqual(result.next_step, RegistrationStep.PASSWORD)
        session = await self.stack.registrations.get_by_token(token)
        self.assertTrue(session.is_email_verified)

    async def test_wrong_code_leaves_session_unchanged(self):
        token = await self.start()
        code = self.stack.dispatcher.last_otp("new@x.com")
        wrong = "000000" if code != "000000" else "111111"

        with self.assertRaises(InvalidOtpError):
            await self.registration.verify_otp(token, wrong)

        session = await self.stack.registrations.get_by_token(token)
        self.assertEqual(session.current_step, RegistrationStep.EMAIL)
        self.assertFalse(session.is_email_verified)

    async def test_expired_code_fails_like_wrong_code(self):
        token = await self.start()
        code = self.stack.dispatcher.last_otp("new@x.com")
        self.stack.clock.advance(minutes=11)
        # Keep the registration session itself alive.
        await self.stack.registrations.update_if_step(
            token, RegistrationStep.EMAIL, {"expiry": self.stack.clock() + timedelta(minutes=5)}
        )

        with self.assertRaises(InvalidOtpError) as ctx:
            await self.registration.verify_otp(token, code)
        self.assertEqual(ctx.exception.message, "Invalid or expired OTP")

    async def test_verifying_twice_is_an_invalid_step(self):
        token = await self.start()
        code = self.stack.dispatcher.last_otp("new@x.com")
        await self.registration.verify_otp(token, code)

        with self.assertRaises(InvalidStepError):
            await self.registration.verify_otp(token, code)


class TestStepGuards(RegistrationTestCase):
    async def test_unknown_token(self):
        for token in ("", "missing-token"):
            with self.assertRaises(SessionNotFoundError) as ctx:
                await self.registration.set_password(token, PASSWORD, PASSWORD)
            self.assertEqual(ctx.exception.message, "Invalid or expired session")

    async def test_username_before_password_is_invalid_step(self):
        token = await self.verified()

        with self.assertRaises(InvalidStepError):
            await self.registration.set_username(token, "validname")

    async def test_password_before_otp_is_invalid_step(self):
        token = await self.start()

        with self.assertRaises(InvalidStepError):
            await self.registration.set_password(token, PASSWORD, PASSWORD)

    async def test_complete_before_username_is_invalid_step(self):
        token = await self.with_password()

        with self.assertRaises(InvalidStepError):
            await self.registration.complete_registration(token)

    async def test_expired_session_is_deleted(self):
        token = await self.verified()
        self.stack.clock.advance(minutes=31)

        with self.assertRaises(SessionExpiredError) as ctx:
            await self.registration.set_password(token, PASSWORD, PASSWORD)
        self.assertEqual(
            ctx.exception.message, "Session expired. Please start registration again."
        )
        self.assertIsNone(await self.stack.registrations.get_by_token(token))

    async def test_successful_step_refreshes_expiry(self):
        token = await self.verified()
        self.stack.clock.advance(minutes=20)
        await self.registration.set_password(token, PASSWORD, PASSWORD)
        self.stack.clock.advance(minutes=20)

        result = await self.registration.set_username(token, "validname")
        self.assertEqual(result.current_step, RegistrationStep.USERNAME)

    async def test_completed_session_rejects_further_steps(self):
        token = await self.with_username()
        # A session marked COMPLETED but not yet deleted.
        await self.stack.registrations.update_if_step(
            token, RegistrationStep.USERNAME, {"current_step": RegistrationStep.COMPLETED}
        )

        with self.assertRaises(SessionCompletedError):
            await self.registration.complete_registration(token)

    async def test_concurrent_step_calls_only_one_wins(self):
        token = await self.with_password()

        results = await asyncio.gather(
            self.registration.set_username(token, "first_name"),
            self.registration.set_username(token, "second_name"),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], InvalidStepError)


class TestDetails(RegistrationTestCase):
    async def test_details_are_saved_without_moving_step(self):
        token = await self.verified()

        result = await self.registration.update_details(
            token,
            full_name=" Jane Doe ",
            phone_number="5550100",
            country_code="+1",
            date_of_birth=date(1990, 5, 17),
        )

        self.assertEqual(result.current_step, RegistrationStep.OTP)
        session = await self.stack.registrations.get_by_token(token)
        self.assertEqual(session.full_name, "Jane Doe")
        self.assertEqual(session.date_of_birth, date(1990, 5, 17))

    async def test_details_require_verified_email(self):
        token = await self.start()

        with self.assertRaises(InvalidStepError):
            await self.registration.update_details(token, full_name="Jane")

    async def test_future_birth_date_rejected(self):
        token = await self.verified()

        with self.assertRaises(ValidationFailed):
            await self.registration.update_details(
                token, date_of_birth=self.stack.clock().date() + timedelta(days=1)
            )

    async def test_birth_date_checked_against_service_clock(self):
        self.stack.clock.now = datetime(2000, 6, 1, tzinfo=timezone.utc)
        token = await self.verified()

        with self.assertRaises(ValidationFailed) as ctx:
            await self.registration.update_details(token, date_of_birth=date(2005, 1, 1))
        self.assertEqual(ctx.exception.message, "Date of birth cannot be in the future")

        with self.assertRaises(ValidationFailed) as ctx:
            await self.registration.update_details(token, date_of_birth=date(1849, 12, 31))
        self.assertEqual(ctx.exception.message, "Date of birth is too far in the past")

        await self.registration.update_details(token, date_of_birth=date(1851, 1, 1))
        session = await self.stack.registrations.get_by_token(token)
        self.assertEqual(session.date_of_birth, date(1851, 1, 1))

    async def test_blank_full_name_rejected(self):
        token = await self.verified()

        with self.assertRaises(ValidationFailed) as ctx:
            await self.registration.update_details(token, full_name="   ")
        self.assertEqual(ctx.exception.message, "Full name is required")

class TestSetPassword(RegistrationTestCase):
    async def test_stores_hash_and_advances(self):
        token = await self.verified()

        result = await self.registration.set_password(token, PASSWORD, PASSWORD)

        self.assertEqual(result.current_step, RegistrationStep.PASSWORD)
        self.assertEqual(result.message, "Password created. Please choose a username.")
        session = await self.stack.registrations.get_by_token(token)
        self.assertNotEqual(session.password_hash, PASSWORD)
        self.assertTrue(verify_password(PASSWORD, session.password_hash))

    async def test_mismatch(self):
        token = await self.verified()

        with self.assertRaises(PasswordMismatchError):
            await self.registration.set_password(token, PASSWORD, PASSWORD + "x")

    async def test_too_short(self):
        token = await self.verified()

        with self.assertRaises(WeakPasswordError) as ctx:
            await self.registration.set_password(token, "short1", "short1")
        self.assertIn("at least 8", ctx.exception.message)

    async def test_longer_than_bcrypt_limit(self):
        token = await self.verified()
        password = "a" * 73

        with self.assertRaises(WeakPasswordError):
            await self.registration.set_password(token, password, password)

    async def test_requires_verified_email(self):
        token = await self.start()
        await self.stack.registrations.update_if_step(
            token, RegistrationStep.EMAIL, {"current_step": RegistrationStep.OTP}
        )

        with self.assertRaises(EmailNotVerifiedForStepError):
            await self.registration.set_password(token, PASSWORD, PASSWORD)


class TestSetUsername(RegistrationTestCase):
    async def test_rejects_bad_formats(self):
        token = await self.with_password()

        for username in ("ab", "Abc123", "a b", "x" * 51, "name-with-dash"):
            with self.subTest(username=username):
                with self.assertRaises(InvalidUsernameError):
                    await self.registration.set_username(token, username)

    async def test_accepts_valid_username(self):
        token = await self.with_password()

        result = await self.registration.set_username(token, "abc_123")

        self.assertEqual(result.current_step, RegistrationStep.USERNAME)
        session = await self.stack.registrations.get_by_token(token)
        self.assertEqual(session.username, "abc_123")

    async def test_rejects_taken_username(self):
        await self.stack.register("first@x.com", "validname")
        token = await self.with_password("second@x.com")

        with self.assertRaises(UsernameTakenError):
            await self.registration.set_username(token, "validname")

    async def test_username_availability(self):
        await self.stack.register("first@x.com", "validname")

        self.assertFalse(await self.registration.is_username_available("validname"))
        self.assertFalse(await self.registration.is_username_available("Bad Name"))
        self.assertTrue(await self.registration.is_username_available("free_name"))


class TestCompleteRegistration(RegistrationTestCase):
    async def test_end_to_end_signup(self):
        start = await self.registration.start_registration("new@x.com")
        token = start.session_token
        code = self.stack.dispatcher.last_otp("new@x.com")

        await self.registration.verify_otp(token, code)
        await self.registration.set_password(token, "longenough1", "longenough1")
        await self.registration.set_username(token, "validname")
        result = await self.registration.complete_registration(
            token, full_name="New User", country_code="+44"
        )

        self.assertIsNone(result.session_token)
        self.assertEqual(result.current_step, RegistrationStep.COMPLETED)
        self.assertEqual(result.message, "Registration completed successfully!")

        user = await self.stack.users.get_by_email("new@x.com")
        self.assertEqual(user.username, "validname")
        self.assertEqual(user.email, "new@x.com")
        self.assertEqual(user.full_name, "New User")
        self.assertEqual(user.country_code, "+44")
        self.assertTrue(user.is_email_verified)
        self.assertTrue(verify_password("longenough1", user.password_hash))

        self.assertEqual(self.stack.dispatcher.welcomes, [("new@x.com", "validname")])
        with self.assertRaises(SessionNotFoundError):
            await self.registration.set_username(token, "othername")
        with self.assertRaises(SessionNotFoundError):
            await self.registration.complete_registration(token)

    async def test_username_claimed_meanwhile_is_rejected(self):
        token = await self.with_username(username="racer")
        await self.stack.register("other@x.com", "racer")

        with self.assertRaises(UsernameTakenError):
            await self.registration.complete_registration(token)
        self.assertIsNone(await self.stack.users.get_by_email("new@x.com"))

    async def test_lost_uniqueness_race_rolls_back_claim(self):
        token = await self.with_username(username="racer")
        await self.stack.register("other@x.com", "racer")

        # Both pre-checks pass, so only the store's unique constraint catches it.
        with patch.object(self.stack.users, "exists_by_username", AsyncMock(return_value=False)):
            with self.assertRaises(UsernameTakenError):
                await self.registration.complete_registration(token)

        session = await self.stack.registrations.get_by_token(token)
        self.assertEqual(session.current_step, RegistrationStep.USERNAME)
        self.assertIsNone(await self.stack.users.get_by_email("new@x.com"))
        self.assertEqual(self.stack.dispatcher.welcomes, [("other@x.com", "racer")])

    async def test_concurrent_completion_creates_one_user(self):
        token = await self.with_username()

        results = await asyncio.gather(
            self.registration.complete_registration(token),
            self.registration.complete_registration(token),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(
            failures[0], (InvalidStepError, SessionNotFoundError, SessionCompletedError)
        )
        self.assertIsNotNone(await self.stack.users.get_by_username("validname"))
        self.assertEqual(self.stack.dispatcher.welcomes, [("new@x.com", "validname")])

    async def test_user_is_created_after_session_is_claimed(self):
        token = await self.with_username()
        steps_seen = []
        create_user = self.stack.users.create_user

        async def recording_create(user):
            session = await self.stack.registrations.get_by_token(token)
            steps_seen.append(session.current_step)
            return await create_user(user)

        with patch.object(self.stack.users, "create_user", side_effect=recording_create):
            await self.registration.complete_registration(token)

        self.assertEqual(steps_seen, [RegistrationStep.COMPLETED])


class TestPurgeExpired(RegistrationTestCase):
    async def test_removes_only_expired_sessions(self):
        await self.start("old@x.com")
        self.stack.clock.advance(minutes=20)
        fresh = await self.start("fresh@x.com")
        self.stack.clock.advance(minutes=15)

        self.assertEqual(await self.registration.purge_expired(), 1)
        self.assertIsNotNone(await self.stack.registrations.get_by_token(fresh))


if __name__ == "__main__":
    unittest.main()
