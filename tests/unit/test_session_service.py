"""Unit tests for SessionManager.

Runs against the memory store with real bcrypt hashing and real JWTs so the
refresh token slot can be inspected directly.
"""

import asyncio
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from account_service.errors import NotFoundError, UnauthorizedError, ValidationError
from account_service.services.session_service import SessionManager
from account_service.services.token_service import fingerprint_token

PASSWORD = "Secret123"


async def _stored_hash(store, user_id):
    record = await store.get_record(user_id)
    return record.refresh_token_hash


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------

class TestLogin:
    async def test_by_username(self, session_manager, store, alice):
        result = await session_manager.login(password=PASSWORD, username="alice")

        assert result.user.id == alice.id
        assert result.tokens.access_token
        assert result.tokens.refresh_token

    async def test_by_email_case_insensitive(self, session_manager, alice):
        result = await session_manager.login(password=PASSWORD, email="  ALICE@X.COM ")
        assert result.user.id == alice.id

    async def test_username_case_insensitive(self, session_manager, alice):
        result = await session_manager.login(password=PASSWORD, username="Alice")
        assert result.user.username == "alice"

    async def test_username_wins_over_another_users_email(
        self, session_manager, store, hasher, alice
    ):
        bob = await store.create_user(
            username="bob",
            email="bob@x.com",
            fullname="Bob",
            password_hash=hasher.hash("Bobpass123"),
            avatar="https://media.test/bob.png",
        )

        result = await session_manager.login(
            password="Bobpass123", username="bob", email="alice@x.com"
        )
        assert result.user.id == bob.id

    async def test_persists_refresh_token_fingerprint(self, session_manager, store, alice):
        result = await session_manager.login(password=PASSWORD, username="alice")
        assert await _stored_hash(store, alice.id) == fingerprint_token(
            result.tokens.refresh_token
        )

    async def test_access_token_verifies(self, session_manager, issuer, alice):
        result = await session_manager.login(password=PASSWORD, username="alice")
        claims = issuer.verify_access_token(result.tokens.access_token)
        assert claims["sub"] == str(alice.id)

    async def test_returned_user_is_sanitized(self, session_manager, alice):
        result = await session_manager.login(password=PASSWORD, username="alice")
        dumped = result.user.model_dump()
        assert "password_hash" not in dumped
        assert "refresh_token_hash" not in dumped

    async def test_wrong_password_does_not_touch_slot(
        self, session_manager, store, alice
    ):
        first = await session_manager.login(password=PASSWORD, username="alice")
        before = await _stored_hash(store, alice.id)

        with pytest.raises(UnauthorizedError):
            await session_manager.login(password="wrong-password", username="alice")

        assert await _stored_hash(store, alice.id) == before
        assert before == fingerprint_token(first.tokens.refresh_token)

    async def test_unknown_user(self, session_manager):
        with pytest.raises(NotFoundError):
            await session_manager.login(password=PASSWORD, username="ghost")

    async def test_requires_identifier(self, session_manager):
        with pytest.raises(ValidationError, match="Username or email"):
            await session_manager.login(password=PASSWORD)

    async def test_requires_password(self, session_manager, store):
        store.find_record = AsyncMock()
        with pytest.raises(ValidationError):
            await session_manager.login(password="", username="alice")
        store.find_record.assert_not_awaited()

    async def test_second_login_invalidates_first_refresh_token(
        self, session_manager, alice
    ):
        first = await session_manager.login(password=PASSWORD, username="alice")
        await session_manager.login(password=PASSWORD, username="alice")

        with pytest.raises(UnauthorizedError):
            await session_manager.refresh(first.tokens.refresh_token)


# ---------------------------------------------------------------------------
# refresh
# ---------------------------------------------------------------------------

class TestRefresh:
    async def test_rotation(self, session_manager, store, alice):
        login = await session_manager.login(password=PASSWORD, username="alice")
        r0 = login.tokens.refresh_token

        rotated = await session_manager.refresh(r0)
        r1 = rotated.tokens.refresh_token

        assert r1 != r0
        assert rotated.tokens.access_token
        assert await _stored_hash(store, alice.id) == fingerprint_token(r1)

        # The old token is permanently unusable
        with pytest.raises(UnauthorizedError):
            await session_manager.refresh(r0)

        # The new one still works
        again = await session_manager.refresh(r1)
        assert again.user.id == alice.id

    async def test_reuse_does_not_revoke_current_token(self, session_manager, alice):
        login = await session_manager.login(password=PASSWORD, username="alice")
        r1 = (await session_manager.refresh(login.tokens.refresh_token)).tokens.refresh_token

        with pytest.raises(UnauthorizedError):
            await session_manager.refresh(login.tokens.refresh_token)

        await session_manager.refresh(r1)

    async def test_missing_token(self, session_manager):
        with pytest.raises(UnauthorizedError):
            await session_manager.refresh(None)

    async def test_garbage_token(self, session_manager):
        with pytest.raises(UnauthorizedError, match="Invalid refresh token"):
            await session_manager.refresh("garbage")

    async def test_access_token_is_rejected(self, session_manager, alice):
        login = await session_manager.login(password=PASSWORD, username="alice")
        with pytest.raises(UnauthorizedError, match="Invalid refresh token"):
            await session_manager.refresh(login.tokens.access_token)

    async def test_valid_token_for_unknown_user(self, session_manager, issuer):
        token = issuer.issue_refresh_token(uuid4())
        with pytest.raises(UnauthorizedError, match="Invalid refresh token"):
            await session_manager.refresh(token)

    async def test_forged_but_signed_token_for_real_user(
        self, session_manager, issuer, alice
    ):
        await session_manager.login(password=PASSWORD, username="alice")
        # Verifies cryptographically but was never stored
        forged = issuer.issue_refresh_token(alice.id)

        with pytest.raises(UnauthorizedError, match="Invalid refresh token"):
            await session_manager.refresh(forged)

    async def test_refresh_before_any_login(self, session_manager, issuer, alice):
        with pytest.raises(UnauthorizedError):
            await session_manager.refresh(issuer.issue_refresh_token(alice.id))

    async def test_lost_race_is_rejected(self, session_manager, store, alice):
        login = await session_manager.login(password=PASSWORD, username="alice")
        store.rotate_refresh_token = AsyncMock(return_value=False)

        with pytest.raises(UnauthorizedError, match="Invalid refresh token"):
            await session_manager.refresh(login.tokens.refresh_token)

    async def test_concurrent_refresh_only_one_wins(self, session_manager, alice):
        login = await session_manager.login(password=PASSWORD, username="alice")
        token = login.tokens.refresh_token

        results = await asyncio.gather(
            session_manager.refresh(token),
            session_manager.refresh(token),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, UnauthorizedError)]
        assert len(successes) == 1
        assert len(failures) == 1


# ---------------------------------------------------------------------------
# logout
# ---------------------------------------------------------------------------

class TestLogout:
    async def test_clears_slot(self, session_manager, store, alice):
        await session_manager.login(password=PASSWORD, username="alice")
        await session_manager.logout(alice.id)
        assert await _stored_hash(store, alice.id) is None

    async def test_refresh_after_logout_fails(self, session_manager, alice):
        login = await session_manager.login(password=PASSWORD, username="alice")
        await session_manager.logout(alice.id)

        with pytest.raises(UnauthorizedError):
            await session_manager.refresh(login.tokens.refresh_token)

    async def test_idempotent(self, session_manager, store, alice):
        await session_manager.login(password=PASSWORD, username="alice")
        await session_manager.logout(alice.id)
        await session_manager.logout(alice.id)
        assert await _stored_hash(store, alice.id) is None


# ---------------------------------------------------------------------------
# change_password
# ---------------------------------------------------------------------------

class TestChangePassword:
    async def test_changes_password(self, session_manager, alice):
        await session_manager.change_password(alice.id, PASSWORD, "NewSecret456")

        await session_manager.login(password="NewSecret456", username="alice")
        with pytest.raises(UnauthorizedError):
            await session_manager.login(password=PASSWORD, username="alice")

    async def test_wrong_old_password(self, session_manager, store, alice):
        before = (await store.get_record(alice.id)).password_hash

        with pytest.raises(UnauthorizedError, match="Invalid old password"):
            await session_manager.change_password(alice.id, "nope", "NewSecret456")

        assert (await store.get_record(alice.id)).password_hash == before

    async def test_empty_new_password(self, session_manager, alice):
        with pytest.raises(ValidationError):
            await session_manager.change_password(alice.id, PASSWORD, "")

    async def test_over_long_new_password(self, session_manager, alice):
        with pytest.raises(ValidationError, match="72 bytes"):
            await session_manager.change_password(alice.id, PASSWORD, "x" * 73)

    async def test_unknown_user(self, session_manager):
        with pytest.raises(NotFoundError):
            await session_manager.change_password(uuid4(), PASSWORD, "NewSecret456")

    async def test_keeps_refresh_token_by_default(self, session_manager, alice):
        login = await session_manager.login(password=PASSWORD, username="alice")
        await session_manager.change_password(alice.id, PASSWORD, "NewSecret456")

        await session_manager.refresh(login.tokens.refresh_token)

    async def test_can_revoke_sessions_when_configured(
        self, settings_factory, store, hasher, issuer, alice
    ):
        sessions = SessionManager(
            settings_factory(revoke_sessions_on_password_change=True),
            store,
            hasher,
            issuer,
        )
        login = await sessions.login(password=PASSWORD, username="alice")
        await sessions.change_password(alice.id, PASSWORD, "NewSecret456")

        with pytest.raises(UnauthorizedError):
            await sessions.refresh(login.tokens.refresh_token)
