"""Login, refresh-token rotation, logout and password changes."""

import hmac
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import structlog

from account_service.config import Settings
from account_service.errors import NotFoundError, UnauthorizedError, ValidationError
from account_service.models.auth import TokenPair
from account_service.models.user import User, UserRecord
from account_service.services.password_hasher import PasswordHasher, password_too_long
from account_service.services.token_service import (
    TokenError,
    TokenIssuer,
    fingerprint_token,
)
from account_service.storage.base import CredentialStore

logger = structlog.get_logger(__name__)

# Every refresh failure reports the same message, reuse included
INVALID_REFRESH_TOKEN = "Invalid refresh token"


@dataclass
class LoginResult:
    """A sanitized user plus the token pair issued at login."""

    user: User
    tokens: TokenPair


class SessionManager:
    """Owns the refresh token slot on each user record.

    A user has at most one valid refresh token: login overwrites the slot,
    refresh swaps it for a new value, logout clears it.
    """

    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
    ):
        self.settings = settings
        self.store = store
        self.hasher = hasher
        self.issuer = issuer

    def _issue_pair(self, record: UserRecord) -> TokenPair:
        return TokenPair(
            access_token=self.issuer.issue_access_token(
                user_id=record.id,
                username=record.username,
                email=record.email,
                fullname=record.fullname,
            ),
            refresh_token=self.issuer.issue_refresh_token(record.id),
        )

    async def login(
        self,
        password: str,
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> LoginResult:
        """Verify credentials and start a new session.

        Args:
            password: Plain-text password
            username: Username, case-insensitive
            email: Email, case-insensitive

        Returns:
            LoginResult with the sanitized user and a fresh token pair

        Raises:
            ValidationError: If no identifier or no password is given
            NotFoundError: If no user matches
            UnauthorizedError: If the password is wrong
        """
        username = (username or "").strip()
        email = (email or "").strip()
        if not username and not email:
            raise ValidationError("Username or email is required")
        if not password:
            raise ValidationError("Password is required")

        record = await self.store.find_record(
            username=username or None, email=email or None
        )
        if record is None:
            logger.info("login_failed", reason="user_not_found")
            raise NotFoundError("User does not exist")

        if not self.hasher.verify(password, record.password_hash):
            logger.info("login_failed", reason="bad_password", user_id=str(record.id))
            raise UnauthorizedError("Invalid user credentials")

        tokens = self._issue_pair(record)
        # Overwriting the slot invalidates any refresh token from an earlier login
        await self.store.set_refresh_token(
            record.id, fingerprint_token(tokens.refresh_token)
        )

        logger.info("user_logged_in", user_id=str(record.id), username=record.username)
        return LoginResult(user=record.public(), tokens=tokens)

    async def refresh(self, refresh_token: Optional[str]) -> LoginResult:
        """Exchange a refresh token for a new token pair.

        The presented token must verify against the refresh secret and match
        the reference stored on the user. On success the stored reference is
        swapped for the new token, so the presented one can never be used
        again.

        Raises:
            UnauthorizedError: For a missing, invalid, expired, reused or
                concurrently rotated token
        """
        if not refresh_token:
            raise UnauthorizedError("Unauthorized request")

        try:
            claims = self.issuer.verify_refresh_token(refresh_token)
        except TokenError as e:
            logger.info("refresh_token_rejected", token_error=e.reason.value)
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        try:
            user_id = UUID(claims["sub"])
        except ValueError:
            logger.info("refresh_token_rejected", token_error="bad_subject")
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        record = await self.store.get_record(user_id)
        if record is None:
            logger.info("refresh_token_rejected", token_error="unknown_user")
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        presented = fingerprint_token(refresh_token)
        if record.refresh_token_hash is None or not hmac.compare_digest(
            record.refresh_token_hash, presented
        ):
            # Verifies cryptographically but is no longer the current token
            logger.warning("refresh_token_reuse_detected", user_id=str(user_id))
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        tokens = self._issue_pair(record)
        rotated = await self.store.rotate_refresh_token(
            user_id,
            expected_hash=presented,
            new_hash=fingerprint_token(tokens.refresh_token),
        )
        if not rotated:
            logger.warning("refresh_token_rotation_lost_race", user_id=str(user_id))
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        logger.info("refresh_token_rotated", user_id=str(user_id))
        return LoginResult(user=record.public(), tokens=tokens)

    async def logout(self, user_id: UUID) -> None:
        """Clear the stored refresh token. Safe to call repeatedly."""
        await self.store.set_refresh_token(user_id, None)
        logger.info("user_logged_out", user_id=str(user_id))

    async def change_password(
        self, user_id: UUID, old_password: str, new_password: str
    ) -> None:
        """Replace the password after re-verifying the current one.

        The refresh token is left in place unless
        ``revoke_sessions_on_password_change`` is enabled.

        Raises:
            ValidationError: If either password is empty or the new one is too long
            NotFoundError: If the user no longer exists
            UnauthorizedError: If the old password is wrong
        """
        if not old_password or not new_password:
            raise ValidationError("Old and new passwords are required")
        if password_too_long(new_password):
            raise ValidationError("Password must be at most 72 bytes")

        record = await self.store.get_record(user_id)
        if record is None:
            raise NotFoundError("User does not exist")

        if not self.hasher.verify(old_password, record.password_hash):
            logger.info("password_change_failed", user_id=str(user_id))
            raise UnauthorizedError("Invalid old password")

        await self.store.update_password_hash(user_id, self.hasher.hash(new_password))

        if self.settings.revoke_sessions_on_password_change:
            await self.store.set_refresh_token(user_id, None)

        logger.info(
            "password_changed",
            user_id=str(user_id),
            sessions_revoked=self.settings.revoke_sessions_on_password_change,
        )
