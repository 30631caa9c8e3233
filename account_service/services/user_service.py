"""Registration and profile operations."""

from typing import List, Optional
from uuid import UUID

import structlog

from account_service.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from account_service.models.user import ChannelProfile, User, WatchedVideo
from account_service.services.media_service import MediaFile, MediaUploader
from account_service.services.password_hasher import PasswordHasher, password_too_long
from account_service.storage.base import CredentialStore

logger = structlog.get_logger(__name__)


def _normalize(value: str) -> str:
    return value.strip().lower()


def _validate_email(email: str) -> None:
    if "@" not in email:
        raise ValidationError("Email is not valid")


class UserService:
    """Service for user registration and profile management."""

    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        uploader: MediaUploader,
    ):
        self.store = store
        self.hasher = hasher
        self.uploader = uploader

    async def register(
        self,
        fullname: str,
        email: str,
        username: str,
        password: str,
        avatar: Optional[MediaFile],
        cover_image: Optional[MediaFile] = None,
    ) -> User:
        """Create a new account.

        Input is validated and uniqueness checked before any upload happens,
        so rejected registrations never touch the media store.

        Args:
            fullname: Display name
            email: Email address, stored lowercase
            username: Username, stored lowercase
            password: Plain-text password (will be hashed)
            avatar: Required avatar image
            cover_image: Optional cover image

        Returns:
            Sanitized User

        Raises:
            ValidationError: Empty field, invalid email, over-long password or
                missing avatar
            ConflictError: Username or email already taken
            UpstreamError: Avatar upload failed
            InternalError: The created user could not be read back
        """
        fields = [fullname, email, username, password]
        if any(not (field or "").strip() for field in fields):
            raise ValidationError("All fields are required")

        email = _normalize(email)
        username = _normalize(username)
        fullname = fullname.strip()
        _validate_email(email)
        if password_too_long(password):
            raise ValidationError("Password must be at most 72 bytes")

        if await self.store.username_or_email_taken(username, email):
            logger.info("registration_conflict", username=username)
            raise ConflictError("User with email or username already exists")

        if avatar is None or avatar.is_empty:
            raise ValidationError("Avatar file is required")

        avatar_asset = await self.uploader.upload(avatar)
        if avatar_asset is None:
            raise UpstreamError("Avatar upload failed")

        cover_url = ""
        if cover_image is not None and not cover_image.is_empty:
            cover_asset = await self.uploader.upload(cover_image)
            if cover_asset is None:
                logger.warning("cover_image_upload_skipped", username=username)
            else:
                cover_url = cover_asset.url

        record = await self.store.create_user(
            username=username,
            email=email,
            fullname=fullname,
            password_hash=self.hasher.hash(password),
            avatar=avatar_asset.url,
            cover_image=cover_url,
        )

        user = await self.store.get_user(record.id)
        if user is None:
            logger.error("registration_read_back_failed", user_id=str(record.id))
            raise InternalError("Something went wrong while registering the user")

        logger.info("user_registered", user_id=str(user.id), username=user.username)
        return user

    async def update_account(self, user_id: UUID, fullname: str, email: str) -> User:
        """Update display name and email.

        Raises:
            ValidationError: If either field is empty or the email is invalid
            ConflictError: If the email belongs to another user
            NotFoundError: If the user no longer exists
        """
        if not (fullname or "").strip() or not (email or "").strip():
            raise ValidationError("All fields are required")

        email = _normalize(email)
        _validate_email(email)

        user = await self.store.update_profile(
            user_id, fullname=fullname.strip(), email=email
        )
        if user is None:
            raise NotFoundError("User does not exist")
        return user

    async def _upload_required(self, file: Optional[MediaFile], label: str) -> str:
        if file is None or file.is_empty:
            raise ValidationError(f"{label} file is missing")

        asset = await self.uploader.upload(file)
        if asset is None:
            raise UpstreamError(f"Error while uploading {label.lower()}")
        return asset.url

    async def update_avatar(self, user_id: UUID, avatar: Optional[MediaFile]) -> User:
        """Upload and store a new avatar."""
        url = await self._upload_required(avatar, "Avatar")
        user = await self.store.update_profile(user_id, avatar=url)
        if user is None:
            raise NotFoundError("User does not exist")
        logger.info("avatar_updated", user_id=str(user_id))
        return user

    async def update_cover_image(
        self, user_id: UUID, cover_image: Optional[MediaFile]
    ) -> User:
        """Upload and store a new cover image."""
        url = await self._upload_required(cover_image, "Cover image")
        user = await self.store.update_profile(user_id, cover_image=url)
        if user is None:
            raise NotFoundError("User does not exist")
        logger.info("cover_image_updated", user_id=str(user_id))
        return user

    async def get_channel_profile(
        self, username: str, viewer_id: Optional[UUID] = None
    ) -> ChannelProfile:
        """Public channel page for a username, seen by ``viewer_id``.

        Raises:
            ValidationError: If the username is blank
            NotFoundError: If no such channel exists
        """
        if not (username or "").strip():
            raise ValidationError("Username is missing")

        profile = await self.store.get_channel_profile(_normalize(username), viewer_id)
        if profile is None:
            raise NotFoundError("Channel does not exist")
        return profile

    async def get_watch_history(self, user_id: UUID) -> List[WatchedVideo]:
        """Watched videos, most recent first."""
        return await self.store.get_watch_history(user_id)
