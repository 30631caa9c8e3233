"""Credential store interface shared by the Postgres and memory backends."""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from account_service.models.user import ChannelProfile, User, UserRecord, WatchedVideo


class CredentialStore(ABC):
    """Persistence for user identities, credentials and profile relationships.

    ``UserRecord`` values carry the password hash and refresh token
    fingerprint and never leave the service layer; every other read returns
    the sanitized ``User`` projection.

    Refresh token references are written only through ``set_refresh_token``
    (unconditional) and ``rotate_refresh_token`` (compare-and-swap).
    """

    backend_name: str = "abstract"

    @abstractmethod
    async def create_user(
        self,
        *,
        username: str,
        email: str,
        fullname: str,
        password_hash: str,
        avatar: str,
        cover_image: str = "",
    ) -> UserRecord:
        """Insert a new user.

        Raises:
            ConflictError: If the username or email is already taken
        """

    @abstractmethod
    async def get_user(self, user_id: UUID) -> Optional[User]:
        """Sanitized user by id, or None."""

    @abstractmethod
    async def get_record(self, user_id: UUID) -> Optional[UserRecord]:
        """Full record by id, or None."""

    @abstractmethod
    async def find_record(
        self, username: Optional[str] = None, email: Optional[str] = None
    ) -> Optional[UserRecord]:
        """Full record matching the username OR the email, or None.

        Both identifiers are compared against the stored lowercase form. When
        they name different users the username match wins.
        """

    @abstractmethod
    async def username_or_email_taken(self, username: str, email: str) -> bool:
        """Whether any user already holds this username or email."""

    @abstractmethod
    async def set_refresh_token(
        self, user_id: UUID, token_hash: Optional[str]
    ) -> None:
        """Overwrite (or clear, with None) the stored refresh token reference."""

    @abstractmethod
    async def rotate_refresh_token(
        self, user_id: UUID, expected_hash: str, new_hash: str
    ) -> bool:
        """Replace the reference only if it still equals ``expected_hash``.

        Returns:
            True if this call performed the swap, False if the stored value
            had already changed
        """

    @abstractmethod
    async def update_password_hash(self, user_id: UUID, password_hash: str) -> None:
        """Persist a new password hash."""

    @abstractmethod
    async def update_profile(
        self,
        user_id: UUID,
        *,
        fullname: Optional[str] = None,
        email: Optional[str] = None,
        avatar: Optional[str] = None,
        cover_image: Optional[str] = None,
    ) -> Optional[User]:
        """Update the provided profile fields.

        Returns:
            Updated sanitized user, or None if the user does not exist

        Raises:
            ConflictError: If the new email belongs to another user
        """

    @abstractmethod
    async def add_subscription(self, subscriber_id: UUID, channel_id: UUID) -> None:
        """Record that ``subscriber_id`` follows ``channel_id`` (idempotent).

        No route here writes subscriptions; the subscription feature owns that
        flow. This hook seeds them for channel profiles and tests.
        """

    @abstractmethod
    async def get_channel_profile(
        self, username: str, viewer_id: Optional[UUID] = None
    ) -> Optional[ChannelProfile]:
        """Channel page for a username with subscription counts, or None."""

    @abstractmethod
    async def record_watch(self, user_id: UUID, video_id: UUID) -> None:
        """Add a video to a user's watch history, or move it to the top.

        Playback lives in the video feature, which calls this; here it is a
        seeding hook for watch history reads and tests.
        """

    @abstractmethod
    async def get_watch_history(self, user_id: UUID) -> List[WatchedVideo]:
        """Watched videos with owner details, most recent first."""
