"""User, channel and watch-history models."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from account_service.models.common import ApiModel


class User(ApiModel):
    """Sanitized user projection. Safe to return to clients and to log."""

    id: UUID
    username: str
    email: str
    fullname: str
    avatar: str
    cover_image: str = ""
    created_at: datetime
    updated_at: datetime


class UserRecord(User):
    """Full stored identity, including credential material.

    The secret fields are excluded from serialization and repr; use
    ``public()`` whenever the record leaves the service layer.
    """

    password_hash: str = Field(exclude=True, repr=False)
    refresh_token_hash: Optional[str] = Field(default=None, exclude=True, repr=False)

    def public(self) -> User:
        """Return the sanitized projection of this record."""
        return User.model_validate(self.model_dump())


class ChannelProfile(ApiModel):
    """A user's public channel page with subscription counts."""

    id: UUID
    username: str
    fullname: str
    email: str
    avatar: str
    cover_image: str = ""
    subscribers_count: int = 0
    channels_subscribed_to_count: int = 0
    is_subscribed: bool = False


class VideoOwner(ApiModel):
    """Public fields of the user who uploaded a video."""

    id: UUID
    username: str
    fullname: str
    avatar: str


class Video(ApiModel):
    """A published video."""

    id: UUID
    owner_id: UUID
    title: str
    description: str = ""
    thumbnail: str = ""
    video_file: str = ""
    duration: float = 0.0
    views: int = 0
    created_at: datetime


class WatchedVideo(ApiModel):
    """An entry in a user's watch history, joined with the video owner."""

    id: UUID
    title: str
    description: str = ""
    thumbnail: str = ""
    video_file: str = ""
    duration: float = 0.0
    views: int = 0
    owner: VideoOwner
    watched_at: datetime

