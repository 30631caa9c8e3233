"""Models package exports."""

from account_service.models.auth import (
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    SessionResponse,
    TokenPair,
    UpdateAccountRequest,
)
from account_service.models.user import (
    ChannelProfile,
    User,
    UserRecord,
    Video,
    VideoOwner,
    WatchedVideo,
)

__all__ = [
    "ChangePasswordRequest",
    "ChannelProfile",
    "LoginRequest",
    "RefreshRequest",
    "SessionResponse",
    "TokenPair",
    "UpdateAccountRequest",
    "User",
    "UserRecord",
    "Video",
    "VideoOwner",
    "WatchedVideo",
]
