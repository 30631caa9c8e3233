"""Services package exports."""

from account_service.services.logging_service import configure_logging, get_logger
from account_service.services.media_service import MediaAsset, MediaFile, MediaUploader
from account_service.services.password_hasher import PasswordHasher
from account_service.services.session_service import LoginResult, SessionManager
from account_service.services.token_service import (
    TokenError,
    TokenErrorReason,
    TokenIssuer,
    TokenType,
)
from account_service.services.user_service import UserService

__all__ = [
    "LoginResult",
    "MediaAsset",
    "MediaFile",
    "MediaUploader",
    "PasswordHasher",
    "SessionManager",
    "TokenError",
    "TokenErrorReason",
    "TokenIssuer",
    "TokenType",
    "UserService",
    "configure_logging",
    "get_logger",
]
