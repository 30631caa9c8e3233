"""FastAPI dependencies: service lookup and the access-token gate."""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from account_service.errors import UnauthorizedError
from account_service.models.user import User
from account_service.services.session_service import SessionManager
from account_service.services.token_service import TokenError, TokenIssuer
from account_service.services.user_service import UserService
from account_service.storage.base import CredentialStore

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

# Missing header is not an error here; the cookie may carry the token
bearer_scheme = HTTPBearer(auto_error=False)


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_store(request: Request) -> CredentialStore:
    return request.app.state.store


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    issuer: TokenIssuer = Depends(get_token_issuer),
    store: CredentialStore = Depends(get_store),
) -> User:
    """Resolve the authenticated user from the access token.

    The token is read from the accessToken cookie, falling back to an
    ``Authorization: Bearer`` header. Validation is stateless apart from
    loading the user; the refresh token is never consulted.

    Every failure produces the same 401 so callers cannot tell an expired
    token from a forged one.

    Returns:
        Sanitized User, also stored on request.state.user

    Raises:
        UnauthorizedError: If the token is missing, invalid, expired, or its
            subject no longer exists
    """
    token = request.cookies.get(ACCESS_TOKEN_COOKIE) or (
        credentials.credentials if credentials else None
    )
    if not token:
        raise UnauthorizedError("Unauthorized request")

    try:
        claims = issuer.verify_access_token(token)
        user_id = UUID(claims["sub"])
    except TokenError as e:
        logger.info("access_token_rejected", token_error=e.reason.value)
        raise UnauthorizedError("Invalid access token")
    except ValueError:
        logger.info("access_token_rejected", token_error="bad_subject")
        raise UnauthorizedError("Invalid access token")

    user = await store.get_user(user_id)
    if user is None:
        logger.info("access_token_rejected", token_error="unknown_user")
        raise UnauthorizedError("Invalid access token")

    request.state.user = user
    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user
