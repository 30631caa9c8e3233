"""Registration and session endpoints."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status

from account_service.api.dependencies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    get_current_user,
    get_session_manager,
    get_user_service,
)
from account_service.api.uploads import to_media_file
from account_service.config import Settings
from account_service.models.auth import (
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    SessionResponse,
)
from account_service.models.user import User
from account_service.services.session_service import LoginResult, SessionManager
from account_service.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["Auth"])


def _cookie_options(settings: Settings) -> dict:
    return {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
        "path": "/",
    }


def _set_session_cookies(
    response: Response, sessions: SessionManager, result: LoginResult
) -> None:
    """Attach both tokens as HTTP-only cookies that expire with the tokens."""
    options = _cookie_options(sessions.settings)
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        result.tokens.access_token,
        max_age=int(sessions.issuer.access_token_ttl.total_seconds()),
        **options,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        result.tokens.refresh_token,
        max_age=int(sessions.issuer.refresh_token_ttl.total_seconds()),
        **options,
    )


def _session_response(result: LoginResult) -> SessionResponse:
    return SessionResponse(
        user=result.user,
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
    )


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=User)
async def register(
    fullname: str = Form(""),
    email: str = Form(""),
    username: str = Form(""),
    password: str = Form(""),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    users: UserService = Depends(get_user_service),
) -> User:
    """Create an account from a multipart form.

    Returns:
        The sanitized user (no password or refresh token fields)

    Raises:
        ValidationError 400, ConflictError 409, UpstreamError 502
    """
    return await users.register(
        fullname=fullname,
        email=email,
        username=username,
        password=password,
        avatar=await to_media_file(avatar),
        cover_image=await to_media_file(cover_image),
    )


@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    response: Response,
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    """Login with username or email plus password.

    Sets accessToken and refreshToken cookies and returns the same tokens in
    the body.

    Raises:
        ValidationError 400, NotFoundError 404, UnauthorizedError 401
    """
    result = await sessions.login(
        password=body.password,
        username=body.username,
        email=body.email,
    )
    _set_session_cookies(response, sessions, result)
    return _session_response(result)


@router.post("/refresh-token", response_model=SessionResponse)
async def refresh_token(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    """Rotate the refresh token and issue a new access token.

    The refresh token is read from the refreshToken cookie, or from the JSON
    body when no cookie is sent. The presented token is unusable afterwards.

    Raises:
        UnauthorizedError 401: Missing, invalid, expired or already used token
    """
    presented = request.cookies.get(REFRESH_TOKEN_COOKIE) or (
        body.refresh_token if body else None
    )
    result = await sessions.refresh(presented)
    _set_session_cookies(response, sessions, result)
    return _session_response(result)


@router.post("/logout")
async def logout(
    response: Response,
    current_user: User = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
) -> dict:
    """Invalidate the stored refresh token and clear both cookies."""
    await sessions.logout(current_user.id)

    options = _cookie_options(sessions.settings)
    response.delete_cookie(ACCESS_TOKEN_COOKIE, **options)
    response.delete_cookie(REFRESH_TOKEN_COOKIE, **options)
    return {}


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
) -> dict:
    """Change the password after re-verifying the current one.

    Raises:
        ValidationError 400, UnauthorizedError 401
    """
    await sessions.change_password(
        current_user.id,
        old_password=body.old_password,
        new_password=body.new_password,
    )
    return {}
