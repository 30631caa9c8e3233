"""Profile endpoints for the authenticated user."""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile

from account_service.api.dependencies import get_current_user, get_user_service
from account_service.api.uploads import to_media_file
from account_service.models.auth import UpdateAccountRequest
from account_service.models.user import ChannelProfile, User, WatchedVideo
from account_service.services.user_service import UserService

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/current-user", response_model=User)
async def get_current_user_profile(
    current_user: User = Depends(get_current_user),
) -> User:
    """Return the authenticated user."""
    return current_user


@router.patch("/update-account", response_model=User)
async def update_account(
    body: UpdateAccountRequest,
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> User:
    """Update fullname and email."""
    return await users.update_account(
        current_user.id, fullname=body.fullname, email=body.email
    )


@router.patch("/avatar", response_model=User)
async def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> User:
    """Replace the avatar image."""
    return await users.update_avatar(current_user.id, await to_media_file(avatar))


@router.patch("/cover-image", response_model=User)
async def update_cover_image(
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> User:
    """Replace the cover image."""
    return await users.update_cover_image(
        current_user.id, await to_media_file(cover_image)
    )


@router.get("/c/{username}", response_model=ChannelProfile)
async def get_channel_profile(
    username: str,
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> ChannelProfile:
    """Channel page with subscriber counts and whether the caller subscribes."""
    return await users.get_channel_profile(username, viewer_id=current_user.id)


@router.get("/history", response_model=List[WatchedVideo])
async def get_watch_history(
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> List[WatchedVideo]:
    """Videos the caller has watched, most recent first."""
    return await users.get_watch_history(current_user.id)
