"""Auth request and response models."""

from typing import Optional

from account_service.models.common import ApiModel
from account_service.models.user import User


class LoginRequest(ApiModel):
    """Login credentials. Either username or email identifies the account.

    Attributes:
        username: Account username (case-insensitive)
        email: Account email (case-insensitive)
        password: Plain-text password
    """

    username: Optional[str] = None
    email: Optional[str] = None
    password: str = ""


class RefreshRequest(ApiModel):
    """Refresh token supplied in the body when the cookie is not available."""

    refresh_token: Optional[str] = None


class ChangePasswordRequest(ApiModel):
    """Password change for the authenticated user.

    Attributes:
        old_password: Current password, re-verified before the change
        new_password: Replacement password
    """

    old_password: str = ""
    new_password: str = ""


class UpdateAccountRequest(ApiModel):
    """Account detail update. Both fields are required."""

    fullname: str = ""
    email: str = ""


class TokenPair(ApiModel):
    """Freshly minted access and refresh tokens."""

    access_token: str
    refresh_token: str


class SessionResponse(ApiModel):
    """Login/refresh response body: the user and both tokens.

    Attributes:
        user: Sanitized user, without password or refresh token fields
        access_token: Short-lived JWT for API access
        refresh_token: Long-lived JWT used only to obtain a new pair
    """

    user: User
    access_token: str
    refresh_token: str
