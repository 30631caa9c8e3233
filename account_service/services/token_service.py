"""JWT access and refresh token issuing and verification."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional
from uuid import UUID

import jwt
import structlog

from account_service.config import Settings

logger = structlog.get_logger(__name__)

# Claims every token must carry before its payload is trusted
REQUIRED_CLAIMS = ["sub", "exp", "iat", "type"]


class TokenType(str, Enum):
    """The two token classes, each signed with its own secret."""

    ACCESS = "access"
    REFRESH = "refresh"


class TokenErrorReason(str, Enum):
    """Why a token failed verification."""

    EXPIRED = "expired"
    MALFORMED = "malformed"
    SIGNATURE_INVALID = "signature_invalid"


class TokenError(Exception):
    """Raised when a token cannot be verified."""

    def __init__(self, reason: TokenErrorReason, message: str):
        super().__init__(message)
        self.reason = reason


def fingerprint_token(token: str) -> str:
    """SHA-256 hex digest of a token, the form in which refresh tokens are stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Mints and verifies signed access and refresh tokens.

    Access tokens carry identity claims for stateless request authentication.
    Refresh tokens carry only the subject id plus a random ``jti`` and are
    checked against the store on every use.
    """

    def __init__(
        self,
        settings: Settings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if settings.access_token_secret == settings.refresh_token_secret:
            raise ValueError("Access and refresh tokens must use different secrets")

        self._secrets = {
            TokenType.ACCESS: settings.access_token_secret,
            TokenType.REFRESH: settings.refresh_token_secret,
        }
        self.access_token_ttl: timedelta = settings.access_token_expiry
        self.refresh_token_ttl: timedelta = settings.refresh_token_expiry
        self.algorithm = settings.jwt_algorithm
        self._clock = clock or _utcnow

    def issue_access_token(
        self, user_id: UUID, username: str, email: str, fullname: str
    ) -> str:
        """Create a signed access token.

        Args:
            user_id: User UUID (placed in the 'sub' claim)
            username: Normalized username
            email: Normalized email
            fullname: Display name

        Returns:
            Encoded JWT string
        """
        now = self._clock()
        payload = {
            "sub": str(user_id),
            "username": username,
            "email": email,
            "fullname": fullname,
            "type": TokenType.ACCESS.value,
            "iat": now,
            "exp": now + self.access_token_ttl,
        }
        token = jwt.encode(
            payload, self._secrets[TokenType.ACCESS], algorithm=self.algorithm
        )
        logger.debug(
            "access_token_issued",
            user_id=str(user_id),
            expires_seconds=int(self.access_token_ttl.total_seconds()),
        )
        return token

    def issue_refresh_token(self, user_id: UUID) -> str:
        """Create a signed refresh token carrying only the subject id.

        Args:
            user_id: User UUID (placed in the 'sub' claim)

        Returns:
            Encoded JWT string, unique per call
        """
        now = self._clock()
        payload = {
            "sub": str(user_id),
            "jti": secrets.token_hex(16),
            "type": TokenType.REFRESH.value,
            "iat": now,
            "exp": now + self.refresh_token_ttl,
        }
        token = jwt.encode(
            payload, self._secrets[TokenType.REFRESH], algorithm=self.algorithm
        )
        logger.debug(
            "refresh_token_issued",
            user_id=str(user_id),
            expires_seconds=int(self.refresh_token_ttl.total_seconds()),
        )
        return token

    def verify(self, token: str, token_type: TokenType) -> dict:
        """Decode a token and check signature, expiry and type.

        Args:
            token: Encoded JWT string
            token_type: Expected token class; selects the secret

        Returns:
            Decoded claims

        Raises:
            TokenError: If the token is expired, malformed, of the wrong type,
                or its signature does not verify
        """
        # Time claims are checked below against the issuer clock, not wall time
        try:
            claims = jwt.decode(
                token,
                self._secrets[token_type],
                algorithms=[self.algorithm],
                options={
                    "require": REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidSignatureError:
            raise TokenError(
                TokenErrorReason.SIGNATURE_INVALID, "Token signature is invalid"
            )
        except jwt.InvalidTokenError as e:
            raise TokenError(TokenErrorReason.MALFORMED, f"Malformed token: {e}")

        if claims.get("type") != token_type.value:
            raise TokenError(
                TokenErrorReason.MALFORMED,
                f"Expected a {token_type.value} token",
            )

        try:
            expires_at = int(claims["exp"])
        except (TypeError, ValueError):
            raise TokenError(TokenErrorReason.MALFORMED, "Token expiry is not a timestamp")
        if expires_at <= self._clock().timestamp():
            raise TokenError(TokenErrorReason.EXPIRED, "Token has expired")

        return claims

    def verify_access_token(self, token: str) -> dict:
        """Verify an access token against the access secret."""
        return self.verify(token, TokenType.ACCESS)

    def verify_refresh_token(self, token: str) -> dict:
        """Verify a refresh token against the refresh secret."""
        return self.verify(token, TokenType.REFRESH)
