"""Media uploads to Cloudinary."""

import hashlib
import time
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from pydantic import BaseModel

from account_service.config import Settings

logger = structlog.get_logger(__name__)

CLOUDINARY_UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/auto/upload"


@dataclass
class MediaFile:
    """An uploaded file held in memory until it is pushed to the media store."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def is_empty(self) -> bool:
        return not self.filename or not self.content


class MediaAsset(BaseModel):
    """A stored media object."""

    url: str
    public_id: Optional[str] = None
    resource_type: Optional[str] = None
    size: Optional[int] = None


def sign_upload_params(params: dict, api_secret: str) -> str:
    """Cloudinary request signature: SHA-1 over sorted params plus the secret."""
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class MediaUploader:
    """Signed uploads to Cloudinary.

    ``upload`` never raises: every failure is logged and reported as None so
    callers decide whether the missing asset is fatal.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.upload_timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def upload(self, file: MediaFile) -> Optional[MediaAsset]:
        """Upload a file and return its public URL.

        Args:
            file: File contents and metadata

        Returns:
            MediaAsset, or None if the upload failed
        """
        if not self.settings.media_upload_configured:
            logger.error("media_upload_not_configured", filename=file.filename)
            return None

        params = {"timestamp": str(int(time.time()))}
        data = {
            **params,
            "api_key": self.settings.cloudinary_api_key,
            "signature": sign_upload_params(
                params, self.settings.cloudinary_api_secret
            ),
        }
        url = CLOUDINARY_UPLOAD_URL.format(
            cloud_name=self.settings.cloudinary_cloud_name
        )

        client = await self._get_client()
        try:
            response = await client.post(
                url,
                data=data,
                files={"file": (file.filename, file.content, file.content_type)},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "media_upload_failed",
                filename=file.filename,
                status_code=e.response.status_code,
            )
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "media_upload_failed",
                filename=file.filename,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if not isinstance(body, dict):
            logger.error(
                "media_upload_failed",
                filename=file.filename,
                error="unexpected response body",
                error_type=type(body).__name__,
            )
            return None

        secure_url = body.get("secure_url") or body.get("url")
        if not secure_url:
            logger.error("media_upload_missing_url", filename=file.filename)
            return None

        logger.info(
            "media_uploaded",
            filename=file.filename,
            public_id=body.get("public_id"),
            size=body.get("bytes"),
        )
        return MediaAsset(
            url=secure_url,
            public_id=body.get("public_id"),
            resource_type=body.get("resource_type"),
            size=body.get("bytes"),
        )
