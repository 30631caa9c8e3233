"""Conversion of multipart uploads into media files."""

from typing import Optional

from fastapi import UploadFile

from account_service.services.media_service import MediaFile


async def to_media_file(upload: Optional[UploadFile]) -> Optional[MediaFile]:
    """Read an uploaded part into memory; None when the part was not sent."""
    if upload is None:
        return None

    content = await upload.read()
    await upload.close()
    return MediaFile(
        filename=upload.filename or "",
        content=content,
        content_type=upload.content_type or "application/octet-stream",
    )
