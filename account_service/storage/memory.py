"""In-process credential store.

Used for local development, single-process deployments and tests. State lives
for the lifetime of the process.
"""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple
from uuid import UUID, uuid4

import structlog

from account_service.errors import ConflictError
from account_service.models.user import (
    ChannelProfile,
    User,
    UserRecord,
    Video,
    VideoOwner,
    WatchedVideo,
)
from account_service.storage.base import CredentialStore

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryCredentialStore(CredentialStore):
    """Dictionary-backed store. Every mutation happens under one lock."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.users: Dict[UUID, UserRecord] = {}
        self.subscriptions: Set[Tuple[UUID, UUID]] = set()
        self.videos: Dict[UUID, Video] = {}
        self.watch_history: Dict[UUID, List[Tuple[UUID, datetime]]] = {}

    def _find_locked(
        self, username: Optional[str], email: Optional[str]
    ) -> Optional[UserRecord]:
        username = username.strip().lower() if username else None
        email = email.strip().lower() if email else None
        # Username match wins when the two identifiers name different users
        if username:
            for record in self.users.values():
                if record.username == username:
                    return record
        if email:
            for record in self.users.values():
                if record.email == email:
                    return record
        return None

    async def create_user(
        self,
        *,
        username: str,
        email: str,
        fullname: str,
        password_hash: str,
        avatar: str,
        cover_image: str = "",
    ) -> UserRecord:
        now = _now()
        with self._lock:
            if self._find_locked(username, email) is not None:
                raise ConflictError("User with email or username already exists")
            record = UserRecord(
                id=uuid4(),
                username=username,
                email=email,
                fullname=fullname,
                avatar=avatar,
                cover_image=cover_image,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )
            self.users[record.id] = record

        logger.info("user_created", user_id=str(record.id), backend=self.backend_name)
        return record.model_copy()

    async def get_user(self, user_id: UUID) -> Optional[User]:
        record = self.users.get(user_id)
        return record.public() if record else None

    async def get_record(self, user_id: UUID) -> Optional[UserRecord]:
        record = self.users.get(user_id)
        return record.model_copy() if record else None

    async def find_record(
        self, username: Optional[str] = None, email: Optional[str] = None
    ) -> Optional[UserRecord]:
        with self._lock:
            record = self._find_locked(username, email)
        return record.model_copy() if record else None

    async def username_or_email_taken(self, username: str, email: str) -> bool:
        with self._lock:
            return self._find_locked(username, email) is not None

    async def set_refresh_token(
        self, user_id: UUID, token_hash: Optional[str]
    ) -> None:
        with self._lock:
            record = self.users.get(user_id)
            if record is not None:
                record.refresh_token_hash = token_hash
                record.updated_at = _now()

    async def rotate_refresh_token(
        self, user_id: UUID, expected_hash: str, new_hash: str
    ) -> bool:
        with self._lock:
            record = self.users.get(user_id)
            if record is None or record.refresh_token_hash != expected_hash:
                return False
            record.refresh_token_hash = new_hash
            record.updated_at = _now()
            return True

    async def update_password_hash(self, user_id: UUID, password_hash: str) -> None:
        with self._lock:
            record = self.users.get(user_id)
            if record is not None:
                record.password_hash = password_hash
                record.updated_at = _now()

    async def update_profile(
        self,
        user_id: UUID,
        *,
        fullname: Optional[str] = None,
        email: Optional[str] = None,
        avatar: Optional[str] = None,
        cover_image: Optional[str] = None,
    ) -> Optional[User]:
        with self._lock:
            record = self.users.get(user_id)
            if record is None:
                return None

            if email is not None:
                owner = self._find_locked(None, email)
                if owner is not None and owner.id != user_id:
                    raise ConflictError("Email is already in use")
                record.email = email
            if fullname is not None:
                record.fullname = fullname
            if avatar is not None:
                record.avatar = avatar
            if cover_image is not None:
                record.cover_image = cover_image
            record.updated_at = _now()
            return record.public()

    async def add_subscription(self, subscriber_id: UUID, channel_id: UUID) -> None:
        with self._lock:
            self.subscriptions.add((subscriber_id, channel_id))

    async def get_channel_profile(
        self, username: str, viewer_id: Optional[UUID] = None
    ) -> Optional[ChannelProfile]:
        with self._lock:
            record = self._find_locked(username, None)
            if record is None:
                return None
            subscribers = {s for s, c in self.subscriptions if c == record.id}
            subscribed_to = [c for s, c in self.subscriptions if s == record.id]

        return ChannelProfile(
            id=record.id,
            username=record.username,
            fullname=record.fullname,
            email=record.email,
            avatar=record.avatar,
            cover_image=record.cover_image,
            subscribers_count=len(subscribers),
            channels_subscribed_to_count=len(subscribed_to),
            is_subscribed=viewer_id in subscribers if viewer_id else False,
        )

    def add_video(self, video: Video) -> None:
        """Register a video so it can appear in watch histories.

        Test seeding only; the Postgres backend reads videos written by the
        video feature.
        """
        with self._lock:
            self.videos[video.id] = video

    async def record_watch(self, user_id: UUID, video_id: UUID) -> None:
        with self._lock:
            history = [
                entry
                for entry in self.watch_history.get(user_id, [])
                if entry[0] != video_id
            ]
            history.append((video_id, _now()))
            self.watch_history[user_id] = history

    async def get_watch_history(self, user_id: UUID) -> List[WatchedVideo]:
        with self._lock:
            entries = list(reversed(self.watch_history.get(user_id, [])))
            watched = []
            for video_id, watched_at in entries:
                video = self.videos.get(video_id)
                owner = self.users.get(video.owner_id) if video else None
                if video is None or owner is None:
                    continue
                watched.append(
                    WatchedVideo(
                        id=video.id,
                        title=video.title,
                        description=video.description,
                        thumbnail=video.thumbnail,
                        video_file=video.video_file,
                        duration=video.duration,
                        views=video.views,
                        owner=VideoOwner(
                            id=owner.id,
                            username=owner.username,
                            fullname=owner.fullname,
                            avatar=owner.avatar,
                        ),
                        watched_at=watched_at,
                    )
                )
        return watched
