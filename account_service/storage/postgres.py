"""PostgreSQL credential store backed by asyncpg."""

from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional
from uuid import UUID, uuid4

import asyncpg
import structlog

from account_service.database import get_pool
from account_service.errors import ConflictError
from account_service.models.user import (
    ChannelProfile,
    User,
    UserRecord,
    VideoOwner,
    WatchedVideo,
)
from account_service.storage.base import CredentialStore

logger = structlog.get_logger(__name__)

PUBLIC_COLUMNS = "id, username, email, fullname, avatar, cover_image, created_at, updated_at"
RECORD_COLUMNS = f"{PUBLIC_COLUMNS}, password_hash, refresh_token_hash"


def _row_to_user(row: Mapping[str, Any]) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        fullname=row["fullname"],
        avatar=row["avatar"],
        cover_image=row["cover_image"] or "",
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_record(row: Mapping[str, Any]) -> UserRecord:
    return UserRecord(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        fullname=row["fullname"],
        avatar=row["avatar"],
        cover_image=row["cover_image"] or "",
        password_hash=row["password_hash"],
        refresh_token_hash=row["refresh_token_hash"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresCredentialStore(CredentialStore):
    """Credential store over the shared asyncpg pool.

    Refresh token rotation is a single conditional UPDATE, so concurrent
    rotations of the same token serialize in the database and only one
    succeeds.
    """

    backend_name = "postgres"

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
        user_id = uuid4()
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users (id, username, email, fullname, avatar, cover_image,
                                       password_hash, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                    RETURNING {RECORD_COLUMNS}
                    """,
                    user_id,
                    username,
                    email,
                    fullname,
                    avatar,
                    cover_image,
                    password_hash,
                    now,
                    now,
                )
        except asyncpg.exceptions.UniqueViolationError:
            logger.warning("user_create_conflict", username=username)
            raise ConflictError("User with email or username already exists")

        logger.info("user_created", user_id=str(user_id), backend=self.backend_name)
        return _row_to_record(row)

    async def get_user(self, user_id: UUID) -> Optional[User]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {PUBLIC_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        return _row_to_user(row) if row else None

    async def get_record(self, user_id: UUID) -> Optional[UserRecord]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {RECORD_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        return _row_to_record(row) if row else None

    async def find_record(
        self, username: Optional[str] = None, email: Optional[str] = None
    ) -> Optional[UserRecord]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {RECORD_COLUMNS}
                FROM users
                WHERE username = LOWER(TRIM($1)) OR email = LOWER(TRIM($2))
                ORDER BY (username = LOWER(TRIM($1))) DESC NULLS LAST
                LIMIT 1
                """,
                username,
                email,
            )

        return _row_to_record(row) if row else None

    async def username_or_email_taken(self, username: str, email: str) -> bool:
        pool = await get_pool()

        async with pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT EXISTS (SELECT 1 FROM users WHERE username = $1 OR email = $2)",
                username,
                email,
            )

    async def set_refresh_token(
        self, user_id: UUID, token_hash: Optional[str]
    ) -> None:
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE users
                SET refresh_token_hash = $1, updated_at = $2
                WHERE id = $3
                """,
                token_hash,
                datetime.now(timezone.utc),
                user_id,
            )

    async def rotate_refresh_token(
        self, user_id: UUID, expected_hash: str, new_hash: str
    ) -> bool:
        pool = await get_pool()

        async with pool.acquire() as conn:
            rotated_id = await conn.fetchval(
                """
                UPDATE users
                SET refresh_token_hash = $1, updated_at = $2
                WHERE id = $3 AND refresh_token_hash = $4
                RETURNING id
                """,
                new_hash,
                datetime.now(timezone.utc),
                user_id,
                expected_hash,
            )

        return rotated_id is not None

    async def update_password_hash(self, user_id: UUID, password_hash: str) -> None:
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE users
                SET password_hash = $1, updated_at = $2
                WHERE id = $3
                """,
                password_hash,
                datetime.now(timezone.utc),
                user_id,
            )

    async def update_profile(
        self,
        user_id: UUID,
        *,
        fullname: Optional[str] = None,
        email: Optional[str] = None,
        avatar: Optional[str] = None,
        cover_image: Optional[str] = None,
    ) -> Optional[User]:
        # Build SET clause dynamically for non-None fields
        set_clauses = []
        params: List[Any] = []

        for column, value in (
            ("fullname", fullname),
            ("email", email),
            ("avatar", avatar),
            ("cover_image", cover_image),
        ):
            if value is not None:
                params.append(value)
                set_clauses.append(f"{column} = ${len(params)}")

        if not set_clauses:
            return await self.get_user(user_id)

        params.append(datetime.now(timezone.utc))
        set_clauses.append(f"updated_at = ${len(params)}")
        params.append(user_id)

        query = f"""
            UPDATE users
            SET {', '.join(set_clauses)}
            WHERE id = ${len(params)}
            RETURNING {PUBLIC_COLUMNS}
        """

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(query, *params)
        except asyncpg.exceptions.UniqueViolationError:
            raise ConflictError("Email is already in use")

        if row is None:
            return None

        logger.info(
            "user_profile_updated",
            user_id=str(user_id),
            fields_updated=[c.split(" = ")[0] for c in set_clauses[:-1]],
        )
        return _row_to_user(row)

    async def add_subscription(self, subscriber_id: UUID, channel_id: UUID) -> None:
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO subscriptions (id, subscriber_id, channel_id, created_at)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (subscriber_id, channel_id) DO NOTHING
                """,
                uuid4(),
                subscriber_id,
                channel_id,
                datetime.now(timezone.utc),
            )

    async def get_channel_profile(
        self, username: str, viewer_id: Optional[UUID] = None
    ) -> Optional[ChannelProfile]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT u.id, u.username, u.fullname, u.email, u.avatar, u.cover_image,
                       (SELECT COUNT(*) FROM subscriptions s
                         WHERE s.channel_id = u.id) AS subscribers_count,
                       (SELECT COUNT(*) FROM subscriptions s
                         WHERE s.subscriber_id = u.id) AS channels_subscribed_to_count,
                       EXISTS (SELECT 1 FROM subscriptions s
                                WHERE s.channel_id = u.id
                                  AND s.subscriber_id = $2) AS is_subscribed
                FROM users u
                WHERE u.username = LOWER(TRIM($1))
                """,
                username,
                viewer_id,
            )

        if row is None:
            return None

        return ChannelProfile(
            id=row["id"],
            username=row["username"],
            fullname=row["fullname"],
            email=row["email"],
            avatar=row["avatar"],
            cover_image=row["cover_image"] or "",
            subscribers_count=row["subscribers_count"],
            channels_subscribed_to_count=row["channels_subscribed_to_count"],
            is_subscribed=row["is_subscribed"],
        )

    async def record_watch(self, user_id: UUID, video_id: UUID) -> None:
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO watch_history (user_id, video_id, watched_at)
                VALUES ($1, $2, $3)
                ON CONFLICT (user_id, video_id) DO UPDATE SET watched_at = EXCLUDED.watched_at
                """,
                user_id,
                video_id,
                datetime.now(timezone.utc),
            )

    async def get_watch_history(self, user_id: UUID) -> List[WatchedVideo]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT v.id, v.title, v.description, v.thumbnail, v.video_file,
                       v.duration, v.views, w.watched_at,
                       o.id AS owner_id, o.username AS owner_username,
                       o.fullname AS owner_fullname, o.avatar AS owner_avatar
                FROM watch_history w
                JOIN videos v ON v.id = w.video_id
                JOIN users o ON o.id = v.owner_id
                WHERE w.user_id = $1
                ORDER BY w.watched_at DESC
                """,
                user_id,
            )

        return [
            WatchedVideo(
                id=row["id"],
                title=row["title"],
                description=row["description"] or "",
                thumbnail=row["thumbnail"] or "",
                video_file=row["video_file"] or "",
                duration=row["duration"] or 0.0,
                views=row["views"] or 0,
                owner=VideoOwner(
                    id=row["owner_id"],
                    username=row["owner_username"],
                    fullname=row["owner_fullname"],
                    avatar=row["owner_avatar"],
                ),
                watched_at=row["watched_at"],
            )
            for row in rows
        ]
