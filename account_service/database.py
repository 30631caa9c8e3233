"""asyncpg pool lifecycle and schema migrations for the credential store."""

import asyncio
from pathlib import Path
from typing import Optional

import asyncpg
import structlog

from account_service.config import Settings

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"

# Shared by every PostgresCredentialStore in the process
_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """Return the pool opened by ``init_database``.

    Raises:
        RuntimeError: If the pool has not been opened yet
    """
    if _pool is None:
        raise RuntimeError("Credential database is not initialized")
    return _pool


async def init_database(settings: Settings) -> asyncpg.Pool:
    """Open the credential database pool sized from settings.

    Calling it again while the pool is open returns the existing pool.

    Args:
        settings: Supplies ``postgres_url`` and the pool size and timeout
    """
    global _pool

    if _pool is not None:
        return _pool

    try:
        _pool = await asyncpg.create_pool(
            settings.postgres_url,
            min_size=settings.postgres_pool_min_size,
            max_size=settings.postgres_pool_max_size,
            command_timeout=settings.postgres_command_timeout,
        )
    except (OSError, asyncpg.PostgresError) as e:
        logger.error(
            "credential_db_unavailable",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise

    logger.info(
        "credential_db_connected",
        pool_min_size=settings.postgres_pool_min_size,
        pool_max_size=settings.postgres_pool_max_size,
    )
    return _pool


async def close_database() -> None:
    """Close the pool. Safe to call when it was never opened."""
    global _pool

    if _pool is None:
        return
    await _pool.close()
    _pool = None
    logger.info("credential_db_closed")


async def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> None:
    """Apply ``*.sql`` files in filename order, one transaction per file.

    Every migration uses IF NOT EXISTS, so startup re-applies them all. A
    failing file is rolled back and aborts startup.
    """
    if not migrations_dir.is_dir():
        logger.warning("migrations_dir_missing", path=str(migrations_dir))
        return

    pool = await get_pool()
    applied = []

    async with pool.acquire() as conn:
        for path in sorted(migrations_dir.glob("*.sql")):
            try:
                async with conn.transaction():
                    await conn.execute(path.read_text())
            except asyncpg.PostgresError as e:
                logger.error("migration_failed", file=path.name, error=str(e))
                raise
            applied.append(path.name)

    logger.info("migrations_applied", files=applied)


async def health_check() -> bool:
    """Whether the credential database answers ``SELECT 1``."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1
    except (RuntimeError, OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
        logger.warning("credential_db_unhealthy", error=str(e))
        return False
