"""Unit tests for pool lifecycle, migrations and the database health check."""

from unittest.mock import AsyncMock, patch

import asyncpg
import pytest

from account_service import database
from account_service.config import Settings


class _Transaction:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        self._conn.transactions_opened += 1

    async def __aexit__(self, exc_type, *args):
        if exc_type is not None:
            self._conn.rolled_back += 1


class MockConnection:
    def __init__(self):
        self.execute = AsyncMock()
        self.fetchval = AsyncMock(return_value=1)
        self.transactions_opened = 0
        self.rolled_back = 0

    def transaction(self):
        return _Transaction(self)


class MockPool:
    def __init__(self, conn):
        self._conn = conn
        self.close = AsyncMock()

    def acquire(self):
        return _MockPoolAcquire(self._conn)


class _MockPoolAcquire:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, *args):
        pass


def _settings(**overrides) -> Settings:
    values = {
        "access_token_secret": "access-secret",
        "access_token_expiry": "15m",
        "refresh_token_secret": "refresh-secret",
        "refresh_token_expiry": "10d",
        "postgres_url": "postgresql://localhost/accounts_test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def pool():
    """Install a mock pool as the module-level pool."""
    mock_pool = MockPool(MockConnection())
    with patch.object(database, "_pool", mock_pool):
        yield mock_pool


@pytest.fixture
def create_pool():
    """Patch asyncpg.create_pool and start with no open pool."""
    created = MockPool(MockConnection())
    with (
        patch.object(database, "_pool", None),
        patch(
            "account_service.database.asyncpg.create_pool",
            new_callable=AsyncMock,
            return_value=created,
        ) as mock_create,
    ):
        yield mock_create


# ---------------------------------------------------------------------------
# Pool lifecycle
# ---------------------------------------------------------------------------

class TestPool:
    async def test_get_pool_before_init(self):
        with patch.object(database, "_pool", None):
            with pytest.raises(RuntimeError, match="not initialized"):
                await database.get_pool()

    async def test_pool_sized_from_settings(self, create_pool):
        settings = _settings(
            postgres_pool_min_size=1,
            postgres_pool_max_size=4,
            postgres_command_timeout=5,
        )

        await database.init_database(settings)

        create_pool.assert_awaited_once_with(
            "postgresql://localhost/accounts_test",
            min_size=1,
            max_size=4,
            command_timeout=5.0,
        )

    async def test_default_pool_size(self, create_pool):
        await database.init_database(_settings())

        kwargs = create_pool.call_args.kwargs
        assert (kwargs["min_size"], kwargs["max_size"]) == (2, 10)
        assert kwargs["command_timeout"] == 60.0

    async def test_init_creates_pool_once(self, create_pool):
        first = await database.init_database(_settings())
        second = await database.init_database(_settings())

        assert first is second is create_pool.return_value
        create_pool.assert_awaited_once()

    async def test_connection_failure_propagates(self, create_pool):
        create_pool.side_effect = OSError("connection refused")

        with pytest.raises(OSError):
            await database.init_database(_settings())
        assert database._pool is None

    async def test_close_resets_pool(self, pool):
        await database.close_database()

        pool.close.assert_awaited_once()
        assert database._pool is None

    async def test_close_without_pool(self):
        with patch.object(database, "_pool", None):
            await database.close_database()

    def test_min_size_above_max_rejected(self):
        with pytest.raises(ValueError, match="POSTGRES_POOL_MIN_SIZE"):
            _settings(postgres_pool_min_size=5, postgres_pool_max_size=2)


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------

class TestMigrations:
    async def test_applies_files_in_order(self, pool, tmp_path):
        (tmp_path / "002_second.sql").write_text("SELECT 2;")
        (tmp_path / "001_first.sql").write_text("SELECT 1;")

        await database.run_migrations(tmp_path)

        executed = [c.args[0] for c in pool._conn.execute.call_args_list]
        assert executed == ["SELECT 1;", "SELECT 2;"]
        assert pool._conn.transactions_opened == 2

    async def test_missing_directory_is_skipped(self, pool, tmp_path):
        await database.run_migrations(tmp_path / "absent")
        pool._conn.execute.assert_not_awaited()

    async def test_failure_rolls_back_and_propagates(self, pool, tmp_path):
        (tmp_path / "001_bad.sql").write_text("NOT SQL")
        (tmp_path / "002_never.sql").write_text("SELECT 1;")
        pool._conn.execute.side_effect = asyncpg.exceptions.PostgresSyntaxError(
            "syntax error"
        )

        with pytest.raises(asyncpg.PostgresError):
            await database.run_migrations(tmp_path)

        assert pool._conn.rolled_back == 1
        pool._conn.execute.assert_awaited_once()

    def test_bundled_migrations_exist(self):
        names = [p.name for p in sorted(database.MIGRATIONS_DIR.glob("*.sql"))]
        assert names[0] == "001_users.sql"


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class TestHealthCheck:
    async def test_healthy(self, pool):
        assert await database.health_check() is True

    async def test_unhealthy(self, pool):
        pool._conn.fetchval.side_effect = OSError("connection refused")
        assert await database.health_check() is False

    async def test_no_pool(self):
        with patch.object(database, "_pool", None):
            assert await database.health_check() is False

    async def test_unexpected_answer(self, pool):
        pool._conn.fetchval.return_value = 0
        assert await database.health_check() is False
