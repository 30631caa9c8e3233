"""Pytest configuration and fixtures."""

import os
from typing import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing the app
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret-for-unit-tests-0123456789")
os.environ.setdefault("ACCESS_TOKEN_EXPIRY", "15m")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret-for-unit-tests-9876543210")
os.environ.setdefault("REFRESH_TOKEN_EXPIRY", "10d")
os.environ.setdefault("CREDENTIAL_STORE", "memory")
os.environ.setdefault("COOKIE_SECURE", "false")

from fastapi.testclient import TestClient

from account_service.config import Settings
from account_service.main import create_app
from account_service.services.media_service import MediaAsset, MediaFile, MediaUploader
from account_service.services.password_hasher import PasswordHasher
from account_service.services.session_service import SessionManager
from account_service.services.token_service import TokenIssuer
from account_service.services.user_service import UserService
from account_service.storage.memory import MemoryCredentialStore

ACCESS_SECRET = "test-access-secret-for-unit-tests-0123456789"
REFRESH_SECRET = "test-refresh-secret-for-unit-tests-9876543210"
PASSWORD = "Secret123"


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment and any .env file."""
    values = {
        "access_token_secret": ACCESS_SECRET,
        "access_token_expiry": "15m",
        "refresh_token_secret": REFRESH_SECRET,
        "refresh_token_expiry": "10d",
        "password_hash_rounds": 4,
        "cookie_secure": False,
        "credential_store": "memory",
        "cloudinary_cloud_name": "demo",
        "cloudinary_api_key": "123456",
        "cloudinary_api_secret": "cloudinary-test-secret",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def avatar_file(name: str = "avatar.png") -> MediaFile:
    return MediaFile(filename=name, content=b"\x89PNG fake image", content_type="image/png")


@pytest.fixture
def settings_factory():
    """Build Settings with selected overrides."""
    return make_settings


@pytest.fixture
def avatar() -> MediaFile:
    return avatar_file()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def hasher() -> PasswordHasher:
    # Minimum bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def issuer(settings) -> TokenIssuer:
    return TokenIssuer(settings)


@pytest.fixture
def uploader() -> MagicMock:
    """Media uploader that returns a predictable URL per filename."""
    mock = MagicMock(spec=MediaUploader)
    mock.upload = AsyncMock(
        side_effect=lambda file: MediaAsset(url=f"https://media.test/{file.filename}")
    )
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def session_manager(settings, store, hasher, issuer) -> SessionManager:
    return SessionManager(settings, store, hasher, issuer)


@pytest.fixture
def user_service(store, hasher, uploader) -> UserService:
    return UserService(store, hasher, uploader)


@pytest.fixture
async def alice(user_service):
    """A registered user with password ``PASSWORD``."""
    return await user_service.register(
        fullname="Alice Liddell",
        email="alice@x.com",
        username="alice",
        password=PASSWORD,
        avatar=avatar_file(),
    )


@pytest.fixture
def app(settings, store, uploader):
    return create_app(settings=settings, store=store, uploader=uploader)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """TestClient running the app lifespan against the memory store."""
    with TestClient(app) as tc:
        yield tc

