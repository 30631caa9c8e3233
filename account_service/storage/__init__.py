"""Credential store backends."""

from account_service.config import Settings
from account_service.storage.base import CredentialStore
from account_service.storage.memory import MemoryCredentialStore
from account_service.storage.postgres import PostgresCredentialStore


def create_store(settings: Settings) -> CredentialStore:
    """Build the backend selected by ``CREDENTIAL_STORE``."""
    if settings.credential_store == "memory":
        return MemoryCredentialStore()
    return PostgresCredentialStore()


__all__ = [
    "CredentialStore",
    "MemoryCredentialStore",
    "PostgresCredentialStore",
    "create_store",
]
