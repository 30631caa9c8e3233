"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from account_service import __version__
from account_service.api import CorrelationIdMiddleware, auth_router, users_router
from account_service.api.error_handling import register_exception_handlers
from account_service.config import Settings, get_settings
from account_service.database import (
    close_database,
    health_check,
    init_database,
    run_migrations,
)
from account_service.services.logging_service import configure_logging, get_logger
from account_service.services.media_service import MediaUploader
from account_service.services.password_hasher import PasswordHasher
from account_service.services.session_service import SessionManager
from account_service.services.token_service import TokenIssuer
from account_service.services.user_service import UserService
from account_service.storage import CredentialStore, PostgresCredentialStore, create_store


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[CredentialStore] = None,
    uploader: Optional[MediaUploader] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """Build the application and its services.

    Settings are resolved once here and handed to every service. Missing
    token secrets or expiries make ``get_settings()`` raise, so the process
    fails before serving any request.

    Args:
        settings: Explicit settings; defaults to the environment
        store: Credential store; defaults to the configured backend
        uploader: Media uploader; defaults to Cloudinary
        clock: Time source for token issuing and expiry checks

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()
    store = store or create_store(settings)
    uploader = uploader or MediaUploader(settings)

    hasher = PasswordHasher(rounds=settings.password_hash_rounds)
    issuer = TokenIssuer(settings, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown events."""
        configure_logging(settings.log_level)
        logger = get_logger("main")

        if isinstance(store, PostgresCredentialStore):
            await init_database(settings)
            await run_migrations()
            logger.info("database_initialized")

        logger.info(
            "application_started",
            credential_store=store.backend_name,
            access_ttl_seconds=int(settings.access_token_expiry.total_seconds()),
            refresh_ttl_seconds=int(settings.refresh_token_expiry.total_seconds()),
            cookie_secure=settings.cookie_secure,
        )

        yield

        await uploader.close()
        if isinstance(store, PostgresCredentialStore):
            await close_database()

        logger.info("application_shutdown")

    app = FastAPI(
        title="Account Service",
        description="User accounts, credential verification and token sessions",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.token_issuer = issuer
    app.state.session_manager = SessionManager(settings, store, hasher, issuer)
    app.state.user_service = UserService(store, hasher, uploader)

    register_exception_handlers(app)

    # CORS middleware for browser clients; credentials are needed for cookies
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware for request tracking and observability
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(auth_router)
    app.include_router(users_router)

    @app.get("/health", tags=["Health"])
    async def health() -> dict:
        """Liveness check, plus database reachability on the Postgres backend."""
        status = {"status": "ok", "credential_store": store.backend_name}
        if isinstance(store, PostgresCredentialStore):
            status["database"] = "ok" if await health_check() else "unavailable"
        return status

    return app


app = create_app()
