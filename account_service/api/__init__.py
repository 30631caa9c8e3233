"""API package exports."""

from account_service.api.auth import router as auth_router
from account_service.api.middleware import CorrelationIdMiddleware
from account_service.api.users import router as users_router

__all__ = ["auth_router", "users_router", "CorrelationIdMiddleware"]
