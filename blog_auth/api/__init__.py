"""API package exports."""

from blog_auth.api.auth import router as auth_router
from blog_auth.api.middleware import CorrelationIdMiddleware
from blog_auth.api.routes import router

__all__ = ["auth_router", "router", "CorrelationIdMiddleware"]
