"""FastAPI application initialization."""

from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blog_auth.api.auth import router as auth_router
from blog_auth.api.errors import register_exception_handlers
from blog_auth.api.middleware import CorrelationIdMiddleware
from blog_auth.api.routes import router
from blog_auth.config import Settings, get_settings
from blog_auth.services.abuse_guard import AbuseGuard, InMemoryRateLimitBackend
from blog_auth.services.auth_service import AuthService
from blog_auth.services.credential_store import InMemoryCredentialStore
from blog_auth.services.logging_service import configure_logging, get_logger


async def build_credential_store(settings: Settings):
    """Create the configured credential store, preparing Postgres if selected."""
    if settings.credential_store_backend == "memory":
        return InMemoryCredentialStore()

    from blog_auth.database import init_database, run_migrations
    from blog_auth.services.postgres_store import PostgresCredentialStore

    await init_database()
    await run_migrations()
    return PostgresCredentialStore()


def build_rate_limit_backend(settings: Settings):
    """Create the configured rate-limit counter backend."""
    if settings.rate_limit_backend == "redis":
        from blog_auth.services.redis_service import RedisRateLimitBackend

        return RedisRateLimitBackend()
    return InMemoryRateLimitBackend()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    logger = get_logger("main")

    store = await build_credential_store(settings)
    logger.info("credential_store_initialized", backend=settings.credential_store_backend)

    if settings.rate_limit_backend == "redis":
        from blog_auth.services.redis_service import get_redis

        if await get_redis() is None:
            logger.warning(
                "redis_initialization_failed",
                note="Continuing without Redis - rate limiting will fail open",
            )

    app.state.auth_service = AuthService(store=store)
    app.state.abuse_guard = AbuseGuard(build_rate_limit_backend(settings))

    logger.info(
        "application_started",
        store_backend=settings.credential_store_backend,
        rate_limit_backend=settings.rate_limit_backend,
        log_level=settings.log_level,
    )

    yield

    await store.close()

    if settings.credential_store_backend == "postgres":
        from blog_auth.database import close_database

        await close_database()

    if settings.rate_limit_backend == "redis":
        from blog_auth.services.redis_service import close_redis

        await close_redis()

    logger.info("application_shutdown")


app = FastAPI(
    title="Blog Auth API",
    description="Registration, login, token rotation and password reset",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

# CORS for the blog frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID and access logging
app.add_middleware(CorrelationIdMiddleware)

app.include_router(auth_router)
app.include_router(router)
