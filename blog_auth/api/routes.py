"""Health endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter

from blog_auth.config import Settings, get_settings

router = APIRouter()


async def _database_status(settings: Settings) -> str:
    if settings.credential_store_backend != "postgres":
        return "memory"

    from blog_auth.database import health_check as db_health_check

    return "healthy" if await db_health_check() else "unhealthy"


async def _redis_status(settings: Settings) -> str:
    if settings.rate_limit_backend != "redis":
        return "memory"

    from blog_auth.services.redis_service import get_redis

    # An unreachable Redis only disables rate limiting, so it never degrades status
    return "healthy" if await get_redis() is not None else "unavailable"


@router.get("/health")
async def health_check() -> dict:
    """Report liveness and the state of each configured backend.

    ``status`` is "degraded" when the credential store cannot be reached.
    """
    settings = get_settings()
    database = await _database_status(settings)

    return {
        "status": "degraded" if database == "unhealthy" else "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": database,
        "redis": await _redis_status(settings),
    }
