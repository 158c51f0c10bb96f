"""Exception handlers mapping service errors to HTTP responses."""

from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from blog_auth.services.errors import AuthError, RateLimitExceeded, StoreUnavailableError

logger = structlog.get_logger(__name__)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for auth, rate-limit, store and validation errors."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        logger.info(
            "auth_error",
            path=request.url.path,
            kind=exc.kind.value,
            status_code=exc.status_code,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.kind.value},
            headers=headers,
        )

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        decision = exc.decision
        return JSONResponse(
            status_code=429,
            content=decision.as_body(),
            headers={
                "Retry-After": str(decision.retry_after),
                "X-RateLimit-Limit": str(decision.limit),
                "X-RateLimit-Remaining": "0",
            },
        )

    @app.exception_handler(StoreUnavailableError)
    async def handle_store_unavailable(
        request: Request, exc: StoreUnavailableError
    ) -> JSONResponse:
        correlation_id = _correlation_id(request)
        logger.error(
            "credential_store_error",
            path=request.url.path,
            correlation_id=correlation_id,
            error=str(exc),
        )
        return JSONResponse(
            status_code=503,
            content={
                "detail": "Service temporarily unavailable",
                "correlation_id": correlation_id,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Return 400 with the first validation problem spelled out."""
        correlation_id = _correlation_id(request)

        errors = exc.errors()
        if errors:
            first_error = errors[0]
            field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
            message = first_error.get("msg", "Validation failed")
            detail = f"Field '{field}': {message}"
        else:
            detail = "Request validation failed"

        logger.warning("validation_error", correlation_id=correlation_id, detail=detail)

        return JSONResponse(
            status_code=400,
            content={
                "error": "Validation error",
                "detail": detail,
                "correlation_id": correlation_id,
            },
            headers={"X-Correlation-Id": correlation_id},
        )
