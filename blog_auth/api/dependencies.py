"""FastAPI dependencies for authentication and abuse guarding."""

from typing import Awaitable, Callable

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from blog_auth.models.user import PublicUser
from blog_auth.services.abuse_guard import AbuseGuard, GuardDecision, resolve_tracker
from blog_auth.services.auth_service import AuthService

bearer_scheme = HTTPBearer()


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService built during application startup."""
    return request.app.state.auth_service


def get_abuse_guard(request: Request) -> AbuseGuard:
    """Return the AbuseGuard built during application startup."""
    return request.app.state.abuse_guard


def request_tracker(request: Request) -> str:
    """Identity the abuse guard counts this request under."""
    ip = request.client.host if request.client else None
    user_id = getattr(request.state, "user_id", None)
    return resolve_tracker(ip, user_id)


def guard(endpoint: str) -> Callable[..., Awaitable[GuardDecision]]:
    """Build a dependency that rate-limits ``endpoint`` before the handler runs.

    Usage:
        @router.post("/login", dependencies=[Depends(guard("login"))])
    """

    async def _guard(
        request: Request,
        response: Response,
        abuse_guard: AbuseGuard = Depends(get_abuse_guard),
    ) -> GuardDecision:
        decision = await abuse_guard.enforce(request_tracker(request), endpoint)
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        if decision.remaining >= 0:  # -1 when the counter backend is unreachable
            response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return decision

    return _guard


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> PublicUser:
    """Extract and validate the current user from a JWT Bearer token.

    Raises:
        AuthError(INVALID_TOKEN): If the token is invalid, expired, or the user is gone
    """
    user = await auth_service.authenticate(credentials.credentials)
    request.state.user_id = user.id
    return user
