"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, status

from blog_auth.api.dependencies import get_auth_service, get_current_user, guard
from blog_auth.models.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SessionTokens,
)
from blog_auth.models.user import PublicUser
from blog_auth.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SessionTokens:
    """Create an account and return its first token pair.

    Raises:
        409: If the username or email is already registered
    """
    return await auth_service.register(request.username, request.email, request.password)


@router.post("/login", dependencies=[Depends(guard("login"))])
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SessionTokens:
    """Login with email and password. Limited to 5 attempts per minute.

    Raises:
        401: If the credentials are invalid
        429: If the caller is throttled or deny-listed
    """
    return await auth_service.login(request.email, request.password)


@router.post("/refresh")
async def refresh(
    request: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SessionTokens:
    """Rotate a refresh token: the presented token stops working.

    Raises:
        401: If the refresh token is expired, malformed, revoked or reused
    """
    return await auth_service.refresh_token(request.refresh_token)


@router.post("/forgot-password", dependencies=[Depends(guard("forgot_password"))])
async def forgot_password(
    request: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Email a reset link. The response never reveals whether the account exists."""
    return await auth_service.forgot_password(request.email)


@router.post("/reset-password", dependencies=[Depends(guard("reset_password"))])
async def reset_password(
    request: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set a new password with a reset token.

    Raises:
        400: If the token is unknown, already used or expired
    """
    return await auth_service.reset_password(request.token, request.new_password)


@router.post("/logout")
async def logout(
    current_user: PublicUser = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """End the current session."""
    return await auth_service.logout(current_user.id)


@router.post("/revoke-all")
async def revoke_all(
    current_user: PublicUser = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Invalidate every refresh token issued to the current user."""
    return await auth_service.revoke_all_tokens(current_user.id)


@router.get("/me")
async def get_me(current_user: PublicUser = Depends(get_current_user)) -> PublicUser:
    """Get the authenticated user."""
    return current_user
