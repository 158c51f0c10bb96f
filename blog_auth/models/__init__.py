"""Models package exports."""

from blog_auth.models.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SessionTokens,
)
from blog_auth.models.user import PublicUser, ResetToken, TokenClaims, TokenPair, UserRecord

__all__ = [
    "ForgotPasswordRequest",
    "LoginRequest",
    "MessageResponse",
    "PublicUser",
    "RefreshRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
    "ResetToken",
    "SessionTokens",
    "TokenClaims",
    "TokenPair",
    "UserRecord",
]
