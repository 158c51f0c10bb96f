"""Auth request and response models with validation."""

import re

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from blog_auth.models.user import PublicUser

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def _check_password(v: str) -> str:
    if not v.strip():
        raise ValueError("Password cannot be empty or whitespace only")
    if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return v


class RegisterRequest(BaseModel):
    """New account registration.

    Attributes:
        username: Unique identifier (3-100 chars, alphanumeric + underscore/hyphen)
        email: Unique email address
        password: Account password (min 8 chars)
    """

    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8)

    @field_validator("username")
    @classmethod
    def username_valid_chars(cls, v: str) -> str:
        """Ensure username contains only alphanumeric, underscore, or hyphen."""
        if not re.match(r"^[a-zA-Z0-9_-]+$", v):
            raise ValueError(
                "Username must contain only alphanumeric characters, "
                "underscores, or hyphens"
            )
        return v

    @field_validator("password")
    @classmethod
    def password_valid(cls, v: str) -> str:
        return _check_password(v)


class LoginRequest(BaseModel):
    """Login credentials."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    """Request to exchange a refresh token for a new token pair."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(..., alias="refreshToken", min_length=1)


class ForgotPasswordRequest(BaseModel):
    """Request a password reset email."""

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Complete a password reset with the emailed token."""

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(..., min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=8)

    @field_validator("new_password")
    @classmethod
    def password_valid(cls, v: str) -> str:
        return _check_password(v)


class SessionTokens(BaseModel):
    """Response for every operation that starts or rotates a session.

    Attributes:
        access_token: Short-lived JWT for API access
        refresh_token: Single-use JWT for obtaining the next pair
        user: Public view of the authenticated user
    """

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")
    user: PublicUser


class MessageResponse(BaseModel):
    """Generic message response used by the reset and logout flows."""

    message: str
