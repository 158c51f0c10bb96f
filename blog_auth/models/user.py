"""User, token and session models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UserRecord(BaseModel):
    """A stored user row, including secret material.

    Only the credential store creates or mutates these; everything that
    leaves the service goes through PublicUser.
    """

    id: int
    username: str
    email: str
    password_hash: str
    refresh_token_hash: Optional[str] = None
    reset_token: Optional[str] = None
    reset_token_expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def has_active_session(self) -> bool:
        return self.refresh_token_hash is not None


class PublicUser(BaseModel):
    """The user fields safe to return to a client."""

    id: int
    username: str
    email: str

    @classmethod
    def from_record(cls, record: UserRecord) -> "PublicUser":
        return cls(id=record.id, username=record.username, email=record.email)


class TokenClaims(BaseModel):
    """Identity claims carried by both access and refresh tokens."""

    sub: int
    email: str
    username: str

    @classmethod
    def for_user(cls, record: UserRecord) -> "TokenClaims":
        return cls(sub=record.id, email=record.email, username=record.username)


class TokenPair(BaseModel):
    """A freshly issued access/refresh token pair."""

    access_token: str
    refresh_token: str


class ResetToken(BaseModel):
    """A single-use password reset token and the moment it stops working."""

    token: str
    expires_at: datetime
