"""Authentication service: registration, sessions and password resets.

Session lifecycle per user::

    NoSession -> (register | login) -> ActiveSession
    ActiveSession -> (refresh) -> ActiveSession (rotated)
    ActiveSession -> (logout | revoke_all | reset_password) -> NoSession

Only one refresh token hash is stored per user, so a new login replaces the
session of any other device, and logout and revoke_all are equivalent.

Password reset is independent of the session::

    NoResetPending -> (forgot_password) -> ResetPending(token, expiry)
    ResetPending -> (reset_password | expiry) -> NoResetPending
"""

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from blog_auth.models.auth import MessageResponse, SessionTokens
from blog_auth.models.user import PublicUser, TokenClaims, UserRecord
from blog_auth.services.credential_store import CredentialStore
from blog_auth.services.email_service import EmailService
from blog_auth.services.errors import (
    AuthError,
    AuthErrorKind,
    DuplicateUserError,
    UserNotFoundError,
)
from blog_auth.services.hashing_service import SecretHasher
from blog_auth.services.reset_token_service import ResetTokenGenerator
from blog_auth.services.token_service import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    TokenError,
    TokenExpiredError,
    TokenIssuer,
    TokenMalformedError,
    TokenSignatureError,
)

logger = structlog.get_logger(__name__)

USER_EXISTS_MESSAGE = "User already exists"
INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"
REFRESH_EXPIRED_MESSAGE = "Refresh token expired"
REFRESH_MALFORMED_MESSAGE = "Invalid refresh token format"
INVALID_REFRESH_MESSAGE = "Invalid refresh token"
INVALID_ACCESS_MESSAGE = "Invalid or expired access token"
INVALID_RESET_MESSAGE = "Invalid or expired reset token"
RESET_EXPIRED_MESSAGE = "Reset token has expired"
FORGOT_PASSWORD_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)
PASSWORD_RESET_MESSAGE = "Password has been reset successfully"
LOGOUT_MESSAGE = "Logged out successfully"
REVOKE_ALL_MESSAGE = "All tokens revoked successfully"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    """Coordinates hashing, tokens, reset tokens, storage and email."""

    def __init__(
        self,
        store: CredentialStore,
        hasher: Optional[SecretHasher] = None,
        tokens: Optional[TokenIssuer] = None,
        reset_tokens: Optional[ResetTokenGenerator] = None,
        email: Optional[EmailService] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.hasher = hasher or SecretHasher()
        self.tokens = tokens or TokenIssuer(clock=clock)
        self.reset_tokens = reset_tokens or ResetTokenGenerator(clock=clock)
        self.email = email or EmailService()
        self._clock = clock

    async def _start_session(self, user: UserRecord) -> tuple[SessionTokens, str]:
        """Issue a token pair for ``user``.

        Returns the response payload and the hash of its refresh token; the
        caller decides how to persist the hash.
        """
        pair = self.tokens.issue_pair(TokenClaims.for_user(user))
        refresh_hash = await self.hasher.hash_token(pair.refresh_token)
        session = SessionTokens(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            user=PublicUser.from_record(user),
        )
        return session, refresh_hash

    async def register(self, username: str, email: str, password: str) -> SessionTokens:
        """Create an account and start its first session.

        Raises:
            AuthError(CONFLICT): If the username or email is taken
        """
        if await self.store.find_by_username_or_email(username, email) is not None:
            logger.info("registration_conflict", username=username)
            raise AuthError(AuthErrorKind.CONFLICT, USER_EXISTS_MESSAGE)

        password_hash = await self.hasher.hash(password)
        try:
            user = await self.store.create(username, email, password_hash)
        except DuplicateUserError:
            # Lost a race with a concurrent registration
            logger.info("registration_conflict", username=username, concurrent=True)
            raise AuthError(AuthErrorKind.CONFLICT, USER_EXISTS_MESSAGE)

        session, refresh_hash = await self._start_session(user)
        await self.store.update_fields(user.id, {"refresh_token_hash": refresh_hash})

        logger.info("user_registered", user_id=user.id, username=user.username)
        return session

    async def login(self, email: str, password: str) -> SessionTokens:
        """Authenticate with email and password.

        Unknown email and wrong password fail identically. A successful
        login replaces any previously stored refresh token.

        Raises:
            AuthError(INVALID_CREDENTIALS): On any credential mismatch
        """
        user = await self.store.find_by_email(email)

        if user is None:
            await self.hasher.dummy_verify(password)
            logger.info("login_failed", reason="unknown_email")
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

        if not await self.hasher.verify(password, user.password_hash):
            logger.info("login_failed", reason="bad_password", user_id=user.id)
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

        session, refresh_hash = await self._start_session(user)
        await self.store.update_fields(user.id, {"refresh_token_hash": refresh_hash})

        logger.info("user_logged_in", user_id=user.id, replaced_session=user.has_active_session)
        return session

    async def refresh_token(self, refresh_token: str) -> SessionTokens:
        """Exchange a refresh token for a new pair, invalidating the old one.

        The stored hash is swapped only if it is still the one the presented
        token matched, so two concurrent refreshes with the same token
        cannot both succeed.

        Raises:
            AuthError(TOKEN_EXPIRED): If the token's exp has passed
            AuthError(TOKEN_MALFORMED): If the token is not one we signed
            AuthError(INVALID_TOKEN): If the token is revoked, reused or unknown
        """
        try:
            claims = self.tokens.verify(refresh_token, expected_type=REFRESH_TOKEN_TYPE)
        except TokenExpiredError:
            logger.info("refresh_failed", reason="expired")
            raise AuthError(AuthErrorKind.TOKEN_EXPIRED, REFRESH_EXPIRED_MESSAGE)
        except (TokenMalformedError, TokenSignatureError) as e:
            logger.info("refresh_failed", reason="malformed", error=str(e))
            raise AuthError(AuthErrorKind.TOKEN_MALFORMED, REFRESH_MALFORMED_MESSAGE)
        except TokenError as e:
            logger.info("refresh_failed", reason="invalid", error=str(e))
            raise AuthError(AuthErrorKind.INVALID_TOKEN, INVALID_REFRESH_MESSAGE)

        user = await self.store.find_by_id(claims.sub)
        if user is None or user.refresh_token_hash is None:
            logger.info("refresh_failed", reason="no_session", user_id=claims.sub)
            raise AuthError(AuthErrorKind.INVALID_TOKEN, INVALID_REFRESH_MESSAGE)

        stored_hash = user.refresh_token_hash
        if not await self.hasher.verify_token(refresh_token, stored_hash):
            logger.warning("refresh_failed", reason="hash_mismatch", user_id=user.id)
            raise AuthError(AuthErrorKind.INVALID_TOKEN, INVALID_REFRESH_MESSAGE)

        session, new_hash = await self._start_session(user)
        swapped = await self.store.update_fields(
            user.id,
            {"refresh_token_hash": new_hash},
            expected={"refresh_token_hash": stored_hash},
        )
        if not swapped:
            logger.warning("refresh_failed", reason="concurrent_rotation", user_id=user.id)
            raise AuthError(AuthErrorKind.INVALID_TOKEN, INVALID_REFRESH_MESSAGE)

        logger.info("refresh_token_rotated", user_id=user.id)
        return session

    async def _clear_session(self, user_id: int) -> None:
        try:
            await self.store.update_fields(user_id, {"refresh_token_hash": None})
        except UserNotFoundError:
            # Row deleted after the access token was checked; nothing left to end
            logger.info("session_clear_skipped", user_id=user_id, reason="user_not_found")

    async def logout(self, user_id: int) -> MessageResponse:
        """End the user's session by dropping the stored refresh hash."""
        await self._clear_session(user_id)
        logger.info("user_logged_out", user_id=user_id)
        return MessageResponse(message=LOGOUT_MESSAGE)

    async def revoke_all_tokens(self, user_id: int) -> MessageResponse:
        """Invalidate every outstanding refresh token for the user."""
        await self._clear_session(user_id)
        logger.info("all_refresh_tokens_revoked", user_id=user_id)
        return MessageResponse(message=REVOKE_ALL_MESSAGE)

    async def forgot_password(self, email: str) -> MessageResponse:
        """Start a password reset.

        The response is identical whether or not the email is registered,
        and whether or not the email could be delivered.
        """
        user = await self.store.find_by_email(email)

        if user is None:
            logger.info("password_reset_requested", known_user=False)
            return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

        reset = self.reset_tokens.generate()
        await self.store.update_fields(
            user.id,
            {"reset_token": reset.token, "reset_token_expires_at": reset.expires_at},
        )
        logger.info(
            "password_reset_requested",
            known_user=True,
            user_id=user.id,
            expires_at=reset.expires_at.isoformat(),
        )

        await self.email.send_password_reset_email(user.email, reset.token, user.username)
        return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

    async def reset_password(self, token: str, new_password: str) -> MessageResponse:
        """Set a new password using a reset token, consuming the token.

        Raises:
            AuthError(INVALID_RESET_TOKEN): If the token is unknown, used or expired
        """
        user = await self.store.find_by_reset_token(token)
        if user is None:
            logger.info("password_reset_failed", reason="unknown_token")
            raise AuthError(AuthErrorKind.INVALID_RESET_TOKEN, INVALID_RESET_MESSAGE)

        expires_at = user.reset_token_expires_at
        if expires_at is None or expires_at <= self._clock():
            await self.store.update_fields(
                user.id,
                {"reset_token": None, "reset_token_expires_at": None},
                expected={"reset_token": token},
            )
            logger.info("password_reset_failed", reason="expired", user_id=user.id)
            raise AuthError(AuthErrorKind.INVALID_RESET_TOKEN, RESET_EXPIRED_MESSAGE)

        password_hash = await self.hasher.hash(new_password)
        consumed = await self.store.update_fields(
            user.id,
            {
                "password_hash": password_hash,
                "reset_token": None,
                "reset_token_expires_at": None,
                "refresh_token_hash": None,
            },
            expected={"reset_token": token},
        )
        if not consumed:
            # Another request consumed the token first
            logger.info("password_reset_failed", reason="already_consumed", user_id=user.id)
            raise AuthError(AuthErrorKind.INVALID_RESET_TOKEN, INVALID_RESET_MESSAGE)

        logger.info("password_reset_completed", user_id=user.id)
        await self.email.send_password_changed_email(user.email, user.username)
        return MessageResponse(message=PASSWORD_RESET_MESSAGE)

    async def authenticate(self, access_token: str) -> PublicUser:
        """Resolve a bearer access token to the user it was issued for.

        Raises:
            AuthError(INVALID_TOKEN): If the token is invalid or the user is gone
        """
        try:
            claims = self.tokens.verify(access_token, expected_type=ACCESS_TOKEN_TYPE)
        except TokenError as e:
            logger.debug("access_token_rejected", error=str(e))
            raise AuthError(AuthErrorKind.INVALID_TOKEN, INVALID_ACCESS_MESSAGE)

        user = await self.store.find_by_id(claims.sub)
        if user is None:
            raise AuthError(AuthErrorKind.INVALID_TOKEN, INVALID_ACCESS_MESSAGE)
        return PublicUser.from_record(user)
