"""Services package exports."""

from blog_auth.services.abuse_guard import AbuseGuard, InMemoryRateLimitBackend
from blog_auth.services.auth_service import AuthService
from blog_auth.services.credential_store import CredentialStore, InMemoryCredentialStore
from blog_auth.services.email_service import EmailService
from blog_auth.services.errors import AuthError, AuthErrorKind
from blog_auth.services.hashing_service import SecretHasher
from blog_auth.services.logging_service import configure_logging, get_logger
from blog_auth.services.reset_token_service import ResetTokenGenerator
from blog_auth.services.token_service import TokenIssuer

__all__ = [
    "AbuseGuard",
    "AuthError",
    "AuthErrorKind",
    "AuthService",
    "CredentialStore",
    "EmailService",
    "InMemoryCredentialStore",
    "InMemoryRateLimitBackend",
    "ResetTokenGenerator",
    "SecretHasher",
    "TokenIssuer",
    "configure_logging",
    "get_logger",
]
