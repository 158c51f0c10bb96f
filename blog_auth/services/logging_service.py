"""structlog setup that keeps credentials out of the log stream."""

import logging
import re
import sys
from typing import Any, Dict

import structlog

REDACTED = "REDACTED"

# Substrings that mark a log field as secret material
SENSITIVE_KEYS = (
    "api_key",
    "authorization",
    "secret",
    "password",
    "token",
)

# Values that are credentials whatever key they are logged under
_BEARER_RE = re.compile(r"^\s*bearer\s+\S+", re.IGNORECASE)
_JWT_RE = re.compile(r"^eyJ[\w-]+\.[\w-]+\.[\w-]*$")


def _is_secret_value(value: Any) -> bool:
    return isinstance(value, str) and bool(
        _BEARER_RE.match(value) or _JWT_RE.match(value)
    )


def redact_sensitive(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Mask secrets before rendering.

    A field is masked when its name contains one of SENSITIVE_KEYS
    (password, new_password, refresh_token, reset_token, jwt_secret, ...)
    or when its value is a bearer header or a JWT. The event name is left
    alone so events like ``refresh_token_rotated`` stay readable.
    """
    for key, value in list(event_dict.items()):
        if key == "event":
            continue
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS) or _is_secret_value(value):
            event_dict[key] = REDACTED

    return event_dict


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Route structlog to stdout.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR; unknown names fall back to INFO
        log_format: "json" for one object per line, "console" for local development
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None):
    """Return a structlog logger, tagged with ``logger_name`` when given."""
    logger = structlog.get_logger()
    return logger.bind(logger_name=name) if name else logger
