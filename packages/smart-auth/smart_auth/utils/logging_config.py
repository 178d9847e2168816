"""Centralized logging configuration.

This module provides consistent logging setup for the CLI and embedding applications.
Every handler installed here masks OAuth2 secrets (authorization codes, tokens,
PKCE verifiers, client secrets) in formatted messages.
"""

import logging
import os
import re
from pathlib import Path

REDACTION = "[REDACTED]"

# Parameters whose values must never reach a log sink
SECRET_PARAMETERS = (
    "access_token",
    "refresh_token",
    "id_token",
    "code_verifier",
    "client_secret",
    "code",
)

# key=value (query strings, form bodies) and "key": "value" (JSON, dict reprs)
SECRET_PATTERN = re.compile(
    r"\b(?P<key>" + "|".join(SECRET_PARAMETERS) + r")"
    r"(?P<sep>=|[\"']\s*:\s*[\"'])"
    r"(?P<value>[^&\s\"'#]+)"
)


def redact_secrets(text: str) -> str:
    """Replace the values of OAuth2 secret parameters in text.

    Args:
        text: Log message, URL or serialized response

    Returns:
        Text with secret values replaced by ``[REDACTED]``
    """
    return SECRET_PATTERN.sub(lambda m: f"{m.group('key')}{m.group('sep')}{REDACTION}", text)


class SecretRedactingFilter(logging.Filter):
    """Masks OAuth2 secrets in log records before they are emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    name: str = "smart_auth",
    level: str | None = None,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure logging with consistent format.

    Args:
        name: Logger name (typically __name__ from the calling module)
        level: Log level (defaults to LOG_LEVEL env var or INFO)
        log_file: Optional file path for logging output

    Returns:
        Configured logger instance
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    redacting_filter = SecretRedactingFilter()
    for handler in handlers:
        handler.addFilter(redacting_filter)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )

    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger(name)
