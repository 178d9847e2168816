"""Shared utilities: error types and logging setup."""

from .errors import (
    AuthorizationInProgressError,
    ConfigurationError,
    DiscoveryError,
    EngineNotConfiguredError,
    MissingSettingError,
    ProtocolError,
    SmartAuthError,
    StateMismatchError,
    UnsupportedServerError,
)
from .logging_config import SecretRedactingFilter, redact_secrets, setup_logging

__all__ = [
    "SmartAuthError",
    "ConfigurationError",
    "MissingSettingError",
    "EngineNotConfiguredError",
    "UnsupportedServerError",
    "DiscoveryError",
    "ProtocolError",
    "StateMismatchError",
    "AuthorizationInProgressError",
    "setup_logging",
    "SecretRedactingFilter",
    "redact_secrets",
]
