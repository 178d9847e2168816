"""smart-auth - SMART on FHIR OAuth2 authorization client."""

__version__ = "0.1.0"

from .auth import (
    AccessContextGranularity,
    AuthMethod,
    AuthorizationSession,
    AuthProperties,
    BrowserPresenter,
    CodeGrantEngine,
    ImplicitGrantEngine,
    LocalRedirectServer,
    ProtocolEngine,
    RestSecurity,
    compose_scope,
    discover_rest_security,
    security_from_conformance,
    select_grant,
)
from .core.config import Settings
from .utils.errors import (
    AuthorizationInProgressError,
    ConfigurationError,
    ProtocolError,
    SmartAuthError,
    UnsupportedServerError,
)

__all__ = [
    "AuthorizationSession",
    "AuthProperties",
    "AuthMethod",
    "AccessContextGranularity",
    "compose_scope",
    "select_grant",
    "RestSecurity",
    "security_from_conformance",
    "discover_rest_security",
    "ProtocolEngine",
    "ImplicitGrantEngine",
    "CodeGrantEngine",
    "BrowserPresenter",
    "LocalRedirectServer",
    "Settings",
    # Errors
    "SmartAuthError",
    "ConfigurationError",
    "UnsupportedServerError",
    "ProtocolError",
    "AuthorizationInProgressError",
]
