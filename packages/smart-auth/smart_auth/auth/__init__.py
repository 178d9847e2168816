"""SMART on FHIR OAuth2 authorization.

This package provides:
- Security discovery from a server's conformance statement
- Grant type selection from the SMART oauth-uris extensions
- Launch-context scope composition
- Implicit and authorization code (PKCE) grant engines
- An authorization session that resolves each attempt exactly once
- Browser and local callback server presenters
"""

from .conformance import (
    Coding,
    Extension,
    RestSecurity,
    SecurityService,
    discover_rest_security,
    security_from_conformance,
)
from .engine import ProtocolEngine, parse_redirect_params
from .grant_selector import (
    OAUTH_URIS_AUTHORIZE,
    OAUTH_URIS_REGISTER,
    OAUTH_URIS_TOKEN,
    AuthMethod,
    GrantSelection,
    select_grant,
)
from .grants import ENGINE_TYPES, CodeGrantEngine, ImplicitGrantEngine, generate_pkce_pair
from .redirect import (
    AuthPresenter,
    BrowserPresenter,
    LocalRedirectServer,
    PatientSelector,
    RedirectTarget,
)
from .scope import DEFAULT_SCOPE, AccessContextGranularity, compose_scope
from .session import AuthCallback, AuthorizationSession, AuthProperties

__all__ = [
    # Conformance
    "Coding",
    "Extension",
    "RestSecurity",
    "SecurityService",
    "discover_rest_security",
    "security_from_conformance",
    # Grant selection
    "AuthMethod",
    "GrantSelection",
    "select_grant",
    "OAUTH_URIS_AUTHORIZE",
    "OAUTH_URIS_REGISTER",
    "OAUTH_URIS_TOKEN",
    # Scope
    "AccessContextGranularity",
    "DEFAULT_SCOPE",
    "compose_scope",
    # Engines
    "ProtocolEngine",
    "ImplicitGrantEngine",
    "CodeGrantEngine",
    "ENGINE_TYPES",
    "generate_pkce_pair",
    "parse_redirect_params",
    # Session
    "AuthorizationSession",
    "AuthProperties",
    "AuthCallback",
    # Presentation
    "AuthPresenter",
    "BrowserPresenter",
    "LocalRedirectServer",
    "PatientSelector",
    "RedirectTarget",
]
