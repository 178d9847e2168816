"""Error types for SMART authorization."""


class SmartAuthError(Exception):
    """Base exception for SMART authorization errors."""

    pass


# Configuration errors
class ConfigurationError(SmartAuthError):
    """Raised when authorization configuration is missing or invalid."""

    pass


class MissingSettingError(ConfigurationError):
    """Raised when a required auth setting is not present."""

    def __init__(self, key: str):
        super().__init__(f"Auth settings missing '{key}'")
        self.key = key


class EngineNotConfiguredError(ConfigurationError):
    """Raised when an authorization is attempted without a protocol engine."""

    def __init__(self):
        super().__init__("Not set up to authorize, missing a handle to the OAuth2 engine")


class UnsupportedServerError(ConfigurationError):
    """Raised when a server does not advertise a supported authorization method."""

    def __init__(self, server: str | None = None):
        message = "Server does not advertise a supported OAuth2 authorization method"
        if server:
            message = f"{message}: {server}"
        super().__init__(message)
        self.server = server


class DiscoveryError(ConfigurationError):
    """Raised when the server's conformance statement cannot be retrieved."""

    pass


# Protocol errors
class ProtocolError(SmartAuthError):
    """OAuth2 error reported by the authorization server or a protocol engine."""

    def __init__(self, error: str, error_description: str | None = None):
        self.error = error
        self.error_description = error_description
        message = f"{error}: {error_description}" if error_description else error
        super().__init__(message)


class StateMismatchError(ProtocolError):
    """Redirect carried a state parameter that does not match the request."""

    def __init__(self):
        super().__init__("invalid_state", "Redirect state does not match the authorization request")


# Programmer misuse
class AuthorizationInProgressError(SmartAuthError):
    """Raised when a second authorization is started while one is still pending.

    This signals a broken caller contract and is never delivered through
    the completion callback.
    """

    def __init__(self):
        super().__init__(
            "An authorization attempt is already in progress. "
            "Wait for its callback or call abort() first"
        )
