"""Base class for OAuth2 protocol engines.

An engine performs the grant-type-specific part of an authorization: it builds
the authorize URL, interprets the redirect, and signs outbound requests. It
reports results through its ``on_authorize`` and ``on_failure`` callbacks.
"""

import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit

import httpx

from ..utils.errors import MissingSettingError, ProtocolError, SmartAuthError, StateMismatchError

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[dict[str, Any]], None]
FailureCallback = Callable[[SmartAuthError | None], None]


def running_task() -> asyncio.Task | None:
    """Return the task being run, or None outside an event loop."""
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def parse_redirect_params(url: str, component: str = "query") -> dict[str, str]:
    """Parse the result parameters carried by a redirect URL.

    Args:
        url: Absolute redirect URL
        component: "query" or "fragment"

    Returns:
        Mapping of parameter name to (first) value
    """
    parts = urlsplit(url)
    raw = parts.fragment if component == "fragment" else parts.query
    params: dict[str, str] = {}
    for key, value in parse_qsl(raw, keep_blank_values=True):
        params.setdefault(key, value)
    return params


class ProtocolEngine(ABC):
    """Base class for grant-type-specific OAuth2 engines.

    Recognized settings:

    - client_id, client_secret
    - registration_uri, authorize_uri, token_uri
    - redirect_uris (first entry is used)
    - scope
    - title
    """

    #: OAuth2 ``response_type`` requested at the authorize endpoint
    response_type: str = ""

    def __init__(self, settings: Mapping[str, Any]):
        """Initialize engine from auth settings.

        Args:
            settings: Auth settings mapping

        Raises:
            MissingSettingError: If authorize_uri is not set
        """
        authorize_uri = settings.get("authorize_uri")
        if not authorize_uri:
            raise MissingSettingError("authorize_uri")

        self.authorize_uri: str = authorize_uri
        self.token_uri: str | None = settings.get("token_uri")
        self.registration_uri: str | None = settings.get("registration_uri")
        self.client_id: str | None = settings.get("client_id")
        self.client_secret: str | None = settings.get("client_secret")

        redirect_uris = settings.get("redirect_uris") or []
        self.redirect_uri: str | None = redirect_uris[0] if redirect_uris else None

        self.scope: str | None = settings.get("scope")
        self.view_title: str | None = settings.get("title")

        self.access_token: str | None = None
        self.on_authorize: SuccessCallback | None = None
        self.on_failure: FailureCallback | None = None
        self._state: str | None = None

    def authorize_url(self) -> str:
        """Build the URL to open for user authorization.

        A fresh ``state`` is generated on each call; only the most recent
        one is accepted by ``handle_redirect_url``.

        Raises:
            MissingSettingError: If client_id or a redirect URI is not set
        """
        if not self.client_id:
            raise MissingSettingError("client_id")
        if not self.redirect_uri:
            raise MissingSettingError("redirect_uris")

        self._state = secrets.token_urlsafe(16)
        params = {
            "response_type": self.response_type,
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope or "",
            "state": self._state,
        }
        params.update(self._extra_authorize_params())

        separator = "&" if "?" in self.authorize_uri else "?"
        return f"{self.authorize_uri}{separator}{urlencode(params)}"

    def _extra_authorize_params(self) -> dict[str, str]:
        """Grant-specific parameters to add to the authorize URL."""
        return {}

    @abstractmethod
    def handle_redirect_url(self, url: str) -> None:
        """Process the redirect URL that ended user interaction.

        Implementations report the outcome through ``on_authorize`` or
        ``on_failure``, possibly after further asynchronous work.
        """
        pass

    def cancel(self) -> None:
        """Drop work still pending for the current authorization.

        Called by the session whenever an attempt resolves. After this, a
        redirect for the abandoned request fails the state check.
        """
        self._state = None

    def request(self, url: str, method: str = "GET") -> httpx.Request:
        """Create an outbound request, signed with the access token if one is held."""
        headers = {"Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return httpx.Request(method, url, headers=headers)

    def _check_redirect(self, params: dict[str, str]) -> SmartAuthError | None:
        """Return the error a redirect reports, or None if it may be processed."""
        if "error" in params:
            return ProtocolError(params["error"], params.get("error_description") or None)

        if self._state is None or params.get("state") != self._state:
            return StateMismatchError()

        return None

    def _did_authorize(self, parameters: dict[str, Any]) -> None:
        self._state = None
        if "access_token" in parameters:
            self.access_token = parameters["access_token"]
        if self.on_authorize:
            self.on_authorize(parameters)

    def _did_fail(self, error: SmartAuthError | None) -> None:
        logger.debug(f"OAuth2 engine failure: {error}")
        if self.on_failure:
            self.on_failure(error)

    def _parse_oauth_error(self, response: httpx.Response) -> ProtocolError | None:
        """Parse OAuth error response (RFC 6749 Section 5.2).

        Args:
            response: HTTP response from token or registration endpoint

        Returns:
            ProtocolError with error code and description, or None if parsing fails
        """
        try:
            error_data = response.json()
            return ProtocolError(
                error_data.get("error", "unknown_error"),
                error_data.get("error_description") or None,
            )
        except Exception:
            # Not an OAuth error body, caller falls back to the HTTP error
            return None

    async def register_client(self) -> tuple[str, str | None]:
        """Register a dynamic OAuth client (RFC 7591).

        Returns:
            Tuple of (client_id, client_secret)
            client_secret will be None for public clients

        Raises:
            MissingSettingError: If no registration endpoint or redirect URI is set
            ProtocolError: If registration fails
        """
        if not self.registration_uri:
            raise MissingSettingError("registration_uri")
        if not self.redirect_uri:
            raise MissingSettingError("redirect_uris")

        logger.info("Registering OAuth client...")

        registration_data = {
            "client_name": self.view_title or "SMART client",
            "redirect_uris": [self.redirect_uri],
            "grant_types": self._registration_grant_types(),
            "response_types": [self.response_type],
            "token_endpoint_auth_method": "none",
        }

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(self.registration_uri, json=registration_data)
                response.raise_for_status()
                client_data = response.json()
            except httpx.HTTPStatusError as e:
                error = self._parse_oauth_error(e.response)
                if error:
                    raise error from e
                raise ProtocolError("registration_failed", str(e)) from e
            except httpx.HTTPError as e:
                raise ProtocolError("registration_failed", str(e)) from e
            except ValueError as e:
                raise ProtocolError("registration_failed", "Registration response is not valid JSON") from e

        if not isinstance(client_data, dict):
            raise ProtocolError("registration_failed", "Registration response is not a JSON object")
        if "client_id" not in client_data:
            raise ProtocolError("registration_failed", "Registration response missing 'client_id'")

        self.client_id = client_data["client_id"]
        self.client_secret = client_data.get("client_secret")

        logger.info(f"Registered client: {self.client_id}")
        return self.client_id, self.client_secret

    def _registration_grant_types(self) -> list[str]:
        return []
