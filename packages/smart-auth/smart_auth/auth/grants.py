"""Implicit and authorization code grant engines.

The code grant uses PKCE (RFC 7636) and exchanges the authorization code on
the running event loop after the redirect has been handled.
"""

import asyncio
import hashlib
import logging
import secrets
from base64 import urlsafe_b64encode
from collections.abc import Mapping
from typing import Any

import httpx

from ..utils.errors import MissingSettingError, ProtocolError
from .engine import ProtocolEngine, parse_redirect_params, running_task
from .grant_selector import AuthMethod

logger = logging.getLogger(__name__)


def generate_pkce_pair() -> tuple[str, str]:
    """Generate PKCE code verifier and challenge.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    # 32 random bytes -> 43 character verifier
    code_verifier = urlsafe_b64encode(secrets.token_bytes(32)).decode("utf-8").rstrip("=")

    code_challenge = (
        urlsafe_b64encode(hashlib.sha256(code_verifier.encode("utf-8")).digest())
        .decode("utf-8")
        .rstrip("=")
    )

    return code_verifier, code_challenge


class ImplicitGrantEngine(ProtocolEngine):
    """Implicit grant: the access token arrives in the redirect fragment."""

    response_type = "token"

    def handle_redirect_url(self, url: str) -> None:
        params = parse_redirect_params(url, "fragment")
        error = self._check_redirect(params)
        if error:
            self._did_fail(error)
            return

        if not params.get("access_token"):
            self._did_fail(ProtocolError("invalid_response", "Redirect carried no access token"))
            return

        params.pop("state", None)
        self._did_authorize(params)

    def _registration_grant_types(self) -> list[str]:
        return ["implicit"]


class CodeGrantEngine(ProtocolEngine):
    """Authorization code grant with PKCE."""

    response_type = "code"

    def __init__(self, settings: Mapping[str, Any]):
        """Initialize code grant engine.

        Raises:
            MissingSettingError: If authorize_uri or token_uri is not set
        """
        super().__init__(settings)
        if not self.token_uri:
            raise MissingSettingError("token_uri")
        self._code_verifier: str | None = None
        self.exchange_task: asyncio.Task | None = None

    def _extra_authorize_params(self) -> dict[str, str]:
        self._code_verifier, code_challenge = generate_pkce_pair()
        return {
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }

    def handle_redirect_url(self, url: str) -> None:
        params = parse_redirect_params(url, "query")
        error = self._check_redirect(params)
        if error:
            self._did_fail(error)
            return

        code = params.get("code")
        if not code:
            self._did_fail(ProtocolError("invalid_response", "Redirect carried no authorization code"))
            return

        # Each code is exchanged once, with the verifier of the request it answers
        self._state = None
        code_verifier, self._code_verifier = self._code_verifier, None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._did_fail(
                ProtocolError("invalid_state", "Code exchange requires a running event loop")
            )
            return

        logger.info("Received authorization code, exchanging for tokens...")
        self.exchange_task = loop.create_task(self._exchange_and_report(code, code_verifier))

    async def _exchange_and_report(self, code: str, code_verifier: str | None) -> None:
        try:
            token_response = await self.exchange_code(code, code_verifier)
        except ProtocolError as e:
            self._did_fail(e)
            return
        self._did_authorize(token_response)

    def cancel(self) -> None:
        super().cancel()
        self._code_verifier = None

        task = self.exchange_task
        if task is None or task.done() or task is running_task():
            return
        logger.debug("Cancelling pending code exchange")
        task.cancel()

    async def exchange_code(self, code: str, code_verifier: str | None = None) -> dict[str, Any]:
        """Exchange authorization code for access token.

        Args:
            code: Authorization code from the redirect
            code_verifier: PKCE verifier of the authorize request that produced ``code``

        Returns:
            Token endpoint response, including any SMART launch context
            (``patient``, ``encounter``, ...)

        Raises:
            ProtocolError: If token exchange fails
        """
        token_data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
        }
        if code_verifier:
            token_data["code_verifier"] = code_verifier

        # Add client secret if we have one (confidential client)
        if self.client_secret:
            token_data["client_secret"] = self.client_secret

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    self.token_uri,
                    data=token_data,
                    headers={
                        "Accept": "application/json",
                        "Content-Type": "application/x-www-form-urlencoded",
                    },
                )
                response.raise_for_status()
                token_response = response.json()
            except httpx.HTTPStatusError as e:
                error = self._parse_oauth_error(e.response)
                if error:
                    raise error from e
                raise ProtocolError("token_exchange_failed", str(e)) from e
            except httpx.HTTPError as e:
                raise ProtocolError("token_exchange_failed", str(e)) from e
            except ValueError as e:
                raise ProtocolError("invalid_response", "Token response is not valid JSON") from e

        if not isinstance(token_response, dict):
            raise ProtocolError("invalid_response", "Token response is not a JSON object")
        if not token_response.get("access_token"):
            raise ProtocolError("invalid_response", "Token response missing 'access_token'")

        return token_response

    def _registration_grant_types(self) -> list[str]:
        return ["authorization_code"]


ENGINE_TYPES: dict[AuthMethod, type[ProtocolEngine]] = {
    AuthMethod.IMPLICIT_GRANT: ImplicitGrantEngine,
    AuthMethod.CODE_GRANT: CodeGrantEngine,
}
