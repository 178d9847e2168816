"""Authorization session: drives one OAuth2 attempt at a time against a server.

A session is created once per server and authorization method and may
authorize repeatedly. Each ``authorize`` call registers a completion callback
that fires exactly once, with one of:

- ``(parameters, None)``: authorized
- ``(None, error)``: failed
- ``(None, None)``: cancelled via ``abort()``

Starting a second attempt while one is pending raises
``AuthorizationInProgressError``.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from ..utils.errors import (
    AuthorizationInProgressError,
    ConfigurationError,
    EngineNotConfiguredError,
    SmartAuthError,
    UnsupportedServerError,
)
from .conformance import RestSecurity, discover_rest_security
from .engine import ProtocolEngine
from .grant_selector import AuthMethod, select_grant
from .grants import ENGINE_TYPES
from .redirect import AuthPresenter, BrowserPresenter, PatientSelector
from .scope import DEFAULT_SCOPE, AccessContextGranularity, compose_scope

logger = logging.getLogger(__name__)

AuthCallback = Callable[[dict[str, Any] | None, SmartAuthError | None], None]


@dataclass(frozen=True)
class AuthProperties:
    """Per-attempt authorization properties.

    Attributes:
        granularity: Launch context to request
        embedded: Use the presenter's embedded path instead of the system browser
        timeout: Seconds after which a still-pending attempt is aborted
    """

    granularity: AccessContextGranularity = AccessContextGranularity.TOKEN_ONLY
    embedded: bool = True
    timeout: float | None = None


@dataclass
class _Attempt:
    properties: AuthProperties
    callback: AuthCallback
    context: Any = None
    timer: asyncio.TimerHandle | None = None
    # Set once authorized while native patient selection is outstanding
    parameters: dict[str, Any] | None = None


class AuthorizationSession:
    """Owns the protocol engine and the in-flight attempt for one server."""

    engine_types: Mapping[AuthMethod, type[ProtocolEngine]] = ENGINE_TYPES

    def __init__(
        self,
        method: AuthMethod,
        settings: Mapping[str, Any] | None = None,
        presenter: AuthPresenter | None = None,
        patient_selector: PatientSelector | None = None,
    ):
        """Initialize session.

        Args:
            method: Authorization method, fixed for the session's lifetime
            settings: Auth settings; the engine is configured immediately when given
            presenter: Presents authorization UI (default: system browser)
            patient_selector: Native patient picker for PATIENT_SELECT_NATIVE
        """
        self._method = method
        self.settings: dict[str, Any] | None = None
        self.presenter: AuthPresenter = presenter or BrowserPresenter()
        self.patient_selector = patient_selector
        self.engine: ProtocolEngine | None = None
        self._configuration_error: ConfigurationError | None = None
        self._base_scope = DEFAULT_SCOPE
        self._attempt: _Attempt | None = None

        if settings is not None:
            self.configure_with(settings)

    @classmethod
    def from_conformance_security(
        cls,
        security: RestSecurity,
        settings: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> "AuthorizationSession | None":
        """Create a session for the method a server's security description supports.

        Returns:
            Configured session, or None if the server has no supported method
        """
        selection = select_grant(security, settings)
        if selection is None:
            return None
        return cls(selection.method, selection.settings, **kwargs)

    @classmethod
    async def discover(
        cls,
        base_url: str,
        settings: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> "AuthorizationSession":
        """Create a session from the security a server publishes in its conformance statement.

        Raises:
            DiscoveryError: If the conformance statement cannot be fetched
            UnsupportedServerError: If the server has no supported method
        """
        security = await discover_rest_security(base_url)
        session = cls.from_conformance_security(security, settings, **kwargs) if security else None
        if session is None:
            raise UnsupportedServerError(base_url)
        return session

    @property
    def method(self) -> AuthMethod:
        return self._method

    @property
    def is_authorizing(self) -> bool:
        return self._attempt is not None

    @property
    def auth_properties(self) -> AuthProperties | None:
        return self._attempt.properties if self._attempt else None

    @property
    def auth_context(self) -> Any:
        """Presenter context of the pending attempt, if any."""
        return self._attempt.context if self._attempt else None

    def configure_with(self, settings: Mapping[str, Any]) -> None:
        """Create the protocol engine for this session's method.

        Raises:
            AuthorizationInProgressError: If an attempt is pending
        """
        if self._attempt is not None:
            raise AuthorizationInProgressError()

        self.settings = dict(settings)
        self.engine = None
        self._configuration_error = None

        engine_type = self.engine_types.get(self._method)
        if engine_type is None:
            return

        try:
            engine = engine_type(self.settings)
        except ConfigurationError as e:
            logger.warning(f"Cannot configure {self._method.value} grant: {e}")
            self._configuration_error = e
            return

        engine.on_authorize = self.did_authorize
        engine.on_failure = self.did_fail
        self._base_scope = engine.scope or DEFAULT_SCOPE
        self.engine = engine

    def authorize(self, properties: AuthProperties, callback: AuthCallback) -> None:
        """Start an authorization attempt.

        Adds the launch scope matching ``properties.granularity``, then either
        presents the embedded flow or opens the authorize URL in the browser.
        Returns immediately; ``callback`` fires once the attempt resolves.

        When the browser path is used, the application must deliver the
        redirect to ``handle_redirect``.

        Raises:
            AuthorizationInProgressError: If an attempt is already pending
        """
        if self._attempt is not None:
            raise AuthorizationInProgressError()

        engine = self.engine
        if engine is None:
            error: SmartAuthError | None = None
            if self._method is not AuthMethod.NONE:
                error = self._configuration_error or EngineNotConfiguredError()
            callback(None, error)
            return

        attempt = _Attempt(properties=properties, callback=callback)
        self._attempt = attempt
        engine.scope = compose_scope(self._base_scope, properties.granularity)
        logger.debug(f"Authorizing with scope '{engine.scope}'")
        self._schedule_timeout(attempt)

        try:
            if properties.embedded:
                context = self.presenter.present_embedded(engine, properties.granularity, self)
            else:
                context = self.presenter.open_in_browser(engine.authorize_url())
        except SmartAuthError as e:
            logger.warning(f"Could not start authorization: {e}")
            self._resolve(None, e)
            return
        except Exception as e:
            logger.exception("Presenter failed to start authorization")
            error = ConfigurationError(f"Could not present authorization: {e}")
            error.__cause__ = e
            self._resolve(None, error)
            return

        if self._attempt is attempt:
            attempt.context = context
        elif context is not None:
            # Resolved during dispatch
            self.presenter.dismiss(context)

    async def authorize_async(self, properties: AuthProperties) -> dict[str, Any] | None:
        """Run an attempt to completion.

        Returns:
            Authorization parameters, or None if the attempt was cancelled

        Raises:
            SmartAuthError: If the attempt failed
            AuthorizationInProgressError: If an attempt is already pending
        """
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def _complete(parameters: dict[str, Any] | None, error: SmartAuthError | None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(parameters)

        self.authorize(properties, _complete)
        return await future

    async def register_client(self) -> tuple[str, str | None]:
        """Register a dynamic client with the server's registration endpoint.

        Raises:
            ConfigurationError: If no engine is configured or registration is unavailable
            ProtocolError: If registration fails
        """
        if self.engine is None:
            raise self._configuration_error or EngineNotConfiguredError()
        client_id, client_secret = await self.engine.register_client()
        if self.settings is not None:
            self.settings["client_id"] = client_id
        return client_id, client_secret

    def handle_redirect(self, url: str) -> bool:
        """Forward a redirect URL to the engine.

        Returns:
            True if an attempt was pending and the URL was handed to the engine
        """
        if self.engine is None or self._attempt is None:
            return False

        self.engine.handle_redirect_url(url)
        return True

    def did_authorize(self, parameters: dict[str, Any]) -> None:
        """Engine reported success."""
        attempt = self._attempt
        if attempt and attempt.properties.granularity is AccessContextGranularity.PATIENT_SELECT_NATIVE:
            if self.patient_selector is None:
                self._resolve(
                    None,
                    ConfigurationError(
                        "Native patient selection requested but no patient selector is configured"
                    ),
                )
                return
            logger.debug(
                f"Showing native patient selector after authorizing with {sorted(parameters)}"
            )
            attempt.parameters = parameters
            self.patient_selector.select_patient(self, parameters, attempt)
            return

        logger.debug(f"Did authorize with parameters {sorted(parameters)}")
        self._resolve(parameters, None)

    def did_select_patient(
        self,
        attempt: object,
        patient_id: str,
        patient_resource: Any = None,
    ) -> None:
        """Native patient selection finished; resolve with the selected patient added.

        Args:
            attempt: The handle passed to ``PatientSelector.select_patient``
            patient_id: Selected patient's id, added as ``patient``
            patient_resource: Optional resource, added as ``patient_resource``

        A selection for an attempt that has since resolved is ignored.
        """
        if attempt is not self._attempt or self._attempt.parameters is None:
            logger.info("Ignoring patient selection for an attempt that is no longer pending")
            return

        result = dict(self._attempt.parameters)
        result["patient"] = patient_id
        if patient_resource is not None:
            result["patient_resource"] = patient_resource
        self._resolve(result, None)

    def did_fail(self, error: SmartAuthError | None) -> None:
        """Engine reported failure."""
        logger.info(f"Failed to authorize with error: {error}")
        self._resolve(None, error)

    def abort(self) -> None:
        """Cancel the pending attempt; its callback receives (None, None)."""
        logger.debug("Aborting authorization")
        self._resolve(None, None)

    def _resolve(
        self, parameters: dict[str, Any] | None, error: SmartAuthError | None
    ) -> None:
        attempt = self._attempt
        if attempt is None:
            return

        # Cleared before the callback runs so the callback may start a new attempt
        self._attempt = None
        if attempt.timer is not None:
            attempt.timer.cancel()
        if self.engine is not None:
            self.engine.cancel()
        if attempt.context is not None:
            self.presenter.dismiss(attempt.context)

        attempt.callback(parameters, error)

    def _schedule_timeout(self, attempt: _Attempt) -> None:
        timeout = attempt.properties.timeout
        if not timeout:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, authorization timeout not scheduled")
            return

        attempt.timer = loop.call_later(timeout, self._expire, attempt)

    def _expire(self, attempt: _Attempt) -> None:
        if self._attempt is not attempt:
            return
        logger.warning(f"Authorization timed out after {attempt.properties.timeout}s")
        self.abort()

    def signed_request(self, url: str, method: str = "GET") -> httpx.Request | None:
        """Return a signed request, or None if no engine is configured."""
        if self.engine is None:
            return None
        return self.engine.request(url, method)
