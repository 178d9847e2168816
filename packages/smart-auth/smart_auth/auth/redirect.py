"""Redirect delivery contract between presentation code and a session.

Whatever presents the authorization UI must, on receiving the redirect URL
that ends the flow, call ``handle_redirect`` on the owning session. That call
is the only write path from presentation code into the session; it returns
False and does nothing when no attempt is pending, so late or duplicate
deliveries are harmless.
"""

import asyncio
import html
import logging
import webbrowser
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

from aiohttp import web

from ..utils.errors import ConfigurationError, SmartAuthError
from .engine import ProtocolEngine, running_task
from .scope import AccessContextGranularity

if TYPE_CHECKING:
    from .session import AuthorizationSession

logger = logging.getLogger(__name__)


class RedirectTarget(Protocol):
    """Receives the redirect URL that ends an authorization attempt.

    ``did_fail`` lets a presenter report that it could not capture the
    redirect at all.
    """

    def handle_redirect(self, url: str) -> bool: ...

    def did_fail(self, error: SmartAuthError | None) -> None: ...


class AuthPresenter(Protocol):
    """Presents authorization UI for a session.

    ``present_embedded`` and ``open_in_browser`` return an opaque context
    object that the session holds for the duration of the attempt and hands
    back to ``dismiss`` once the attempt resolves.
    """

    def present_embedded(
        self,
        engine: ProtocolEngine,
        granularity: AccessContextGranularity,
        target: RedirectTarget,
    ) -> Any: ...

    def open_in_browser(self, url: str) -> Any: ...

    def dismiss(self, context: Any) -> None: ...


class PatientSelector(Protocol):
    """Native patient picker run after authorization.

    Implementations finish by calling ``session.did_select_patient(attempt, ...)``
    with the handle they were given, ``session.did_fail(...)`` or ``session.abort()``.
    """

    def select_patient(
        self, session: "AuthorizationSession", parameters: dict[str, Any], attempt: object
    ) -> None: ...


class BrowserPresenter:
    """Opens the authorize URL in the system browser.

    There is no embedded view in this presenter, so both paths open the
    browser. The application is responsible for delivering the redirect.
    """

    def __init__(self, open_url: Callable[[str], Any] = webbrowser.open):
        self.open_url = open_url

    def present_embedded(
        self,
        engine: ProtocolEngine,
        granularity: AccessContextGranularity,
        target: RedirectTarget,
    ) -> None:
        return self.open_in_browser(engine.authorize_url())

    def open_in_browser(self, url: str) -> None:
        logger.info(f"Opening browser to: {url}")
        self.open_url(url)
        return None

    def dismiss(self, context: Any) -> None:
        pass


RECEIVED_PAGE = """
<html>
<head><title>Authorization Received</title></head>
<body style="font-family: sans-serif; text-align: center; padding: 50px;">
    <h1>Authorization Received</h1>
    <p>You can close this window and return to the application to see the result.</p>
</body>
</html>
"""

FAILURE_PAGE = """
<html>
<head><title>Authorization Failed</title></head>
<body style="font-family: sans-serif; text-align: center; padding: 50px;">
    <h1 style="color: red;">Authorization Failed</h1>
    <p><strong>Error:</strong> {error}</p>
    <p>{error_description}</p>
    <p>Please close this window and try again.</p>
</body>
</html>
"""


class LocalRedirectServer:
    """Captures the redirect with a local HTTP callback server.

    ``present_embedded`` starts an aiohttp server on the redirect URI's
    host and port, then opens the browser. Every request to the callback
    path is forwarded to the session as a full URL. The server stops when
    the session dismisses the attempt.

    Only query-carried results reach the server, so this presenter suits the
    authorization code grant; implicit grant results live in the URL fragment,
    which browsers do not send.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8889,
        path: str = "/callback",
        open_url: Callable[[str], Any] = webbrowser.open,
    ):
        """Initialize callback server.

        Args:
            host: Interface to listen on
            port: Port for local callback server (default: 8889)
            path: Callback path
            open_url: Function used to open the browser
        """
        self.host = host
        self.port = port
        self.path = path
        self.open_url = open_url
        self.target: RedirectTarget | None = None
        self._runner: web.AppRunner | None = None
        self._stop_task: asyncio.Task | None = None

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}{self.path}"

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def start(self, target: RedirectTarget) -> None:
        """Start listening for the redirect."""
        self.target = target
        if self._runner is not None:
            return

        app = web.Application()
        app.router.add_get(self.path, self.handle_callback)

        runner = web.AppRunner(app)
        await runner.setup()
        try:
            await web.TCPSite(runner, self.host, self.port).start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner

        logger.info(f"Callback server listening on {self.redirect_uri}")

    async def stop(self) -> None:
        """Stop the callback server."""
        runner, self._runner = self._runner, None
        self.target = None
        if runner is not None:
            await runner.cleanup()
            logger.debug("Callback server stopped")

    async def aclose(self) -> None:
        """Stop the server, waiting for a stop already scheduled by dismiss()."""
        if self._stop_task is not None:
            await self._stop_task
            self._stop_task = None
        await self.stop()

    async def handle_callback(self, request: web.Request) -> web.Response:
        """Forward the redirect to the session and render a result page."""
        accepted = self.target is not None and self.target.handle_redirect(str(request.url))
        if not accepted:
            return web.Response(text="No authorization in progress", status=409)

        if "error" in request.query:
            page = FAILURE_PAGE.format(
                error=html.escape(request.query.get("error", "")),
                error_description=html.escape(request.query.get("error_description", "")),
            )
            return web.Response(text=page, content_type="text/html")

        return web.Response(text=RECEIVED_PAGE, content_type="text/html")

    def present_embedded(
        self,
        engine: ProtocolEngine,
        granularity: AccessContextGranularity,
        target: RedirectTarget,
    ) -> asyncio.Task:
        url = engine.authorize_url()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise ConfigurationError("Local redirect server requires a running event loop") from e
        return loop.create_task(self._serve_and_open(target, url))

    async def _serve_and_open(self, target: RedirectTarget, url: str) -> None:
        try:
            await self.start(target)
        except OSError as e:
            logger.error(f"Could not start callback server on {self.redirect_uri}: {e}")
            self.target = None
            error = ConfigurationError(f"Could not start callback server on {self.redirect_uri}: {e}")
            error.__cause__ = e
            target.did_fail(error)
            return

        try:
            self.open_in_browser(url)
        except Exception as e:
            logger.error(f"Could not open browser: {e}")
            error = ConfigurationError(f"Could not open browser: {e}")
            error.__cause__ = e
            target.did_fail(error)
            return
        logger.info("Waiting for authorization...")

    def open_in_browser(self, url: str) -> None:
        logger.info(f"Opening browser to: {url}")
        self.open_url(url)
        return None

    def dismiss(self, context: Any) -> None:
        if (
            isinstance(context, asyncio.Task)
            and not context.done()
            and context is not running_task()
        ):
            context.cancel()
        if self._runner is None:
            self.target = None
            return
        self._stop_task = asyncio.get_running_loop().create_task(self.stop())
