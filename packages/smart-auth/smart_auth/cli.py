"""Command-line SMART authorization against a FHIR server.

Usage:
    smart-auth https://fhir.example.com/r4                    # Token only
    smart-auth https://fhir.example.com/r4 -g launch          # Request launch context
    smart-auth https://fhir.example.com/r4 -g patient         # Pick a patient in the web UI
    smart-auth https://fhir.example.com/r4 --browser          # Paste the redirect URL yourself
"""

import argparse
import asyncio
import logging
from typing import Any

from .auth import (
    AccessContextGranularity,
    AuthorizationSession,
    AuthProperties,
    BrowserPresenter,
    LocalRedirectServer,
)
from .core.config import Settings
from .utils.errors import SmartAuthError
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

GRANULARITIES: dict[str, AccessContextGranularity] = {
    "token": AccessContextGranularity.TOKEN_ONLY,
    "launch": AccessContextGranularity.LAUNCH_CONTEXT,
    "patient": AccessContextGranularity.PATIENT_SELECT_WEB,
}

# Token response fields safe to print
SUMMARY_KEYS = ("token_type", "expires_in", "scope", "patient", "encounter", "id_token")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smart-auth",
        description="Authorize against a SMART on FHIR server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("server", help="FHIR service base URL")
    parser.add_argument(
        "--granularity",
        "-g",
        choices=list(GRANULARITIES),
        default="token",
        help="Launch context to request (default: token)",
    )
    parser.add_argument(
        "--browser",
        action="store_true",
        help="Open the system browser and paste the redirect URL instead of "
        "running a local callback server",
    )
    parser.add_argument("--client-id", help="OAuth2 client ID (overrides SMART_CLIENT_ID)")
    parser.add_argument("--log-level", help="Logging level (overrides SMART_LOG_LEVEL)")
    return parser


def summarize(parameters: dict[str, Any]) -> list[str]:
    """Describe an authorization result without exposing tokens."""
    lines = []
    for key in SUMMARY_KEYS:
        if key not in parameters:
            continue
        value = "<present>" if key == "id_token" else parameters[key]
        lines.append(f"   {key}: {value}")
    return lines


async def run(args: argparse.Namespace, config: Settings) -> int:
    """Discover, select a grant, and authorize once."""
    auth_settings = config.to_auth_settings()
    if args.client_id:
        auth_settings["client_id"] = args.client_id

    if args.browser:
        presenter: BrowserPresenter | LocalRedirectServer = BrowserPresenter()
    else:
        presenter = LocalRedirectServer(
            host=config.redirect_host,
            port=config.redirect_port,
            path=config.redirect_path,
        )

    try:
        session = await AuthorizationSession.discover(
            args.server, auth_settings, presenter=presenter
        )
    except SmartAuthError as e:
        print(f"❌ {e}")
        return 1

    print(f"🔐 Using {session.method.value} grant")

    properties = AuthProperties(
        granularity=GRANULARITIES[args.granularity],
        embedded=not args.browser,
        timeout=config.authorization_timeout or None,
    )
    logger.debug(f"Authorization properties: {properties}")

    try:
        if session.engine is not None and not session.engine.client_id:
            await session.register_client()

        if isinstance(presenter, LocalRedirectServer):
            # Surface port conflicts before the browser is opened
            await presenter.start(session)

        outcome: asyncio.Future = asyncio.get_running_loop().create_future()

        def _complete(parameters: dict[str, Any] | None, error: SmartAuthError | None) -> None:
            if not outcome.done():
                outcome.set_result((parameters, error))

        session.authorize(properties, _complete)

        if args.browser and not outcome.done():
            url = await asyncio.to_thread(input, "Paste the redirect URL: ")
            if not session.handle_redirect(url.strip()):
                print("⚠️  No authorization in progress, redirect ignored")

        parameters, error = await outcome
    except SmartAuthError as e:
        print(f"❌ {e}")
        return 1
    except OSError as e:
        print(f"❌ Could not start callback server: {e}")
        return 1
    finally:
        if isinstance(presenter, LocalRedirectServer):
            await presenter.aclose()

    if error is not None:
        print(f"❌ Authorization failed: {error}")
        return 1
    if parameters is None:
        print("⚠️  Authorization cancelled")
        return 1

    print("✅ Authorized")
    for line in summarize(parameters):
        print(line)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and run one authorization."""
    args = build_parser().parse_args(argv)
    config = Settings()
    setup_logging("smart_auth", args.log_level or config.log_level, config.log_file)

    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        print("\n⚠️  Interrupted")
        return 130
