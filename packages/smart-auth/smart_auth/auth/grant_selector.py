"""Grant type selection from a server's declared REST security.

SMART OAuth2 endpoints are published as extensions on
``rest[0].security.extension[#].valueUri``, identified by the oauth-uris profile.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .conformance import RestSecurity

logger = logging.getLogger(__name__)


class AuthMethod(Enum):
    """The OAuth2 authorization method used against a server."""

    NONE = "none"
    IMPLICIT_GRANT = "implicit"
    CODE_GRANT = "code"


OAUTH_URIS_REGISTER = "http://fhir-registry.smartplatforms.org/Profile/oauth-uris#register"
OAUTH_URIS_AUTHORIZE = "http://fhir-registry.smartplatforms.org/Profile/oauth-uris#authorize"
OAUTH_URIS_TOKEN = "http://fhir-registry.smartplatforms.org/Profile/oauth-uris#token"

# Extension identifier -> auth settings key
ENDPOINT_EXTENSIONS: dict[str, str] = {
    OAUTH_URIS_REGISTER: "registration_uri",
    OAUTH_URIS_AUTHORIZE: "authorize_uri",
    OAUTH_URIS_TOKEN: "token_uri",
}


@dataclass(frozen=True)
class GrantSelection:
    """Authorization method and settings derived from a security description."""

    method: AuthMethod
    settings: dict[str, Any]


def select_grant(
    security: RestSecurity,
    settings: dict[str, Any] | None = None,
) -> GrantSelection | None:
    """Derive the authorization method and endpoint settings for a server.

    Discovered endpoints are written into ``settings`` when one is given,
    replacing any values the caller had set for the same keys.

    Args:
        security: The server's declared REST security
        settings: Optional pre-seeded auth settings (client_id, title, ...)

    Returns:
        GrantSelection, or None if the server has no supported method
    """
    auth_settings = settings if settings is not None else {}
    has_authorize_uri = False
    has_token_uri = False

    for service in security.service or []:
        logger.debug(f"Server supports REST security via {service.text}")
        for coding in service.coding or []:
            logger.debug(f"-- {coding.code} ({coding.system})")
            # TODO: select among multiple methods once servers declare more than one
            # via coded services; only the oauth-uris extensions are acted on.

    for extension in security.extension or []:
        key = ENDPOINT_EXTENSIONS.get(extension.url or "")
        if key is None:
            continue

        if extension.value_uri is None:
            auth_settings.pop(key, None)
        else:
            auth_settings[key] = extension.value_uri

        if key == "authorize_uri":
            has_authorize_uri = True
        elif key == "token_uri":
            has_token_uri = True

    if not has_authorize_uri:
        logger.info("Unsupported security services, will proceed without authorization method")
        return None

    method = AuthMethod.CODE_GRANT if has_token_uri else AuthMethod.IMPLICIT_GRANT
    logger.debug(f"Selected {method.value} grant")
    return GrantSelection(method=method, settings=auth_settings)
