"""Conformance statement security discovery for FHIR servers.

A FHIR server publishes its Conformance (DSTU2) or CapabilityStatement (STU3+)
at ``<base>/metadata``. SMART authorization endpoints are declared as extensions
on ``rest[0].security``.
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..utils.errors import DiscoveryError

logger = logging.getLogger(__name__)

FHIR_JSON_MIME_TYPES = "application/fhir+json, application/json+fhir;q=0.9, application/json;q=0.8"


class Coding(BaseModel):
    """A coded identifier on a security service."""

    model_config = ConfigDict(extra="ignore")

    system: str | None = None
    code: str | None = None
    display: str | None = None


class SecurityService(BaseModel):
    """A declared security service, e.g. ``OAuth2`` or ``SMART-on-FHIR``."""

    model_config = ConfigDict(extra="ignore")

    coding: list[Coding] | None = None
    text: str | None = None


class Extension(BaseModel):
    """An identifier/value pair declared on the security description."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    url: str | None = None
    value_uri: str | None = Field(default=None, alias="valueUri")


class RestSecurity(BaseModel):
    """The ``rest[].security`` element of a conformance statement."""

    model_config = ConfigDict(extra="ignore")

    service: list[SecurityService] | None = None
    extension: list[Extension] | None = None


def security_from_conformance(conformance: dict[str, Any]) -> RestSecurity | None:
    """Extract the security description of the first REST entry.

    Args:
        conformance: Parsed Conformance/CapabilityStatement JSON

    Returns:
        RestSecurity, or None if the statement declares no REST security
    """
    rest = conformance.get("rest") or []
    if not rest:
        return None

    security = rest[0].get("security")
    if security is None:
        return None

    return RestSecurity.model_validate(security)


async def discover_rest_security(base_url: str) -> RestSecurity | None:
    """Fetch a server's conformance statement and return its REST security.

    Args:
        base_url: FHIR service base URL (e.g., "https://fhir.example.com/r4/")

    Returns:
        RestSecurity, or None if the server declares no REST security

    Raises:
        DiscoveryError: If the conformance statement cannot be fetched or parsed
    """
    metadata_url = f"{base_url.rstrip('/')}/metadata"
    logger.debug(f"Fetching conformance statement from: {metadata_url}")

    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(metadata_url, headers={"Accept": FHIR_JSON_MIME_TYPES})
            response.raise_for_status()
            conformance = response.json()
        except httpx.HTTPError as e:
            raise DiscoveryError(f"Failed to fetch conformance statement: {e}") from e
        except ValueError as e:
            raise DiscoveryError(f"Conformance statement is not valid JSON: {e}") from e

    if not isinstance(conformance, dict):
        raise DiscoveryError("Conformance statement is not a JSON object")

    resource_type = conformance.get("resourceType")
    if resource_type not in ("Conformance", "CapabilityStatement"):
        logger.warning(f"Unexpected resourceType at {metadata_url}: {resource_type}")

    try:
        security = security_from_conformance(conformance)
    except ValidationError as e:
        raise DiscoveryError(f"Malformed security description: {e}") from e

    if security is None:
        logger.info(f"No REST security declared by {base_url}")
    return security
