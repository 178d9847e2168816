"""Pytest configuration and fixtures for smart-auth tests."""

from typing import Any

import pytest

from smart_auth.auth.conformance import Coding, Extension, RestSecurity, SecurityService
from smart_auth.auth.grant_selector import (
    OAUTH_URIS_AUTHORIZE,
    OAUTH_URIS_REGISTER,
    OAUTH_URIS_TOKEN,
    AuthMethod,
)

from fakes import (
    AUTHORIZE_URI,
    REDIRECT_URI,
    REGISTRATION_URI,
    TOKEN_URI,
    CallbackRecorder,
    FakeEngineSession,
    FakePresenter,
)


@pytest.fixture
def auth_settings() -> dict[str, Any]:
    """Auth settings sufficient for both grant engines."""
    return {
        "client_id": "test_client",
        "authorize_uri": AUTHORIZE_URI,
        "token_uri": TOKEN_URI,
        "redirect_uris": [REDIRECT_URI],
        "title": "Test App",
    }


@pytest.fixture
def presenter() -> FakePresenter:
    return FakePresenter()


@pytest.fixture
def callback() -> CallbackRecorder:
    return CallbackRecorder()


@pytest.fixture
def code_session(auth_settings: dict[str, Any], presenter: FakePresenter) -> FakeEngineSession:
    """Code grant session backed by a FakeEngine."""
    return FakeEngineSession(AuthMethod.CODE_GRANT, auth_settings, presenter=presenter)


@pytest.fixture
def smart_security() -> RestSecurity:
    """Security description with registration, authorize and token endpoints."""
    return RestSecurity(
        service=[
            SecurityService(
                text="OAuth2 using SMART-on-FHIR profile",
                coding=[Coding(system="http://hl7.org/fhir/restful-security-service", code="OAuth2")],
            )
        ],
        extension=[
            Extension(url=OAUTH_URIS_REGISTER, value_uri=REGISTRATION_URI),
            Extension(url=OAUTH_URIS_AUTHORIZE, value_uri=AUTHORIZE_URI),
            Extension(url=OAUTH_URIS_TOKEN, value_uri=TOKEN_URI),
        ],
    )


@pytest.fixture
def implicit_security() -> RestSecurity:
    """Security description with only an authorize endpoint."""
    return RestSecurity(extension=[Extension(url=OAUTH_URIS_AUTHORIZE, value_uri=AUTHORIZE_URI)])


@pytest.fixture
def conformance_document() -> dict[str, Any]:
    """Minimal DSTU2 Conformance JSON with SMART extensions."""
    return {
        "resourceType": "Conformance",
        "fhirVersion": "1.0.2",
        "rest": [
            {
                "mode": "server",
                "security": {
                    "service": [
                        {
                            "coding": [
                                {
                                    "system": "http://hl7.org/fhir/restful-security-service",
                                    "code": "OAuth2",
                                }
                            ],
                            "text": "OAuth2 using SMART-on-FHIR profile",
                        }
                    ],
                    "extension": [
                        {"url": OAUTH_URIS_AUTHORIZE, "valueUri": AUTHORIZE_URI},
                        {"url": OAUTH_URIS_TOKEN, "valueUri": TOKEN_URI},
                        {"url": "http://example.com/other", "valueString": "ignored"},
                    ],
                },
            }
        ],
    }
