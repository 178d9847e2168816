"""Scope composition for SMART launch context.

SMART on FHIR carries clinical context through authorization by prefixing the
requested scope with ``launch`` or ``launch/patient``.
"""

from enum import Enum


class AccessContextGranularity(Enum):
    """How much launch context an authorization should establish."""

    TOKEN_ONLY = "token_only"
    LAUNCH_CONTEXT = "launch_context"
    PATIENT_SELECT_WEB = "patient_select_web"
    # Patient is picked natively after authorization, not through scope
    PATIENT_SELECT_NATIVE = "patient_select_native"


DEFAULT_SCOPE = "user/*.* openid profile"

SCOPE_PREFIXES: dict[AccessContextGranularity, str] = {
    AccessContextGranularity.LAUNCH_CONTEXT: "launch",
    AccessContextGranularity.PATIENT_SELECT_WEB: "launch/patient",
}


def compose_scope(base: str | None, granularity: AccessContextGranularity) -> str:
    """Compute the scope to request for the given granularity.

    Args:
        base: Base scope; ``DEFAULT_SCOPE`` is used when empty
        granularity: Requested access-context granularity

    Returns:
        ``base`` unchanged, or prefixed with the granularity's launch scope
    """
    scope = base or DEFAULT_SCOPE
    prefix = SCOPE_PREFIXES.get(granularity)
    if prefix is None:
        return scope
    return f"{prefix} {scope}"
