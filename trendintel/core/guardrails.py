"""
Spend guardrails for external collaborators.

Provides flag readers and fail-fast guards so that no code path can reach
the paid Apify actor or the LLM provider unless settings explicitly allow it.
"""

from __future__ import annotations

import logging

from django.conf import settings

logger = logging.getLogger("trendintel.core.guardrails")


# =============================================================================
# EXCEPTIONS
# =============================================================================


class ApifyDisabledError(Exception):
    """
    Raised when an Apify API call is attempted but APIFY_ENABLED=false.

    Prevents accidental actor spend during development and testing.
    """

    def __init__(self, message: str = "Apify is disabled (APIFY_ENABLED=false)"):
        super().__init__(message)


# =============================================================================
# FLAG READERS
# =============================================================================


def is_apify_enabled() -> bool:
    """
    Check if Apify API calls are enabled.

    Default is False (safe). Must be explicitly enabled for live calls.
    """
    return bool(getattr(settings, "APIFY_ENABLED", False))


def is_llm_disabled() -> bool:
    """Check if the LLM client should return stub responses."""
    return bool(getattr(settings, "LLM_DISABLED", False))


# =============================================================================
# GUARDS
# =============================================================================


def require_apify_enabled() -> None:
    """
    Guard that raises if Apify is disabled.

    Call at the top of any function that makes Apify API calls.

    Raises:
        ApifyDisabledError: If APIFY_ENABLED is not true
    """
    if not is_apify_enabled():
        logger.warning("Blocked Apify call: APIFY_ENABLED is false")
        raise ApifyDisabledError(
            "Apify API calls are disabled. Set APIFY_ENABLED=true to enable."
        )
