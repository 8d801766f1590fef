"""Configuration parsing and validation for the HubSpot CRM analytics engine."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import AuthenticationError, ConfigurationError

DEFAULT_API_URL = "https://api.hubapi.com"


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by the HubSpot client."""

    access_token: str
    base_url: str = DEFAULT_API_URL
    timeout_seconds: int = 30


def load_config(timeout_seconds: int = 30) -> Config:
    """Build and validate application configuration from the environment.

    Args:
        timeout_seconds: Positive per-request timeout in seconds.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If ``timeout_seconds`` is not greater than ``0``.
        AuthenticationError: If ``HUBSPOT_API_KEY`` is not configured.
    """
    if timeout_seconds <= 0:
        raise ConfigurationError(
            "Invalid value for 'timeout_seconds': expected an integer greater than 0."
        )

    access_token: str = os.getenv("HUBSPOT_API_KEY", "").strip()
    if not access_token:
        raise AuthenticationError(
            "Missing required HubSpot access token. "
            "Set the 'HUBSPOT_API_KEY' environment variable before running."
        )

    base_url = os.getenv("HUBSPOT_API_URL", "").strip() or DEFAULT_API_URL

    return Config(
        access_token=access_token,
        base_url=base_url.rstrip("/"),
        timeout_seconds=timeout_seconds,
    )
