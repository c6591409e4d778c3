"""
Gaia Session Configuration — Validated settings for a session.

Reads optional overrides from environment variables:
    GAIA_APP_DOMAIN = <origin of the application, e.g. https://app.example.com>
    GAIA_HUB_URL = <hub used when the auth response does not name one>
    GAIA_CORE_NODE = <naming node used for profile lookups>
    GAIA_MAX_LIST_PAGES = <integer, at most 65536>
    GAIA_REQUEST_TIMEOUT = <seconds>
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .conf import DEFAULT_HUB_URL, DEFAULT_CORE_NODE, MAX_LIST_PAGES

logger = logging.getLogger("gaia.session")


def _validate_http_url(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise ValueError(f"Expected an http(s) URL, got: {value!r}")
    return value.rstrip("/")


class SessionConfig(BaseModel):
    """Validated session configuration."""

    app_domain: Optional[str] = None
    hub_url: str = Field(default=DEFAULT_HUB_URL)
    core_node: str = Field(default=DEFAULT_CORE_NODE)
    max_list_pages: int = Field(default=MAX_LIST_PAGES, ge=1, le=MAX_LIST_PAGES)
    request_timeout: float = Field(default=30.0, gt=0)

    @field_validator("hub_url", "core_node")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Endpoints must be http(s) URLs; trailing slashes are dropped."""
        return _validate_http_url(v)

    @field_validator("app_domain")
    @classmethod
    def validate_app_domain(cls, v: Optional[str]) -> Optional[str]:
        """The app domain is an origin, so it must be an http(s) URL too."""
        if v is None:
            return v
        return _validate_http_url(v)

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """Create SessionConfig by loading values from environment.

        Returns:
            Populated SessionConfig instance.
        """
        values: dict = {}
        if app_domain := os.environ.get("GAIA_APP_DOMAIN"):
            values["app_domain"] = app_domain
        if hub_url := os.environ.get("GAIA_HUB_URL"):
            values["hub_url"] = hub_url
        if core_node := os.environ.get("GAIA_CORE_NODE"):
            values["core_node"] = core_node
        if max_pages := os.environ.get("GAIA_MAX_LIST_PAGES"):
            values["max_list_pages"] = int(max_pages)
        if timeout := os.environ.get("GAIA_REQUEST_TIMEOUT"):
            values["request_timeout"] = float(timeout)
        logger.debug("Loaded session config overrides: %s", sorted(values))
        return cls(**values)
