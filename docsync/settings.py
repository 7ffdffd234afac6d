"""Runtime settings for docsync.

Values are read from the environment with the ``DOCSYNC_`` prefix, e.g.
``DOCSYNC_URL_TEMPLATE`` or ``DOCSYNC_LOG_LEVEL``.
"""

from functools import lru_cache
from typing import Optional

import httpx
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_URL_TEMPLATE = "https://{app}.firebaseio.com/{path}.json"


class DocSyncSettings(BaseSettings):
    """Connection and logging settings."""

    model_config = SettingsConfigDict(env_prefix="DOCSYNC_", extra="ignore")

    # =========================================================================
    # REMOTE STORE
    # =========================================================================
    url_template: str = Field(
        default=DEFAULT_URL_TEMPLATE,
        description="URL for a location; {app} and {path} are substituted",
    )

    # =========================================================================
    # TIMEOUTS
    # =========================================================================
    request_timeout: float = Field(default=30.0, gt=0, le=600)
    connect_timeout: float = Field(default=10.0, gt=0, le=600)
    # None disables the read timeout so idle streams stay open
    stream_read_timeout: Optional[float] = Field(default=None, gt=0)

    # =========================================================================
    # LOGGING
    # =========================================================================
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("url_template")
    @classmethod
    def _check_template(cls, value: str) -> str:
        if "{app}" not in value or "{path}" not in value:
            raise ValueError("url_template must contain {app} and {path}")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()

    def request_timeouts(self) -> httpx.Timeout:
        """Timeouts for plain REST calls."""
        return httpx.Timeout(self.request_timeout, connect=self.connect_timeout)

    def stream_timeouts(self) -> httpx.Timeout:
        """Timeouts for the long-lived event stream."""
        return httpx.Timeout(
            self.request_timeout,
            connect=self.connect_timeout,
            read=self.stream_read_timeout,
        )


@lru_cache
def get_settings() -> DocSyncSettings:
    """Return the process settings, loaded once from the environment."""
    return DocSyncSettings()


__all__ = ["DocSyncSettings", "DEFAULT_URL_TEMPLATE", "get_settings"]
