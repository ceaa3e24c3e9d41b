from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SDK_VERSION = "3.4.0"


class GameLiftSettings(BaseSettings):
    """GameLift server SDK settings.

    All settings can be configured via environment variables with the prefix GAMELIFT_.
    For example, GAMELIFT_HEALTHCHECK_INTERVAL=10 will report health every ten seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="GAMELIFT_",
        env_file=".env",
        extra="ignore",
    )

    # Connection settings
    proxy_url: str = "http://127.0.0.1:5757"
    """Location of the local proxy which forwards requests to the GameLift service."""

    sdk_version: str = DEFAULT_SDK_VERSION
    sdk_language: str = "Python"

    reconnect_attempts: int = Field(default=3, ge=0)
    """Reconnection attempts the channel makes after losing the proxy."""

    request_timeout: float | None = Field(default=None, gt=0)
    """
    Seconds to wait for the proxy to acknowledge a call.
    If None, calls wait until they are acknowledged or the connection drops.
    """

    # Lifecycle settings
    healthcheck_interval: float = Field(default=60.0, gt=0)
    """Seconds between health reports, also the deadline for the health callback."""

    termination_grace_period: float = Field(default=300.0, ge=0)
    """Seconds added to the current time when a termination notice carries no usable time."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
