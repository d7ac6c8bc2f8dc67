"""Runtime configuration from environment variables."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from firecracker_control import constants
from firecracker_control.retry import RetryConfig


class Settings(BaseSettings):
    """Runtime configuration from environment variables.

    All settings can be overridden via environment variables with the
    FIRECRACKER_CONTROL_ prefix.
    Example: FIRECRACKER_CONTROL_REQUEST_TIMEOUT=5
    """

    model_config = SettingsConfigDict(
        env_prefix="FIRECRACKER_CONTROL_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Client
    request_timeout: float = Field(default=constants.REQUEST_TIMEOUT_SECONDS, gt=0)
    connect_timeout: float = Field(default=constants.CONNECT_TIMEOUT_SECONDS, gt=0)
    socket_dir: Path = Path("/tmp")

    # Lifecycle
    stop_timeout: float = Field(default=constants.STOP_TIMEOUT_SECONDS, ge=0)
    poll_interval: float = Field(default=constants.STATE_POLL_INTERVAL_SECONDS, gt=0)

    # Retry
    retry_max_attempts: int = Field(default=constants.RETRY_MAX_ATTEMPTS, ge=1)
    retry_initial_delay: float = Field(default=constants.RETRY_INITIAL_DELAY_SECONDS, gt=0)
    retry_max_delay: float = Field(default=constants.RETRY_MAX_DELAY_SECONDS, gt=0)
    retry_backoff_multiplier: float = Field(default=constants.RETRY_BACKOFF_MULTIPLIER, ge=1.0)
    retry_jitter_factor: float = Field(default=constants.RETRY_JITTER_FACTOR, ge=0.0, le=1.0)

    # Snapshots
    snapshot_dir: Path = Path("/tmp/snapshots")

    def retry_config(self) -> RetryConfig:
        """Build the default RetryConfig from the retry_* settings."""
        return RetryConfig(
            max_attempts=self.retry_max_attempts,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
            backoff_multiplier=self.retry_backoff_multiplier,
            jitter_factor=self.retry_jitter_factor,
        )
