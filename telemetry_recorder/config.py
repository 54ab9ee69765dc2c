"""Engine configuration via environment variables.

Uses pydantic-settings so every field can be overridden with an env var
prefixed ``RECORDER_`` (e.g. ``RECORDER_FLUSH_THRESHOLD``,
``RECORDER_LOG_LEVEL``).  Nothing is required: the defaults reproduce the
dashboard behaviour (batches of 10, 1-second duration ticks).
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings

from telemetry_recorder.buffer import FlushPolicy


class RecorderSettings(BaseSettings):
    """Recording engine runtime settings."""

    model_config = {"env_prefix": "RECORDER_", "env_file": ".env", "extra": "ignore"}

    # -- buffering ------------------------------------------------------------
    flush_threshold: int = Field(
        default=10,
        ge=1,
        description="Buffered points that trigger an automatic batch flush",
    )
    flush_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound on any single persistence call",
    )

    # -- timing ---------------------------------------------------------------
    tick_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Duration tracker tick period",
    )
    poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between parameter reads in the capture loop",
    )

    # -- backend --------------------------------------------------------------
    backend_url: str = Field(
        default="http://127.0.0.1:54321",
        description="Base URL of the PostgREST / Supabase backend",
    )
    backend_api_key: str = Field(
        default="",
        description="API key sent as 'apikey' and bearer token",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="HTTP client timeout for the REST gateway",
    )
    max_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Max HTTP attempts for retryable backend failures",
    )

    # -- simulation -----------------------------------------------------------
    sim_scenario: str = Field(
        default="idle",
        description="Simulated parameter scenario for the capture loop",
    )

    # -- logging --------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="console",
        description="Log output format: 'console' or 'json'",
    )

    # -- derived --------------------------------------------------------------
    def flush_policy(self) -> FlushPolicy:
        """Return the buffer flush policy described by these settings."""
        return FlushPolicy(
            threshold=self.flush_threshold,
            timeout_seconds=self.flush_timeout_seconds,
        )
