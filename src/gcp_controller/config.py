"""Configuration management with validation.

Invalid settings are rejected at load time rather than surfacing halfway
through a reconciliation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_RECONCILE_TIMEOUT_SECONDS = 600
MIN_RECONCILE_TIMEOUT_SECONDS = 30
MAX_RECONCILE_TIMEOUT_SECONDS = 7200

DEFAULT_OPERATION_TIMEOUT_SECONDS = 300

# Asynchronous operation polling: minimum spacing plus a token bucket
DEFAULT_OPERATION_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_OPERATION_POLL_QPS = 5.0
DEFAULT_OPERATION_POLL_BURST = 5

# Requeue hint while the control-plane endpoint or an instance is not ready
REQUEUE_AFTER_SECONDS = 5

MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file
MAX_BOOTSTRAP_DATA_SIZE_BYTES = 256 * 1024  # GCE metadata value limit

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class Config:
    """Controller configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    reconcile_timeout_seconds: int = DEFAULT_RECONCILE_TIMEOUT_SECONDS
    operation_timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS
    operation_poll_interval_seconds: float = DEFAULT_OPERATION_POLL_INTERVAL_SECONDS
    operation_poll_qps: float = DEFAULT_OPERATION_POLL_QPS
    operation_poll_burst: int = DEFAULT_OPERATION_POLL_BURST

    # Logging
    enable_json_logging: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not (
            MIN_RECONCILE_TIMEOUT_SECONDS
            <= self.reconcile_timeout_seconds
            <= MAX_RECONCILE_TIMEOUT_SECONDS
        ):
            errors.append(
                f"RECONCILE_TIMEOUT must be between {MIN_RECONCILE_TIMEOUT_SECONDS} "
                f"and {MAX_RECONCILE_TIMEOUT_SECONDS} seconds"
            )

        if self.operation_timeout_seconds < 1:
            errors.append("OPERATION_TIMEOUT must be at least 1 second")
        elif self.operation_timeout_seconds > self.reconcile_timeout_seconds:
            errors.append("OPERATION_TIMEOUT cannot exceed RECONCILE_TIMEOUT")

        if self.operation_poll_interval_seconds < 0:
            errors.append("OPERATION_POLL_INTERVAL cannot be negative")

        if self.operation_poll_qps <= 0:
            errors.append("OPERATION_POLL_QPS must be positive")

        if self.operation_poll_burst < 1:
            errors.append("OPERATION_POLL_BURST must be at least 1")

        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            RECONCILE_TIMEOUT: Deadline for one reconcile/delete call in seconds (default: 600)
            OPERATION_TIMEOUT: Deadline for one provider operation in seconds (default: 300)
            OPERATION_POLL_INTERVAL: Minimum seconds between operation polls (default: 1.0)
            OPERATION_POLL_QPS: Operation poll rate (default: 5)
            OPERATION_POLL_BURST: Operation poll burst (default: 5)
            ENABLE_JSON_LOGGING: Emit JSON logs to stdout (default: true)
            LOG_LEVEL: Root log level (default: INFO)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            reconcile_timeout_seconds=get_int(
                "RECONCILE_TIMEOUT", DEFAULT_RECONCILE_TIMEOUT_SECONDS
            ),
            operation_timeout_seconds=get_int(
                "OPERATION_TIMEOUT", DEFAULT_OPERATION_TIMEOUT_SECONDS
            ),
            operation_poll_interval_seconds=get_float(
                "OPERATION_POLL_INTERVAL", DEFAULT_OPERATION_POLL_INTERVAL_SECONDS
            ),
            operation_poll_qps=get_float("OPERATION_POLL_QPS", DEFAULT_OPERATION_POLL_QPS),
            operation_poll_burst=get_int("OPERATION_POLL_BURST", DEFAULT_OPERATION_POLL_BURST),
            enable_json_logging=get_bool("ENABLE_JSON_LOGGING", True),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
