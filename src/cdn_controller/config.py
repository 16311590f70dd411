"""Configuration management with validation.

All settings come from environment variables and are validated at load time,
so a misconfigured operator fails on startup rather than mid-reconciliation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_AWS_REGION = "us-east-1"

DEFAULT_MAX_ATTEMPTS = 5
MIN_MAX_ATTEMPTS = 1
MAX_MAX_ATTEMPTS = 20

DEFAULT_POLL_INTERVAL_SECONDS = 15
MIN_POLL_INTERVAL_SECONDS = 1
MAX_POLL_INTERVAL_SECONDS = 300

# CloudFront propagation can take well over an hour for large changes
DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS = 90 * 60
MIN_DEPLOYMENT_TIMEOUT_SECONDS = 60
MAX_DEPLOYMENT_TIMEOUT_SECONDS = 4 * 60 * 60

DEFAULT_RECONCILE_INTERVAL_SECONDS = 300
MIN_RECONCILE_INTERVAL_SECONDS = 60
MAX_RECONCILE_INTERVAL_SECONDS = 3600

MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file

VALID_REGION_PATTERN = r"^[a-z]{2}(-gov)?-[a-z]+-\d$"


@dataclass(frozen=True)
class Config:
    """Controller configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Remote API
    aws_region: str = DEFAULT_AWS_REGION
    cloudfront_endpoint_url: str | None = None
    cloudfront_max_attempts: int = DEFAULT_MAX_ATTEMPTS

    # Deployment polling
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    deployment_timeout_seconds: int = DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS
    fail_on_deployment_timeout: bool = True

    # Paths
    state_dir: Path | None = None
    spec_path: Path | None = None

    # Operator loop
    reconcile_interval_seconds: int = DEFAULT_RECONCILE_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        import re

        errors: list[str] = []

        if not self.aws_region:
            errors.append("AWS_REGION is required")
        elif not re.match(VALID_REGION_PATTERN, self.aws_region):
            errors.append(f"AWS_REGION must be a valid AWS region: {self.aws_region}")

        if self.cloudfront_endpoint_url is not None and not self.cloudfront_endpoint_url.startswith(
            ("http://", "https://")
        ):
            errors.append(
                f"CLOUDFRONT_ENDPOINT_URL must be an http(s) URL: {self.cloudfront_endpoint_url}"
            )

        if not (MIN_MAX_ATTEMPTS <= self.cloudfront_max_attempts <= MAX_MAX_ATTEMPTS):
            errors.append(
                f"CLOUDFRONT_MAX_ATTEMPTS must be between {MIN_MAX_ATTEMPTS} and {MAX_MAX_ATTEMPTS}"
            )

        # Timing validation
        if not (
            MIN_POLL_INTERVAL_SECONDS <= self.poll_interval_seconds <= MAX_POLL_INTERVAL_SECONDS
        ):
            errors.append(
                f"POLL_INTERVAL must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS} seconds"
            )

        if not (
            MIN_DEPLOYMENT_TIMEOUT_SECONDS
            <= self.deployment_timeout_seconds
            <= MAX_DEPLOYMENT_TIMEOUT_SECONDS
        ):
            errors.append(
                f"DEPLOYMENT_TIMEOUT must be between {MIN_DEPLOYMENT_TIMEOUT_SECONDS} "
                f"and {MAX_DEPLOYMENT_TIMEOUT_SECONDS} seconds"
            )
        elif self.deployment_timeout_seconds < self.poll_interval_seconds:
            errors.append("DEPLOYMENT_TIMEOUT must not be shorter than POLL_INTERVAL")

        if not (
            MIN_RECONCILE_INTERVAL_SECONDS
            <= self.reconcile_interval_seconds
            <= MAX_RECONCILE_INTERVAL_SECONDS
        ):
            errors.append(
                f"RECONCILE_INTERVAL must be between {MIN_RECONCILE_INTERVAL_SECONDS} "
                f"and {MAX_RECONCILE_INTERVAL_SECONDS} seconds"
            )

        # Path validation
        if self.state_dir is not None and self.state_dir.exists() and not self.state_dir.is_dir():
            errors.append(f"STATE_DIR is not a directory: {self.state_dir}")

        if self.spec_path is not None and not self.spec_path.is_file():
            errors.append(f"Spec file does not exist: {self.spec_path}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            AWS_REGION: Region for the CloudFront client (default: us-east-1)
            CLOUDFRONT_ENDPOINT_URL: Override endpoint, e.g. a local emulator
            CLOUDFRONT_MAX_ATTEMPTS: total attempts per call, first included (default: 5)
            POLL_INTERVAL: Seconds between deployment status reads (default: 15)
            DEPLOYMENT_TIMEOUT: Seconds to wait for Deployed (default: 5400)
            FAIL_ON_DEPLOYMENT_TIMEOUT: If "false", a timeout is logged and
                tolerated instead of failing the operation (default: true)
            STATE_DIR: Directory for persisted state (default: in-memory only)
            SPEC_PATH: Spec file reconciled by the operator loop
            RECONCILE_INTERVAL: Seconds between operator loop cycles (default: 300)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        def get_path(key: str) -> Path | None:
            value = os.environ.get(key)
            return Path(value) if value else None

        return cls(
            aws_region=os.environ.get("AWS_REGION", DEFAULT_AWS_REGION),
            cloudfront_endpoint_url=os.environ.get("CLOUDFRONT_ENDPOINT_URL") or None,
            cloudfront_max_attempts=get_int("CLOUDFRONT_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            poll_interval_seconds=get_int("POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS),
            deployment_timeout_seconds=get_int(
                "DEPLOYMENT_TIMEOUT", DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS
            ),
            fail_on_deployment_timeout=get_bool("FAIL_ON_DEPLOYMENT_TIMEOUT", True),
            state_dir=get_path("STATE_DIR"),
            spec_path=get_path("SPEC_PATH"),
            reconcile_interval_seconds=get_int(
                "RECONCILE_INTERVAL", DEFAULT_RECONCILE_INTERVAL_SECONDS
            ),
        )
