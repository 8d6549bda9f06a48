"""Configuration management with validation.

The controller configuration is constructed once at startup and handed to
every ResourceManager explicitly. Nothing in the engine reads the
environment on its own.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Name of the backend service, used in default tag expansion and ARNs
CONTROLLER_SERVICE = "apigatewayv2"

# Late initialization always requeues after this fixed delay
LATE_INIT_REQUEUE_SECONDS = 5

# Delay before re-checking a resource the backend has not finished settling
SYNC_REQUEUE_SECONDS = 5

# Per-call timeout bounds for blocking backend calls
DEFAULT_CALL_TIMEOUT_SECONDS = 30
MIN_CALL_TIMEOUT_SECONDS = 1
MAX_CALL_TIMEOUT_SECONDS = 300

# Retry backoff used by the control loop for retryable failures
RETRY_BACKOFF_BASE_SECONDS = 5
MAX_RETRY_BACKOFF_SECONDS = 300

# Manifests larger than this are rejected before parsing
MAX_MANIFEST_FILE_SIZE_BYTES = 1024 * 1024  # 1 MiB

# Tags whose key starts with this prefix are injected by the backend
DEFAULT_SYSTEM_TAG_PREFIX = "aws:"

DEFAULT_RESOURCE_TAGS = (
    "services.k8s.aws/controller-version=%CONTROLLER_SERVICE%-%CONTROLLER_VERSION%,"
    "services.k8s.aws/namespace=%K8S_NAMESPACE%"
)

MAX_TAG_KEY_LENGTH = 128
MAX_TAG_VALUE_LENGTH = 256

VALID_ACCOUNT_ID_PATTERN = r"^[0-9]{12}$"
VALID_REGION_PATTERN = r"^[a-z]{2}(-gov)?-[a-z]+-[0-9]$"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_tag_templates(value: str) -> dict[str, str]:
    """Parse a ``key=value,key=value`` list into an ordered mapping.

    Raises:
        ConfigurationError: If an entry has no ``=`` or an empty key.
    """
    templates: dict[str, str] = {}
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, sep, tag_value = entry.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ConfigurationError(f"RESOURCE_TAGS entry must be key=value: {entry}")
        templates[key] = tag_value.strip()
    return templates


@dataclass(frozen=True)
class ControllerConfig:
    """Controller configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-reconcile.
    """

    # Required fields
    account_id: str
    region: str

    controller_version: str = "dev"

    # Default tag templates injected into every resource, in this order
    resource_tags: dict[str, str] = field(
        default_factory=lambda: parse_tag_templates(DEFAULT_RESOURCE_TAGS)
    )
    system_tag_prefix: str = DEFAULT_SYSTEM_TAG_PREFIX

    # Timing
    call_timeout_seconds: int = DEFAULT_CALL_TIMEOUT_SECONDS

    # Logging
    enable_audit_logging: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.account_id:
            errors.append("AWS_ACCOUNT_ID is required")
        elif not re.match(VALID_ACCOUNT_ID_PATTERN, self.account_id):
            errors.append(f"AWS_ACCOUNT_ID must be 12 digits: {self.account_id}")

        if not self.region:
            errors.append("AWS_REGION is required")
        elif not re.match(VALID_REGION_PATTERN, self.region):
            errors.append(f"AWS_REGION must be a valid region name: {self.region}")

        if not self.system_tag_prefix:
            errors.append("SYSTEM_TAG_PREFIX cannot be empty")

        for key, value in self.resource_tags.items():
            if len(key) > MAX_TAG_KEY_LENGTH:
                errors.append(f"RESOURCE_TAGS key exceeds {MAX_TAG_KEY_LENGTH} characters: {key}")
            if len(value) > MAX_TAG_VALUE_LENGTH:
                errors.append(
                    f"RESOURCE_TAGS value for {key} exceeds {MAX_TAG_VALUE_LENGTH} characters"
                )
            if key.startswith(self.system_tag_prefix):
                errors.append(f"RESOURCE_TAGS key uses reserved prefix: {key}")

        if not (
            MIN_CALL_TIMEOUT_SECONDS <= self.call_timeout_seconds <= MAX_CALL_TIMEOUT_SECONDS
        ):
            errors.append(
                f"CALL_TIMEOUT must be between {MIN_CALL_TIMEOUT_SECONDS} "
                f"and {MAX_CALL_TIMEOUT_SECONDS} seconds"
            )

        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> ControllerConfig:
        """Load configuration from environment variables.

        Environment Variables:
            AWS_ACCOUNT_ID: Account that owns the managed APIs
            AWS_REGION: Region the controller targets
            CONTROLLER_VERSION: Version string used in default tags (default: dev)
            RESOURCE_TAGS: Comma separated key=value default tag templates
            SYSTEM_TAG_PREFIX: Reserved backend tag prefix (default: aws:)
            CALL_TIMEOUT: Timeout for a single backend call in seconds (default: 30)
            ENABLE_AUDIT_LOGGING: Emit a provenance record per reconcile (default: true)
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

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            account_id=os.environ.get("AWS_ACCOUNT_ID", ""),
            region=os.environ.get("AWS_REGION", ""),
            controller_version=os.environ.get("CONTROLLER_VERSION", "dev"),
            resource_tags=parse_tag_templates(
                os.environ.get("RESOURCE_TAGS", DEFAULT_RESOURCE_TAGS)
            ),
            system_tag_prefix=os.environ.get("SYSTEM_TAG_PREFIX", DEFAULT_SYSTEM_TAG_PREFIX),
            call_timeout_seconds=get_int("CALL_TIMEOUT", DEFAULT_CALL_TIMEOUT_SECONDS),
            enable_audit_logging=get_bool("ENABLE_AUDIT_LOGGING", True),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
