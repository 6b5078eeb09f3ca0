"""Configuration management with validation.

Configuration is built once at startup from environment variables and CLI
flags, validated, and passed explicitly to every component. Nothing reads
the environment after this point.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any

from pydantic import ValidationError

from .models import DEFAULT_TTL, RetentionPolicy


class CredentialMode(str, Enum):
    """Supported ways of authenticating against Azure."""

    SERVICE_PRINCIPAL = "servicePrincipal"
    MANAGED_IDENTITY = "managedIdentity"
    AZURE_CLI = "azureCli"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Environment variables consumed by the tool
AAD_CLIENT_ID_ENV_VAR = "AAD_CLIENT_ID"
AAD_CLIENT_SECRET_ENV_VAR = "AAD_CLIENT_SECRET"
TENANT_ID_ENV_VAR = "TENANT_ID"
SUBSCRIPTION_ID_ENV_VAR = "SUBSCRIPTION_ID"

# Configuration constants with documented bounds
DEFAULT_API_TIMEOUT_SECONDS = 300
MIN_API_TIMEOUT_SECONDS = 1
MAX_API_TIMEOUT_SECONDS = 3600

DEFAULT_GRAPH_ENDPOINT = "https://graph.microsoft.com"

LOG_FORMATS = ("json", "text")

# Input validation patterns
VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
# Characters azure-identity accepts in a tenant ID (GUID or domain name)
VALID_TENANT_ID_PATTERN = r"[0-9A-Za-z.-]+"

# Go-style durations ("72h", "1h30m", "90s") plus days
_DURATION_UNITS: dict[str, float] = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")


def parse_duration(value: str) -> timedelta:
    """Parse a duration string such as ``72h``, ``1h30m`` or ``3d``.

    Raises:
        ValueError: If the string is empty or contains anything but
            ``<number><unit>`` stanzas.
    """
    text = value.strip()
    if text in ("0", "0s"):
        return timedelta(0)
    if text.startswith("-"):
        raise ValueError(f"duration must not be negative: {value}")

    position = 0
    total_seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total_seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(text):
        raise ValueError(f"invalid duration: {value!r} (examples: 72h, 1h30m, 3d)")
    return timedelta(seconds=total_seconds)


@dataclass(frozen=True)
class Config:
    """Cleanup configuration.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately, before any network call is made.
    """

    # Required fields
    subscription_id: str

    # Identity
    client_id: str | None = None
    client_secret: str | None = field(default=None, repr=False)
    tenant_id: str | None = None
    credential_mode: CredentialMode = CredentialMode.SERVICE_PRINCIPAL

    # Behavior
    dry_run: bool = False
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    role_assignments: bool = False

    # Per-operation delete failure policy: keep going, or stop at the first error
    sweep_continue_on_error: bool = True
    role_assignment_continue_on_error: bool = False

    # Timing
    api_timeout_seconds: int = DEFAULT_API_TIMEOUT_SECONDS

    # Endpoints and output
    graph_endpoint: str = DEFAULT_GRAPH_ENDPOINT
    log_format: str = "json"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.subscription_id:
            errors.append(f"${SUBSCRIPTION_ID_ENV_VAR} is empty")
        elif not re.match(VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()):
            errors.append(f"${SUBSCRIPTION_ID_ENV_VAR} must be a valid GUID: {self.subscription_id}")

        # Azure CLI login needs nothing else; the other modes need an app/identity
        if self.credential_mode != CredentialMode.AZURE_CLI:
            if not self.client_id:
                errors.append(f"${AAD_CLIENT_ID_ENV_VAR} is empty")
            if self.credential_mode == CredentialMode.SERVICE_PRINCIPAL:
                if not self.client_secret:
                    errors.append(f"${AAD_CLIENT_SECRET_ENV_VAR} is empty")
                if not self.tenant_id:
                    errors.append(f"${TENANT_ID_ENV_VAR} is empty")
                elif not re.fullmatch(VALID_TENANT_ID_PATTERN, self.tenant_id):
                    errors.append(
                        f"${TENANT_ID_ENV_VAR} must be a tenant GUID or domain: {self.tenant_id}"
                    )

        if not (MIN_API_TIMEOUT_SECONDS <= self.api_timeout_seconds <= MAX_API_TIMEOUT_SECONDS):
            errors.append(
                f"API_TIMEOUT must be between {MIN_API_TIMEOUT_SECONDS} "
                f"and {MAX_API_TIMEOUT_SECONDS} seconds"
            )

        if not self.graph_endpoint.startswith("https://"):
            errors.append(f"GRAPH_ENDPOINT must be an https URL: {self.graph_endpoint}")

        if self.log_format not in LOG_FORMATS:
            errors.append(f"LOG_FORMAT must be one of {list(LOG_FORMATS)}: {self.log_format}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def subscription_scope(self) -> str:
        """ARM scope of the subscription root."""
        return f"/subscriptions/{self.subscription_id}"

    @classmethod
    def from_env(cls, **overrides: Any) -> Config:
        """Load configuration from environment variables.

        Keyword overrides (typically CLI flags) take precedence over the
        environment. ``ttl``, ``name_pattern`` and ``accept_epoch_timestamps``
        overrides are folded into the retention policy.

        Environment Variables:
            SUBSCRIPTION_ID: Subscription to clean up
            AAD_CLIENT_ID: Application (or user-assigned identity) client ID
            AAD_CLIENT_SECRET: Client secret for service principal login
            TENANT_ID: Directory tenant for service principal login
            CREDENTIAL_MODE: servicePrincipal, managedIdentity or azureCli
                (default: servicePrincipal)
            DRY_RUN: If "true", log eligible items without deleting (default: false)
            TTL: Minimum resource group age, e.g. 72h (default: 72h)
            NAME_PATTERN: Only delete groups whose whole name matches (default: all)
            ACCEPT_EPOCH_TIMESTAMPS: Accept epoch seconds in creationTimestamp
                (default: false)
            ROLE_ASSIGNMENTS: If "true", also delete orphaned role assignments
            SWEEP_CONTINUE_ON_ERROR: Keep sweeping after a failed delete (default: true)
            ROLE_ASSIGNMENTS_CONTINUE_ON_ERROR: Keep deleting role assignments
                after a failed delete (default: false)
            API_TIMEOUT: Deadline in seconds for each Azure/Graph call (default: 300)
            GRAPH_ENDPOINT: Microsoft Graph base URL
            LOG_FORMAT: json or text (default: json)
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

        def get_duration(key: str, default: timedelta) -> timedelta:
            value = os.environ.get(key)
            if not value:
                return default
            try:
                return parse_duration(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a duration: {e}") from e

        def get_mode(value: str | None) -> CredentialMode:
            if not value:
                return CredentialMode.SERVICE_PRINCIPAL
            try:
                return CredentialMode(value)
            except ValueError as e:
                valid = [m.value for m in CredentialMode]
                raise ConfigurationError(f"CREDENTIAL_MODE must be one of {valid}: {value}") from e

        ttl = overrides.pop("ttl", None)
        name_pattern = overrides.pop("name_pattern", None)
        accept_epoch = overrides.pop("accept_epoch_timestamps", None)
        policy_fields = {
            "ttl": ttl if ttl is not None else get_duration("TTL", DEFAULT_TTL),
            "name_pattern": (
                name_pattern if name_pattern is not None else os.environ.get("NAME_PATTERN", "")
            ),
            "accept_epoch_timestamps": (
                accept_epoch
                if accept_epoch is not None
                else get_bool("ACCEPT_EPOCH_TIMESTAMPS", False)
            ),
        }
        try:
            retention = RetentionPolicy(**policy_fields)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid retention policy: {e}") from e

        values: dict[str, Any] = {
            "subscription_id": os.environ.get(SUBSCRIPTION_ID_ENV_VAR, ""),
            "client_id": os.environ.get(AAD_CLIENT_ID_ENV_VAR) or None,
            "client_secret": os.environ.get(AAD_CLIENT_SECRET_ENV_VAR) or None,
            "tenant_id": os.environ.get(TENANT_ID_ENV_VAR) or None,
            "credential_mode": get_mode(os.environ.get("CREDENTIAL_MODE")),
            "dry_run": get_bool("DRY_RUN", False),
            "retention": retention,
            "role_assignments": get_bool("ROLE_ASSIGNMENTS", False),
            "sweep_continue_on_error": get_bool("SWEEP_CONTINUE_ON_ERROR", True),
            "role_assignment_continue_on_error": get_bool(
                "ROLE_ASSIGNMENTS_CONTINUE_ON_ERROR", False
            ),
            "api_timeout_seconds": get_int("API_TIMEOUT", DEFAULT_API_TIMEOUT_SECONDS),
            "graph_endpoint": os.environ.get("GRAPH_ENDPOINT", DEFAULT_GRAPH_ENDPOINT),
            "log_format": os.environ.get("LOG_FORMAT", "json").lower(),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
