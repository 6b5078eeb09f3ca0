"""Credential selection and audit logging.

The credential used for every Azure and Microsoft Graph call is chosen once,
from configuration:

- servicePrincipal: client ID + secret + tenant (ClientSecretCredential)
- managedIdentity: user-assigned identity by client ID (ManagedIdentityCredential)
- azureCli: the identity logged in with ``az login`` (AzureCliCredential)

Whatever the mode, the result is wrapped in a ChainedTokenCredential so callers
always receive the same type.

Every deletion decision is also emitted as a structured audit event, so a run
can be reconstructed from the logs alone.
"""

from __future__ import annotations

import logging

from azure.core.credentials import TokenCredential
from azure.identity import (
    AzureCliCredential,
    ChainedTokenCredential,
    ClientSecretCredential,
    ManagedIdentityCredential,
)

from .config import (
    AAD_CLIENT_ID_ENV_VAR,
    AAD_CLIENT_SECRET_ENV_VAR,
    TENANT_ID_ENV_VAR,
    Config,
    ConfigurationError,
    CredentialMode,
)

logger = logging.getLogger(__name__)


def _mask(value: str) -> str:
    return value[:8] + "..." if len(value) > 8 else value


def _require(value: str | None, env_var: str) -> str:
    if not value:
        raise ConfigurationError(f"${env_var} is empty")
    return value


def get_credential(config: Config) -> ChainedTokenCredential:
    """Build the credential chain for the configured mode.

    Args:
        config: Validated configuration.

    Returns:
        ChainedTokenCredential wrapping the single selected credential.

    Raises:
        ConfigurationError: If a value the mode needs is missing.
        ValueError: If azure-identity rejects a value, e.g. a malformed tenant.
    """
    credentials: list[TokenCredential] = []

    if config.credential_mode == CredentialMode.MANAGED_IDENTITY:
        client_id = _require(config.client_id, AAD_CLIENT_ID_ENV_VAR)
        logger.info(
            "Using user-assigned managed identity",
            extra={"client_id": _mask(client_id)},
        )
        credentials.append(ManagedIdentityCredential(client_id=client_id))

    elif config.credential_mode == CredentialMode.SERVICE_PRINCIPAL:
        client_id = _require(config.client_id, AAD_CLIENT_ID_ENV_VAR)
        tenant_id = _require(config.tenant_id, TENANT_ID_ENV_VAR)
        logger.info(
            "Using service principal client secret",
            extra={"client_id": _mask(client_id), "tenant_id": tenant_id},
        )
        credentials.append(
            ClientSecretCredential(
                tenant_id=tenant_id,
                client_id=client_id,
                client_secret=_require(config.client_secret, AAD_CLIENT_SECRET_ENV_VAR),
            )
        )

    else:
        logger.info("Using Azure CLI credential")
        credentials.append(AzureCliCredential())

    return ChainedTokenCredential(*credentials)


def log_audit_event(
    event_type: str,
    target_resource: str,
    action: str,
    result: str,
    *,
    dry_run: bool = False,
    reason: str | None = None,
) -> None:
    """Log a deletion-related audit event.

    Args:
        event_type: Kind of object affected (resource_group, role_assignment).
        target_resource: Name or ID of the object.
        action: Action taken (delete).
        result: Outcome (submitted, deleted, failed, skipped).
        dry_run: Whether the run was a dry run.
        reason: Optional explanation, e.g. the computed age.
    """
    logger.info(
        f"Audit: {event_type} {action} {result}",
        extra={
            "audit": True,
            "event_type": event_type,
            "target_resource": target_resource,
            "action": action,
            "result": result,
            "dry_run": dry_run,
            "reason": reason,
        },
    )
