"""Main entry point for rg-cleanup.

One run is a single pass:
1. Sweep stale resource groups (always).
2. Reconcile orphaned role assignments (only when enabled).

A failed sweep ends the run before role assignments are touched.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import UTC, datetime

from azure.core.exceptions import AzureError
from azure.mgmt.authorization import AuthorizationManagementClient
from azure.mgmt.resource import ResourceManagementClient

from .config import Config, ConfigurationError
from .directory import GraphDirectoryClient
from .role_assignments import ReconcileError, RoleAssignmentReconciler
from .security import get_credential
from .sweeper import ResourceGroupSweeper, SweepError

logger = logging.getLogger(__name__)

# LogRecord attributes that are not user-supplied extras
_RESERVED_RECORD_KEYS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    )
)

TEXT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_format: str = "json") -> None:
    """Configure root logging to stdout.

    Args:
        log_format: ``json`` for structured output, ``text`` for humans.
    """
    handler = logging.StreamHandler(sys.stdout)
    if log_format == "text":
        handler.setFormatter(logging.Formatter(TEXT_LOG_FORMAT))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(logging.INFO)

    # Reduce noise from Azure SDK
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


async def main(config: Config) -> int:
    """Run one cleanup pass.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    logger.info(
        "Initializing rg-cleanup",
        extra={
            "subscription_id": config.subscription_id,
            "credential_mode": config.credential_mode.value,
            "ttl_seconds": config.retention.ttl.total_seconds(),
            "name_pattern": config.retention.name_pattern,
            "role_assignments": config.role_assignments,
        },
    )
    if config.dry_run:
        logger.info("Dry-run enabled - printing logs but not actually deleting resource groups")

    try:
        credential = get_credential(config)
        resource_client = ResourceManagementClient(credential, config.subscription_id)
    except (AzureError, ConfigurationError, ValueError) as e:
        logger.error(
            "Error when obtaining resource group client",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return 1

    try:
        sweeper = ResourceGroupSweeper(
            resource_client,
            config.retention,
            dry_run=config.dry_run,
            continue_on_error=config.sweep_continue_on_error,
            timeout_seconds=config.api_timeout_seconds,
        )
        await sweeper.sweep()
    except SweepError as e:
        logger.error(f"Error when cleaning up resource groups: {e}")
        return 1
    except AzureError as e:
        logger.error(
            "Error when obtaining resource group client",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return 1

    if not config.role_assignments:
        logger.info("Skipping role assignment cleanup")
        return 0

    try:
        authorization_client = AuthorizationManagementClient(credential, config.subscription_id)
        directory = GraphDirectoryClient(
            credential,
            endpoint=config.graph_endpoint,
            timeout_seconds=config.api_timeout_seconds,
        )
        reconciler = RoleAssignmentReconciler(
            authorization_client,
            directory,
            config.subscription_id,
            dry_run=config.dry_run,
            continue_on_error=config.role_assignment_continue_on_error,
            timeout_seconds=config.api_timeout_seconds,
        )
        await reconciler.reconcile()
    except ReconcileError as e:
        logger.error(f"Error when cleaning up role assignments: {e}")
        return 1
    except AzureError as e:
        logger.error(
            "Error when obtaining role assignment client",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return 1

    return 0


def run() -> None:
    """Entry point driven purely by environment variables."""
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        setup_logging()
        logger.error("Configuration error", extra={"error": str(e)})
        sys.exit(1)

    setup_logging(config.log_format)
    sys.exit(asyncio.run(main(config)))


if __name__ == "__main__":
    run()
