"""rg-cleanup command line.

Usage:
    rg-cleanup --dry-run                 # Report what would be deleted
    rg-cleanup --ttl 24h --regex '^ci-'  # Delete ci-* groups older than a day
    rg-cleanup --az-cli --role-assignments

Flags only ever switch behavior on or set a value; anything not given on the
command line falls back to the environment (see ``Config.from_env``).
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import timedelta
from typing import Any

import click

from .config import LOG_FORMATS, Config, ConfigurationError, CredentialMode, parse_duration
from .main import main as run_cleanup
from .main import setup_logging

PROG_NAME = "rg-cleanup"
VERSION = "0.1.0"

logger = logging.getLogger(__name__)


class DurationType(click.ParamType):
    """Click parameter for durations such as ``72h`` or ``1h30m``."""

    name = "duration"

    def convert(
        self, value: Any, param: click.Parameter | None, ctx: click.Context | None
    ) -> timedelta:
        if isinstance(value, timedelta):
            return value
        try:
            return parse_duration(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


DURATION = DurationType()


def _credential_mode(identity: bool, az_cli: bool) -> CredentialMode | None:
    if az_cli:
        return CredentialMode.AZURE_CLI
    if identity:
        return CredentialMode.MANAGED_IDENTITY
    return None


@click.command(name=PROG_NAME)
@click.version_option(version=VERSION, prog_name=PROG_NAME)
@click.option("--dry-run", is_flag=True, help="Log eligible items without deleting anything.")
@click.option(
    "--ttl",
    type=DURATION,
    default=None,
    help="Minimum age before a resource group is deleted (default: 72h).",
)
@click.option(
    "--regex",
    "name_pattern",
    default=None,
    help="Only delete resource groups whose whole name matches this pattern.",
)
@click.option(
    "--role-assignments",
    is_flag=True,
    help="Also delete role assignments of service principals that no longer exist.",
)
@click.option("--identity", is_flag=True, help="Authenticate with a user-assigned identity.")
@click.option("--az-cli", is_flag=True, help="Authenticate with the Azure CLI login.")
@click.option(
    "--log-format",
    type=click.Choice(LOG_FORMATS),
    default=None,
    help="Log output format (default: json).",
)
def cli(
    dry_run: bool,
    ttl: timedelta | None,
    name_pattern: str | None,
    role_assignments: bool,
    identity: bool,
    az_cli: bool,
    log_format: str | None,
) -> None:
    """Delete stale Azure resource groups and orphaned role assignments.

    \b
    A resource group is deleted when it is older than --ttl according to its
    creationTimestamp tag (or has no such tag), is not tagged DO-NOT-DELETE,
    and matches --regex when one is given.
    """
    try:
        config = Config.from_env(
            dry_run=dry_run or None,
            ttl=ttl,
            name_pattern=name_pattern,
            role_assignments=role_assignments or None,
            credential_mode=_credential_mode(identity, az_cli),
            log_format=log_format,
        )
    except ConfigurationError as e:
        setup_logging(log_format or "json")
        logger.error("Error when validating options", extra={"error": str(e)})
        sys.exit(1)

    setup_logging(config.log_format)
    sys.exit(asyncio.run(run_cleanup(config)))


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
