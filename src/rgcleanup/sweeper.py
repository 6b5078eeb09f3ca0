"""Resource group sweep: list, evaluate, delete.

The sweep walks every resource group in the subscription one page at a time,
evaluates each against the retention policy, and for eligible groups either
logs (dry run) or submits a delete without waiting for it to finish.

FAILURE SEMANTICS:
- A failed page fetch aborts the sweep (SweepError); a partial listing is
  never treated as the full candidate set.
- A failed delete submission is logged and the sweep moves on, unless
  ``continue_on_error`` is False, in which case it aborts with SweepError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from azure.core.exceptions import AzureError
from pydantic import ValidationError

from .eligibility import evaluate_resource_group
from .models import ResourceGroupRecord, RetentionPolicy
from .paging import call_with_timeout, iter_pages
from .security import log_audit_event

logger = logging.getLogger(__name__)


class SweepError(Exception):
    """Raised when the resource group sweep cannot complete."""

    pass


@dataclass
class SweepResult:
    """Result of one resource group sweep."""

    dry_run: bool = False
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    scanned: int = 0
    eligible: list[str] = field(default_factory=list)
    deletions_submitted: list[str] = field(default_factory=list)
    dry_run_skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


class ResourceGroupSweeper:
    """Deletes stale resource groups according to a retention policy."""

    def __init__(
        self,
        client: Any,
        policy: RetentionPolicy,
        *,
        dry_run: bool = False,
        continue_on_error: bool = True,
        timeout_seconds: float = 300,
    ) -> None:
        """Initialize the sweeper.

        Args:
            client: ``ResourceManagementClient`` (or anything exposing
                ``resource_groups.list()`` and ``resource_groups.begin_delete()``).
            policy: Retention policy to apply.
            dry_run: Log eligible groups instead of deleting them.
            continue_on_error: Keep going after a failed delete submission.
            timeout_seconds: Deadline for each page fetch and delete submission.
        """
        self._client = client
        self._policy = policy
        self._dry_run = dry_run
        self._continue_on_error = continue_on_error
        self._timeout_seconds = timeout_seconds

    async def sweep(self) -> SweepResult:
        """Run one sweep over all resource groups.

        Returns:
            SweepResult describing what was found and done.

        Raises:
            SweepError: If listing fails, or a delete fails while
                ``continue_on_error`` is False.
        """
        logger.info("Scanning for stale resource groups")
        result = SweepResult(dry_run=self._dry_run)

        try:
            async for page in iter_pages(
                self._client.resource_groups.list(),
                self._timeout_seconds,
                "List resource groups",
            ):
                for item in page:
                    result.scanned += 1
                    try:
                        group = ResourceGroupRecord.from_sdk(item)
                    except ValidationError as e:
                        logger.warning(f"Skipping malformed resource group record: {e}")
                        continue
                    await self._process(group, result)
        except (AzureError, TimeoutError) as e:
            raise SweepError(f"error when iterating resource groups: {e}") from e
        finally:
            result.end_time = datetime.now(UTC)

        logger.info(
            "Resource group sweep complete",
            extra={
                "scanned": result.scanned,
                "eligible": len(result.eligible),
                "deletions_submitted": len(result.deletions_submitted),
                "dry_run_skipped": len(result.dry_run_skipped),
                "failed": len(result.failed),
                "dry_run": self._dry_run,
                "duration_seconds": round(result.duration_seconds, 2),
            },
        )
        return result

    async def _process(self, group: ResourceGroupRecord, result: SweepResult) -> None:
        verdict = evaluate_resource_group(group, self._policy)
        if not verdict.eligible:
            return

        result.eligible.append(group.name)
        age = verdict.age_description

        if self._dry_run:
            logger.info(
                f"Dry-run: skip deletion of eligible resource group '{group.name}' (age: {age})"
            )
            log_audit_event(
                "resource_group", group.name, "delete", "skipped", dry_run=True, reason=age
            )
            result.dry_run_skipped.append(group.name)
            return

        # Submit the delete without waiting for the long-running operation
        logger.info(f"Beginning to delete resource group '{group.name}' (age: {age})")
        try:
            await call_with_timeout(
                lambda: self._client.resource_groups.begin_delete(group.name),
                self._timeout_seconds,
                f"Delete resource group '{group.name}'",
            )
        except (AzureError, TimeoutError) as e:
            result.failed.append(group.name)
            logger.error(
                f"Error when deleting {group.name}: {e}",
                extra={"resource_group": group.name, "error_type": type(e).__name__},
            )
            log_audit_event("resource_group", group.name, "delete", "failed", reason=str(e))
            if not self._continue_on_error:
                raise SweepError(f"failed to delete resource group {group.name}: {e}") from e
            return

        result.deletions_submitted.append(group.name)
        log_audit_event("resource_group", group.name, "delete", "submitted", reason=age)
