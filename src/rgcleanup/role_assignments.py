"""Orphaned role assignment reconciliation.

A role assignment is orphaned when the service principal it grants access to
has been deleted from the directory. Assignments are never judged by their
own attributes, only by whether the referenced principal still resolves.

ALGORITHM:
1. Collect: page through subscription role assignments (``atScope()``) and
   bucket assignment IDs by principal ID. Only service principals at exactly
   the subscription root are kept; ``atScope()`` alone also returns broader
   scopes such as management groups.
2. Correlate: ask the directory, in one call, which of those principals still
   exist, and drop them from the candidate set.
3. Delete: remove every assignment left in the candidate set.

Deletion stops at the first failure unless ``continue_on_error`` is set.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from azure.core.exceptions import AzureError

from .directory import DirectoryClient, DirectoryQueryError
from .models import RoleAssignmentRecord
from .paging import call_with_timeout, iter_pages
from .security import log_audit_event

logger = logging.getLogger(__name__)

# Excludes assignments scoped more narrowly than the subscription
AT_SCOPE_FILTER = "atScope()"

PrincipalCandidates = dict[str, list[str]]


class ReconcileError(Exception):
    """Raised when role assignment reconciliation cannot complete."""

    pass


@dataclass
class RoleAssignmentResult:
    """Result of one role assignment reconciliation."""

    dry_run: bool = False
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    assignments_scanned: int = 0
    candidate_principals: int = 0
    orphaned_principals: int = 0
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    directory_queried: bool = False

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


def collect_candidates(
    assignments: Iterable[RoleAssignmentRecord],
    subscription_id: str,
) -> PrincipalCandidates:
    """Bucket service principal assignment IDs by principal ID.

    Args:
        assignments: Role assignments as listed for the subscription.
        subscription_id: Subscription whose root scope is eligible.

    Returns:
        Mapping of principal ID to assignment IDs, in listing order.
    """
    subscription_scope = f"/subscriptions/{subscription_id}"
    candidates: PrincipalCandidates = {}
    for assignment in assignments:
        if not assignment.is_service_principal:
            continue
        if assignment.scope != subscription_scope:
            continue
        if not assignment.principal_id or not assignment.id:
            continue
        candidates.setdefault(assignment.principal_id, []).append(assignment.id)
    return candidates


def discard_existing(candidates: PrincipalCandidates, existing: Iterable[str]) -> None:
    """Remove principals that still exist, and with them all their assignments."""
    for principal_id in existing:
        candidates.pop(principal_id, None)


class RoleAssignmentReconciler:
    """Deletes role assignments whose service principal no longer exists."""

    def __init__(
        self,
        client: Any,
        directory: DirectoryClient,
        subscription_id: str,
        *,
        dry_run: bool = False,
        continue_on_error: bool = False,
        timeout_seconds: float = 300,
    ) -> None:
        """Initialize the reconciler.

        Args:
            client: ``AuthorizationManagementClient`` (or anything exposing
                ``role_assignments.list_for_subscription()`` and
                ``role_assignments.delete_by_id()``).
            directory: Principal existence lookup.
            subscription_id: Subscription to reconcile.
            dry_run: Log orphaned assignments instead of deleting them.
            continue_on_error: Keep deleting after a failed delete.
            timeout_seconds: Deadline for each Azure or directory call.
        """
        self._client = client
        self._directory = directory
        self._subscription_id = subscription_id
        self._dry_run = dry_run
        self._continue_on_error = continue_on_error
        self._timeout_seconds = timeout_seconds

    async def reconcile(self) -> RoleAssignmentResult:
        """Run collection, correlation and deletion once.

        Returns:
            RoleAssignmentResult describing what was found and done.

        Raises:
            ReconcileError: If listing or the directory query fails, or a
                delete fails while ``continue_on_error`` is False.
        """
        logger.info("Scanning for stale role assignments")
        result = RoleAssignmentResult(dry_run=self._dry_run)
        try:
            await self._reconcile(result)
        finally:
            result.end_time = datetime.now(UTC)

        logger.info(
            "Role assignment reconciliation complete",
            extra={
                "assignments_scanned": result.assignments_scanned,
                "candidate_principals": result.candidate_principals,
                "orphaned_principals": result.orphaned_principals,
                "deleted": len(result.deleted),
                "failed": len(result.failed),
                "dry_run": self._dry_run,
                "duration_seconds": round(result.duration_seconds, 2),
            },
        )
        return result

    async def _reconcile(self, result: RoleAssignmentResult) -> None:
        candidates = await self._collect(result)
        result.candidate_principals = len(candidates)
        if not candidates:
            logger.info("No role assignments found")
            return

        try:
            existing = await call_with_timeout(
                lambda: self._directory.still_exist(set(candidates)),
                self._timeout_seconds,
                "Directory lookup",
            )
        except (DirectoryQueryError, TimeoutError) as e:
            raise ReconcileError(f"error querying directory: {e}") from e
        result.directory_queried = True

        discard_existing(candidates, existing)
        result.orphaned_principals = len(candidates)
        if not candidates:
            logger.info("No unattached role assignments found")
            return

        for principal_id, assignment_ids in candidates.items():
            for assignment_id in assignment_ids:
                await self._delete(principal_id, assignment_id, result)

    async def _collect(self, result: RoleAssignmentResult) -> PrincipalCandidates:
        records: list[RoleAssignmentRecord] = []
        try:
            async for page in iter_pages(
                self._client.role_assignments.list_for_subscription(filter=AT_SCOPE_FILTER),
                self._timeout_seconds,
                "List role assignments",
            ):
                records.extend(RoleAssignmentRecord.from_sdk(item) for item in page)
        except (AzureError, TimeoutError) as e:
            raise ReconcileError(f"error when iterating role assignments: {e}") from e

        result.assignments_scanned = len(records)
        return collect_candidates(records, self._subscription_id)

    async def _delete(
        self, principal_id: str, assignment_id: str, result: RoleAssignmentResult
    ) -> None:
        reason = f"principal {principal_id} no longer exists"
        if self._dry_run:
            logger.info(f"Dry-run: skip deletion of eligible role assignment {assignment_id}")
            log_audit_event(
                "role_assignment", assignment_id, "delete", "skipped", dry_run=True, reason=reason
            )
            return

        try:
            await call_with_timeout(
                lambda: self._client.role_assignments.delete_by_id(assignment_id),
                self._timeout_seconds,
                f"Delete role assignment {assignment_id}",
            )
        except (AzureError, TimeoutError) as e:
            result.failed.append(assignment_id)
            log_audit_event("role_assignment", assignment_id, "delete", "failed", reason=str(e))
            if not self._continue_on_error:
                raise ReconcileError(
                    f"failed to delete role assignment {assignment_id}: {e}"
                ) from e
            logger.error(
                f"Error when deleting role assignment {assignment_id}: {e}",
                extra={"principal_id": principal_id, "error_type": type(e).__name__},
            )
            return

        result.deleted.append(assignment_id)
        logger.info(f"Deleted role assignment {assignment_id}")
        log_audit_event("role_assignment", assignment_id, "delete", "deleted", reason=reason)
