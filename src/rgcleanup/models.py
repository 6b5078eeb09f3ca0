"""Pydantic models for cleanup inputs with validation.

These models provide:
1. A validated, immutable retention policy built once per run
2. Plain snapshots of Azure SDK objects, so the decision logic never touches SDK types
3. Validation at the boundary (fail fast on records the core cannot act on)
"""

from __future__ import annotations

from datetime import timedelta
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

# Tags with meaning to the cleanup policy
CREATION_TIMESTAMP_TAG = "creationTimestamp"
DO_NOT_DELETE_TAG = "DO-NOT-DELETE"

DEFAULT_TTL = timedelta(days=3)

SERVICE_PRINCIPAL_TYPE = "ServicePrincipal"


class RetentionPolicy(BaseModel):
    """Retention policy applied to every resource group in a run.

    An empty ``name_pattern`` matches every group. The pattern is deliberately
    not compiled here: an invalid pattern makes every group ineligible at
    evaluation time instead of aborting the run.
    """

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    ttl: timedelta = DEFAULT_TTL
    name_pattern: str = Field("", alias="namePattern")
    accept_epoch_timestamps: bool = Field(False, alias="acceptEpochTimestamps")

    @field_validator("ttl")
    @classmethod
    def validate_ttl(cls, v: timedelta) -> timedelta:
        if v < timedelta(0):
            raise ValueError("ttl must be a non-negative duration")
        return v


class ResourceGroupRecord(BaseModel):
    """Read-only snapshot of a resource group."""

    model_config = {"extra": "ignore", "frozen": True}

    name: Annotated[str, Field(min_length=1)]
    tags: dict[str, str | None] = Field(default_factory=dict)

    @field_validator("tags", mode="before")
    @classmethod
    def default_tags(cls, v: Any) -> Any:
        # ARM returns null rather than {} for untagged groups
        return {} if v is None else v

    @classmethod
    def from_sdk(cls, resource_group: Any) -> ResourceGroupRecord:
        """Build a record from an ``azure.mgmt.resource`` ``ResourceGroup``."""
        return cls(name=resource_group.name, tags=resource_group.tags)


class RoleAssignmentRecord(BaseModel):
    """Snapshot of a role assignment.

    Every field is optional because ARM may omit any of them; the reconciler
    discards records it cannot act on rather than failing validation.
    """

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    id: str | None = None
    principal_id: str | None = Field(None, alias="principalId")
    principal_type: str | None = Field(None, alias="principalType")
    scope: str | None = None

    @classmethod
    def from_sdk(cls, assignment: Any) -> RoleAssignmentRecord:
        """Build a record from an ``azure.mgmt.authorization`` ``RoleAssignment``."""
        principal_type = getattr(assignment, "principal_type", None)
        # SDK enum members carry the wire value
        principal_type = getattr(principal_type, "value", principal_type)
        return cls(
            id=getattr(assignment, "id", None),
            principal_id=getattr(assignment, "principal_id", None),
            principal_type=principal_type,
            scope=getattr(assignment, "scope", None),
        )

    @property
    def is_service_principal(self) -> bool:
        return self.principal_type == SERVICE_PRINCIPAL_TYPE
