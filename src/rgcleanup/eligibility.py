"""Eligibility decision for resource group deletion.

A resource group is evaluated against the retention policy through a fixed
sequence of short-circuiting gates:

1. ``DO-NOT-DELETE`` tag present -> never eligible (checked before anything else)
2. Name pattern configured and not matching the WHOLE name -> not eligible
3. No ``creationTimestamp`` tag -> eligible (unlabelled groups are assumed old)
4. ``creationTimestamp`` unparsable -> not eligible (never delete on ambiguous age)
5. Otherwise eligible iff age >= ttl

The evaluation is pure: the same inputs and ``now`` always give the same verdict.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache

from .models import (
    CREATION_TIMESTAMP_TAG,
    DO_NOT_DELETE_TAG,
    ResourceGroupRecord,
    RetentionPolicy,
)
from .timestamps import TimestampParseError, parse_timestamp

logger = logging.getLogger(__name__)

MISSING_TIMESTAMP_DESCRIPTION = (
    "probably a long time because it does not have a '{tag}' tag. Found tags: {tags}"
)


@dataclass(frozen=True)
class EligibilityVerdict:
    """Outcome of evaluating one resource group.

    Attributes:
        age_description: Human-facing age explanation. Empty when the group was
            vetoed, filtered out by name, or has an unparsable timestamp.
        eligible: Whether the group should be deleted.
    """

    age_description: str
    eligible: bool


NOT_ELIGIBLE = EligibilityVerdict(age_description="", eligible=False)


@lru_cache(maxsize=32)
def _compile_name_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def name_matches(pattern: str, name: str) -> bool:
    """Check that ``pattern`` matches the entire ``name``.

    A pattern matching only a substring (``kube`` against ``kubetest-123``)
    does not count.

    Raises:
        re.error: If the pattern does not compile.
    """
    return _compile_name_pattern(pattern).fullmatch(name) is not None


def describe_age(age: timedelta) -> str:
    """Render an age as whole days and whole hours, e.g. ``4 days (96 hours)``."""
    hours = age.total_seconds() / 3600
    return f"{int(hours / 24)} days ({int(hours)} hours)"


def evaluate(
    name: str,
    tags: Mapping[str, str | None] | None,
    ttl: timedelta,
    name_pattern: str = "",
    *,
    now: datetime | None = None,
    accept_epoch: bool = False,
) -> EligibilityVerdict:
    """Decide whether a resource group is stale.

    Args:
        name: Resource group name.
        tags: Resource group tags; ``None`` is treated as no tags.
        ttl: Minimum age before a group becomes eligible (inclusive).
        name_pattern: Optional pattern that must match the whole name.
        now: Reference time, defaults to the current UTC time.
        accept_epoch: Also accept epoch seconds in ``creationTimestamp``.

    Returns:
        EligibilityVerdict with the age explanation and the decision.
    """
    tags = tags or {}

    if DO_NOT_DELETE_TAG in tags:
        return NOT_ELIGIBLE

    if name_pattern:
        try:
            matched = name_matches(name_pattern, name)
        except re.error as e:
            logger.warning(
                f"Failed to compile name pattern '{name_pattern}': {e}",
                extra={"resource_group": name, "name_pattern": name_pattern},
            )
            return NOT_ELIGIBLE
        if not matched:
            logger.info(f"RG '{name}' did not match pattern", extra={"name_pattern": name_pattern})
            return NOT_ELIGIBLE
        logger.info(f"RG '{name}' matched pattern '{name_pattern}'")

    if CREATION_TIMESTAMP_TAG not in tags:
        description = MISSING_TIMESTAMP_DESCRIPTION.format(
            tag=CREATION_TIMESTAMP_TAG, tags=dict(tags)
        )
        return EligibilityVerdict(age_description=description, eligible=True)

    try:
        created = parse_timestamp(tags[CREATION_TIMESTAMP_TAG], accept_epoch=accept_epoch)
    except TimestampParseError as e:
        logger.warning(
            f"Failed to parse timestamp: {e}",
            extra={"resource_group": name, "tag": CREATION_TIMESTAMP_TAG},
        )
        return NOT_ELIGIBLE

    age = (now or datetime.now(UTC)) - created
    return EligibilityVerdict(age_description=describe_age(age), eligible=age >= ttl)


def evaluate_resource_group(
    group: ResourceGroupRecord,
    policy: RetentionPolicy,
    *,
    now: datetime | None = None,
) -> EligibilityVerdict:
    """Evaluate a resource group snapshot against a retention policy."""
    return evaluate(
        group.name,
        group.tags,
        policy.ttl,
        policy.name_pattern,
        now=now,
        accept_epoch=policy.accept_epoch_timestamps,
    )
