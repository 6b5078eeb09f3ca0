"""Lenient parsing of resource group creation timestamps.

The ``creationTimestamp`` tag is written by several producers (test harnesses,
CI pipelines, ad-hoc scripts), not all of which emit strict RFC 3339. The
resolver accepts an ordered list of layouts and returns the first successful
parse. There is no ambiguity scoring: first match wins.

Numeric strings such as ``"1608166242"`` are NOT accepted by default. Epoch
seconds are a separate fallback that callers must opt into explicitly.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime

RFC3339 = "%Y-%m-%dT%H:%M:%S%z"
RFC3339_FRACTIONAL = "%Y-%m-%dT%H:%M:%S.%f%z"

# Also acceptable RFC 3339 variants, see
# https://github.com/golang/go/issues/20555#issuecomment-440348440
UTC_SUFFIX_LAYOUTS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S+0000",
    "%Y-%m-%dT%H:%M:%S-0000",
    "%Y-%m-%dT%H:%M:%S-00:00",
    "%Y-%m-%dT%H:%M:%S+00:00",
)

DEFAULT_LAYOUTS: tuple[str, ...] = (RFC3339, RFC3339_FRACTIONAL, *UTC_SUFFIX_LAYOUTS)

# strptime accepts single-digit fields, compact or seconds offsets and lowercase
# separators; the built-in layouts only ever see values of exactly this shape
_RFC3339_SHAPE = re.compile(
    r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}"
    r"(\.[0-9]+)?(Z|[+-][0-9]{2}:[0-9]{2}|[+-]0000)"
)
# strptime's %f stops at microseconds; producers emitting nanoseconds are common
_LONG_FRACTION = re.compile(r"(\.[0-9]{6})[0-9]+")
_EPOCH_SECONDS = re.compile(r"[0-9]+")


class TimestampParseError(ValueError):
    """Raised when a timestamp matches none of the accepted layouts."""

    def __init__(self, raw: object, layouts: tuple[str, ...]) -> None:
        self.raw = raw
        self.layouts = layouts
        super().__init__(f"cannot parse {raw!r} with any of {len(layouts)} accepted layouts")


def parse_timestamp(
    raw: str | None,
    layouts: tuple[str, ...] = DEFAULT_LAYOUTS,
    *,
    accept_epoch: bool = False,
) -> datetime:
    """Parse a creation timestamp using the first layout that matches.

    Args:
        raw: Tag value as found on the resource group.
        layouts: ``strptime`` formats, tried in order.
        accept_epoch: Fall back to integer seconds since the Unix epoch when
            no textual layout matches.

    With the default layouts the value must first have the exact RFC 3339
    shape (two-digit fields, uppercase ``T``/``Z``, ``±hh:mm`` or ``±0000``
    offset, no surrounding whitespace). Custom layouts are matched by
    ``strptime`` alone.

    Returns:
        Timezone-aware datetime. Layouts without a ``%z`` directive are UTC.

    Raises:
        TimestampParseError: If no layout matches.
    """
    if not isinstance(raw, str):
        raise TimestampParseError(raw, layouts)

    if layouts != DEFAULT_LAYOUTS or _RFC3339_SHAPE.fullmatch(raw):
        value = _LONG_FRACTION.sub(r"\1", raw)
        for layout in layouts:
            try:
                parsed = datetime.strptime(value, layout)
            except ValueError:
                continue
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed

    if accept_epoch and _EPOCH_SECONDS.fullmatch(raw):
        try:
            return datetime.fromtimestamp(int(raw), tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise TimestampParseError(raw, layouts) from e

    raise TimestampParseError(raw, layouts)
