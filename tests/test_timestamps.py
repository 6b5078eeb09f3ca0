"""Tests for creation timestamp parsing."""

from datetime import UTC, datetime, timedelta

import pytest

from rgcleanup.timestamps import DEFAULT_LAYOUTS, TimestampParseError, parse_timestamp


class TestParseTimestamp:
    """Tests for the ordered-layout timestamp resolver."""

    @pytest.mark.parametrize(
        "raw",
        [
            "2020-12-17T00:50:42Z",
            "2020-12-17T00:50:42+00:00",
            "2020-12-17T00:50:42-00:00",
            "2020-12-17T00:50:42+0000",
            "2020-12-17T00:50:42-0000",
        ],
    )
    def test_utc_variants(self, raw: str) -> None:
        """Test that every accepted UTC spelling resolves to the same instant."""
        assert parse_timestamp(raw) == datetime(2020, 12, 17, 0, 50, 42, tzinfo=UTC)

    def test_offset_is_preserved(self) -> None:
        """Test that a non-UTC offset is honored."""
        parsed = parse_timestamp("2020-12-17T02:50:42+02:00")

        assert parsed == datetime(2020, 12, 17, 0, 50, 42, tzinfo=UTC)
        assert parsed.utcoffset() == timedelta(hours=2)

    def test_fractional_seconds(self) -> None:
        """Test fractional seconds, including nanosecond precision."""
        assert parse_timestamp("2020-12-17T00:50:42.5Z").microsecond == 500000
        assert parse_timestamp("2020-12-17T00:50:42.123456789Z").microsecond == 123456

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "yesterday",
            "2020-12-17",
            "17/12/2020 00:50",
            "2020-13-45T00:00:00Z",
            "2020-12-17T00:50:42+0530",
            "2020-12-17T00:50:42-0100",
            "2020-12-17T00:50:42+00:00:00",
            "2020-1-5T1:2:3Z",
            "2020-12-17T0:50:42Z",
            " 2020-12-17T00:50:42Z",
            "2020-12-17T00:50:42Z\n",
            "2020-12-17t00:50:42Z",
            "2020-12-17T00:50:42z",
            "2020-12-17 00:50:42Z",
            "2020-12-17T00:50:42",
            "2020-12-17T00:50:42.Z",
        ],
    )
    def test_unparsable_raises(self, raw: str) -> None:
        """Test that values matching no layout raise TimestampParseError."""
        with pytest.raises(TimestampParseError) as exc_info:
            parse_timestamp(raw)

        assert exc_info.value.raw == raw
        assert exc_info.value.layouts == DEFAULT_LAYOUTS

    def test_none_raises(self) -> None:
        """Test that a missing value raises instead of crashing."""
        with pytest.raises(TimestampParseError):
            parse_timestamp(None)

    def test_error_is_value_error(self) -> None:
        """Test that callers can catch parse failures as ValueError."""
        with pytest.raises(ValueError):
            parse_timestamp("not-a-date")

    def test_epoch_rejected_by_default(self) -> None:
        """Test that epoch seconds are not accepted unless opted in."""
        with pytest.raises(TimestampParseError):
            parse_timestamp("1608166242")

    def test_epoch_accepted_when_enabled(self) -> None:
        """Test the opt-in epoch seconds fallback."""
        parsed = parse_timestamp("1608166242", accept_epoch=True)

        assert parsed == datetime(2020, 12, 17, 0, 50, 42, tzinfo=UTC)

    def test_epoch_flag_does_not_accept_garbage(self) -> None:
        """Test that the epoch fallback only accepts plain digits."""
        with pytest.raises(TimestampParseError):
            parse_timestamp("16081x6242", accept_epoch=True)
        with pytest.raises(TimestampParseError):
            parse_timestamp("1608166242\n", accept_epoch=True)

    def test_custom_layouts_first_match_wins(self) -> None:
        """Test custom layouts are tried in order and naive results become UTC."""
        layouts = ("%d/%m/%Y", "%m/%d/%Y")

        parsed = parse_timestamp("01/02/2021", layouts)

        assert parsed == datetime(2021, 2, 1, tzinfo=UTC)
