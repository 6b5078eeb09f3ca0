"""End-to-end tests for a cleanup run against mocked Azure APIs."""

import json
import logging
import sys
from datetime import UTC, datetime, timedelta
from unittest import mock

import pytest

from azure_mock import TEST_SUBSCRIPTION_ID, MockAzureContext
from rgcleanup.config import Config, CredentialMode
from rgcleanup.main import JsonFormatter, main


def make_config(**kwargs: object) -> Config:
    return Config(
        subscription_id=TEST_SUBSCRIPTION_ID,
        credential_mode=CredentialMode.AZURE_CLI,
        **kwargs,  # type: ignore[arg-type]
    )


def old_tags() -> dict[str, str]:
    stamp = datetime.now(UTC) - timedelta(days=10)
    return {"creationTimestamp": stamp.strftime("%Y-%m-%dT%H:%M:%SZ")}


class TestMain:
    """Tests for one full run."""

    @pytest.mark.asyncio
    async def test_sweep_only(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test the default run: sweep, skip role assignments, exit 0."""
        caplog.set_level("INFO")
        with MockAzureContext() as ctx:
            ctx.resource_groups.add("rg-old", old_tags())
            ctx.role_assignments.add("gone")

            exit_code = await main(make_config())

        assert exit_code == 0
        assert ctx.resource_groups.delete_calls == ["rg-old"]
        assert ctx.role_assignments.list_filters == []
        assert "Skipping role assignment cleanup" in caplog.text

    @pytest.mark.asyncio
    async def test_role_assignments_enabled(self) -> None:
        """Test that orphaned assignments are removed when enabled."""
        with MockAzureContext(existing_principals={"alive"}) as ctx:
            ctx.role_assignments.add("alive", assignment_id="A1")
            ctx.role_assignments.add("gone", assignment_id="A2")

            exit_code = await main(make_config(role_assignments=True))

        assert exit_code == 0
        assert ctx.role_assignments.delete_calls == ["A2"]

    @pytest.mark.asyncio
    async def test_dry_run_deletes_nothing(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that a dry run touches neither groups nor assignments."""
        caplog.set_level("INFO")
        with MockAzureContext() as ctx:
            ctx.resource_groups.add("rg-old", old_tags())
            ctx.role_assignments.add("gone", assignment_id="A1")

            exit_code = await main(make_config(dry_run=True, role_assignments=True))

        assert exit_code == 0
        assert ctx.resource_groups.delete_calls == []
        assert ctx.role_assignments.delete_calls == []
        assert "Dry-run enabled" in caplog.text

    @pytest.mark.asyncio
    async def test_sweep_failure_stops_run(self) -> None:
        """Test that a failed sweep exits 1 before role assignments run."""
        with MockAzureContext() as ctx:
            ctx.resource_groups.add("rg-old", old_tags())
            ctx.resource_groups.fail_listing_on_page(1)

            exit_code = await main(make_config(role_assignments=True))

        assert exit_code == 1
        assert ctx.role_assignments.list_filters == []

    @pytest.mark.asyncio
    async def test_credential_rejected_exits_nonzero(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a credential azure-identity refuses to build is logged and exits 1."""
        with MockAzureContext() as ctx:
            ctx.resource_groups.add("rg-old", old_tags())
            with mock.patch(
                "rgcleanup.main.get_credential",
                side_effect=ValueError("Invalid tenant id provided"),
            ):
                exit_code = await main(make_config())

        assert exit_code == 1
        assert "Error when obtaining resource group client" in caplog.text
        assert ctx.resource_groups.delete_calls == []

    @pytest.mark.asyncio
    async def test_reconcile_failure_exits_nonzero(self) -> None:
        """Test that a failed role assignment delete exits 1."""
        with MockAzureContext() as ctx:
            ctx.role_assignments.add("gone", assignment_id="A1")
            ctx.role_assignments.fail_delete("A1")

            exit_code = await main(make_config(role_assignments=True))

        assert exit_code == 1

    @pytest.mark.asyncio
    async def test_continue_on_error_settings_are_passed(self) -> None:
        """Test that per-operation failure policy reaches both phases."""
        with MockAzureContext() as ctx:
            ctx.resource_groups.add("rg-a", old_tags())
            ctx.resource_groups.add("rg-b", old_tags())
            ctx.resource_groups.fail_delete("rg-a")
            ctx.role_assignments.add("gone", assignment_id="A1")
            ctx.role_assignments.add("gone", assignment_id="A2")
            ctx.role_assignments.fail_delete("A1")

            exit_code = await main(
                make_config(role_assignments=True, role_assignment_continue_on_error=True)
            )

        assert exit_code == 0
        assert ctx.resource_groups.delete_calls == ["rg-a", "rg-b"]
        assert ctx.role_assignments.delete_calls == ["A1", "A2"]


class TestJsonFormatter:
    """Tests for structured log output."""

    def test_includes_extras(self) -> None:
        """Test that extra fields appear as top-level JSON keys."""
        record = logging.LogRecord("rgcleanup.sweeper", logging.INFO, __file__, 1, "hi", None, None)
        record.resource_group = "rg-old"

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "hi"
        assert data["level"] == "INFO"
        assert data["logger"] == "rgcleanup.sweeper"
        assert data["resource_group"] == "rg-old"
        assert data["timestamp"].endswith("Z")

    def test_includes_exception(self) -> None:
        """Test that exception tracebacks are serialized."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            exc_info = sys.exc_info()
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, exc_info)

        data = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]

    def test_non_serializable_extras(self) -> None:
        """Test that values json cannot encode are stringified."""
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "t", None, None)
        record.when = timedelta(hours=1)

        data = json.loads(JsonFormatter().format(record))

        assert data["when"] == "1:00:00"
