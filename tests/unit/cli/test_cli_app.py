"""End-to-end tests for the workflow-patterns CLI."""

import asyncio
from unittest.mock import AsyncMock, patch

from workflow_patterns import __version__
from workflow_patterns.cli.app import app
from workflow_patterns.patterns.models import PatternKind
from workflow_patterns.sync.service import PullSummary, PushSummary, SyncService


def invoke(runner, workspace, *args):
    return runner.invoke(app, ["--project", str(workspace), *args])


class TestMain:

    def test_version(self, cli_runner):
        result = cli_runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"workflow-patterns version {__version__}" in result.output

    def test_missing_project_directory(self, cli_runner, tmp_path):
        result = cli_runner.invoke(app, ["--project", str(tmp_path / "nope"), "stats"])

        assert result.exit_code == 1
        assert "Project directory not found" in result.output

    def test_broken_config_is_reported(self, cli_runner, workspace):
        (workspace / ".workflow").mkdir()
        (workspace / ".workflow" / "config.yaml").write_text("registry: [unclosed\n")

        result = invoke(cli_runner, workspace, "stats")

        assert result.exit_code == 1
        assert "Error" in result.output


class TestSyncOptIn:

    def test_enable_and_disable(self, cli_runner, workspace, contributor):
        result = invoke(cli_runner, workspace, "enable-sync")
        assert result.exit_code == 0
        assert "Sync enabled." in result.output
        assert asyncio.run(contributor.is_sync_enabled())

        result = invoke(cli_runner, workspace, "disable-sync")
        assert result.exit_code == 0
        assert "Sync disabled." in result.output
        assert not asyncio.run(contributor.is_sync_enabled())

    def test_sync_without_opt_in(self, cli_runner, workspace):
        result = invoke(cli_runner, workspace, "sync")

        assert result.exit_code == 0
        assert "Sync is not enabled." in result.output


class TestSyncCommand:

    def test_push_only(self, cli_runner, workspace):
        invoke(cli_runner, workspace, "enable-sync")
        summary = PushSummary(ready={PatternKind.FIX: 2, PatternKind.BLUEPRINT: 1}, pushed=3)
        pull = AsyncMock(return_value=PullSummary())

        with patch.object(SyncService, "push", AsyncMock(return_value=summary)), \
             patch.object(SyncService, "pull", pull):
            result = invoke(cli_runner, workspace, "sync", "--push")

        assert result.exit_code == 0
        assert "Ready to push: 2 fixes, 1 blueprints" in result.output
        assert "Pushed 3 pattern(s)" in result.output
        assert "Sync complete!" in result.output
        pull.assert_not_called()

    def test_both_directions_by_default(self, cli_runner, workspace):
        invoke(cli_runner, workspace, "enable-sync")
        push = AsyncMock(return_value=PushSummary(ready={PatternKind.FIX: 0}))
        pull = AsyncMock(return_value=PullSummary(received=4, saved=3, skipped=1))

        with patch.object(SyncService, "push", push), patch.object(SyncService, "pull", pull):
            result = invoke(cli_runner, workspace, "sync")

        assert result.exit_code == 0
        assert "No patterns to push" in result.output
        assert "Pulled 3 pattern(s)" in result.output
        push.assert_awaited_once()
        pull.assert_awaited_once()

    def test_solutions_flag_adds_kind(self, cli_runner, workspace):
        invoke(cli_runner, workspace, "enable-sync")
        push = AsyncMock(return_value=PushSummary())

        with patch.object(SyncService, "push", push):
            invoke(cli_runner, workspace, "sync", "--push", "--solutions", "--dry-run")

        kwargs = push.await_args.kwargs
        assert kwargs["dry_run"] is True
        assert kwargs["kinds"] == (PatternKind.FIX, PatternKind.BLUEPRINT, PatternKind.SOLUTION)

    def test_rate_limit_exits_with_wait_time(self, cli_runner, workspace):
        invoke(cli_runner, workspace, "enable-sync")
        summary = PushSummary(
            ready={PatternKind.FIX: 1},
            rate_limited=True,
            retry_in="30 minutes",
        )
        pull = AsyncMock(return_value=PullSummary())

        with patch.object(SyncService, "push", AsyncMock(return_value=summary)), \
             patch.object(SyncService, "pull", pull):
            result = invoke(cli_runner, workspace, "sync")

        assert result.exit_code == 1
        assert "Rate limit exceeded" in result.output
        assert "Try again in 30 minutes" in result.output
        pull.assert_not_called()

    def test_blocked_patterns_are_listed(self, cli_runner, workspace):
        invoke(cli_runner, workspace, "enable-sync")
        summary = PushSummary(
            ready={PatternKind.FIX: 0},
            blocked=1,
            blocked_ids=["abc"],
        )

        with patch.object(SyncService, "push", AsyncMock(return_value=summary)):
            result = invoke(cli_runner, workspace, "sync", "--push")

        assert "Blocked 1 pattern(s)" in result.output
        assert "abc" in result.output


class TestStats:

    def test_counts_per_kind(self, cli_runner, workspace, store, make_fix):
        asyncio.run(store.save(make_fix()))

        result = invoke(cli_runner, workspace, "stats")

        assert result.exit_code == 0
        assert "Pattern Library" in result.output
        assert "Total patterns: 1" in result.output
        assert "Sync: disabled" in result.output


class TestContributorCommands:

    def test_show_without_id(self, cli_runner, workspace):
        result = invoke(cli_runner, workspace, "contributor", "show")

        assert result.exit_code == 0
        assert "No contributor ID yet" in result.output

    def test_show(self, cli_runner, workspace, contributor):
        contributor_id = asyncio.run(contributor.get_or_create_id()).data

        result = invoke(cli_runner, workspace, "contributor", "show")

        assert contributor_id in result.output
        assert "Sync: disabled" in result.output

    def test_reset_requires_yes(self, cli_runner, workspace, contributor):
        original = asyncio.run(contributor.get_or_create_id()).data

        result = invoke(cli_runner, workspace, "contributor", "reset")

        assert result.exit_code == 1
        assert "requires --yes" in result.output
        assert asyncio.run(contributor.get_or_create_id()).data == original

    def test_reset(self, cli_runner, workspace, contributor):
        original = asyncio.run(contributor.get_or_create_id()).data

        result = invoke(cli_runner, workspace, "contributor", "reset", "--yes")

        assert result.exit_code == 0
        assert "New contributor ID" in result.output
        assert asyncio.run(contributor.get_or_create_id()).data != original


class TestTelemetryCommands:

    def test_status(self, cli_runner, workspace):
        result = invoke(cli_runner, workspace, "telemetry", "status")

        assert result.exit_code == 0
        assert "Telemetry: disabled" in result.output
        assert "Pending events: 0" in result.output

    def test_enable(self, cli_runner, workspace, contributor):
        result = invoke(cli_runner, workspace, "telemetry", "enable")

        assert result.exit_code == 0
        assert asyncio.run(contributor.is_telemetry_enabled())
