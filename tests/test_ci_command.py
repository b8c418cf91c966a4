"""Tests for the /ci command: trigger (test goal) and cancel."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from conftest import make_event
from prbot.commands import CICommand, UnexpectedMergeableState
from prbot.config import CIConfig
from prbot.models import WorkflowRun


def make_ci(args=None, ci_config=None, **event_kwargs) -> CICommand:
    return CICommand(
        make_event(**event_kwargs), args, config=ci_config or CIConfig(mergeable_retry_delay=0)
    )


# ── Construction ─────────────────────────────────────────────────────────────


class TestConstruction:
    def test_default_goal_is_test(self):
        assert make_ci().goal == "test"

    def test_empty_args_default_to_test(self):
        assert make_ci("").goal == "test"

    def test_goal_taken_verbatim(self):
        assert make_ci("cancel").goal == "cancel"
        assert make_ci("full please").goal == "full please"

    def test_accepts_named_arguments(self):
        cmd = make_ci()
        assert CICommand.accepts_named_arguments is True
        cmd.add_named_argument("workflow:timeout", "30")
        assert cmd.goal_args == {"workflow:timeout": "30"}


# ── Trigger ──────────────────────────────────────────────────────────────────


class TestTrigger:
    async def test_dispatches_with_default_inputs(self, github):
        result = await make_ci().run(github)

        assert result is None
        github.create_workflow_dispatch.assert_awaited_once_with(
            "acme",
            "widgets",
            "ci-manual.yaml",
            ref="main",
            inputs={
                "uuid": "corr-123",
                "pr_number": "42",
                "git_sha": "abc123",
                "requester": "alice",
                "comment_url": "https://github.com/acme/widgets/pull/42#issuecomment-1001",
            },
        )
        github.get_commit.assert_awaited_once_with("acme", "widgets", "abc123")
        github.comment_on_issue.assert_not_called()

    async def test_unrecognized_goal_takes_test_path(self, github):
        result = await make_ci("everything").run(github)
        assert result is None
        github.create_workflow_dispatch.assert_awaited_once()
        github.list_workflow_runs.assert_not_called()

    async def test_workflow_input_override(self, github):
        cmd = make_ci()
        cmd.add_named_argument("workflow:timeout", "30")
        cmd.add_named_argument("workflow:git_sha", "deadbeef")

        await cmd.run(github)

        inputs = github.create_workflow_dispatch.call_args.kwargs["inputs"]
        assert inputs["timeout"] == "30"
        assert inputs["git_sha"] == "deadbeef"

    async def test_non_workflow_named_arguments_ignored(self, github):
        cmd = make_ci()
        cmd.add_named_argument("verbose", "yes")
        cmd.add_named_argument("workflow:suite", None)

        await cmd.run(github)

        inputs = github.create_workflow_dispatch.call_args.kwargs["inputs"]
        assert set(inputs) == {"uuid", "pr_number", "git_sha", "requester", "comment_url"}

    async def test_configured_ref_and_workflow(self, github):
        cmd = make_ci(
            ci_config=CIConfig(workflow_id="e2e.yaml", ref="release", mergeable_retry_delay=0)
        )
        await cmd.run(github)

        args = github.create_workflow_dispatch.call_args
        assert args.args[2] == "e2e.yaml"
        assert args.kwargs["ref"] == "release"

    async def test_not_mergeable(self, github):
        github.get_pull_request.return_value = {"mergeable": False, "merge_commit_sha": None}

        result = await make_ci().run(github)

        assert "not currently mergeable" in result
        assert result.startswith("@alice ")
        github.create_workflow_dispatch.assert_not_called()

    async def test_mergeable_resolves_on_retry(self, github):
        github.get_pull_request.side_effect = [
            {"mergeable": None, "merge_commit_sha": None},
            {"mergeable": True, "merge_commit_sha": "abc123"},
        ]

        result = await make_ci().run(github)

        assert result is None
        assert github.get_pull_request.await_count == 2
        github.create_workflow_dispatch.assert_awaited_once()

    async def test_merge_commit_from_latest_fetch(self, github):
        github.get_pull_request.side_effect = [
            {"mergeable": None, "merge_commit_sha": None},
            {"mergeable": True, "merge_commit_sha": "fresh456"},
        ]

        await make_ci().run(github)

        github.get_commit.assert_awaited_once_with("acme", "widgets", "fresh456")
        assert github.create_workflow_dispatch.call_args.kwargs["inputs"]["git_sha"] == "fresh456"

    async def test_mergeable_still_pending_after_retries(self, github):
        github.get_pull_request.return_value = {"mergeable": None, "merge_commit_sha": None}

        result = await make_ci().run(github)

        assert "still computing merge status" in result
        # one initial fetch + three retries
        assert github.get_pull_request.await_count == 4
        github.create_workflow_dispatch.assert_not_called()

    async def test_retry_waits_fixed_delay(self, github):
        github.get_pull_request.return_value = {"mergeable": None, "merge_commit_sha": None}
        cmd = make_ci(ci_config=CIConfig(mergeable_retries=2, mergeable_retry_delay=2.0))

        with patch("prbot.commands.ci.asyncio.sleep") as sleep:
            await cmd.run(github)

        assert [c.args for c in sleep.await_args_list] == [(2.0,), (2.0,)]

    async def test_unexpected_mergeable_value_raises(self, github):
        github.get_pull_request.return_value = {"mergeable": "maybe", "merge_commit_sha": "x"}

        with pytest.raises(UnexpectedMergeableState, match="maybe"):
            await make_ci().run(github)
        github.create_workflow_dispatch.assert_not_called()

    async def test_missing_mergeable_field_raises(self, github):
        github.get_pull_request.return_value = {"number": 42, "merge_commit_sha": "abc123"}

        with pytest.raises(UnexpectedMergeableState, match="no mergeable field"):
            await make_ci().run(github)
        assert github.get_pull_request.await_count == 1
        github.comment_on_issue.assert_not_called()
        github.create_workflow_dispatch.assert_not_called()

    async def test_stale_comment(self, github):
        github.get_commit.return_value = {
            "commit": {"committer": {"date": "2025-03-01T12:30:00Z"}},
        }

        result = await make_ci().run(github)

        assert "updated since your request" in result
        github.create_workflow_dispatch.assert_not_called()

    async def test_comment_at_commit_time_is_not_stale(self, github):
        github.get_commit.return_value = {
            "commit": {"committer": {"date": "2025-03-01T12:00:00Z"}},
        }

        assert await make_ci().run(github) is None
        github.create_workflow_dispatch.assert_awaited_once()

    async def test_api_errors_propagate(self, github):
        github.create_workflow_dispatch.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await make_ci().run(github)


# ── Cancel ───────────────────────────────────────────────────────────────────


class TestCancel:
    async def test_no_running_ci(self, github):
        result = await make_ci("cancel").run(github)

        assert result == "@alice no running CI found for this PR."
        github.list_workflow_runs.assert_awaited_once_with(
            "acme", "widgets", "ci-manual.yaml", status="in_progress"
        )
        github.cancel_workflow_run.assert_not_called()

    async def test_other_prs_not_matched(self, github):
        github.list_workflow_runs.return_value = [
            WorkflowRun(id=1, name="#421 - other", html_url="https://x/1"),
            WorkflowRun(id=2, name="#4 - other", html_url="https://x/2"),
            WorkflowRun(id=3, name=None, html_url="https://x/3"),
        ]

        result = await make_ci("cancel").run(github)

        assert "no running CI found" in result
        github.cancel_workflow_run.assert_not_called()

    async def test_cancels_first_matching_run(self, github):
        github.list_workflow_runs.return_value = [
            WorkflowRun(id=7, name="#99 - zzz", html_url="https://x/7"),
            WorkflowRun(id=8, name="#42 - newest", html_url="https://x/8"),
            WorkflowRun(id=9, name="#42 - older", html_url="https://x/9"),
        ]

        result = await make_ci("cancel").run(github)

        github.cancel_workflow_run.assert_awaited_once_with("acme", "widgets", 8)
        assert result == "@alice cancelled [CI run](https://x/8). 🛑"

    async def test_cancel_does_not_check_merge_status(self, github):
        await make_ci("cancel").run(github)
        github.get_pull_request.assert_not_called()
