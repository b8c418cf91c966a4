"""``/ci``: trigger or cancel the manual CI workflow for a PR.

Usage in a PR comment::

    /ci                    trigger CI (goal defaults to "test")
    /ci cancel             cancel the most recent in-progress run for this PR
    +workflow:NAME VALUE   (on a following line) override a workflow input

Dispatched runs are named ``#<pr_number> - <correlation_id>`` by the
workflow itself; cancellation finds them again by that prefix.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from prbot.commands.base import Command
from prbot.config import CIConfig

if TYPE_CHECKING:
    from prbot.github_client import GitHubClient
    from prbot.models import CommentEvent

logger = logging.getLogger(__name__)

GOAL_TEST = "test"
GOAL_CANCEL = "cancel"

# A PR response with no "mergeable" key at all, as opposed to null
_MISSING = object()


class UnexpectedMergeableState(RuntimeError):
    """GitHub returned a ``mergeable`` value that is not true/false/null."""


class CICommand(Command):
    name = "ci"
    accepts_named_arguments = True

    def __init__(
        self,
        event: CommentEvent,
        args: str | None = None,
        *,
        config: CIConfig | None = None,
    ):
        super().__init__(event, args)
        self.config = config or CIConfig()
        # Any goal other than "cancel" takes the test path
        self.goal = args if args else GOAL_TEST
        self.goal_args: dict[str, str | None] = {}

    def add_named_argument(self, name: str, value: str | None) -> None:
        self.goal_args[name] = value

    @property
    def run_name_prefix(self) -> str:
        return f"#{self.event.issue_number} - "

    async def run(self, github: GitHubClient) -> str | None:
        if self.goal == GOAL_CANCEL:
            return await self.cancel_ci(github)
        return await self.trigger_ci(github)

    # ── cancel ───────────────────────────────────────────────────────────

    async def cancel_ci(self, github: GitHubClient) -> str:
        runs = await github.list_workflow_runs(
            self.event.owner,
            self.event.repo,
            self.config.workflow_id,
            status="in_progress",
        )
        # Any in-progress run for this PR is fair game, whichever comment started it
        pr_runs = [run for run in runs if run.name and run.name.startswith(self.run_name_prefix)]
        if not pr_runs:
            return f"@{self.author} no running CI found for this PR."

        most_recent = pr_runs[0]
        logger.info(
            "Cancelling run %d (%s) for PR #%d",
            most_recent.id,
            most_recent.name,
            self.event.issue_number,
        )
        await github.cancel_workflow_run(self.event.owner, self.event.repo, most_recent.id)
        return f"@{self.author} cancelled [CI run]({most_recent.html_url}). 🛑"

    # ── test ─────────────────────────────────────────────────────────────

    async def _fetch_pull_request(self, github: GitHubClient) -> dict:
        """Fetch the PR, re-polling while GitHub is still computing ``mergeable``."""
        pr = await github.get_pull_request(
            self.event.owner, self.event.repo, self.event.issue_number
        )
        attempt = 0
        while pr.get("mergeable", _MISSING) is None and attempt < self.config.mergeable_retries:
            attempt += 1
            logger.info(
                "Merge status of PR #%d still pending, retry %d/%d in %.1fs",
                self.event.issue_number,
                attempt,
                self.config.mergeable_retries,
                self.config.mergeable_retry_delay,
            )
            await asyncio.sleep(self.config.mergeable_retry_delay)
            pr = await github.get_pull_request(
                self.event.owner, self.event.repo, self.event.issue_number
            )
        return pr

    async def trigger_ci(self, github: GitHubClient) -> str | None:
        pr = await self._fetch_pull_request(github)
        mergeable = pr.get("mergeable", _MISSING)

        if mergeable is False:
            return (
                f"@{self.author} this PR is not currently mergeable, "
                "you'll need to rebase it first."
            )
        if mergeable is None:
            return (
                f"@{self.author} GitHub is still computing merge status. "
                "Please try again in a moment."
            )
        if mergeable is _MISSING:
            raise UnexpectedMergeableState("Pull request response has no mergeable field")
        if mergeable is not True:
            raise UnexpectedMergeableState(f"Unknown mergeable value: {mergeable!r}")

        merge_commit_sha = pr["merge_commit_sha"]
        merge_commit = await github.get_commit(self.event.owner, self.event.repo, merge_commit_sha)
        committed_at = datetime.fromisoformat(
            merge_commit["commit"]["committer"]["date"].replace("Z", "+00:00")
        )
        if self.event.comment_created_at < committed_at:
            logger.info(
                "PR #%d changed at %s, after the request at %s",
                self.event.issue_number,
                committed_at.isoformat(),
                self.event.comment_created_at.isoformat(),
            )
            return (
                f"@{self.author} this PR has been updated since your request, "
                "you'll need to review the changes."
            )

        inputs = self.build_inputs(merge_commit_sha)
        ref = self.config.ref or self.event.default_branch
        logger.info(
            "Dispatching %s on %s with inputs: %s", self.config.workflow_id, ref, inputs
        )
        await github.create_workflow_dispatch(
            self.event.owner,
            self.event.repo,
            self.config.workflow_id,
            ref=ref,
            inputs=inputs,
        )
        # The dispatched workflow acknowledges on its own
        return None

    def build_inputs(self, git_sha: str) -> dict[str, str]:
        """Workflow dispatch inputs, with ``+workflow:NAME`` overrides applied."""
        inputs = {
            "uuid": self.event.correlation_id,
            "pr_number": str(self.event.issue_number),
            "git_sha": git_sha,
            "requester": self.author,
            "comment_url": self.event.comment_url,
        }
        prefix = self.config.workflow_input_prefix
        for name, value in self.goal_args.items():
            if not name.startswith(prefix):
                continue
            if value is None:
                logger.info("Ignoring %s with no value", name)
                continue
            inputs[name[len(prefix) :]] = value
        return inputs
