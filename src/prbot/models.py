"""Core data models for prbot."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ── GitHub Events ────────────────────────────────────────────────────────────


class GitHubEvent(BaseModel):
    """Raw GitHub webhook event."""

    delivery_id: str = Field(description="X-GitHub-Delivery UUID")
    event_type: str = Field(description="X-GitHub-Event header value")
    action: str | None = Field(default=None, description="Event action (e.g. 'created')")
    payload: dict = Field(default_factory=dict, description="Full webhook payload")

    @property
    def full_type(self) -> str:
        """e.g. 'issue_comment.created'."""
        if self.action:
            return f"{self.event_type}.{self.action}"
        return self.event_type

    @property
    def sender(self) -> str | None:
        """GitHub username of the event sender."""
        sender = self.payload.get("sender", {})
        return sender.get("login")

    @property
    def repo_full_name(self) -> str | None:
        """owner/repo from the event payload."""
        repo = self.payload.get("repository", {})
        return repo.get("full_name")

    @property
    def comment(self) -> dict | None:
        return self.payload.get("comment")

    @property
    def is_pull_request_comment(self) -> bool:
        """issue_comment events fire for issues too; PRs carry issue.pull_request."""
        issue = self.payload.get("issue") or {}
        return bool(issue.get("pull_request"))


# ── Comment Snapshot ─────────────────────────────────────────────────────────


class CommentEvent(BaseModel):
    """Immutable snapshot of a PR comment and everything needed to act on it."""

    model_config = ConfigDict(frozen=True)

    author: str
    author_association: str = Field(description="OWNER, MEMBER, CONTRIBUTOR, NONE, ...")
    body: str = ""
    comment_url: str
    comment_created_at: datetime
    issue_number: int
    owner: str
    repo: str
    default_branch: str = "main"
    correlation_id: str = Field(
        description="Opaque token threaded through to the dispatched workflow"
    )

    @classmethod
    def from_payload(cls, payload: dict, correlation_id: str) -> CommentEvent | None:
        """Build a snapshot from an ``issue_comment`` payload.

        Returns None if the payload carries no comment.
        """
        comment = payload.get("comment")
        if not comment:
            return None
        repository = payload.get("repository", {})
        return cls(
            author=comment.get("user", {}).get("login", ""),
            author_association=comment.get("author_association", ""),
            body=comment.get("body") or "",
            comment_url=comment.get("html_url", ""),
            comment_created_at=comment["created_at"],
            issue_number=payload["issue"]["number"],
            owner=repository.get("owner", {}).get("login", ""),
            repo=repository.get("name", ""),
            default_branch=repository.get("default_branch") or "main",
            correlation_id=correlation_id,
        )


# ── Workflow Runs ────────────────────────────────────────────────────────────


class WorkflowRun(BaseModel):
    """A GitHub Actions workflow run, as listed by the runs API."""

    id: int
    name: str | None = None
    status: str | None = None
    html_url: str = ""
