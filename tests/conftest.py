"""Shared fixtures: issue_comment payloads, config, and a mocked GitHub client."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from prbot.commands import default_registry
from prbot.config import BotConfig, CIConfig
from prbot.models import CommentEvent


def make_payload(
    body: str = "/ci",
    *,
    author: str = "alice",
    association: str = "MEMBER",
    created_at: str = "2025-03-01T12:00:00Z",
    pr_number: int = 42,
    with_comment: bool = True,
) -> dict:
    """A trimmed but realistic ``issue_comment.created`` payload on a PR."""
    payload: dict = {
        "action": "created",
        "issue": {
            "number": pr_number,
            "pull_request": {"url": f"https://api.github.com/repos/acme/widgets/pulls/{pr_number}"},
        },
        "repository": {
            "name": "widgets",
            "full_name": "acme/widgets",
            "default_branch": "main",
            "owner": {"login": "acme"},
        },
        "sender": {"login": author, "type": "User"},
    }
    if with_comment:
        payload["comment"] = {
            "id": 1001,
            "body": body,
            "html_url": f"https://github.com/acme/widgets/pull/{pr_number}#issuecomment-1001",
            "created_at": created_at,
            "author_association": association,
            "user": {"login": author},
        }
    return payload


def make_event(body: str = "/ci", **kwargs) -> CommentEvent:
    return CommentEvent.from_payload(make_payload(body, **kwargs), correlation_id="corr-123")


@pytest.fixture
def config() -> BotConfig:
    """Default config with no sleeping between merge-status retries."""
    return BotConfig(ci=CIConfig(mergeable_retry_delay=0))


@pytest.fixture
def registry(config):
    return default_registry(config)


@pytest.fixture
def github() -> AsyncMock:
    """GitHub client mock: PR mergeable, merge commit older than the comment."""
    gh = AsyncMock()
    gh.get_pull_request.return_value = {
        "number": 42,
        "mergeable": True,
        "merge_commit_sha": "abc123",
    }
    gh.get_commit.return_value = {
        "sha": "abc123",
        "commit": {"committer": {"date": "2025-03-01T11:00:00Z"}},
    }
    gh.list_workflow_runs.return_value = []
    return gh
