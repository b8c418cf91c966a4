"""GitHub REST client for prbot.

Two credential shapes are supported. Inside an Actions job the workflow's
``GITHUB_TOKEN`` is used as-is. As a GitHub App (webhook mode) a signed JWT
is exchanged for a one-hour installation token, refreshed shortly before
it lapses. Both are applied by :class:`GitHubAuth`, an ``httpx.Auth`` flow.

Only the endpoints the bot needs are wrapped: PR and commit lookups,
workflow run listing and cancellation, workflow dispatch, issue comments.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncGenerator

import httpx
import jwt

from prbot.models import WorkflowRun

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
API_HEADERS = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
    "User-Agent": "prbot/0.1.0",
}

INSTALLATION_TOKEN_TTL = 3500  # GitHub grants 3600s
TOKEN_REFRESH_MARGIN = 60


class GitHubAuth(httpx.Auth):
    """Adds ``Authorization: token ...`` to every request.

    With no static token, the App installation token is fetched (and
    re-fetched near expiry) as part of the auth flow itself.
    """

    def __init__(
        self,
        *,
        token: str | None = None,
        app_id: str | None = None,
        private_key: str | None = None,
        installation_id: str | None = None,
        base_url: str = GITHUB_API,
    ):
        self.app_id = app_id
        self.private_key = private_key
        self.installation_id = installation_id
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._token_expires_at = float("inf") if token else 0.0
        self._lock = asyncio.Lock()

    @property
    def token_valid(self) -> bool:
        return bool(self._token) and time.time() < self._token_expires_at - TOKEN_REFRESH_MARGIN

    def app_jwt(self) -> str:
        now = int(time.time())
        claims = {"iat": now - 10, "exp": now + 540, "iss": self.app_id}
        return jwt.encode(claims, self.private_key, algorithm="RS256")

    def _token_request(self) -> httpx.Request:
        if not (self.app_id and self.private_key and self.installation_id):
            raise RuntimeError(
                "GitHub credentials not configured. Set GITHUB_TOKEN, or "
                "GITHUB_APP_ID, GITHUB_PRIVATE_KEY and GITHUB_INSTALLATION_ID"
            )
        return httpx.Request(
            "POST",
            f"{self.base_url}/app/installations/{self.installation_id}/access_tokens",
            headers={**API_HEADERS, "Authorization": f"Bearer {self.app_jwt()}"},
        )

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        if not self.token_valid:
            async with self._lock:
                if not self.token_valid:
                    response = yield self._token_request()
                    await response.aread()
                    response.raise_for_status()
                    self._token = response.json()["token"]
                    self._token_expires_at = time.time() + INSTALLATION_TOKEN_TTL
                    logger.info("Obtained installation token for %s", self.installation_id)
        request.headers["Authorization"] = f"token {self._token}"
        yield request


@dataclass
class RateLimit:
    """Last-seen ``X-RateLimit-*`` headers."""

    remaining: int = 5000
    reset: float = 0.0

    def seconds_until_reset(self) -> float:
        return max(0.0, self.reset - time.time())


class GitHubClient:
    """Async GitHub API client. Use as ``async with`` or call start()/close()."""

    def __init__(
        self,
        *,
        token: str | None = None,
        app_id: str | None = None,
        private_key: str | None = None,
        webhook_secret: str | None = None,
        installation_id: str | None = None,
        base_url: str = GITHUB_API,
    ):
        self.base_url = base_url
        self.webhook_secret = webhook_secret
        self.auth = GitHubAuth(
            token=token,
            app_id=app_id,
            private_key=private_key,
            installation_id=installation_id,
            base_url=base_url,
        )
        self.rate_limit = RateLimit()
        self._throttle = asyncio.Lock()
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=API_HEADERS,
            auth=self.auth,
            timeout=30.0,
            event_hooks={"response": [self._record_rate_limit]},
        )
        logger.info("GitHub client started (%s)", self.base_url)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> GitHubClient:
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("GitHub client not started")
        return self._client

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Check an ``X-Hub-Signature-256`` header against the raw body."""
        if not self.webhook_secret:
            logger.warning("GITHUB_WEBHOOK_SECRET unset; accepting unsigned delivery")
            return True
        digest = hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(f"sha256={digest}", signature)

    async def _record_rate_limit(self, response: httpx.Response) -> None:
        remaining = response.headers.get("X-RateLimit-Remaining")
        reset = response.headers.get("X-RateLimit-Reset")
        if remaining:
            self.rate_limit.remaining = int(remaining)
        if reset:
            self.rate_limit.reset = float(reset)
        if remaining and self.rate_limit.remaining < 100:
            logger.warning(
                "%d GitHub API calls left until %s",
                self.rate_limit.remaining,
                datetime.fromtimestamp(self.rate_limit.reset, tz=timezone.utc).isoformat(),
            )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send an API request, first waiting out an exhausted quota."""
        if self.rate_limit.remaining <= 0:
            async with self._throttle:
                wait = self.rate_limit.seconds_until_reset()
                if self.rate_limit.remaining <= 0 and wait > 0:
                    logger.warning("GitHub API quota exhausted; sleeping %.0fs", wait + 1)
                    await asyncio.sleep(wait + 1)
                self.rate_limit.remaining = max(self.rate_limit.remaining, 1)
        resp = await self.client.request(method, path, **kwargs)
        resp.raise_for_status()
        return resp

    # ── Issues ───────────────────────────────────────────────────────────

    async def comment_on_issue(self, owner: str, repo: str, issue_number: int, body: str) -> dict:
        """Post a comment on an issue or PR (PRs share the issues comment API)."""
        resp = await self._request(
            "POST", f"/repos/{owner}/{repo}/issues/{issue_number}/comments", json={"body": body}
        )
        return resp.json()

    # ── Pull requests and commits ────────────────────────────────────────

    async def get_pull_request(self, owner: str, repo: str, pr_number: int) -> dict:
        """Fetch a pull request.

        ``mergeable`` is computed asynchronously by GitHub and may be
        ``None`` for a short while after the PR (or its base) changes.
        """
        resp = await self._request("GET", f"/repos/{owner}/{repo}/pulls/{pr_number}")
        return resp.json()

    async def get_commit(self, owner: str, repo: str, ref: str) -> dict:
        """Fetch a commit by SHA, branch or tag.

        The committer timestamp lives at ``commit.committer.date``.
        """
        resp = await self._request("GET", f"/repos/{owner}/{repo}/commits/{ref}")
        return resp.json()

    # ── Actions ──────────────────────────────────────────────────────────

    async def list_workflow_runs(
        self,
        owner: str,
        repo: str,
        workflow_id: str,
        *,
        status: str | None = None,
        per_page: int = 100,
    ) -> list[WorkflowRun]:
        """List runs of a workflow, most recent first.

        Args:
            workflow_id: Workflow file name (``ci-manual.yaml``) or numeric ID.
            status: e.g. ``"in_progress"``, ``"queued"``, ``"completed"``.
        """
        params: dict[str, str | int] = {"per_page": per_page}
        if status:
            params["status"] = status
        resp = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/runs",
            params=params,
        )
        return [WorkflowRun(**run) for run in resp.json().get("workflow_runs", [])]

    async def cancel_workflow_run(self, owner: str, repo: str, run_id: int) -> None:
        await self._request("POST", f"/repos/{owner}/{repo}/actions/runs/{run_id}/cancel")

    async def create_workflow_dispatch(
        self,
        owner: str,
        repo: str,
        workflow_id: str,
        *,
        ref: str,
        inputs: dict[str, str] | None = None,
    ) -> None:
        """Trigger a ``workflow_dispatch`` event for a workflow on ``ref``."""
        await self._request(
            "POST",
            f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/dispatches",
            json={"ref": ref, "inputs": inputs or {}},
        )
