"""Webhook receiver for GitHub deliveries (webhook mode only).

A delivery is admitted if it passes, in order: the per-minute delivery cap,
the HMAC-SHA256 signature and the repository scope. Admitted
``issue_comment.created`` events on pull requests go onto the event queue;
every other event type is acknowledged and dropped. The endpoint never
waits on command execution, since GitHub abandons a delivery after 10s.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fastapi import APIRouter, Header, Request, Response

from prbot.models import GitHubEvent

if TYPE_CHECKING:
    import asyncio

    from prbot.github_client import GitHubClient

logger = logging.getLogger(__name__)

router = APIRouter()

HANDLED_EVENTS = {"issue_comment.created"}


class DeliveryLimiter:
    """Sliding-window cap on accepted deliveries. ``max_deliveries=0`` disables it."""

    def __init__(self, max_deliveries: int, window: float = 60.0):
        self.max_deliveries = max_deliveries
        self.window = window
        self._accepted: deque[float] = deque()

    def allow(self) -> bool:
        if self.max_deliveries <= 0:
            return True
        now = time.monotonic()
        while self._accepted and self._accepted[0] <= now - self.window:
            self._accepted.popleft()
        if len(self._accepted) >= self.max_deliveries:
            return False
        self._accepted.append(now)
        return True


@dataclass
class _WebhookState:
    event_queue: asyncio.Queue[GitHubEvent] | None = None
    github: GitHubClient | None = None
    repo_full_name: str | None = None
    limiter: DeliveryLimiter = field(default_factory=lambda: DeliveryLimiter(60))


# Populated by server startup via configure()
_state = _WebhookState()


def configure(
    event_queue: asyncio.Queue[GitHubEvent],
    github_client: GitHubClient,
    *,
    expected_repo_full_name: str | None = None,
    rate_limit_max: int = 60,
) -> None:
    """Wire the endpoint to its queue and signature verifier.

    ``expected_repo_full_name`` (``owner/repo``) scopes the endpoint to one
    repository; ``rate_limit_max`` is deliveries per minute, 0 for no cap.
    """
    global _state
    _state = _WebhookState(
        event_queue=event_queue,
        github=github_client,
        repo_full_name=expected_repo_full_name,
        limiter=DeliveryLimiter(rate_limit_max),
    )


def _signature_ok(body: bytes, signature: str) -> bool:
    return _state.github is None or _state.github.verify_webhook_signature(body, signature)


def _in_scope(event: GitHubEvent) -> bool:
    """Deliveries without a repository are never out of scope."""
    repo = event.repo_full_name
    return not (_state.repo_full_name and repo and repo != _state.repo_full_name)


@router.post("/webhook")
async def handle_webhook(
    request: Request,
    x_github_event: str = Header(...),
    x_github_delivery: str = Header(...),
    x_hub_signature_256: str = Header(default=""),
) -> Response:
    if not _state.limiter.allow():
        logger.warning("Delivery %s over the rate limit", x_github_delivery)
        return Response(status_code=429, content="Rate limit exceeded")

    body = await request.body()
    if not _signature_ok(body, x_hub_signature_256):
        logger.warning("Invalid signature on delivery %s", x_github_delivery)
        return Response(status_code=401, content="Invalid signature")

    payload = await request.json()
    event = GitHubEvent(
        delivery_id=x_github_delivery,
        event_type=x_github_event,
        action=payload.get("action"),
        payload=payload,
    )

    if not _in_scope(event):
        logger.warning(
            "Delivery %s is for %s, not %s",
            x_github_delivery,
            event.repo_full_name,
            _state.repo_full_name,
        )
        return Response(status_code=403, content="Unknown repository")

    if event.full_type not in HANDLED_EVENTS or not event.is_pull_request_comment:
        logger.debug("Ignoring %s (delivery=%s)", event.full_type, x_github_delivery)
        return Response(status_code=200, content="ignored")

    if _state.event_queue is None:
        logger.error("No event queue configured; dropping delivery %s", x_github_delivery)
        return Response(status_code=503, content="Not ready")

    logger.info("Queued %s from %s (delivery=%s)", event.full_type, event.sender, x_github_delivery)
    await _state.event_queue.put(event)
    return Response(status_code=200, content="ok")
