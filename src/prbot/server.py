"""prbot server: FastAPI application for webhook mode.

Startup sequence:
1. Load .prbot/ config
2. Attach the ring-buffer log handler
3. Start the GitHub client
4. Start the Event Router consumer loop
5. Begin accepting webhooks

Shutdown:
1. Stop the Event Router
2. Close the GitHub client
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Query

from prbot.commands import default_registry
from prbot.config import BotConfig, load_config
from prbot.dispatcher import CommentDispatcher
from prbot.event_router import EventRouter
from prbot.github_client import GITHUB_API, GitHubClient
from prbot.log_buffer import LogBuffer, RingBufferHandler
from prbot.models import GitHubEvent
from prbot.webhook import configure as configure_webhook
from prbot.webhook import router as webhook_router

logger = logging.getLogger(__name__)


def github_client_from_env() -> GitHubClient:
    """Build a GitHubClient from GITHUB_* environment variables."""
    return GitHubClient(
        token=os.environ.get("GITHUB_TOKEN") or None,
        app_id=os.environ.get("GITHUB_APP_ID"),
        private_key=os.environ.get("GITHUB_PRIVATE_KEY"),
        webhook_secret=os.environ.get("GITHUB_WEBHOOK_SECRET"),
        installation_id=os.environ.get("GITHUB_INSTALLATION_ID"),
        base_url=os.environ.get("GITHUB_API_URL") or GITHUB_API,
    )


class BotServer:
    """Encapsulates all server components and lifecycle."""

    def __init__(self, config_dir: Path | None = None):
        self.config_dir = config_dir

        # Components (initialized in start())
        self.config: BotConfig | None = None
        self.github: GitHubClient | None = None
        self.event_queue: asyncio.Queue[GitHubEvent] | None = None
        self.router: EventRouter | None = None
        self.log_buffer: LogBuffer | None = None
        self._ring_handler: RingBufferHandler | None = None

    async def start(self) -> None:
        """Initialize all components and start the consumer loop."""
        self.config = load_config(self.config_dir)

        self.log_buffer = LogBuffer(maxlen=self.config.server.log_buffer_size)
        self._ring_handler = RingBufferHandler(self.log_buffer)
        logging.getLogger().addHandler(self._ring_handler)
        logger.info("Ring-buffer log handler attached (capacity=%d)", self.log_buffer.maxlen)

        self.github = github_client_from_env()
        await self.github.start()

        dispatcher = CommentDispatcher(
            github=self.github,
            registry=default_registry(self.config),
            config=self.config,
        )
        self.event_queue = asyncio.Queue(maxsize=1000)
        self.router = EventRouter(self.event_queue, dispatcher, self.config)
        await self.router.start()

        repo_full_name = self.config.project.full_name
        configure_webhook(
            self.event_queue,
            self.github,
            expected_repo_full_name=repo_full_name,
            rate_limit_max=self.config.server.rate_limit_max,
        )
        logger.info("prbot server started (repo scope=%s)", repo_full_name or "any")

    async def stop(self) -> None:
        logger.info("prbot server stopping")
        if self.router:
            await self.router.stop()
        if self.github:
            await self.github.close()
        if self._ring_handler:
            logging.getLogger().removeHandler(self._ring_handler)


# ── FastAPI App ──────────────────────────────────────────────────────────────

_server = BotServer()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start and stop the BotServer with the app."""
    await _server.start()
    yield
    await _server.stop()


def create_app(config_dir: Path | None = None) -> FastAPI:
    """Create the FastAPI application."""
    global _server
    _server = BotServer(config_dir)

    app = FastAPI(
        title="prbot",
        version="0.1.0",
        description="Comment-triggered CI bot for GitHub pull requests",
        lifespan=lifespan,
    )
    app.include_router(webhook_router)

    @app.get("/health")
    async def health():
        """Health check endpoint with operational metrics."""
        return {
            "status": "ok",
            "queue_depth": _server.event_queue.qsize() if _server.event_queue else 0,
            "last_event_time": _server.router.last_event_time if _server.router else None,
            "failed_invocations": _server.router.failed_invocations if _server.router else 0,
        }

    @app.get("/logs")
    async def logs(
        correlation_id: str | None = None,
        level: str | None = None,
        limit: int = Query(default=500, ge=1, le=5000),
    ):
        """Log records captured in memory, optionally for one invocation."""
        if not _server.log_buffer:
            return {"logs": []}
        return {
            "logs": [
                entry.to_dict()
                for entry in _server.log_buffer.query(
                    correlation_id=correlation_id, level=level, limit=limit
                )
            ]
        }

    return app
