"""prbot CLI entry point.

``prbot run`` handles a single ``issue_comment`` event inside a GitHub
Actions job (event JSON at ``$GITHUB_EVENT_PATH``). ``prbot serve`` runs the
webhook server.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import uuid
from pathlib import Path

logger = logging.getLogger("prbot")


def actions_run_url(payload: dict) -> str:
    """HTML URL of the Actions run executing this bot invocation."""
    server_url = os.environ.get("GITHUB_SERVER_URL", "https://github.com").rstrip("/")
    repository = payload.get("repository", {})
    full_name = repository.get("full_name") or os.environ.get("GITHUB_REPOSITORY", "")
    run_id = os.environ.get("GITHUB_RUN_ID", "")
    return f"{server_url}/{full_name}/actions/runs/{run_id}"


async def _run_event(event_path: Path, correlation_id: str, config_dir: Path | None) -> None:
    """Process one comment event end to end."""
    from prbot.commands import default_registry
    from prbot.config import load_config
    from prbot.dispatcher import CommentDispatcher
    from prbot.models import CommentEvent
    from prbot.server import github_client_from_env

    config = load_config(config_dir)
    with open(event_path) as f:
        payload = json.load(f)

    event = CommentEvent.from_payload(payload, correlation_id=correlation_id)
    async with github_client_from_env() as github:
        dispatcher = CommentDispatcher(github, default_registry(config), config)
        await dispatcher.handle(event, log_url=actions_run_url(payload))


def _run(args) -> int:
    """Run one invocation; any uncaught error fails the Actions step."""
    event_path = args.event_path or os.environ.get("GITHUB_EVENT_PATH")
    if not event_path:
        print("Error: no event payload (set GITHUB_EVENT_PATH or --event-path)", file=sys.stderr)
        return 2

    correlation_id = args.correlation_id or str(uuid.uuid4())
    logger.info("Handling %s (correlation_id=%s)", event_path, correlation_id)
    try:
        asyncio.run(_run_event(Path(event_path), correlation_id, args.config_dir))
    except Exception as e:
        logger.exception("Invocation failed")
        # GitHub Actions workflow command: annotates the run and marks it failed
        print(f"::error::{type(e).__name__}: {e}")
        return 1
    return 0


def _serve(args) -> None:
    import uvicorn

    from prbot.server import create_app

    app = create_app(config_dir=args.config_dir)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="prbot",
        description="prbot: comment-triggered CI for GitHub pull requests",
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory containing config.yaml (default: $PRBOT_CONFIG_DIR or ./.prbot)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # prbot run
    run_parser = subparsers.add_parser("run", help="Handle one comment event (GitHub Actions)")
    run_parser.add_argument(
        "--event-path",
        help="Path to the event JSON (default: $GITHUB_EVENT_PATH)",
    )
    run_parser.add_argument(
        "--correlation-id",
        help="Token passed to the dispatched workflow as 'uuid' (default: random UUID4)",
    )

    # prbot serve
    serve_parser = subparsers.add_parser("serve", help="Start the webhook server")
    serve_parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.command == "run":
        sys.exit(_run(args))

    _serve(args)


if __name__ == "__main__":
    main()
