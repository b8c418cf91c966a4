"""Comment dispatcher: the entry point for one triggering PR comment.

Flow:
1. Ignore events without a comment
2. Authorization gate (author_association)
3. Parse the body into commands (apology reply on malformed input)
4. Reject duplicate command kinds
5. Run commands sequentially, replying with any string result

Anticipated user-facing conditions become reply comments. Everything else
(API failures, unexpected GitHub responses) propagates to the caller, which
owns the invocation failure boundary.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from prbot.authorization import is_authorized
from prbot.commands.base import CommandParseError
from prbot.parser import parse_commands

if TYPE_CHECKING:
    from prbot.commands.registry import CommandRegistry
    from prbot.config import BotConfig
    from prbot.github_client import GitHubClient
    from prbot.models import CommentEvent

logger = logging.getLogger(__name__)


class CommentDispatcher:
    """Parses a PR comment and executes the commands it contains."""

    def __init__(
        self,
        github: GitHubClient,
        registry: CommandRegistry,
        config: BotConfig,
    ):
        self.github = github
        self.registry = registry
        self.config = config

    async def handle(self, event: CommentEvent | None, *, log_url: str) -> None:
        """Process one comment event.

        Args:
            event: Snapshot of the triggering comment, or None if the
                platform event carried no comment.
            log_url: Link to this invocation's logs, used in error replies.
        """
        if event is None:
            logger.info("No comment found in payload")
            return

        if not is_authorized(
            event.author_association, self.config.authorization.trusted_associations
        ):
            logger.info(
                "Comment author is not authorized: %s (%s)",
                event.author,
                event.author_association,
            )
            return
        logger.info("Comment author is authorized: %s", event.author)

        try:
            commands = parse_commands(event, self.registry)
        except CommandParseError as e:
            logger.warning("Failed to parse comment %s: %s", event.comment_url, e)
            await self.reply(
                event,
                f"@{event.author} I didn't understand [that]({event.comment_url})! 🤔\n\n"
                f"Take a look at my [logs]({log_url}).",
            )
            return

        if not commands:
            logger.info("No commands found in comment body")
            return

        kinds = {command.name for command in commands}
        if len(kinds) != len(commands):
            logger.info("Duplicate commands in comment: %s", commands)
            await self.reply(
                event, f"@{event.author} you can't use the same command more than once! 🙅"
            )
            return
        logger.info("%d command(s) found in comment body", len(commands))

        # Sequential: a cancel followed by a trigger must not race
        for command in commands:
            result = await command.run(self.github)
            if isinstance(result, str):
                await self.reply(event, result)
            elif result:
                logger.info("Command %s returned: %s", command.name, result)
            else:
                logger.info("Command %s did not return a reply", command.name)

    async def reply(self, event: CommentEvent, body: str) -> None:
        """Post a comment on the PR that triggered this invocation."""
        await self.github.comment_on_issue(event.owner, event.repo, event.issue_number, body)
