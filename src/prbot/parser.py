"""Comment parser: turns a PR comment body into a sequence of commands.

The grammar is line-oriented. After stripping each line:

- ``/NAME ARGS...`` is a command; ``NAME`` is lower-case letters and hyphens
  and ``ARGS`` is an optional free-form tail.
- ``+NAME ARGS...`` is a named argument for the preceding command; ``NAME``
  may carry a ``:tag`` suffix, e.g. ``+workflow:timeout 30``.
- Everything else is prose and ignored.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, NamedTuple

from prbot.commands.base import Command

if TYPE_CHECKING:
    from prbot.commands.registry import CommandRegistry
    from prbot.models import CommentEvent

logger = logging.getLogger(__name__)

_COMMAND_RE = re.compile(r"/([a-z-]+)(?:\s+(.+))?")
_NAMED_ARGUMENT_RE = re.compile(r"\+([a-z-]+(?::[a-z\d_-]+)?)(?:\s+(.+))?")
_LINE_BREAK_RE = re.compile(r"\r?\n")


class NamedArgument(NamedTuple):
    name: str
    value: str | None


def parse_named_argument(line: str) -> NamedArgument | None:
    match = _NAMED_ARGUMENT_RE.fullmatch(line.strip())
    if match:
        return NamedArgument(match.group(1), match.group(2))
    return None


def parse_line(
    line: str, event: CommentEvent, registry: CommandRegistry
) -> Command | NamedArgument | None:
    """Classify a single line as a command, a named argument, or nothing."""
    stripped = line.strip()
    match = _COMMAND_RE.fullmatch(stripped)
    if match:
        # An unknown /name is still a command line; it just builds nothing
        return registry.build(match.group(1), event, match.group(2))
    return parse_named_argument(stripped)


def parse_commands(event: CommentEvent, registry: CommandRegistry) -> list[Command]:
    """Parse every line of the comment body, in order.

    Named arguments attach to the most recent command.

    Raises:
        CommandParseError: A named argument follows a command that does
            not accept arguments.
    """
    commands: list[Command] = []
    if not event.body:
        return commands

    for line in _LINE_BREAK_RE.split(event.body):
        logger.debug("Parsing line: %s", line)
        parsed = parse_line(line, event, registry)
        if parsed is None:
            continue
        if isinstance(parsed, Command):
            commands.append(parsed)
            continue
        if not commands:
            # Not an error: reactions like "+lgtm" look like named arguments
            logger.info("Parsed named argument with no previous command: %s", parsed)
            continue
        commands[-1].add_named_argument(parsed.name, parsed.value)

    return commands
