"""Command model: one instance per recognized ``/name`` line in a comment."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from prbot.github_client import GitHubClient
    from prbot.models import CommentEvent


class CommandParseError(ValueError):
    """A comment is structurally malformed (not merely unrecognized)."""


class Command(abc.ABC):
    """Base class for bot commands.

    Subclasses set ``name`` (the token after ``/``) and, if they take
    ``+name value`` modifier lines, ``accepts_named_arguments = True``.

    The command owns a snapshot of the triggering comment; it never
    re-reads comment fields from GitHub.
    """

    name: ClassVar[str]
    accepts_named_arguments: ClassVar[bool] = False

    def __init__(self, event: CommentEvent, args: str | None = None):
        self.event = event
        self.args = args

    @property
    def author(self) -> str:
        return self.event.author

    def add_named_argument(self, name: str, value: str | None) -> None:
        raise CommandParseError(
            f"Parsed named argument {name!r} but previous command ({self.name}) "
            f"does not support arguments"
        )

    @abc.abstractmethod
    async def run(self, github: GitHubClient) -> Any:
        """Execute the command.

        Returns a reply string to post on the PR, any other truthy value
        (logged only), or None.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, args={self.args!r})"
