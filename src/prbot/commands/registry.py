"""Command registry: maps ``/name`` tokens to command factories."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from prbot.commands.base import Command

if TYPE_CHECKING:
    from prbot.config import BotConfig
    from prbot.models import CommentEvent

logger = logging.getLogger(__name__)

CommandFactory = Callable[["CommentEvent", "str | None"], Command]


class CommandRegistry:
    """Registry of command factories keyed by command name."""

    def __init__(self) -> None:
        self._factories: dict[str, CommandFactory] = {}

    def register(self, name: str, factory: CommandFactory) -> None:
        if name in self._factories:
            raise ValueError(f"Command already registered: {name}")
        self._factories[name] = factory

    @property
    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: str) -> bool:
        return name in self._factories

    def build(self, name: str, event: CommentEvent, args: str | None) -> Command | None:
        """Construct the command registered under ``name``.

        Unknown names return None; comments are free text and may contain
        lines that merely look like commands.
        """
        factory = self._factories.get(name)
        if factory is None:
            logger.info("Unknown command: %s", name)
            return None
        return factory(event, args)


def default_registry(config: BotConfig) -> CommandRegistry:
    """Registry with all built-in commands, wired to ``config``."""
    from prbot.commands.ci import CICommand

    registry = CommandRegistry()
    registry.register(
        CICommand.name,
        lambda event, args: CICommand(event, args, config=config.ci),
    )
    return registry
