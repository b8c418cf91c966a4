"""Bot commands.

To add a command, subclass :class:`Command` and register it in
:func:`default_registry`.
"""

from prbot.commands.base import Command, CommandParseError
from prbot.commands.ci import CICommand, UnexpectedMergeableState
from prbot.commands.registry import CommandRegistry, default_registry

__all__ = [
    "CICommand",
    "Command",
    "CommandParseError",
    "CommandRegistry",
    "UnexpectedMergeableState",
    "default_registry",
]
