"""/help command: lists every registered command's usage."""

from __future__ import annotations

from typing import Optional

from .base import Command, CommandContext


class HelpCommand(Command):
    """Replies with the description of each registered command.

    Args:
        registry: The CommandRegistry this command is registered in.
    """

    name = "/help"
    description = "/help - show available commands"
    requires_authorization = False

    def __init__(self, registry):
        self.registry = registry

    async def execute(self, context: CommandContext) -> Optional[str]:
        sections = [
            command.description
            for command in self.registry.commands
            if command.description
        ]
        return "Available commands:\n\n" + "\n\n".join(sections)
