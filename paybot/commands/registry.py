"""Command registry: verb and callback-prefix lookup.

Built once at startup from an explicit list of Command instances and
read-only afterwards, so lookups need no locking on the event loop.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import structlog

from ..events import DEFAULT_DELIMITER, InboundEvent
from .base import Command, ContextBuilder

logger = structlog.get_logger("paybot.dispatch")

UNAUTHORIZED_REPLY = "You are not authorized to use this command."


class CommandRegistry:
    """Maps verbs and callback prefixes to commands.

    Registering a key twice keeps the last binding; the overwrite is
    logged as a warning rather than rejected.

    Args:
        context_builder: Factory for per-dispatch contexts.
        commands: Optional commands to register immediately, in order.
    """

    def __init__(
        self,
        context_builder: Optional[ContextBuilder] = None,
        commands: Optional[Iterable[Command]] = None,
    ):
        self.context_builder = context_builder or ContextBuilder()
        self._commands: Dict[str, Command] = {}
        self._callback_handlers: Dict[str, Command] = {}
        for command in commands or ():
            self.register(command)

    @property
    def delimiter(self) -> str:
        return self.context_builder.delimiter or DEFAULT_DELIMITER

    def register(self, command: Command) -> None:
        """Register a command under its name and its callback prefixes."""
        existing = self._commands.get(command.name)
        if existing is not None and existing is not command:
            logger.warning(
                "command_handler_conflict",
                command=command.name,
                replaced=type(existing).__name__,
                handler=type(command).__name__,
            )
        # Re-insert so registration order reflects the latest binding
        self._commands.pop(command.name, None)
        self._commands[command.name] = command
        for prefix in command.callback_prefixes:
            self.register_callback(prefix, command)

    def register_callback(self, prefix: str, command: Command) -> None:
        """Bind a callback routing key to a command."""
        existing = self._callback_handlers.get(prefix)
        if existing is not None and existing is not command:
            logger.warning(
                "callback_handler_conflict",
                prefix=prefix,
                replaced=type(existing).__name__,
                handler=type(command).__name__,
            )
        self._callback_handlers[prefix] = command

    def lookup_by_verb(self, verb: str) -> Optional[Command]:
        return self._commands.get(verb)

    def lookup_by_callback_prefix(self, prefix: str) -> Optional[Command]:
        return self._callback_handlers.get(prefix)

    @property
    def commands(self) -> List[Command]:
        """Verb-registered commands in registration order."""
        return list(self._commands.values())

    async def execute_command(self, verb: str, event: InboundEvent) -> Optional[str]:
        """Run the command registered for ``verb``.

        A miss is a no-op and returns None.
        """
        command = self.lookup_by_verb(verb)
        if command is None:
            logger.debug("command_not_found", verb=verb)
            return None
        return await self._run(command, event)

    async def execute_callback(self, data: str, event: InboundEvent) -> Optional[str]:
        """Run the command registered for the first segment of ``data``.

        A miss is a no-op and returns None.
        """
        prefix = data.split(self.delimiter)[0]
        command = self.lookup_by_callback_prefix(prefix)
        if command is None:
            logger.debug("callback_not_found", prefix=prefix)
            return None
        return await self._run(command, event)

    async def _run(self, command: Command, event: InboundEvent) -> Optional[str]:
        context = self.context_builder.build(event)
        if command.requires_authorization and not context.authorized:
            logger.warning(
                "unauthorized_command",
                command=command.name,
                actor=context.actor.id,
            )
            return UNAUTHORIZED_REPLY
        return await command.execute(context)
