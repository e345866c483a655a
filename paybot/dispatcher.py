"""Top-level entry point for inbound events.

The dispatcher is invoked once per event by the transport. It decides
whether the event is a text command or a callback, routes it through
the CommandRegistry, and absorbs any handler failure so the polling
loop keeps running.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from .commands.registry import CommandRegistry
from .events import KIND_CALLBACK, InboundEvent, normalize

logger = structlog.get_logger("paybot.dispatch")


class DispatchOutcome(str, Enum):
    HANDLED = "handled"
    IGNORED = "ignored"


@dataclass(frozen=True)
class DispatchResult:
    """What the transport should do after dispatch.

    Attributes:
        outcome: HANDLED if a command ran (or an unknown-command reply
            was produced), IGNORED otherwise.
        reply: Text to send back, if any.
        chat_id: Originating chat, when the event had one.
    """

    outcome: DispatchOutcome
    reply: Optional[str] = None
    chat_id: Optional[str] = None

    @property
    def handled(self) -> bool:
        return self.outcome == DispatchOutcome.HANDLED


IGNORED = DispatchResult(DispatchOutcome.IGNORED)


class Dispatcher:
    """Routes inbound events to registered commands.

    Args:
        registry: Populated command registry.
        unknown_command_reply: Text sent when a command or callback
            has no registered handler. None keeps misses silent.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        unknown_command_reply: Optional[str] = None,
    ):
        self.registry = registry
        self.unknown_command_reply = unknown_command_reply

    async def dispatch(self, event: InboundEvent) -> DispatchResult:
        """Handle one inbound event. Never raises except on cancellation."""
        builder = self.registry.context_builder
        normalized = normalize(event, builder.marker, builder.delimiter)
        if normalized is None:
            return IGNORED

        chat_id = getattr(event, "chat_id", None)
        is_callback = normalized.kind == KIND_CALLBACK
        if is_callback:
            found = self.registry.lookup_by_callback_prefix(normalized.key)
        else:
            found = self.registry.lookup_by_verb(normalized.key)

        if found is None:
            logger.debug(
                "dispatch_unrouted",
                kind=normalized.kind,
                key=normalized.key,
                chat_id=chat_id,
            )
            if self.unknown_command_reply:
                return DispatchResult(
                    DispatchOutcome.HANDLED, self.unknown_command_reply, chat_id
                )
            return IGNORED

        logger.debug(
            "dispatch_routed",
            kind=normalized.kind,
            key=normalized.key,
            command=found.name,
            args=len(normalized.arguments),
        )

        try:
            if is_callback:
                reply = await self.registry.execute_callback(event.data, event)
            else:
                reply = await self.registry.execute_command(normalized.key, event)
        except Exception as e:
            logger.error(
                "command_failed",
                kind=normalized.kind,
                key=normalized.key,
                command=found.name,
                chat_id=chat_id,
                actor=normalized.actor_id,
                error=str(e),
                exc_type=type(e).__name__,
                exc_info=True,
            )
            return DispatchResult(DispatchOutcome.IGNORED, None, chat_id)

        return DispatchResult(DispatchOutcome.HANDLED, reply, chat_id)
