"""Base classes for the command handler framework.

Defines the command capability, the immutable per-dispatch context
handed to it, and the builder that produces that context from an
inbound event.

Key classes:
    CommandContext: Frozen bundle of actor, arguments, authorization
        flag and merchant credential for one dispatch.
    Command: ABC that every bot command implements.
    Authorizer: Protocol for the identity collaborator.
    AllowAllAuthorizer: Authorizer used when none is configured.
    ContextBuilder: Single factory for CommandContext.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from ..events import (
    DEFAULT_DELIMITER,
    DEFAULT_MARKER,
    Actor,
    CallbackEvent,
    InboundEvent,
    TextMessage,
    normalize,
)
from ..exceptions import InvalidEventError


@dataclass(frozen=True)
class CommandContext:
    """Everything a command needs to handle one event.

    Attributes:
        actor: Sender identity. Never None.
        arguments: Tokens after the verb (or after the callback key).
        authorized: Result of the authorizer for this actor.
        chat_id: Chat the reply is destined for.
        credential: Merchant API key for the payment API, if linked.
        event: The originating inbound event.
    """

    actor: Actor
    arguments: Tuple[str, ...]
    authorized: bool
    chat_id: str
    credential: Optional[str] = None
    event: Optional[InboundEvent] = None


class Command(ABC):
    """A bot command: consumes a CommandContext, produces reply text.

    Subclasses set ``name`` (the verb, marker included, e.g. "/query")
    and ``description`` (usage text). ``callback_prefixes`` lists the
    callback routing keys that should also reach this command.
    """

    name: str = ""
    description: str = ""
    callback_prefixes: Tuple[str, ...] = ()
    requires_authorization: bool = True

    @abstractmethod
    async def execute(self, context: CommandContext) -> Optional[str]:
        """Handle the command. Returning None means nothing to send."""
        ...


class Authorizer(Protocol):
    def is_authorized(self, actor: Actor) -> bool: ...

    def resolve_credential(self, actor: Actor) -> Optional[str]: ...


class AllowAllAuthorizer:
    """Authorizes everyone and links no credential."""

    def is_authorized(self, actor: Actor) -> bool:
        return True

    def resolve_credential(self, actor: Actor) -> Optional[str]:
        return None


class ContextBuilder:
    """Builds a CommandContext from an inbound event.

    Args:
        authorizer: Identity collaborator. Defaults to AllowAllAuthorizer.
        marker: Leading character of text commands.
        delimiter: Separator inside callback data.
    """

    def __init__(
        self,
        authorizer: Optional[Authorizer] = None,
        marker: str = DEFAULT_MARKER,
        delimiter: str = DEFAULT_DELIMITER,
    ):
        self.authorizer = authorizer or AllowAllAuthorizer()
        self.marker = marker
        self.delimiter = delimiter

    def build(self, event: InboundEvent) -> CommandContext:
        """Compose actor, arguments and authorization into a context.

        Raises:
            InvalidEventError: The event is not a text/callback event,
                or it carries no sender.
        """
        if not isinstance(event, (TextMessage, CallbackEvent)):
            raise InvalidEventError(
                "Unsupported event type", event_type=type(event).__name__
            )
        if not event.sender_id:
            raise InvalidEventError("Event has no sender", chat_id=event.chat_id)

        actor = Actor(id=event.sender_id, display_name=event.sender_name)
        normalized = normalize(event, self.marker, self.delimiter)
        arguments = normalized.arguments if normalized else ()

        return CommandContext(
            actor=actor,
            arguments=arguments,
            authorized=bool(self.authorizer.is_authorized(actor)),
            chat_id=event.chat_id,
            credential=self.authorizer.resolve_credential(actor),
            event=event,
        )
