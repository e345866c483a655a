"""Inbound event types and normalization.

The transport hands the core one of two event shapes: a text message
or an inline-button callback. normalize() turns either into a
(kind, actor, key, arguments) tuple; anything else is skipped.

Key classes:
    Actor: Sender identity (opaque id + optional display name).
    TextMessage: A chat message carrying text.
    CallbackEvent: A button press carrying callback data.
    NormalizedInput: Result of normalize().

Key functions:
    normalize: Pure event -> NormalizedInput | None.
    parse_update: Telegram Bot API update dict -> InboundEvent | None.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

DEFAULT_MARKER = "/"
DEFAULT_DELIMITER = "_"

KIND_COMMAND = "command"
KIND_CALLBACK = "callback"


@dataclass(frozen=True)
class Actor:
    """Identity of the user who sent an event."""

    id: str
    display_name: Optional[str] = None


@dataclass(frozen=True)
class TextMessage:
    chat_id: str
    sender_id: Optional[str]
    text: str
    sender_name: Optional[str] = None


@dataclass(frozen=True)
class CallbackEvent:
    chat_id: str
    sender_id: Optional[str]
    data: str
    sender_name: Optional[str] = None
    # Telegram callback_query id, needed to acknowledge the button press
    callback_id: Optional[str] = None


InboundEvent = Union[TextMessage, CallbackEvent]


@dataclass(frozen=True)
class NormalizedInput:
    """A command-shaped view of an inbound event.

    Attributes:
        kind: KIND_COMMAND or KIND_CALLBACK.
        actor_id: Sender id as carried by the event (may be None).
        key: The verb (marker included) or the callback routing key.
        arguments: Remaining tokens, in order.
    """

    kind: str
    actor_id: Optional[str]
    key: str
    arguments: Tuple[str, ...]


def normalize(
    event: Any,
    marker: str = DEFAULT_MARKER,
    delimiter: str = DEFAULT_DELIMITER,
) -> Optional[NormalizedInput]:
    """Convert an inbound event into a NormalizedInput.

    Returns None (skip) for text that does not start with the command
    marker, for empty commands and for objects matching neither event
    shape. Never raises.
    """
    if isinstance(event, TextMessage):
        if not isinstance(event.text, str) or not event.text.startswith(marker):
            return None
        tokens = event.text.split()
        if not tokens:
            return None
        return NormalizedInput(
            kind=KIND_COMMAND,
            actor_id=event.sender_id,
            key=tokens[0],
            arguments=tuple(tokens[1:]),
        )

    if isinstance(event, CallbackEvent):
        if not isinstance(event.data, str):
            return None
        segments = event.data.split(delimiter)
        return NormalizedInput(
            kind=KIND_CALLBACK,
            actor_id=event.sender_id,
            key=segments[0],
            arguments=tuple(segments[1:]),
        )

    return None


def _sender_fields(sender: Optional[Dict[str, Any]]) -> Tuple[Optional[str], Optional[str]]:
    if not sender or sender.get("id") is None:
        return None, None
    name = sender.get("username") or sender.get("first_name")
    return str(sender["id"]), name


def parse_update(update: Dict[str, Any]) -> Optional[InboundEvent]:
    """Build an InboundEvent from a raw Telegram Bot API update.

    Only ``message`` updates with text and ``callback_query`` updates
    with data are recognized; everything else (stickers, edits, joins)
    returns None.
    """
    callback = update.get("callback_query")
    if callback:
        data = callback.get("data")
        chat = (callback.get("message") or {}).get("chat") or {}
        if data is None or chat.get("id") is None:
            return None
        sender_id, sender_name = _sender_fields(callback.get("from"))
        return CallbackEvent(
            chat_id=str(chat["id"]),
            sender_id=sender_id,
            data=data,
            sender_name=sender_name,
            callback_id=callback.get("id"),
        )

    message = update.get("message")
    if message:
        text = message.get("text")
        chat = message.get("chat") or {}
        if not text or chat.get("id") is None:
            return None
        sender_id, sender_name = _sender_fields(message.get("from"))
        return TextMessage(
            chat_id=str(chat["id"]),
            sender_id=sender_id,
            text=text,
            sender_name=sender_name,
        )

    return None
