"""Test doubles shared by the paybot tests."""

from typing import List, Optional

from paybot.commands.base import Command, CommandContext
from paybot.events import Actor


class RecordingCommand(Command):
    """Command that records every context it receives."""

    def __init__(self, name="/test", reply="ok", callback_prefixes=(), requires_authorization=True):
        self.name = name
        self.description = f"{name} - test command"
        self.callback_prefixes = tuple(callback_prefixes)
        self.requires_authorization = requires_authorization
        self.reply = reply
        self.contexts: List[CommandContext] = []

    async def execute(self, context: CommandContext) -> Optional[str]:
        self.contexts.append(context)
        return self.reply


class FailingCommand(Command):
    name = "/boom"
    description = "/boom - always fails"

    async def execute(self, context: CommandContext) -> Optional[str]:
        raise RuntimeError("handler exploded")


class StaticAuthorizer:
    """Authorizer with a fixed allow-list and credential table."""

    def __init__(self, allowed=(), credentials=None):
        self.allowed = set(allowed)
        self.credentials = credentials or {}

    def is_authorized(self, actor: Actor) -> bool:
        return actor.id in self.allowed

    def resolve_credential(self, actor: Actor) -> Optional[str]:
        return self.credentials.get(actor.id)
