"""Command handler framework for paybot.

Provides the Command ABC, the immutable CommandContext and its
ContextBuilder, the CommandRegistry, and the built-in commands.
"""

from .base import AllowAllAuthorizer, Authorizer, Command, CommandContext, ContextBuilder
from .help import HelpCommand
from .query import QueryCommand
from .registry import CommandRegistry

__all__ = [
    "AllowAllAuthorizer",
    "Authorizer",
    "Command",
    "CommandContext",
    "CommandRegistry",
    "ContextBuilder",
    "HelpCommand",
    "QueryCommand",
]
