"""/query command: order, channel and daily-summary lookups."""

from __future__ import annotations

from typing import Optional

import structlog

from ..exceptions import QueryServiceError
from .base import Command, CommandContext

logger = structlog.get_logger("paybot.query")

QUERY_ORDER = "order"
QUERY_CHANNEL = "channel"
QUERY_SUMMARY = "summary"
QUERY_KINDS = frozenset({QUERY_ORDER, QUERY_CHANNEL, QUERY_SUMMARY})

FAILURE_REPLY = "Query failed, please try again later."
NO_CREDENTIAL_REPLY = (
    "No merchant API key is linked to your account. "
    "Ask an administrator to register you."
)
EMPTY_RESULT_REPLY = "The payment service returned no data."


class QueryCommand(Command):
    """Queries payment information through the payment API.

    Args:
        query_service: Object exposing query_order_status,
            query_channel_status and query_daily_summary coroutines.
    """

    name = "/query"
    description = (
        "Query payment information. Usage:\n"
        "/query order <ORDER_ID> - order status\n"
        "/query channel now - payment channel status\n"
        "/query summary today - daily transaction summary"
    )
    callback_prefixes = ("query",)

    def __init__(self, query_service):
        self.query_service = query_service

    async def execute(self, context: CommandContext) -> Optional[str]:
        args = context.arguments
        if len(args) < 2:
            return self.description

        query_type, query_value = args[0], args[1]
        if query_type not in QUERY_KINDS:
            return f"Unknown query type: {query_type}\n\n{self.description}"

        api_key = context.credential
        if not api_key:
            logger.warning("query_no_credential", actor=context.actor.id)
            return NO_CREDENTIAL_REPLY

        logger.info("query_requested", kind=query_type, actor=context.actor.id)
        try:
            if query_type == QUERY_ORDER:
                result = await self.query_service.query_order_status(api_key, query_value)
            elif query_type == QUERY_CHANNEL:
                result = await self.query_service.query_channel_status(api_key)
            else:
                result = await self.query_service.query_daily_summary(api_key)
        except QueryServiceError as e:
            logger.warning("query_command_failed", kind=query_type, error=str(e))
            return FAILURE_REPLY

        return self._format_result(result)

    def _format_result(self, result: Optional[str]) -> str:
        text = (result or "").strip()
        return text if text else EMPTY_RESULT_REPLY
