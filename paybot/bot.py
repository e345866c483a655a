"""Telegram bot implementation for paybot.

Long-polls the Telegram Bot API for updates, converts each one into an
inbound event, hands it to the Dispatcher and delivers the reply.
Owns the lifecycle of the HTTP session and the payment API client.

Key classes:
    TelegramBot: Transport loop, reply delivery and callback
        acknowledgement.

Key functions:
    build_dispatcher: Explicit construction of the registry, commands
        and dispatcher from configuration.
"""

import asyncio
import dataclasses
from typing import Any, Dict, List, Optional, Set

import aiohttp
import structlog

from .commands import CommandRegistry, ContextBuilder, HelpCommand, QueryCommand
from .config import Config, get_config
from .dispatcher import Dispatcher
from .events import CallbackEvent, TextMessage, normalize, parse_update
from .exceptions import TelegramApiError
from .query_service import PaymentQueryService
from .security import check_rate_limit, sanitize_input
from .users import UserDirectory

logger = structlog.get_logger("paybot.bot")

MAX_MESSAGE_LENGTH = 4096
RATE_LIMITED_REPLY = "Rate limited. Please wait before sending more commands."


def log_task_exception(task: asyncio.Task):
    """Log exceptions from fire-and-forget tasks instead of silently swallowing them."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error("update_task_failed", error=str(exc), exc_type=type(exc).__name__)


def build_dispatcher(config: Config, query_service) -> Dispatcher:
    """Wire users, context builder, commands and dispatcher together."""
    users = UserDirectory.from_settings(
        config.users,
        require_registration=config.require_registration,
        default_api_key=config.default_api_key,
    )
    builder = ContextBuilder(
        authorizer=users,
        marker=config.command_marker,
        delimiter=config.callback_delimiter,
    )
    registry = CommandRegistry(builder)
    registry.register(QueryCommand(query_service))
    registry.register(HelpCommand(registry))
    logger.info(
        "commands_registered",
        commands=[c.name for c in registry.commands],
        users=len(users),
    )
    unknown_reply = (
        config.unknown_command_message if config.reply_on_unknown_command else None
    )
    return Dispatcher(registry, unknown_command_reply=unknown_reply)


class TelegramBot:
    """Telegram long-polling transport around the Dispatcher.

    Updates are processed concurrently, bounded by
    ``max_concurrent_updates``. A failing update is logged and never
    stops the polling loop.

    Args:
        config: Config instance. Defaults to the global config.
        dispatcher: Prebuilt dispatcher. Built from config when omitted.
        query_service: Payment API client. Built from config when omitted.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        dispatcher: Optional[Dispatcher] = None,
        query_service: Optional[PaymentQueryService] = None,
    ):
        self.config = config or get_config()
        self.query_service = query_service or PaymentQueryService(
            self.config.payment_api_base_url,
            timeout=self.config.payment_api_timeout,
        )
        self.dispatcher = dispatcher or build_dispatcher(self.config, self.query_service)

        self.session: Optional[aiohttp.ClientSession] = None
        self.running = False
        self.username: Optional[str] = None
        self._offset: Optional[int] = None
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_updates)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def _base_url(self) -> str:
        return f"{self.config.telegram_api_url}/bot{self.config.telegram_bot_token}"

    async def start(self):
        """Open the HTTP session and verify the bot token with getMe."""
        self.session = aiohttp.ClientSession()
        self.running = True
        try:
            me = await self._api_call("getMe")
            self.username = me.get("username") if isinstance(me, dict) else None
            configured = self.config.telegram_bot_username
            if configured and self.username and configured != self.username:
                logger.warning(
                    "bot_username_mismatch",
                    configured=configured,
                    actual=self.username,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError, TelegramApiError) as e:
            logger.warning("get_me_failed", error=str(e))
        logger.info("bot_started", username=self.username)

    async def stop(self):
        """Cancel in-flight updates and close HTTP sessions."""
        if not self.running:
            return
        self.running = False
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.query_service.close()
        if self.session:
            await self.session.close()
        logger.info("bot_stopped")

    async def _api_call(
        self,
        method: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: float = 10,
    ) -> Any:
        """POST a Bot API method and return its ``result``.

        Raises:
            TelegramApiError: The API answered with ``ok: false``.
        """
        url = f"{self._base_url}/{method}"
        async with self.session.post(
            url,
            json=payload or {},
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as resp:
            data = await resp.json(content_type=None)
        if not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else None
            raise TelegramApiError(
                description or "Telegram API request failed",
                method=method,
                status=resp.status,
            )
        return data.get("result")

    async def send_message(self, chat_id: str, text: str):
        """Send a text reply. Failures are logged, not raised."""
        if len(text) > MAX_MESSAGE_LENGTH:
            text = text[: MAX_MESSAGE_LENGTH - 3] + "..."
        try:
            await self._api_call("sendMessage", {"chat_id": chat_id, "text": text})
        except (aiohttp.ClientError, asyncio.TimeoutError, TelegramApiError) as e:
            logger.error("send_error", chat_id=chat_id, error=str(e))

    async def answer_callback(self, callback_id: str):
        """Acknowledge a button press so the client stops its spinner."""
        try:
            await self._api_call("answerCallbackQuery", {"callback_query_id": callback_id})
        except (aiohttp.ClientError, asyncio.TimeoutError, TelegramApiError) as e:
            logger.debug("answer_callback_failed", error=str(e))

    async def handle_update(self, update: Dict[str, Any]):
        """Process a single raw Telegram update end to end.

        Only events that normalize to a command or callback count
        against the sender's rate limit. Ordinary chat is dropped here.
        """
        event = parse_update(update)
        if event is None:
            callback_id = (update.get("callback_query") or {}).get("id")
            if callback_id:
                # Inline-mode presses carry no chat to reply to.
                await self.answer_callback(callback_id)
            logger.debug("update_skipped", update_id=update.get("update_id"))
            return

        if isinstance(event, CallbackEvent) and event.callback_id:
            await self.answer_callback(event.callback_id)

        if isinstance(event, TextMessage):
            text = sanitize_input(event.text.strip())
            if not text:
                return
            event = dataclasses.replace(event, text=text)

        builder = self.dispatcher.registry.context_builder
        if normalize(event, builder.marker, builder.delimiter) is None:
            logger.debug("update_not_a_command", update_id=update.get("update_id"))
            return

        if event.sender_id and not check_rate_limit(event.sender_id):
            await self.send_message(event.chat_id, RATE_LIMITED_REPLY)
            return

        result = await self.dispatcher.dispatch(event)
        logger.info(
            "update_dispatched",
            update_id=update.get("update_id"),
            outcome=result.outcome.value,
            has_reply=result.reply is not None,
        )
        if result.reply:
            await self.send_message(result.chat_id or event.chat_id, result.reply)

    async def _process_update(self, update: Dict[str, Any]):
        async with self._semaphore:
            await self.handle_update(update)

    def _schedule(self, update: Dict[str, Any]):
        task = asyncio.create_task(self._process_update(update))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(log_task_exception)

    async def _get_updates(self) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "timeout": self.config.poll_timeout,
            "allowed_updates": ["message", "callback_query"],
        }
        if self._offset is not None:
            payload["offset"] = self._offset
        result = await self._api_call(
            "getUpdates", payload, timeout=self.config.poll_timeout + 10
        )
        return result if isinstance(result, list) else []

    async def poll_updates(self):
        """Long-poll getUpdates until stopped, scheduling each update."""
        backoff = 1
        MAX_BACKOFF = 300

        while self.running:
            try:
                updates = await self._get_updates()
                backoff = 1
                for update in updates:
                    update_id = update.get("update_id")
                    if isinstance(update_id, int):
                        self._offset = update_id + 1
                    self._schedule(update)
            except asyncio.CancelledError:
                break
            except (aiohttp.ClientError, asyncio.TimeoutError, TelegramApiError) as e:
                logger.warning("poll_error", error=str(e), retry_delay=backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)
            except Exception as e:
                logger.error("poll_exception", error=str(e), exc_info=True)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)

    async def run(self):
        """Main run loop: start, poll updates, stop on exit."""
        await self.start()

        try:
            await self.poll_updates()
        finally:
            await self.stop()
