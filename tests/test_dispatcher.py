"""Tests for the Dispatcher boundary."""

import asyncio

import pytest
from structlog.testing import capture_logs

from doubles import FailingCommand, RecordingCommand
from paybot.commands import CommandRegistry
from paybot.dispatcher import DispatchOutcome, Dispatcher
from paybot.events import CallbackEvent, TextMessage


def _make_dispatcher(*commands, unknown_command_reply=None):
    registry = CommandRegistry(commands=commands)
    return Dispatcher(registry, unknown_command_reply=unknown_command_reply)


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["hello", "query order 1", " /query", ""])
async def test_plain_text_is_ignored(text):
    cmd = RecordingCommand("/query")
    dispatcher = _make_dispatcher(cmd)

    result = await dispatcher.dispatch(TextMessage(chat_id="9", sender_id="42", text=text))

    assert result.outcome == DispatchOutcome.IGNORED
    assert result.reply is None
    assert cmd.contexts == []


@pytest.mark.asyncio
async def test_registered_verb_is_handled():
    cmd = RecordingCommand("/query", reply="status: paid")
    dispatcher = _make_dispatcher(cmd)

    result = await dispatcher.dispatch(
        TextMessage(chat_id="9", sender_id="42", text="/query order X1")
    )

    assert result.handled
    assert result.reply == "status: paid"
    assert result.chat_id == "9"
    assert cmd.contexts[0].arguments == ("order", "X1")


@pytest.mark.asyncio
async def test_callback_routes_by_prefix():
    cmd = RecordingCommand("/orders", callback_prefixes=("order",))
    dispatcher = _make_dispatcher(cmd)

    result = await dispatcher.dispatch(
        CallbackEvent(chat_id="9", sender_id="42", data="order_12345", callback_id="c1")
    )

    assert result.outcome == DispatchOutcome.HANDLED
    assert len(cmd.contexts) == 1
    assert cmd.contexts[0].arguments == ("12345",)


@pytest.mark.asyncio
async def test_callback_prefix_does_not_match_verbs():
    cmd = RecordingCommand("order")
    dispatcher = _make_dispatcher(cmd)

    result = await dispatcher.dispatch(
        CallbackEvent(chat_id="9", sender_id="42", data="order_12345")
    )

    assert result.outcome == DispatchOutcome.IGNORED
    assert cmd.contexts == []


@pytest.mark.asyncio
async def test_unknown_command_silent_by_default():
    dispatcher = _make_dispatcher(RecordingCommand("/query"))

    result = await dispatcher.dispatch(TextMessage(chat_id="9", sender_id="42", text="/nope"))

    assert result.outcome == DispatchOutcome.IGNORED
    assert result.reply is None


@pytest.mark.asyncio
async def test_unknown_command_reply_when_configured():
    dispatcher = _make_dispatcher(unknown_command_reply="Unknown command.")

    result = await dispatcher.dispatch(TextMessage(chat_id="9", sender_id="42", text="/nope"))

    assert result.outcome == DispatchOutcome.HANDLED
    assert result.reply == "Unknown command."
    assert result.chat_id == "9"


@pytest.mark.asyncio
async def test_handler_failure_is_logged_and_absorbed():
    after = RecordingCommand("/query", reply="still alive")
    dispatcher = _make_dispatcher(FailingCommand(), after)

    with capture_logs() as logs:
        result = await dispatcher.dispatch(
            TextMessage(chat_id="9", sender_id="42", text="/boom now")
        )

    assert result.outcome == DispatchOutcome.IGNORED
    assert result.reply is None
    failures = [entry for entry in logs if entry["event"] == "command_failed"]
    assert len(failures) == 1
    assert failures[0]["log_level"] == "error"
    assert failures[0]["command"] == "/boom"
    assert failures[0]["chat_id"] == "9"
    assert failures[0]["exc_type"] == "RuntimeError"

    # The next event is still processed
    result = await dispatcher.dispatch(
        TextMessage(chat_id="9", sender_id="42", text="/query summary today")
    )
    assert result.reply == "still alive"


@pytest.mark.asyncio
async def test_missing_sender_is_absorbed():
    cmd = RecordingCommand("/query")
    dispatcher = _make_dispatcher(cmd)

    result = await dispatcher.dispatch(TextMessage(chat_id="9", sender_id=None, text="/query"))

    assert result.outcome == DispatchOutcome.IGNORED
    assert cmd.contexts == []


@pytest.mark.asyncio
async def test_unrecognized_event_is_ignored():
    dispatcher = _make_dispatcher(RecordingCommand("/query"))
    result = await dispatcher.dispatch(object())
    assert result.outcome == DispatchOutcome.IGNORED


@pytest.mark.asyncio
async def test_cancellation_propagates():
    class SlowCommand(RecordingCommand):
        async def execute(self, context):
            await asyncio.sleep(10)

    dispatcher = _make_dispatcher(SlowCommand("/slow"))
    task = asyncio.create_task(
        dispatcher.dispatch(TextMessage(chat_id="9", sender_id="42", text="/slow"))
    )
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
