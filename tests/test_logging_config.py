"""Tests for logging setup and secret scrubbing."""

import logging
from unittest.mock import MagicMock

import pytest
import structlog

from paybot.logging_config import SUBSYSTEMS, sanitize_secrets, setup_logging


def test_sanitize_redacts_bot_token():
    event = {"event": "x", "url": "https://api.telegram.org/bot123456789:AAHdqTcvCH1vGWJxfSeofSAs0K5PALDsawq/getMe"}
    result = sanitize_secrets(None, "info", event)
    assert "AAHdqTcv" not in result["url"]
    assert "***REDACTED***" in result["url"]


def test_sanitize_redacts_api_key_param():
    event = {"event": "x", "url": "https://pay.example.com/api/order/status?orderId=1&apiKey=s3cret"}
    result = sanitize_secrets(None, "info", event)
    assert "s3cret" not in result["url"]
    assert "orderId=1" in result["url"]


def test_sanitize_walks_lists_and_dicts():
    event = {
        "event": "x",
        "items": ["apiKey=abc", 5],
        "extra": {"auth": "Bearer abcdefghijklmnopqrstuvwxyz"},
    }
    result = sanitize_secrets(None, "info", event)
    assert result["items"][0] == "apiKey=***REDACTED***"
    assert result["items"][1] == 5
    assert "abcdefghij" not in result["extra"]["auth"]


def test_sanitize_leaves_plain_values():
    event = {"event": "query_completed", "path": "/api/channel/status", "length": 12}
    assert sanitize_secrets(None, "info", dict(event)) == event


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield
    for name in ("paybot",) + tuple(f"paybot.{s}" for s in SUBSYSTEMS):
        lg = logging.getLogger(name)
        for handler in list(lg.handlers):
            handler.close()
        lg.handlers.clear()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    structlog.reset_defaults()


def test_setup_logging_creates_subsystem_files(tmp_path, restore_logging):
    config = MagicMock()
    config.log_dir = tmp_path / "logs"
    config.logging_level = "info"
    config.logging_subsystem_levels = {"query": "DEBUG"}
    config.logging_max_file_size_mb = 1
    config.logging_backup_count = 2

    setup_logging(config)

    assert (tmp_path / "logs" / "paybot.log").exists()
    for subsystem in SUBSYSTEMS:
        assert (tmp_path / "logs" / f"{subsystem}.log").exists()
    assert logging.getLogger("paybot.query").level == logging.DEBUG
    assert logging.getLogger("paybot.bot").level == logging.INFO


def test_unwritable_log_dir_keeps_console_only(tmp_path, restore_logging):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    config = MagicMock()
    config.log_dir = blocker / "logs"
    config.logging_level = "warning"
    config.logging_subsystem_levels = {}
    config.logging_max_file_size_mb = 1
    config.logging_backup_count = 2

    setup_logging(config)

    assert logging.getLogger("paybot").handlers == []
    assert logging.getLogger("paybot.bot").handlers == []
    console = [h for h in logging.getLogger().handlers if type(h) is logging.StreamHandler]
    assert [h.level for h in console] == [logging.WARNING]
