"""Tests for configuration loading."""

import pytest
import yaml

from paybot.config import Config
from paybot.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    for name in ("TELEGRAM_BOT_TOKEN", "PAYMENT_API_BASE_URL", "PAYMENT_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def _write_settings(tmp_path, settings):
    (tmp_path / "settings.yaml").write_text(yaml.safe_dump(settings))
    return Config(config_dir=tmp_path)


def test_defaults_without_settings(tmp_path):
    config = Config(config_dir=tmp_path)
    assert config.telegram_api_url == "https://api.telegram.org"
    assert config.payment_api_timeout == 5.0
    assert config.command_marker == "/"
    assert config.callback_delimiter == "_"
    assert config.reply_on_unknown_command is False
    assert config.require_registration is True
    assert config.users == []
    assert config.max_concurrent_updates == 4


def test_values_from_yaml(tmp_path):
    config = _write_settings(tmp_path, {
        "telegram": {"token": "yaml-token", "poll_timeout": 10},
        "payment_api": {"base_url": "https://pay.example.com", "timeout": 2.5},
        "commands": {"reply_on_unknown": True, "unknown_message": "??"},
        "users": [{"telegram_id": 1, "api_key": "k"}],
    })
    assert config.telegram_bot_token == "yaml-token"
    assert config.poll_timeout == 10
    assert config.payment_api_base_url == "https://pay.example.com"
    assert config.payment_api_timeout == 2.5
    assert config.reply_on_unknown_command is True
    assert config.unknown_command_message == "??"
    assert config.users == [{"telegram_id": 1, "api_key": "k"}]


def test_env_overrides_yaml(tmp_path, monkeypatch):
    config = _write_settings(tmp_path, {"telegram": {"token": "yaml-token"}})
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "env-token")
    monkeypatch.setenv("PAYMENT_API_KEY", "env-key")
    assert config.telegram_bot_token == "env-token"
    assert config.default_api_key == "env-key"


def test_invalid_values_fall_back(tmp_path):
    config = _write_settings(tmp_path, {
        "users": "not-a-list",
        "payment_api": {"timeout": -1},
        "telegram": {"max_concurrent_updates": 0},
    })
    assert config.users == []
    assert config.payment_api_timeout == 5.0
    assert config.max_concurrent_updates == 4


def test_validate_requires_token(tmp_path):
    config = Config(config_dir=tmp_path)
    with pytest.raises(ConfigurationError) as excinfo:
        config.validate()
    assert excinfo.value.setting_name == "telegram.token"


def test_validate_passes_with_token(tmp_path):
    config = _write_settings(tmp_path, {"telegram": {"token": "t"}})
    config.validate()
