"""Configuration management for paybot.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a Config object. Property getters provide safe access with
defaults for the Telegram transport, the payment API client, the user
directory, command parsing and logging.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
from pathlib import Path
from typing import List, Optional

import structlog
import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = structlog.get_logger("paybot.bot")


class Config:
    """Central configuration manager for paybot.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)

        env_file = self.config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r") as f:
                return yaml.safe_load(f) or {}
        return {}

    def _section(self, name: str) -> dict:
        section = self.settings.get(name, {})
        return section if isinstance(section, dict) else {}

    def validate(self):
        """Validate critical settings at startup.

        Logs problems that leave the bot degraded; raises only when the
        bot cannot talk to Telegram at all.

        Raises:
            ConfigurationError: No Telegram bot token configured.
        """
        if not self.telegram_bot_token:
            raise ConfigurationError(
                "Telegram bot token is not configured",
                setting_name="telegram.token",
            )
        if not self.payment_api_base_url:
            logger.warning("no_payment_api_url", msg="/query will fail")
        if self.require_registration and not self.users:
            logger.warning("no_registered_users", msg="Bot will refuse all commands")
        if not self.require_registration and not self.default_api_key:
            logger.warning("no_default_api_key", msg="Unregistered users have no credential")
        timeout = self._section("payment_api").get("timeout")
        if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
            logger.error(
                "config_invalid_value",
                key="payment_api.timeout",
                value=timeout,
                valid="> 0",
            )

    # --- Telegram ---

    @property
    def telegram_bot_token(self) -> str:
        """Bot token. Env var TELEGRAM_BOT_TOKEN takes precedence."""
        return os.environ.get("TELEGRAM_BOT_TOKEN") or self._section("telegram").get("token", "")

    @property
    def telegram_bot_username(self) -> str:
        return self._section("telegram").get("username", "")

    @property
    def telegram_api_url(self) -> str:
        return self._section("telegram").get("api_url", "https://api.telegram.org")

    @property
    def poll_timeout(self) -> int:
        """Long-poll timeout for getUpdates in seconds (default 25)."""
        return self._section("telegram").get("poll_timeout", 25)

    @property
    def max_concurrent_updates(self) -> int:
        """Updates processed at once (default 4)."""
        value = self._section("telegram").get("max_concurrent_updates", 4)
        return value if isinstance(value, int) and value > 0 else 4

    # --- Payment API ---

    @property
    def payment_api_base_url(self) -> str:
        """Payment API root. Env var PAYMENT_API_BASE_URL takes precedence."""
        return os.environ.get("PAYMENT_API_BASE_URL") or self._section("payment_api").get("base_url", "")

    @property
    def payment_api_timeout(self) -> float:
        """Per-request timeout in seconds (default 5)."""
        value = self._section("payment_api").get("timeout", 5)
        return float(value) if isinstance(value, (int, float)) and value > 0 else 5.0

    @property
    def default_api_key(self) -> str:
        """Merchant key for actors without a user record (env PAYMENT_API_KEY)."""
        return os.environ.get("PAYMENT_API_KEY") or self._section("payment_api").get("default_api_key", "")

    # --- Users ---

    @property
    def require_registration(self) -> bool:
        """Only registered, enabled users may run commands (default True)."""
        return bool(self.settings.get("require_registration", True))

    @property
    def users(self) -> List[dict]:
        users = self.settings.get("users", [])
        if not isinstance(users, list):
            logger.error("users_invalid_type", type=type(users).__name__)
            return []
        return users

    # --- Commands ---

    @property
    def command_marker(self) -> str:
        return self._section("commands").get("marker", "/")

    @property
    def callback_delimiter(self) -> str:
        return self._section("commands").get("callback_delimiter", "_")

    @property
    def reply_on_unknown_command(self) -> bool:
        """Answer unregistered commands instead of ignoring them (default False)."""
        return bool(self._section("commands").get("reply_on_unknown", False))

    @property
    def unknown_command_message(self) -> str:
        return self._section("commands").get(
            "unknown_message",
            "Unknown command. Use /help to see available commands.",
        )

    # --- Logging ---

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        return self._section("logging").get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"query": "DEBUG"}."""
        return self._section("logging").get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        return self._section("logging").get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        return self._section("logging").get("backup_count", 5)


_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
