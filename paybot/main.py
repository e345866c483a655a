"""``paybot`` console script.

Loads and validates the configuration, starts the Telegram transport
and stops it on SIGTERM or SIGINT.
"""

import asyncio
import signal
import sys

import structlog

from . import __version__
from .exceptions import ConfigurationError
from .logging_config import setup_logging

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)
EXIT_BAD_CONFIG = 2


def load_config():
    """Return the validated global Config, exiting on a fatal setting."""
    from .config import get_config

    logger = structlog.get_logger("paybot")
    config = get_config()
    try:
        config.validate()
    except ConfigurationError as e:
        logger.error("config_invalid", error=str(e), setting=e.setting_name)
        raise SystemExit(EXIT_BAD_CONFIG)
    return config


async def serve(bot, stop: asyncio.Event):
    """Run ``bot`` until ``stop`` is set, then shut it down."""
    bot_task = asyncio.create_task(bot.run())
    stop_task = asyncio.create_task(stop.wait())
    try:
        done, _ = await asyncio.wait(
            {bot_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if bot_task in done:
            bot_task.result()
    finally:
        for task in (bot_task, stop_task):
            task.cancel()
        await asyncio.gather(bot_task, stop_task, return_exceptions=True)
        await bot.stop()


async def main():
    setup_logging()
    logger = structlog.get_logger("paybot")
    logger.info("paybot_starting", version=__version__)

    config = load_config()
    setup_logging(config)

    from .bot import TelegramBot

    bot = TelegramBot(config)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def on_signal(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        stop.set()

    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, on_signal, sig)

    await serve(bot, stop)
    logger.info("paybot_stopped")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except SystemExit as e:
        sys.exit(e.code)


if __name__ == "__main__":
    run()
