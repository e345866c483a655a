"""paybot: Telegram front end for merchant payment status queries."""

__version__ = "1.0.0"
