"""Inbound traffic guards for paybot.

Per-sender in-memory rate limiting and input sanitization, applied by
the transport before an event reaches the dispatcher.
"""

import time
import unicodedata
from collections import defaultdict

import structlog

logger = structlog.get_logger("paybot.security")

_rate_limit_data: dict = defaultdict(list)
_rate_limit_last_cleanup: float = 0.0
RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMIT_MAX_REQUESTS = 30  # max requests per window
_RATE_LIMIT_CLEANUP_INTERVAL = 300  # Prune stale entries every 5 minutes

MAX_INPUT_LENGTH = 4096

_BIDI_CHARS = frozenset("\u202a\u202b\u202c\u202d\u202e\u2066\u2067\u2068\u2069")


def check_rate_limit(sender_id: str) -> bool:
    """Check if a sender is within rate limits.

    Returns True if within limits, False if rate limited.
    """
    global _rate_limit_last_cleanup
    now = time.time()
    window_start = now - RATE_LIMIT_WINDOW

    _rate_limit_data[sender_id] = [
        ts for ts in _rate_limit_data[sender_id] if ts > window_start
    ]

    # Prune senders with no recent activity
    if now - _rate_limit_last_cleanup > _RATE_LIMIT_CLEANUP_INTERVAL:
        _rate_limit_last_cleanup = now
        stale_keys = [
            key for key, timestamps in _rate_limit_data.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for key in stale_keys:
            del _rate_limit_data[key]

    if len(_rate_limit_data[sender_id]) >= RATE_LIMIT_MAX_REQUESTS:
        logger.warning(
            "rate_limit_exceeded",
            sender=sender_id,
            requests_in_window=len(_rate_limit_data[sender_id]),
        )
        return False

    _rate_limit_data[sender_id].append(now)
    return True


def _reset_rate_limits():
    """Reset rate limit state (for testing)."""
    global _rate_limit_last_cleanup
    _rate_limit_data.clear()
    _rate_limit_last_cleanup = 0.0


def sanitize_input(text: str) -> str:
    """Strip control and bidi override characters and enforce a length limit."""
    text = "".join(
        ch for ch in text
        if ch in ("\n", "\r", "\t") or not unicodedata.category(ch).startswith("C")
    )
    text = "".join(ch for ch in text if ch not in _BIDI_CHARS)
    if len(text) > MAX_INPUT_LENGTH:
        text = text[:MAX_INPUT_LENGTH]
    return text
