"""structlog setup for paybot.

Every ``paybot.<subsystem>`` logger gets its own rotating file next to
the combined ``paybot.log``. Bot tokens, bearer tokens and ``apiKey=``
query values are scrubbed before anything is rendered.
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict

import structlog

SUBSYSTEMS = ("bot", "dispatch", "query", "security")
LOGGER_PREFIX = "paybot"

DEFAULT_LOG_DIR = Path(__file__).parent.parent / "logs"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5

_REDACTED = "***REDACTED***"
_TOKEN_PATTERNS = (
    # 123456789:AA... as embedded in Bot API URLs
    re.compile(r"\d{6,12}:[A-Za-z0-9_-]{30,}"),
    re.compile(r"Bearer\s+[a-zA-Z0-9_./-]{20,}"),
)
_API_KEY_PARAM = re.compile(r"(apiKey=)[^&\s]+")


def _scrub(value: str) -> str:
    for pattern in _TOKEN_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    return _API_KEY_PARAM.sub(lambda m: m.group(1) + _REDACTED, value)


def _scrub_any(value: Any) -> Any:
    return _scrub(value) if isinstance(value, str) else value


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Processor redacting secrets in string values, one level deep."""
    for key, value in event_dict.items():
        if isinstance(value, (list, tuple)):
            event_dict[key] = type(value)(_scrub_any(v) for v in value)
        elif isinstance(value, dict):
            event_dict[key] = {k: _scrub_any(v) for k, v in value.items()}
        else:
            event_dict[key] = _scrub_any(value)
    return event_dict


def _level(name: Any, default: int) -> int:
    """Map a level name such as ``"debug"`` to its number, else ``default``."""
    value = getattr(logging, str(name or "").upper(), None)
    return value if isinstance(value, int) else default


def _rotating_file(
    path: Path, level: int, max_bytes: int, backup_count: int, formatter
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(config=None) -> None:
    """Route stdlib and structlog output to the console and log files.

    The console handler sits on the root logger. ``paybot.log`` collects
    every ``paybot.*`` record, and each subsystem in ``SUBSYSTEMS`` also
    writes its own file. Records propagate, so a query event lands in
    ``query.log``, ``paybot.log`` and the console.

    Called once with no config at startup so import-time loggers work,
    then again with the loaded Config. Only the second call caches
    loggers.
    """
    if config is not None:
        log_dir = Path(config.log_dir)
        root_level = _level(config.logging_level, logging.INFO)
        subsystem_levels = config.logging_subsystem_levels or {}
        max_bytes = config.logging_max_file_size_mb * 1024 * 1024
        backup_count = config.logging_backup_count
    else:
        log_dir = DEFAULT_LOG_DIR
        root_level = logging.INFO
        subsystem_levels = {}
        max_bytes = DEFAULT_MAX_BYTES
        backup_count = DEFAULT_BACKUP_COUNT

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        dir_error = None
    except OSError as exc:
        dir_error = exc

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(root_level)
    console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    root_logger.addHandler(console)

    file_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )

    targets = [(LOGGER_PREFIX, LOGGER_PREFIX, logging.DEBUG, root_level)]
    for subsystem in SUBSYSTEMS:
        level = _level(subsystem_levels.get(subsystem), root_level)
        targets.append((f"{LOGGER_PREFIX}.{subsystem}", subsystem, level, level))

    for logger_name, file_stem, logger_level, file_level in targets:
        target = logging.getLogger(logger_name)
        target.setLevel(logger_level)
        target.handlers.clear()
        target.propagate = True
        if dir_error is None:
            target.addHandler(
                _rotating_file(
                    log_dir / f"{file_stem}.log",
                    file_level,
                    max_bytes,
                    backup_count,
                    file_formatter,
                )
            )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            sanitize_secrets,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=config is not None,
    )

    if dir_error is not None:
        structlog.get_logger(LOGGER_PREFIX).warning(
            "log_dir_unavailable", log_dir=str(log_dir), error=str(dir_error)
        )
