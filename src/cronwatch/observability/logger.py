"""
observability/logger.py — cronwatch Structured Logger

Sets up structlog with:
  - JSON output to a rotating log file
  - Human-readable console output (TTY) or JSON (pipe / service manager)
  - Consistent fields on every log line: timestamp, level, logger, event
  - HTTP transport loggers held at WARNING so every ping does not produce
    connection-pool chatter

Usage:
    from cronwatch.observability.logger import get_logger, setup_logging
    setup_logging(level="INFO", log_dir="./data/logs")
    log = get_logger(__name__)
    log.warning("task.failed", task="ping @ @every 1m <[...]>", error="...")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

# ─────────────────────────────────────────────────────────────────────────────
# Third-party loggers that log every request at INFO/DEBUG.
# ─────────────────────────────────────────────────────────────────────────────
_QUIET_LOGGERS = [
    "httpx",
    "httpcore",
    "asyncio",
]


def _quiet_noisy_loggers() -> None:
    """Raise chatty transport loggers to WARNING; real failures still get through."""
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "./data/logs",
    json_format: Optional[bool] = None,  # None = auto-detect from tty
    console_output: bool = True,
    max_bytes: int = 10 * 1024 * 1024,   # 10 MB
    backup_count: int = 5,
) -> None:
    """
    Configure structlog and stdlib logging. Call once at startup.

    Args:
        level:          Log level string: DEBUG | INFO | WARNING | ERROR | CRITICAL
        log_dir:        Directory for the rotating log file.
        json_format:    True = console emits JSON, False = coloured console,
                        None = pretty on a TTY, JSON when piped (systemd, Docker).
        console_output: Whether to emit logs to stderr at all.
        max_bytes:      Max size of each log file before rotation.
        backup_count:   Number of rotated log files to keep.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        json_format = not sys.stderr.isatty()

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    # ── Handlers ─────────────────────────────────────────────────────────────
    handlers: list[logging.Handler] = []

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_dir / "cronwatch.log",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(numeric_level)
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        handlers.append(console_handler)

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        handlers=handlers,
        force=True,
    )

    _quiet_noisy_loggers()

    # ── structlog ────────────────────────────────────────────────────────────
    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    # File is always JSON regardless of console format
    file_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=shared_processors,
    )

    for handler in handlers:
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            handler.setFormatter(file_formatter)
        else:
            handler.setFormatter(formatter)


def get_logger(name: str = "cronwatch", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a bound logger with optional initial context values.

    Example:
        log = get_logger(__name__, component="executor")
        log.info("task.started", task="exec @ @hourly <['backup.sh']>")
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


def bind_generation(generation: int) -> None:
    """
    Bind the reload generation number to subsequent log lines in this context.

    The reload loop calls this after each successful swap; fires spawned later
    copy the context, so their log lines carry the generation they belong to.
    """
    structlog.contextvars.bind_contextvars(generation=generation)


def clear_context() -> None:
    """Clear bound context vars."""
    structlog.contextvars.clear_contextvars()
