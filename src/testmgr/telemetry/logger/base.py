# src/testmgr/telemetry/logger/base.py

import logging
import sys

import structlog
from structlog.typing import FilteringBoundLogger

from testmgr.telemetry.logger.processors import (
    add_emoji_processor,
    remove_extra_keys_processor,
)

BASE_LOGGER_NAME = "testmgr"

# watchdog and asyncio log every inotify buffer event and selector choice at DEBUG.
NOISY_LIBRARY_LOGGERS = ("watchdog", "asyncio")


def _console_renderer(json_logs: bool, headless_mode: bool) -> structlog.types.Processor:
    if json_logs:
        return structlog.processors.JSONRenderer(sort_keys=True)
    # Watch mode keeps colours on even when stderr is redirected to a pager or tee.
    return structlog.dev.ConsoleRenderer(colors=headless_mode or sys.stderr.isatty())


def _reset_root_logger(level: int) -> logging.Logger:
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)
    return root_logger


def _quiet_libraries(level: int) -> None:
    library_level = max(level, logging.INFO)
    for name in NOISY_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def _json_file_handler(log_file: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=structlog.processors.JSONRenderer(sort_keys=True))
    )
    handler.setLevel(level)
    return handler


def setup_logging(
    level: int = logging.INFO,
    json_logs: bool = False,
    log_file: str | None = None,
    headless_mode: bool = False,
) -> None:
    """
    Routes structlog through the stdlib root logger.

    The console stream goes to stderr so rich command output on stdout stays
    clean. A log file, when given, always receives JSON lines.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_emoji_processor,
            remove_extra_keys_processor,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = _reset_root_logger(level)
    _quiet_libraries(level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=_console_renderer(json_logs, headless_mode))
    )
    root_logger.addHandler(console_handler)

    slog = structlog.get_logger(BASE_LOGGER_NAME)
    if log_file:
        try:
            root_logger.addHandler(_json_file_handler(log_file, level))
        except OSError as e:
            slog.error("Cannot open log file, logging to console only", log_file=log_file, error=str(e))
        else:
            slog.info("File logging enabled", log_file=log_file)

    slog.debug(
        "Logging configured",
        log_level=logging.getLevelName(level),
        json_console_format=json_logs,
        headless=headless_mode,
        log_file=log_file or "None",
    )


StructLogger = FilteringBoundLogger

# 🔼⚙️
