"""
Logging configuration for the finance tracker backup engine.

Configures the root logger through dictConfig so it can be called again
(e.g. by the CLI after parsing --verbose) without stacking handlers.

Environment Variables:
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive).
               Anything else means INFO.

Usage:
    from finance_tracker.logger_config import setup_logging
    setup_logging()
    setup_logging(level=logging.DEBUG, log_file="backup.log")
"""

import logging
import logging.config
import os
from typing import Iterable, Optional

# HTTP client libraries log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_log_level() -> int:
    """
    Read the log level from the LOG_LEVEL environment variable.

    Returns:
        Logging level constant, logging.INFO when unset or unknown.
    """
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        return logging.INFO
    return level


def setup_logging(
    level: Optional[int] = None,
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level. If None, taken from LOG_LEVEL (default INFO).
        format_string: Optional custom format string.
        log_file: Optional path for a rotating log file.
        quiet_loggers: Logger names capped at WARNING.
    """
    if level is None:
        level = get_log_level()

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "standard",
            "stream": "ext://sys.stderr",
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "standard",
            "filename": log_file,
            "maxBytes": 5_242_880,  # 5 MB
            "backupCount": 3,
        }

    config: dict = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": format_string or DEFAULT_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": {name: {"level": logging.WARNING} for name in quiet_loggers},
        "root": {
            "level": level,
            "handlers": list(handlers),
        },
    }

    logging.config.dictConfig(config)
