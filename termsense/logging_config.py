"""Logging configuration for termsense.

Loggers are plain ``logging`` loggers. When ``TERMSENSE_DEBUG_LOG`` is set,
each logger also writes to ~/.termsense/logs/termsense.log (or to the path
given in the variable, if it is not just a flag value).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

LOG_DIR = Path.home() / ".termsense" / "logs"
LOG_FILE = LOG_DIR / "termsense.log"

DEBUG_LOG_ENV = "TERMSENSE_DEBUG_LOG"

_FLAG_VALUES = {"1", "true", "yes", "on"}


def _debug_log_path() -> Path | None:
    value = os.environ.get(DEBUG_LOG_ENV, "").strip()
    if not value or value.lower() in {"0", "false", "no", "off"}:
        return None
    if value.lower() in _FLAG_VALUES:
        return LOG_FILE
    return Path(value).expanduser()


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger that additionally writes to the debug log file when enabled
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        log_path = _debug_log_path()
        if log_path is not None:
            logger.setLevel(logging.DEBUG)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(logging.DEBUG)
            file_formatter = logging.Formatter(
                "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)

    return logger


class TermSenseError(Exception):
    """Base exception for termsense errors."""

    pass


class SessionError(TermSenseError):
    """Error related to session lifecycle (duplicate or unknown ids)."""

    pass


class AssistantDefinitionError(TermSenseError):
    """An assistant definition is structurally invalid."""

    pass
