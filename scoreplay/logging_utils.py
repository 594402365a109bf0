"""Logging setup for scoreplay.

The console shows warnings (skipped notes, hook failures) unless
``SCOREPLAY_DEBUG`` is set; the log file under ``SCOREPLAY_LOG_DIR`` records
everything. The cursor loop and the device stream log per frame, so their
loggers stay at INFO unless debugging.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

_LOGGER = logging.getLogger("scoreplay.logging")
_ROOT_LOGGER = "scoreplay"
_CRASH_LOGGER = "scoreplay.crash"
_FRAME_RATE_LOGGERS = ("scoreplay.cursor", "scoreplay.context")
_LOG_FILE = "scoreplay.log"
_CONSOLE_FORMAT = "%(level_prefix)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"
_FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LEVEL_PREFIXES: Mapping[int, str] = MappingProxyType(
    {
        logging.DEBUG: "🐛",
        logging.INFO: "🎼",
        logging.WARNING: "⚠️",
        logging.ERROR: "❌",
        logging.CRITICAL: "💥",
    }
)

_configured_path: Path | None = None
_configured = False


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.level_prefix = LEVEL_PREFIXES.get(record.levelno, "")
        return super().format(record)


def debug_enabled() -> bool:
    return bool(os.environ.get("SCOREPLAY_DEBUG"))


def get_log_dir() -> Path:
    configured = os.environ.get("SCOREPLAY_LOG_DIR")
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".cache" / "scoreplay" / "logs"


def get_log_path() -> Path:
    return get_log_dir() / _LOG_FILE


def _file_handler(path: Path) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATE_FORMAT))
    return handler


def _console_handler(debug: bool) -> logging.Handler:
    handler = logging.StreamHandler(stream=sys.__stderr__)
    handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    handler.setFormatter(_ConsoleFormatter(_CONSOLE_FORMAT))
    return handler


def configure_logging(*, force: bool = False) -> Path | None:
    """Attach console and file handlers to the ``scoreplay`` logger.

    Runs once per process unless `force` is set. Returns the log file path, or
    None when the file could not be opened (console logging still works).
    A console handler is only added when the host application has not set up
    root logging itself.
    """

    global _configured, _configured_path
    if _configured and not force:
        return _configured_path

    debug = debug_enabled()
    logger = logging.getLogger(_ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if force or not logging.getLogger().handlers:
        logger.addHandler(_console_handler(debug))
    for name in _FRAME_RATE_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.INFO)

    path: Path | None = get_log_path()
    try:
        logger.addHandler(_file_handler(path))
    except OSError as exc:
        _LOGGER.warning("File logging disabled (%s): %s", path, exc)
        path = None

    logger.propagate = True
    _configured = True
    _configured_path = path
    return path


def log_exception(context: str, exc: BaseException) -> Path | None:
    """Append `exc` and its traceback to the log file without echoing to the console."""

    path = get_log_path()
    crash = logging.getLogger(_CRASH_LOGGER)
    crash.propagate = False
    try:
        handler = _file_handler(path)
    except OSError as log_exc:
        _LOGGER.warning("Failed to write log file: %s", log_exc)
        return None
    crash.addHandler(handler)
    try:
        crash.error(
            "%s failed: %s: %s",
            context,
            type(exc).__name__,
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
    finally:
        crash.removeHandler(handler)
        handler.close()
    return path
