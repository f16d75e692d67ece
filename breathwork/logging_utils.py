"""Logging setup for Breathwork.

The CLI calls :func:`setup_logging` once, before a session starts. Library
modules only do ``logging.getLogger(__name__)`` and prefix messages with
their subsystem (``[session]``, ``[hold]``, ``[api]``, ``[journal]``).

The engine's phase clock fires about 60 times a second. Its frame summaries
carry an ``[engine.tick]`` prefix and are dropped by every handler installed
here unless ``BREATHWORK_TICK_TRACE`` is set or the perf preset is active.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .platform_paths import get_user_data_dir

DEFAULT_LOG_FILENAME = "breathwork.log"
TICK_TRACE_ENV = "BREATHWORK_TICK_TRACE"
TICK_PREFIX = "[engine.tick]"

_MAX_BYTES = 1_000_000
_BACKUP_COUNT = 3
_ROLE_ATTR = "_breathwork_role"


class LogMode(str, Enum):
    """Verbosity presets selectable with ``--log-mode``."""

    QUIET = "quiet"    # console shows warnings and errors only
    NORMAL = "normal"
    PERF = "perf"      # DEBUG everywhere, frame trace included


_LOG_MODE = LogMode.NORMAL


def set_log_mode(mode: LogMode | str | None) -> LogMode:
    global _LOG_MODE
    try:
        _LOG_MODE = LogMode(mode.lower()) if mode is not None else LogMode.NORMAL
    except ValueError:
        _LOG_MODE = LogMode.NORMAL
    return _LOG_MODE


def get_log_mode() -> LogMode:
    return _LOG_MODE


def tick_trace_enabled() -> bool:
    if _LOG_MODE is LogMode.PERF:
        return True
    return os.environ.get(TICK_TRACE_ENV, "").strip().lower() in {"1", "true", "yes", "on"}


def get_default_log_path() -> Path:
    return get_user_data_dir() / DEFAULT_LOG_FILENAME


class TickTraceFilter(logging.Filter):
    """Drops phase clock frame summaries unless tracing is on."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        return tick_trace_enabled() or TICK_PREFIX not in str(record.msg)


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line, e.g. for collecting logs from practice kiosks."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _level_number(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    *,
    level: str | int = "INFO",
    log_file: Optional[str | Path] = None,
    json_format: bool = False,
    logger_name: Optional[str] = None,
    log_mode: LogMode | str | None = None,
    add_console: bool = True,
) -> logging.Logger:
    """Install a rotating file handler and a console handler.

    Calling again reconfigures: handlers installed by a previous call are
    closed and replaced, handlers added by anyone else are left alone.

    Args:
        level: Threshold name or number (perf mode forces DEBUG)
        log_file: Log path (default: ``breathwork.log`` in the user data dir)
        json_format: Emit JSON lines instead of plain text
        logger_name: Logger to configure (default: root)
        log_mode: Preset; when omitted the current mode is kept
        add_console: Also log to stderr

    Returns:
        The configured logger
    """
    mode = set_log_mode(log_mode) if log_mode is not None else _LOG_MODE
    threshold = logging.DEBUG if mode is LogMode.PERF else _level_number(level)
    console_threshold = max(threshold, logging.WARNING) if mode is LogMode.QUIET else threshold

    logger = logging.getLogger(logger_name)
    logger.setLevel(threshold)
    for old in [h for h in logger.handlers if hasattr(h, _ROLE_ATTR)]:
        logger.removeHandler(old)
        old.close()

    if json_format:
        formatter: logging.Formatter = JsonLineFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")

    def install(handler: logging.Handler, role: str, handler_level: int) -> None:
        handler.setLevel(handler_level)
        handler.setFormatter(formatter)
        handler.addFilter(TickTraceFilter())
        setattr(handler, _ROLE_ATTR, role)
        logger.addHandler(handler)

    path = Path(log_file) if log_file else get_default_log_path()
    file_error: Optional[OSError] = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        install(
            logging.handlers.RotatingFileHandler(
                path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
            ),
            "file",
            threshold,
        )
    except OSError as exc:
        file_error = exc

    if add_console:
        install(logging.StreamHandler(), "console", console_threshold)
    if file_error is not None:
        logger.warning("[logging] File logging disabled for %s: %s", path, file_error)
    return logger


class BurstSampler:
    """Counts repetitive events and releases the total once per window.

    The engine records every phase clock frame and logs one summary line
    when :meth:`record` returns a count. *now* defaults to
    ``time.monotonic``; the engine passes its own clock so sampling follows
    virtual time in tests.
    """

    def __init__(self, interval_s: float = 2.0, now: Optional[Callable[[], float]] = None) -> None:
        self.interval_s = max(0.1, float(interval_s))
        self._now = now or time.monotonic
        self._window_start = self._now()
        self._count = 0

    def record(self, amount: int = 1) -> Optional[int]:
        self._count += max(0, amount)
        if self._now() - self._window_start < self.interval_s:
            return None
        return self.flush()

    def flush(self) -> int:
        total, self._count = self._count, 0
        self._window_start = self._now()
        return total
