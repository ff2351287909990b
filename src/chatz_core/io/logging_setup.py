"""Logging for the chatz-core command line.

Every module logs through `logging.getLogger(__name__)`; configure() hangs a
stderr handler and a size-capped log file off the shared `chatz_core` logger.
Environment knobs: CHATZ_LOG_LEVEL, CHATZ_LOG_FILE, CHATZ_LOG_DIR.

// [LAW:single-enforcer] Only this module attaches handlers to the chatz_core logger.
"""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path


ROOT_LOGGER_NAME = "chatz_core"
DEFAULT_LEVEL = logging.WARNING

_CONSOLE_FORMAT = "[%(name)s] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_MAX_LOG_BYTES = 5 * 1024 * 1024
_LOG_BACKUPS = 3

_UNSAFE_RUN_CHARS_RE = re.compile(r"[^\w-]+")


@dataclass(frozen=True)
class LoggingRuntime:
    level_name: str
    level: int
    file_path: str


_RUNTIME: LoggingRuntime | None = None


def _level_from_env() -> int:
    # getLevelName maps a known name to its number and anything else to a str
    level = logging.getLevelName(os.environ.get("CHATZ_LOG_LEVEL", "").strip().upper())
    return level if isinstance(level, int) else DEFAULT_LEVEL


def _log_file_for(run_name: str) -> str:
    explicit = os.environ.get("CHATZ_LOG_FILE")
    if explicit:
        return explicit
    log_dir = os.environ.get("CHATZ_LOG_DIR") or os.path.expanduser("~/.local/share/chatz-core/logs")
    stem = _UNSAFE_RUN_CHARS_RE.sub("-", run_name).strip("-_") or "run"
    stamp = time.strftime("%Y%m%d-%H%M%S", time.gmtime())
    return str(Path(log_dir) / f"{stem}-{stamp}-{os.getpid()}.log")


def configure(run_name: str = "chatz") -> LoggingRuntime:
    """Attach the stderr and log-file handlers once; later calls return the first runtime."""
    global _RUNTIME
    if _RUNTIME is not None:
        return _RUNTIME

    level = _level_from_env()
    runtime = LoggingRuntime(logging.getLevelName(level), level, _log_file_for(run_name))
    Path(runtime.file_path).parent.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    log_file = RotatingFileHandler(
        runtime.file_path, maxBytes=_MAX_LOG_BYTES, backupCount=_LOG_BACKUPS, encoding="utf-8"
    )
    log_file.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.handlers[:] = [console, log_file]
    logger.setLevel(level)
    logger.propagate = False

    _RUNTIME = runtime
    return runtime


def get_runtime() -> LoggingRuntime | None:
    return _RUNTIME


def reset() -> None:
    """Close and detach the handlers so configure() can run again."""
    global _RUNTIME
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
    _RUNTIME = None
