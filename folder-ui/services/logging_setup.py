"""Core and access logs for Folder UI.

Two loggers, each with its own size-rotated file in the log directory:
``folderui`` writes core.log and ``folderui.access`` writes access.log.
Nothing in the app depends on logging working; ``core_log`` swallows its
own failures.

Environment (re-read by ``apply_env``)
- FOLDERUI_LOG_DIR: overrides the log directory
- FOLDERUI_LOG_CORE_ENABLE: 0/1 (default: 1)
- FOLDERUI_LOG_CORE_LEVEL: ERROR|WARNING|INFO|DEBUG (default: INFO)
- FOLDERUI_LOG_ACCESS_ENABLE: 0/1 (default: 0)
- FOLDERUI_LOG_STDERR: 0/1, echo core lines to stderr (default: 0)
- FOLDERUI_LOG_ROTATE_MAX_MB: size of one file before it rotates (default: 2)
- FOLDERUI_LOG_ROTATE_BACKUPS: rotated files kept per log (default: 3)
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Dict, Mapping, Optional, Tuple


CORE_LOGGER_NAME = "folderui"
ACCESS_LOGGER_NAME = "folderui.access"

DEFAULT_CORE_LEVEL = "INFO"
DEFAULT_ROTATE_MAX_MB = 2
DEFAULT_ROTATE_BACKUPS = 3

_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

_TRUE = frozenset(("1", "true", "yes", "on", "y"))
_FALSE = frozenset(("0", "false", "no", "off", "n"))

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "FATAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

# name -> handler; empty until setup_logging() ran.
_handlers: Dict[str, logging.Handler] = {}


def env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    """Tolerant 0/1 style flag; unknown values mean ``default``."""
    s = str(env.get(name, "") or "").strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    return default


def env_int(env: Mapping[str, str], name: str, default: int = 0) -> int:
    s = str(env.get(name, "") or "").strip()
    if not s:
        return default
    try:
        return int(float(s))
    except (ValueError, OverflowError):
        return default


def _parse_level(level_name: str) -> int:
    return _LEVELS.get((level_name or "").strip().upper(), logging.INFO)


def get_log_dir(default_dir: str) -> str:
    """FOLDERUI_LOG_DIR if set, else ``default_dir``."""
    return (os.environ.get("FOLDERUI_LOG_DIR") or "").strip() or default_dir


def get_paths(log_dir: str) -> Tuple[str, str]:
    """(core.log, access.log) inside ``log_dir``."""
    return os.path.join(log_dir, "core.log"), os.path.join(log_dir, "access.log")


def _rotating(path: str) -> RotatingFileHandler:
    h = RotatingFileHandler(path, encoding="utf-8", delay=True)
    h.setFormatter(logging.Formatter(_FORMAT))
    return h


def setup_logging(log_dir: str) -> None:
    """Attach the rotating handlers once; later calls only re-apply env."""
    if not _handlers:
        os.makedirs(log_dir, exist_ok=True)
        core_path, access_path = get_paths(log_dir)
        _handlers["core"] = _rotating(core_path)
        _handlers["access"] = _rotating(access_path)
        stderr = logging.StreamHandler()
        stderr.setFormatter(logging.Formatter(_FORMAT))
        _handlers["stderr"] = stderr

        access = access_logger()
        access.propagate = False
        # access_enabled() decides per request whether a line is written.
        access.setLevel(logging.INFO)
        access.addHandler(_handlers["access"])
    apply_env()


def _toggle(logger: logging.Logger, handler: logging.Handler, on: bool) -> None:
    if on and handler not in logger.handlers:
        logger.addHandler(handler)
    elif not on and handler in logger.handlers:
        logger.removeHandler(handler)


def apply_env(env: Optional[Mapping[str, str]] = None) -> None:
    """Re-read levels, toggles and rotation limits from ``env``."""
    if not _handlers:
        return
    env = os.environ if env is None else env

    max_bytes = max(1, env_int(env, "FOLDERUI_LOG_ROTATE_MAX_MB", DEFAULT_ROTATE_MAX_MB)) * 1024 * 1024
    backups = max(1, env_int(env, "FOLDERUI_LOG_ROTATE_BACKUPS", DEFAULT_ROTATE_BACKUPS))
    for h in _handlers.values():
        if isinstance(h, RotatingFileHandler):
            h.maxBytes = max_bytes
            h.backupCount = backups

    core = core_logger()
    core.propagate = False
    on = core_enabled(env)
    _toggle(core, _handlers["core"], on)
    _toggle(core, _handlers["stderr"], on and env_bool(env, "FOLDERUI_LOG_STDERR", False))
    core.disabled = not on
    if on:
        core.setLevel(_parse_level(env.get("FOLDERUI_LOG_CORE_LEVEL", DEFAULT_CORE_LEVEL)))
    else:
        core.setLevel(logging.CRITICAL + 1)


def core_enabled(env: Optional[Mapping[str, str]] = None) -> bool:
    return env_bool(os.environ if env is None else env, "FOLDERUI_LOG_CORE_ENABLE", True)


def access_enabled(env: Optional[Mapping[str, str]] = None) -> bool:
    return env_bool(os.environ if env is None else env, "FOLDERUI_LOG_ACCESS_ENABLE", False)


def core_logger() -> logging.Logger:
    return logging.getLogger(CORE_LOGGER_NAME)


def access_logger() -> logging.Logger:
    return logging.getLogger(ACCESS_LOGGER_NAME)


def core_log(level: str, msg: str, **extra) -> None:
    """Log ``msg | k=v, k=v`` to core.log at ``level``. Never raises."""
    try:
        line = msg
        if extra:
            line = msg + " | " + ", ".join(f"{k}={v}" for k, v in extra.items())
        log = getattr(core_logger(), str(level or "info").lower(), None)
        if not callable(log):
            log = core_logger().info
        log(line)
    except Exception:
        pass
