"""Startup settings resolved from the environment.

Environment variables
- FOLDERUI_ROOT: directory exposed by the UI (default: platform dependent, see default_root_dir)
- FOLDERUI_HOST / FOLDERUI_PORT: listen address (default: 0.0.0.0:8080)
- FOLDERUI_MAX_UPLOAD_MB: request size cap for uploads, 0 disables (default: 0)
- FOLDERUI_UPLOAD_MKDIR: create a missing upload directory inside the root (default: 1)
- FOLDERUI_STATE_DIR: writable directory for logs (default: XDG config dir)
"""

from __future__ import annotations

import os
import sys
import tempfile
from dataclasses import dataclass
from typing import Mapping, Optional

from services.logging_setup import core_log as _core_log, env_bool as _env_bool, env_int as _env_int


DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080


def default_root_dir(env: Optional[Mapping[str, str]] = None) -> str:
    """Platform default for the exposed directory.

    Windows: D:/ ; elsewhere: ~/Documents, or the temp dir if the home
    directory cannot be determined or has no Documents folder.
    """
    env = os.environ if env is None else env
    if "windows" in str(env.get("OS", "") or "").lower():
        return "D:/"
    home = os.path.expanduser("~")
    if not home or home == "~":
        _core_log("warning", "config.no_home_dir", fallback=tempfile.gettempdir())
        return tempfile.gettempdir()
    docs = os.path.join(home, "Documents")
    if not os.path.isdir(docs):
        _core_log("warning", "config.default_root_missing", path=docs, fallback=tempfile.gettempdir())
        return tempfile.gettempdir()
    return docs


def default_state_dir(env: Optional[Mapping[str, str]] = None) -> str:
    """Writable directory for UI state (logs). Mirrors the usual XDG locations."""
    env = os.environ if env is None else env
    env_dir = str(env.get("FOLDERUI_STATE_DIR", "") or "").strip()
    if env_dir:
        return env_dir
    home = os.path.expanduser("~")
    xdg = str(env.get("XDG_CONFIG_HOME", "") or "").strip()
    if xdg:
        return os.path.join(xdg, "folder-ui")
    if sys.platform == "darwin":
        return os.path.join(home, "Library", "Application Support", "folder-ui")
    return os.path.join(home, ".config", "folder-ui")


@dataclass(frozen=True)
class Settings:
    root_dir: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_upload_mb: int = 0
    upload_mkdir: bool = True
    state_dir: str = ""

    @property
    def max_upload_bytes(self) -> Optional[int]:
        if self.max_upload_mb > 0:
            return self.max_upload_mb * 1024 * 1024
        return None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from ``env`` (``os.environ`` by default).

    An explicit FOLDERUI_ROOT is used as given (relative values are made
    absolute against the working directory); validating that it exists is
    left to ``PathGuard``.
    """
    env = os.environ if env is None else env
    root = str(env.get("FOLDERUI_ROOT", "") or "").strip()
    if root:
        root = os.path.abspath(os.path.expanduser(root))
    else:
        root = default_root_dir(env)

    port = _env_int(env, "FOLDERUI_PORT", DEFAULT_PORT)
    if not 0 < port < 65536:
        port = DEFAULT_PORT

    return Settings(
        root_dir=root,
        host=str(env.get("FOLDERUI_HOST", "") or "").strip() or DEFAULT_HOST,
        port=port,
        max_upload_mb=max(0, _env_int(env, "FOLDERUI_MAX_UPLOAD_MB", 0)),
        upload_mkdir=_env_bool(env, "FOLDERUI_UPLOAD_MKDIR", True),
        state_dir=default_state_dir(env),
    )
