"""Folder UI Flask application.

Builds the app around a single root directory: everything the UI can list,
download, upload into or delete lives below ``Settings.root_dir``.
"""

from __future__ import annotations

import os
import time
from typing import Optional

from flask import Flask, g, request

from routes_fs import create_fs_blueprint
from services.config import Settings, load_settings
from services.logging_setup import (
    access_enabled as _access_enabled,
    access_logger as _get_access_logger,
    core_log as _core_log,
    get_log_dir as _get_ui_log_dir,
    setup_logging as _setup_ui_logging,
)
from services.pathguard import PathGuard


APP_DIR = os.path.dirname(os.path.abspath(__file__))


def _register_access_log(app: Flask) -> None:
    @app.before_request
    def _access_log_before_request():
        g._folderui_t0 = time.time()

    @app.after_request
    def _access_log_after_request(response):
        try:
            if not _access_enabled():
                return response
            path = request.path or ""
            if path.startswith("/static/"):
                return response
            method = request.method or ""
            status = getattr(response, "status_code", 0) or 0
            client = request.headers.get("X-Forwarded-For") or request.remote_addr or ""
            dt_ms = None
            t0 = getattr(g, "_folderui_t0", None)
            if t0:
                dt_ms = int((time.time() - float(t0)) * 1000.0)
            if dt_ms is None:
                line = f"{client} {method} {path} -> {status}"
            else:
                line = f"{client} {method} {path} -> {status} ({dt_ms}ms)"
            _get_access_logger().info(line)
        except Exception:
            # Logging must never affect response
            pass
        return response


def create_app(settings: Optional[Settings] = None, *, configure_logging: bool = True) -> Flask:
    """Create the Flask app.

    Raises ValueError when the configured root is not an existing directory.
    """
    settings = settings or load_settings()

    if configure_logging:
        _setup_ui_logging(_get_ui_log_dir(os.path.join(settings.state_dir, "log")))

    guard = PathGuard(settings.root_dir)

    app = Flask(__name__, template_folder=os.path.join(APP_DIR, "templates"))
    if settings.max_upload_bytes is not None:
        app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes
    app.config["FOLDERUI_SETTINGS"] = settings
    app.extensions["folderui.guard"] = guard

    _register_access_log(app)
    app.register_blueprint(create_fs_blueprint(guard, upload_mkdir=settings.upload_mkdir))

    _core_log(
        "info",
        "folder-ui init",
        pid=os.getpid(),
        root=guard.root,
        max_upload_mb=settings.max_upload_mb,
        upload_mkdir=settings.upload_mkdir,
    )
    return app
