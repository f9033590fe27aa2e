#!/usr/bin/env python3
"""Serve Folder UI with werkzeug's threaded server (one thread per request)."""

from __future__ import annotations

import sys

from werkzeug.serving import run_simple

from app import create_app
from services.config import load_settings
from services.logging_setup import core_log as _core_log


def main() -> int:
    settings = load_settings()
    try:
        app = create_app(settings)
    except ValueError as e:
        print(f"folder-ui: {e}", file=sys.stderr)
        return 2

    _core_log("info", "serving folder GUI", url=f"http://{settings.host}:{settings.port}")
    print(f"Serving folder GUI on http://{settings.host}:{settings.port} (root: {settings.root_dir})")
    run_simple(settings.host, settings.port, app, threaded=True, use_reloader=False)
    return 0


if __name__ == "__main__":
    sys.exit(main())
