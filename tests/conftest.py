"""Pytest bootstrap for local source imports.

The application modules live in ``folder-ui/`` as top-level modules
(``app``, ``routes_fs``, ``services.*``). Make them importable when the
project is not installed.
"""

from __future__ import annotations

import sys
from pathlib import Path


APP_DIR = Path(__file__).resolve().parent.parent / "folder-ui"
APP_DIR_STR = str(APP_DIR)

if APP_DIR_STR not in sys.path:
    sys.path.insert(0, APP_DIR_STR)
