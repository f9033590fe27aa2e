"""One-level directory listing for the browser view."""

from __future__ import annotations

import os
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from services.fs_errors import NotFound, NotReadable
from services.logging_setup import core_log as _core_log


KIND_FILE = "file"
KIND_FOLDER = "folder"


@dataclass
class DirEntry:
    name: str
    kind: str
    size: Optional[int]
    modified: float
    is_link: bool = False

    @property
    def is_folder(self) -> bool:
        return self.kind == KIND_FOLDER

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _entry_from_scandir(entry: os.DirEntry) -> DirEntry:
    # Kind comes from the entry's own type bit: a symlink to a folder is not a folder here.
    is_dir = entry.is_dir(follow_symlinks=False)
    st = entry.stat(follow_symlinks=False)
    return DirEntry(
        name=entry.name,
        kind=KIND_FOLDER if is_dir else KIND_FILE,
        size=None if is_dir else int(st.st_size),
        modified=float(st.st_mtime),
        is_link=entry.is_symlink(),
    )


def list_directory(path: str) -> List[DirEntry]:
    """List ``path`` (a validated directory) in the order the OS returns.

    Entries whose metadata cannot be read are skipped; only failing to open the
    directory itself is an error.
    """
    items: List[DirEntry] = []
    try:
        with os.scandir(path) as it:
            for entry in it:
                try:
                    items.append(_entry_from_scandir(entry))
                except OSError as e:
                    _core_log("warning", "listing.skip_entry", path=path, name=entry.name, error=str(e))
                    continue
    except FileNotFoundError as e:
        raise NotFound(path=path, cause=e) from e
    except OSError as e:
        _core_log("error", "listing.failed", path=path, error=str(e))
        raise NotReadable(path=path, cause=e) from e
    return items

