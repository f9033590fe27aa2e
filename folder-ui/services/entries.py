"""Create / write / delete operations on validated local paths.

Callers pass paths that already went through ``PathGuard``. Nothing here
retries: every failure is raised as one of the ``services.fs_errors`` kinds
with the underlying OSError attached.
"""

from __future__ import annotations

import os
import shutil
import stat
from typing import BinaryIO, Optional

from services.fs_errors import CreateError, DeleteError, NotFound, WriteError
from services.logging_setup import core_log as _core_log


DEFAULT_FOLDER_NAME = "New Folder"
MAX_NAME_ATTEMPTS = 10000
COPY_CHUNK_SIZE = 64 * 1024


def safe_basename(name: str) -> Optional[str]:
    """Return ``name`` if it is a single usable path segment, else None."""
    n = str(name or "")
    if not n or n in (".", ".."):
        return None
    if "/" in n or "\\" in n or "\x00" in n:
        return None
    return n


def create_folder(parent_dir: str, requested_name: Optional[str] = None) -> str:
    """Create a folder inside ``parent_dir`` and return the name used.

    Without a name the folder is called "New Folder"; if that is taken,
    "New Folder (1)", "New Folder (2)", ... are tried in order. An explicit
    name that already exists is an error.
    """
    if requested_name:
        name = safe_basename(requested_name)
        if name is None:
            raise CreateError("bad_name", path=os.path.join(parent_dir, str(requested_name)))
        target = os.path.join(parent_dir, name)
        try:
            os.mkdir(target)
        except FileExistsError as e:
            raise CreateError("exists", path=target, cause=e) from e
        except OSError as e:
            _core_log("error", "entries.mkdir_failed", path=target, error=str(e))
            raise CreateError(path=target, cause=e) from e
        _core_log("info", "entries.mkdir", path=target)
        return name

    name = DEFAULT_FOLDER_NAME
    for count in range(1, MAX_NAME_ATTEMPTS + 1):
        target = os.path.join(parent_dir, name)
        try:
            os.mkdir(target)
        except FileExistsError:
            name = f"{DEFAULT_FOLDER_NAME} ({count})"
            continue
        except OSError as e:
            _core_log("error", "entries.mkdir_failed", path=target, error=str(e))
            raise CreateError(path=target, cause=e) from e
        _core_log("info", "entries.mkdir", path=target)
        return name
    raise CreateError("name_exhausted", path=parent_dir)


def write_file(dest_path: str, content: BinaryIO, *, chunk_size: int = COPY_CHUNK_SIZE) -> int:
    """Replace ``dest_path`` with the bytes read from ``content``.

    An existing file is removed first, then the new one is written. This is
    not atomic: if writing fails after the removal, the partial file is
    removed as well and the destination is left absent.
    """
    try:
        st = os.lstat(dest_path)
    except FileNotFoundError:
        st = None
    except OSError as e:
        raise WriteError(path=dest_path, cause=e) from e

    if st is not None:
        if stat.S_ISDIR(st.st_mode):
            raise WriteError("not_a_file", path=dest_path)
        try:
            os.remove(dest_path)
        except OSError as e:
            _core_log("error", "entries.replace_failed", path=dest_path, error=str(e))
            raise WriteError("exists_locked", path=dest_path, cause=e) from e
        _core_log("info", "entries.replaced", path=dest_path)

    total = 0
    try:
        with open(dest_path, "wb") as out:
            while True:
                chunk = content.read(chunk_size)
                if not chunk:
                    break
                out.write(chunk)
                total += len(chunk)
    except Exception as e:
        _core_log("error", "entries.write_failed", path=dest_path, bytes=total, error=str(e))
        try:
            os.remove(dest_path)
        except OSError:
            pass
        raise WriteError(path=dest_path, cause=e) from e
    _core_log("info", "entries.write", path=dest_path, bytes=total)
    return total


def delete_entry(path: str) -> None:
    """Remove a file, symlink or whole folder tree at ``path``.

    Symlinks are unlinked, never followed.
    """
    try:
        st = os.lstat(path)
    except FileNotFoundError as e:
        raise NotFound(path=path, cause=e) from e
    except OSError as e:
        raise DeleteError(path=path, cause=e) from e

    try:
        if stat.S_ISDIR(st.st_mode):
            shutil.rmtree(path)
        else:
            os.unlink(path)
    except FileNotFoundError as e:
        raise NotFound(path=path, cause=e) from e
    except OSError as e:
        _core_log("error", "entries.delete_failed", path=path, error=str(e))
        raise DeleteError(path=path, cause=e) from e
    _core_log("info", "entries.delete", path=path, folder=stat.S_ISDIR(st.st_mode))


def ensure_directory_exists(path: str) -> None:
    """Create ``path`` and any missing parents; no-op if it already is a directory."""
    try:
        os.makedirs(path, exist_ok=True)
    except FileExistsError as e:
        # makedirs(exist_ok=True) only raises this when a non-directory is in the way.
        raise CreateError("not_a_directory", path=path, cause=e) from e
    except OSError as e:
        _core_log("error", "entries.makedirs_failed", path=path, error=str(e))
        raise CreateError(path=path, cause=e) from e
