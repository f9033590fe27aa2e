"""Streaming ZIP export of a local directory tree.

The archive is produced while the tree is walked: nothing is staged in a temp
file and no file is read into memory as a whole. Two entry points:

- ``stream_directory(src_dir, sink)`` writes into any object with
  ``write()``/``flush()`` (an open file, a socket wfile, ...)
- ``iter_directory_archive(src_dir)`` yields the same bytes chunk by chunk,
  which is what a Flask streaming ``Response`` wants

Entry naming:
- names are relative to ``src_dir`` and always use ``/``
- ``src_dir`` itself gets no entry
- folders get a trailing ``/``, no payload, stored; files are deflated
- symlinks are skipped (they may point outside the sandbox root)
- FIFOs, sockets and device nodes are skipped
"""

from __future__ import annotations

import os
import zipfile
from collections import deque
from contextlib import closing
from typing import Deque, Iterator, List, Tuple

from services.fs_errors import ArchiveError
from services.logging_setup import core_log as _core_log


CHUNK_SIZE = 64 * 1024


def archive_filename(src_dir: str) -> str:
    """Download name for a folder archive: ``<foldername>.zip``."""
    base = os.path.basename(os.path.normpath(src_dir)) or "download"
    return base + ".zip"


class _ChunkSink:
    """Write-only, non-seekable buffer drained by the response generator.

    zipfile detects the missing ``tell()`` and switches to data descriptors,
    so it never needs to seek back into bytes that were already sent.
    """

    def __init__(self) -> None:
        self._chunks: Deque[bytes] = deque()
        self.closed = False

    def write(self, data) -> int:
        if self.closed:
            raise ValueError("write to closed sink")
        b = bytes(data)
        if b:
            self._chunks.append(b)
        return len(b)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True

    def drain(self) -> Iterator[bytes]:
        while self._chunks:
            yield self._chunks.popleft()


def _open_zip(sink) -> zipfile.ZipFile:
    return zipfile.ZipFile(sink, "w", compression=zipfile.ZIP_DEFLATED, allowZip64=True)


def _children(dir_path: str) -> List[Tuple[str, str, bool]]:
    """(name, full path, is_dir) for regular files and folders, sorted by name.

    The listing is read completely before returning so the directory handle
    is closed before the caller recurses.
    """
    out: List[Tuple[str, str, bool]] = []
    with os.scandir(dir_path) as it:
        for entry in it:
            if entry.is_symlink():
                _core_log("debug", "archive.skip_symlink", path=entry.path)
                continue
            is_dir = entry.is_dir(follow_symlinks=False)
            if not is_dir and not entry.is_file(follow_symlinks=False):
                # FIFOs, sockets, devices: opening them can block forever.
                _core_log("debug", "archive.skip_special", path=entry.path)
                continue
            out.append((entry.name, entry.path, is_dir))
    out.sort(key=lambda t: t[0])
    return out


def _write_tree(zf: zipfile.ZipFile, dir_path: str, prefix: str = "") -> Iterator[None]:
    """Depth-first (pre-order) writer; yields after every chunk put into ``zf``."""
    for name, full, is_dir in _children(dir_path):
        arc = prefix + name
        if is_dir:
            info = zipfile.ZipInfo.from_file(full, arc, strict_timestamps=False)
            info.compress_type = zipfile.ZIP_STORED
            zf.writestr(info, b"")
            yield
            yield from _write_tree(zf, full, arc + "/")
            continue

        info = zipfile.ZipInfo.from_file(full, arc, strict_timestamps=False)
        info.compress_type = zipfile.ZIP_DEFLATED
        with open(full, "rb") as src, zf.open(info, "w") as dst:
            while True:
                chunk = src.read(CHUNK_SIZE)
                if not chunk:
                    break
                dst.write(chunk)
                yield
        yield


def stream_directory(src_dir: str, sink) -> None:
    """Write a ZIP of ``src_dir`` into ``sink``.

    The central directory is written exactly once by the ``with`` block, on
    success and on abort alike. I/O errors (including a closed sink) abort
    the walk and are raised as ``ArchiveError``.
    """
    try:
        with _open_zip(sink) as zf:
            for _ in _write_tree(zf, src_dir):
                pass
    except (OSError, ValueError, zipfile.LargeZipFile) as e:
        _core_log("error", "archive.failed", path=src_dir, error=str(e))
        raise ArchiveError(path=src_dir, cause=e) from e
    _core_log("info", "archive.done", path=src_dir)


def iter_directory_archive(src_dir: str) -> Iterator[bytes]:
    """Yield the ZIP of ``src_dir`` as byte chunks while the tree is walked.

    If the consumer stops early (client went away) the generator is closed;
    the ``with`` block then finalizes into the in-memory sink and the open
    source file, if any, is released.
    """
    sink = _ChunkSink()
    try:
        with _open_zip(sink) as zf, closing(_write_tree(zf, src_dir)) as steps:
            for _ in steps:
                yield from sink.drain()
    except (OSError, ValueError, zipfile.LargeZipFile) as e:
        _core_log("error", "archive.failed", path=src_dir, error=str(e))
        raise ArchiveError(path=src_dir, cause=e) from e
    finally:
        sink.close()
    yield from sink.drain()
    _core_log("info", "archive.done", path=src_dir)
