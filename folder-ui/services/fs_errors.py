"""Error kinds raised by the sandboxed filesystem helpers.

Every error carries a short machine code (used in JSON payloads and logs), an
HTTP status the route layer can map it to, the path involved, and the
underlying OSError when there is one.
"""

from __future__ import annotations

from typing import Optional


class FsError(Exception):
    code = "fs_failed"
    status = 500

    def __init__(self, code: Optional[str] = None, *, path: Optional[str] = None, cause: Optional[BaseException] = None) -> None:
        if code:
            self.code = code
        self.path = path
        self.cause = cause
        super().__init__(self.code)

    @property
    def details(self) -> str:
        """Human-readable cause (strerror of the wrapped OSError, if any)."""
        c = self.cause
        if c is None:
            return ""
        msg = getattr(c, "strerror", None) or str(c)
        return str(msg or "")

    def __str__(self) -> str:
        det = self.details
        if det:
            return f"{self.code}: {det}"
        return self.code


class PathRejected(FsError):
    code = "path_not_allowed"
    status = 403


class NotFound(FsError):
    code = "not_found"
    status = 404


class NotReadable(FsError):
    code = "not_readable"
    status = 500


class WriteError(FsError):
    code = "write_failed"
    status = 500


class CreateError(FsError):
    code = "create_failed"
    status = 500


class DeleteError(FsError):
    code = "delete_failed"
    status = 500


class ArchiveError(FsError):
    code = "archive_failed"
    status = 500
