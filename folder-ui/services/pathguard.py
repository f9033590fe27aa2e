"""Root-boundary checks for every user-supplied local path.

A ``PathGuard`` is bound to one root directory at construction and turns
untrusted path strings into absolute, symlink-resolved paths that are proven
to stay inside that root. Everything else in ``services`` only ever sees
paths returned from here.

Resolution order:
  1. empty -> root, relative -> joined onto the root
  2. lexical normalization (collapse ``.`` / ``..``)
  3. realpath: resolves the existing parent chain and attaches the
     not-yet-existing tail, so new names are checked where they would land
  4. containment on path segments (commonpath), never on string prefixes
  5. existence, only after containment passed
"""

from __future__ import annotations

import os

from services.fs_errors import NotFound, PathRejected
from services.logging_setup import core_log as _core_log


def _is_within(path: str, root: str) -> bool:
    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        # Mixed drives / relative vs absolute.
        return False


class PathGuard:
    """Validate candidate paths against a fixed root directory."""

    def __init__(self, root: str) -> None:
        r = str(root or "").strip()
        if not r or not os.path.isabs(r):
            raise ValueError(f"root must be an absolute path: {root!r}")
        rp = os.path.realpath(r)
        if not os.path.isdir(rp):
            raise ValueError(f"root is not an existing directory: {root!r}")
        self._root = rp

    @property
    def root(self) -> str:
        return self._root

    def __repr__(self) -> str:
        return f"PathGuard(root={self._root!r})"

    def contains(self, path: str) -> bool:
        """True when an absolute, already resolved ``path`` is the root or below it."""
        return _is_within(os.path.normpath(path), self._root)

    def _norm_abs(self, candidate: str) -> str:
        p = str(candidate or "")
        if "\x00" in p:
            raise PathRejected("bad_path", path=p)
        if not p:
            return self._root
        if not os.path.isabs(p):
            p = os.path.join(self._root, p)
        return os.path.normpath(p)

    def validate(self, candidate: str, *, must_exist: bool = True, follow_symlinks: bool = True) -> str:
        """Return the canonical absolute form of ``candidate`` or raise.

        Raises ``PathRejected`` if the resolved path leaves the root and
        ``NotFound`` if it is inside the root but missing (only when
        ``must_exist``). With ``follow_symlinks=False`` the last component is
        left unresolved so callers can act on a symlink itself.
        """
        ap = self._norm_abs(candidate)

        if follow_symlinks or ap == self._root:
            rp = os.path.realpath(ap)
        else:
            parent, name = os.path.split(ap)
            rp = os.path.join(os.path.realpath(parent), name)

        if not self.contains(rp):
            _core_log("warning", "pathguard.reject", candidate=candidate, resolved=rp, root=self._root)
            raise PathRejected(path=str(candidate))

        if must_exist:
            exists = os.path.exists(rp) if follow_symlinks else os.path.lexists(rp)
            if not exists:
                raise NotFound(path=rp)
        return rp

    def child(self, parent: str, name: str, *, must_exist: bool = True, follow_symlinks: bool = True) -> str:
        """Validate ``name`` joined onto an already validated directory ``parent``.

        The result must stay inside ``parent`` as well as inside the root, and
        must not be ``parent`` itself.
        """
        n = str(name or "")
        if not n:
            raise PathRejected("name_required", path=parent)
        if os.path.isabs(n):
            raise PathRejected(path=n)
        target = self.validate(os.path.join(parent, n), must_exist=must_exist, follow_symlinks=follow_symlinks)
        base = os.path.realpath(parent)
        if target == base or not _is_within(target, base):
            _core_log("warning", "pathguard.reject_child", parent=parent, name=n, resolved=target)
            raise PathRejected(path=n)
        return target

    def relative(self, path: str) -> str:
        """Root-relative form of a validated path ('' for the root)."""
        rel = os.path.relpath(path, self._root)
        return "" if rel == os.curdir else rel


def validate(candidate: str, root: str, *, must_exist: bool = True) -> str:
    """One-shot convenience wrapper around ``PathGuard(root).validate``.

    A ``root`` that is not an existing absolute directory admits nothing, so
    every candidate is rejected.
    """
    try:
        guard = PathGuard(root)
    except ValueError as e:
        raise PathRejected("bad_root", path=str(candidate), cause=e) from e
    return guard.validate(candidate, must_exist=must_exist)
