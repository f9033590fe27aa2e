"""Browser file manager routes for the sandboxed local directory.

Every handler turns its raw ``path``/``file`` parameters into validated paths
through the blueprint's ``PathGuard`` before touching the filesystem.

- GET    /               directory page (HTML)
- GET    /api/list       directory listing (JSON)
- GET    /download       file download, or a streamed ZIP for a folder
- POST   /upload         multipart upload (form: path, file)
- DELETE /delete         remove a file or folder (query: path, file)
- POST   /create-folder  new folder (form: path, folderName)

Form posts redirect back to the directory page with a ``success`` or
``error`` message, as the page expects.
"""

from __future__ import annotations

import datetime
import os
from typing import Any, Dict, List, Tuple
from urllib.parse import quote as _url_quote

from flask import Blueprint, Response, jsonify, redirect, render_template, request, send_file, stream_with_context, url_for

from services.archive import archive_filename, iter_directory_archive
from services.entries import create_folder, delete_entry, ensure_directory_exists, write_file
from services.fs_errors import FsError, NotFound, PathRejected
from services.listing import DirEntry, list_directory
from services.logging_setup import core_log as _core_log
from services.pathguard import PathGuard


# --------------------------- Helpers ---------------------------

def error_response(message: str, status: int = 400, *, ok: bool | None = None, **extra: Any) -> Any:
    payload: Dict[str, Any] = {"error": message}
    if ok is not None:
        payload["ok"] = ok
    payload.update(extra)
    return jsonify(payload), status


def text_error(message: str, status: int) -> Any:
    return Response(message, status=status, mimetype="text/plain")


def format_size(size: int | None) -> str:
    """Bytes / KB / MB / GB with two decimals; '-' for folders."""
    if size is None:
        return "-"
    n = int(size)
    if n >= 1 << 30:
        return f"{n / float(1 << 30):.2f} GB"
    if n >= 1 << 20:
        return f"{n / float(1 << 20):.2f} MB"
    if n >= 1 << 10:
        return f"{n / float(1 << 10):.2f} KB"
    return f"{n} bytes"


def format_mtime(ts: float) -> str:
    return datetime.datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def _sanitize_download_filename(name: str, *, default: str = "download") -> str:
    """Sanitize filename for Content-Disposition header (prevent header injection)."""
    s = os.path.basename((name or "").strip())
    s = s.replace("\r", "").replace("\n", "").replace('"', "")
    if not s:
        s = default
    if len(s) > 180:
        s = s[:180]
    return s


def _content_disposition_attachment(filename: str) -> str:
    """Build a safe Content-Disposition attachment header value."""
    fn = _sanitize_download_filename(filename)
    # RFC 5987 filename* improves UTF-8 handling in modern browsers.
    fn_star = _url_quote(fn, safe="")
    try:
        fn.encode("latin-1")
    except UnicodeEncodeError:
        fn = fn.encode("ascii", errors="replace").decode("ascii").replace("?", "_")
    return f"attachment; filename=\"{fn}\"; filename*=UTF-8''{fn_star}"


def _breadcrumbs(guard: PathGuard, path: str) -> List[Tuple[str, str]]:
    """(label, absolute path) pairs from the root down to ``path``."""
    crumbs = [(os.path.basename(guard.root) or guard.root, guard.root)]
    rel = guard.relative(path)
    if not rel:
        return crumbs
    acc = guard.root
    for part in rel.split(os.sep):
        acc = os.path.join(acc, part)
        crumbs.append((part, acc))
    return crumbs


def _entry_view(entry: DirEntry) -> Dict[str, Any]:
    return {
        "name": entry.name,
        "type": entry.kind,
        "size": format_size(entry.size),
        "modified": format_mtime(entry.modified),
        "is_link": entry.is_link,
    }


def create_fs_blueprint(guard: PathGuard, *, upload_mkdir: bool = True) -> Blueprint:
    """Create the file manager blueprint bound to ``guard``'s root.

    Args:
        guard: path validator for the exposed directory.
        upload_mkdir: create a missing (but in-root) upload directory instead
            of failing with not_found.
    """

    bp = Blueprint("fs", __name__)
    ROOT = guard.root

    def _back(path: str, **msg: str) -> Any:
        return redirect(url_for("fs.index", path=path, **msg), code=303)

    def _entry_target(path_s: str, name: str, *, follow_symlinks: bool = True) -> Tuple[str, str]:
        d = guard.validate(path_s)
        if not os.path.isdir(d):
            raise NotFound("not_a_directory", path=d)
        return d, guard.child(d, name, follow_symlinks=follow_symlinks)

    # ---------- pages ----------

    @bp.get("/")
    def index() -> Any:
        path_s = str(request.args.get("path", "") or "")
        try:
            rp = guard.validate(path_s)
        except PathRejected:
            _core_log("info", "fs.browse.redirect_root", requested=path_s)
            return redirect(url_for("fs.index", path=ROOT), code=303)
        except NotFound:
            return text_error("Directory not found", 404)
        if not os.path.isdir(rp):
            return text_error("Not a directory", 400)

        try:
            entries = list_directory(rp)
        except FsError as e:
            return text_error(f"Unable to read directory: {e.details or e.code}", e.status)

        return render_template(
            "index.html",
            files=[_entry_view(e) for e in entries],
            current_path=rp,
            root=ROOT,
            breadcrumbs=_breadcrumbs(guard, rp),
            parent=os.path.dirname(rp) if rp != ROOT else None,
            error=request.args.get("error", ""),
            success=request.args.get("success", ""),
        )

    # ---------- API ----------

    @bp.get("/api/list")
    def api_list() -> Any:
        path_s = str(request.args.get("path", "") or "")
        try:
            rp = guard.validate(path_s)
            if not os.path.isdir(rp):
                return error_response("not_a_directory", 400, ok=False)
            entries = list_directory(rp)
        except FsError as e:
            return error_response(e.code, e.status, ok=False, details=e.details or None)
        return jsonify({
            "ok": True,
            "root": ROOT,
            "path": rp,
            "items": [e.to_dict() for e in entries],
        })

    @bp.get("/download")
    def download() -> Any:
        path_s = str(request.args.get("path", "") or "")
        name = str(request.args.get("file", "") or "")
        if not path_s or not name:
            return text_error("Missing file or path parameter", 400)
        try:
            _, target = _entry_target(path_s, name)
        except PathRejected:
            return text_error("Invalid file path", 400)
        except NotFound:
            return text_error("File or folder not found", 404)

        if os.path.isdir(target):
            zip_name = archive_filename(target)
            _core_log("info", "fs.download.zip", path=target)
            headers = {
                "Content-Disposition": _content_disposition_attachment(zip_name),
                "Cache-Control": "no-store",
            }
            # Errors after the first chunk can only end the stream early.
            return Response(
                stream_with_context(iter_directory_archive(target)),
                mimetype="application/zip",
                headers=headers,
            )

        if not os.path.isfile(target):
            return text_error("File or folder not found", 404)
        _core_log("info", "fs.download", path=target)
        resp = send_file(
            target,
            as_attachment=True,
            download_name=os.path.basename(target),
            mimetype="application/octet-stream",
            conditional=True,
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @bp.post("/upload")
    def upload() -> Any:
        path_s = str(request.form.get("path", "") or "") or ROOT
        try:
            dest_dir = guard.validate(path_s, must_exist=False)
        except PathRejected:
            return _back(ROOT, error="Invalid path or access denied")

        if not os.path.isdir(dest_dir):
            if os.path.lexists(dest_dir) or not upload_mkdir:
                return _back(ROOT, error=f"Cannot access directory {dest_dir}")
            try:
                ensure_directory_exists(dest_dir)
            except FsError as e:
                return _back(ROOT, error=f"Cannot access or create directory {dest_dir}: {e}")
            _core_log("info", "fs.upload.mkdir", path=dest_dir)

        f = request.files.get("file")
        if f is None or not f.filename:
            return _back(dest_dir, error="Upload error: no file selected")

        # Browsers may send a client-side path; keep only the last segment.
        raw_name = str(f.filename).replace("\\", "/")
        filename = os.path.basename(raw_name.rstrip("/"))
        try:
            dest = guard.child(dest_dir, filename, must_exist=False)
        except PathRejected:
            return _back(dest_dir, error="Invalid file path")

        try:
            total = write_file(dest, f.stream)
        except FsError as e:
            return _back(dest_dir, error=f"Failed to save file to {dest}: {e}")

        _core_log("info", "fs.upload", path=dest, bytes=total)
        return _back(dest_dir, success=f"File '{filename}' uploaded successfully to {dest_dir}")

    @bp.delete("/delete")
    def delete() -> Any:
        path_s = str(request.args.get("path", "") or "")
        name = str(request.args.get("file", "") or "")
        if not path_s or not name:
            return text_error("Missing file or path parameter", 400)
        try:
            _, target = _entry_target(path_s, name, follow_symlinks=False)
        except PathRejected:
            return text_error("Invalid path or access denied", 400)
        except NotFound:
            return text_error("File or folder not found", 404)

        try:
            delete_entry(target)
        except NotFound:
            return text_error("File or folder not found", 404)
        except FsError as e:
            return text_error(f"Failed to delete: {e.details or e.code}", e.status)

        _core_log("info", "fs.delete", path=target)
        return Response("Deleted successfully", status=200, mimetype="text/plain")

    @bp.post("/create-folder")
    def create_folder_route() -> Any:
        path_s = str(request.form.get("path", "") or "")
        folder_name = str(request.form.get("folderName", "") or "")
        if not path_s:
            return _back(ROOT, error="Missing path")
        try:
            parent = guard.validate(path_s)
            if not os.path.isdir(parent):
                raise NotFound("not_a_directory", path=parent)
            if folder_name:
                # Reject traversal in the requested name before creating anything.
                guard.child(parent, folder_name, must_exist=False)
        except PathRejected:
            return _back(ROOT, error="Invalid folder path")
        except NotFound:
            return _back(ROOT, error="Invalid path or access denied")

        try:
            created = create_folder(parent, folder_name or None)
        except FsError as e:
            return _back(parent, error=f"Failed to create folder: {e}")

        _core_log("info", "fs.mkdir", parent=parent, name=created)
        return _back(parent, success=f"Folder '{created}' created successfully")

    return bp
