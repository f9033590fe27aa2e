from __future__ import annotations

import io
import os
import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest import mock

from services import archive
from services.archive import archive_filename, iter_directory_archive, stream_directory
from services.fs_errors import ArchiveError


def _zip_from_chunks(src_dir: str) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(b"".join(iter_directory_archive(src_dir))))


class ArchiveStreamingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_single_file_archive(self) -> None:
        src = self.tmp / "folder"
        src.mkdir()
        (src / "x.txt").write_text("hi", encoding="utf-8")

        with _zip_from_chunks(str(src)) as zf:
            self.assertEqual(zf.namelist(), ["x.txt"])
            self.assertEqual(zf.read("x.txt"), b"hi")
            self.assertEqual(zf.getinfo("x.txt").compress_type, zipfile.ZIP_DEFLATED)
            self.assertIsNone(zf.testzip())

    def test_empty_folder_has_no_entries(self) -> None:
        src = self.tmp / "empty"
        src.mkdir()

        with _zip_from_chunks(str(src)) as zf:
            self.assertEqual(zf.namelist(), [])

    def test_depth_first_relative_names(self) -> None:
        src = self.tmp / "project"
        (src / "a" / "c").mkdir(parents=True)
        (src / "a" / "b.txt").write_text("b", encoding="utf-8")
        (src / "a" / "c" / "d.txt").write_text("d", encoding="utf-8")
        (src / "z.txt").write_text("z", encoding="utf-8")
        (src / "empty").mkdir()

        with _zip_from_chunks(str(src)) as zf:
            self.assertEqual(
                zf.namelist(),
                ["a/", "a/b.txt", "a/c/", "a/c/d.txt", "empty/", "z.txt"],
            )
            folder = zf.getinfo("a/c/")
            self.assertTrue(folder.is_dir())
            self.assertEqual(folder.compress_type, zipfile.ZIP_STORED)
            self.assertEqual(folder.file_size, 0)
            self.assertEqual(zf.read("a/c/d.txt"), b"d")
            for name in zf.namelist():
                self.assertFalse(name.startswith("project"))
                self.assertFalse(name.startswith("/"))
                self.assertNotIn("\\", name)

    def test_large_file_is_streamed_in_chunks(self) -> None:
        src = self.tmp / "big"
        src.mkdir()
        payload = os.urandom(archive.CHUNK_SIZE * 3 + 123)
        (src / "blob.bin").write_bytes(payload)

        chunks = list(iter_directory_archive(str(src)))

        self.assertGreater(len(chunks), 1)
        with zipfile.ZipFile(io.BytesIO(b"".join(chunks))) as zf:
            self.assertEqual(zf.read("blob.bin"), payload)

    def test_first_bytes_arrive_before_walk_finishes(self) -> None:
        src = self.tmp / "lazy"
        src.mkdir()
        (src / "a.bin").write_bytes(os.urandom(archive.CHUNK_SIZE * 2))
        (src / "sub").mkdir()
        (src / "sub" / "b.txt").write_text("b", encoding="utf-8")

        with mock.patch("services.archive._children", wraps=archive._children) as children:
            gen = iter_directory_archive(str(src))
            first = next(gen)
            self.assertTrue(first.startswith(b"PK\x03\x04"))
            # Only the top level has been listed; "sub" is not visited yet.
            self.assertEqual(children.call_count, 1)
            gen.close()

    def test_consumer_closing_early_releases_cleanly(self) -> None:
        src = self.tmp / "abort"
        src.mkdir()
        (src / "a.bin").write_bytes(os.urandom(archive.CHUNK_SIZE * 4))

        gen = iter_directory_archive(str(src))
        next(gen)
        gen.close()

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks not supported")
    def test_symlinks_are_skipped(self) -> None:
        outside = self.tmp / "outside"
        outside.mkdir()
        (outside / "secret.txt").write_text("secret", encoding="utf-8")
        src = self.tmp / "src"
        src.mkdir()
        (src / "real.txt").write_text("real", encoding="utf-8")
        os.symlink(str(outside), str(src / "dirlink"))
        os.symlink(str(outside / "secret.txt"), str(src / "filelink"))

        with _zip_from_chunks(str(src)) as zf:
            self.assertEqual(zf.namelist(), ["real.txt"])

    @unittest.skipUnless(hasattr(os, "mkfifo"), "fifos not supported")
    def test_special_files_are_skipped(self) -> None:
        src = self.tmp / "src"
        (src / "sub").mkdir(parents=True)
        (src / "real.txt").write_text("real", encoding="utf-8")
        os.mkfifo(str(src / "pipe"))
        os.mkfifo(str(src / "sub" / "pipe2"))

        with _zip_from_chunks(str(src)) as zf:
            self.assertEqual(zf.namelist(), ["real.txt", "sub/"])

    def test_stream_directory_into_file_sink(self) -> None:
        src = self.tmp / "folder"
        (src / "sub").mkdir(parents=True)
        (src / "sub" / "x.txt").write_text("hi", encoding="utf-8")
        out = self.tmp / "out.zip"

        with open(out, "wb") as sink:
            stream_directory(str(src), sink)

        with zipfile.ZipFile(out) as zf:
            self.assertEqual(zf.namelist(), ["sub/", "sub/x.txt"])
            self.assertEqual(zf.read("sub/x.txt"), b"hi")

    def test_closed_sink_fails_fast(self) -> None:
        src = self.tmp / "folder"
        src.mkdir()
        (src / "x.txt").write_text("hi", encoding="utf-8")
        sink = io.BytesIO()
        sink.close()

        with self.assertRaises(ArchiveError):
            stream_directory(str(src), sink)

    def test_read_error_aborts_and_archive_is_still_finalized(self) -> None:
        src = self.tmp / "folder"
        src.mkdir()
        (src / "a.txt").write_text("a", encoding="utf-8")
        (src / "b.txt").write_text("b", encoding="utf-8")
        real_open = open

        def _open(path, *args, **kwargs):
            if os.path.basename(path) == "b.txt":
                raise PermissionError(13, "Permission denied", path)
            return real_open(path, *args, **kwargs)

        sink = io.BytesIO()
        with mock.patch("services.archive.open", side_effect=_open, create=True):
            with self.assertRaises(ArchiveError) as ctx:
                stream_directory(str(src), sink)
        self.assertIsInstance(ctx.exception.cause, PermissionError)

        # Central directory was written once on the way out.
        with zipfile.ZipFile(io.BytesIO(sink.getvalue())) as zf:
            self.assertEqual(zf.namelist(), ["a.txt"])

    def test_read_error_in_generator_raises_archive_error(self) -> None:
        src = self.tmp / "folder"
        src.mkdir()
        (src / "a.txt").write_text("a", encoding="utf-8")

        with mock.patch("services.archive.open", side_effect=OSError(5, "I/O error"), create=True):
            with self.assertRaises(ArchiveError):
                list(iter_directory_archive(str(src)))

    def test_missing_source_raises_archive_error(self) -> None:
        with self.assertRaises(ArchiveError):
            list(iter_directory_archive(str(self.tmp / "gone")))

    def test_archive_filename(self) -> None:
        self.assertEqual(archive_filename("/srv/share/Photos"), "Photos.zip")
        self.assertEqual(archive_filename("/srv/share/Photos/"), "Photos.zip")


if __name__ == "__main__":
    unittest.main()
