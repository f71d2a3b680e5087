"""Tests for entry classification, header construction and entry writing."""

from __future__ import annotations

import errno
import io
import stat
import tarfile
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from xztar.builder import EntryKind, EntryPlan, build_header, classify_entry, plan_entry, write_entry
from xztar.config import ArchiveOptions
from xztar.errors import (
    DecompressionError,
    HeaderError,
    ReadError,
    SizeMismatchError,
    SizeResolutionError,
    SubprocessError,
    WriteError,
)
from xztar.sources import FileSource, ProcessOutputSource
from xztar.walk import FilesystemEntry
from xztar.writer import ArchiveWriter

OPTIONS = ArchiveOptions(xz_threads=3, xz_command="xz")


def _entry(relative_path: str, *, is_dir: bool = False, size: int = 0, mode: int | None = None) -> FilesystemEntry:
    if mode is None:
        mode = (stat.S_IFDIR | 0o755) if is_dir else (stat.S_IFREG | 0o640)
    return FilesystemEntry(
        path=Path("/root-dir") / relative_path,
        relative_path=relative_path,
        is_dir=is_dir,
        size=size,
        mode=mode,
        mtime=1_600_000_000,
        uid=1000,
        gid=1000,
    )


class ClassifyEntryTests(unittest.TestCase):
    def test_directory(self) -> None:
        self.assertIs(classify_entry(_entry("sub", is_dir=True)), EntryKind.DIRECTORY)

    def test_directory_named_like_xz_is_still_directory(self) -> None:
        self.assertIs(classify_entry(_entry("odd.xz", is_dir=True)), EntryKind.DIRECTORY)

    def test_compressed_file_by_case_insensitive_suffix(self) -> None:
        self.assertIs(classify_entry(_entry("data/BLOB.XZ", size=10)), EntryKind.COMPRESSED)

    def test_plain_file(self) -> None:
        self.assertIs(classify_entry(_entry("notes.txt", size=10)), EntryKind.REGULAR)

    def test_special_file_is_header_error(self) -> None:
        fifo = _entry("pipe", mode=stat.S_IFIFO | 0o600)
        with self.assertRaises(HeaderError) as ctx:
            classify_entry(fifo)
        self.assertEqual(ctx.exception.tag, "header")


class BuildHeaderTests(unittest.TestCase):
    def test_directory_header(self) -> None:
        info = build_header(_entry("sub", is_dir=True), EntryKind.DIRECTORY)
        self.assertEqual(info.name, "sub/")
        self.assertEqual(info.size, 0)
        self.assertEqual(info.type, tarfile.DIRTYPE)
        self.assertEqual(info.mode, 0o755)

    def test_compressed_header_strips_suffix_and_uses_resolved_size(self) -> None:
        info = build_header(_entry("sub/blob.xz", size=64), EntryKind.COMPRESSED, 100)
        self.assertEqual(info.name, "sub/blob")
        self.assertEqual(info.size, 100)
        self.assertEqual(info.type, tarfile.REGTYPE)
        self.assertEqual(info.mtime, 1_600_000_000)
        self.assertEqual((info.uid, info.gid), (1000, 1000))

    def test_compressed_header_requires_size(self) -> None:
        with self.assertRaises(HeaderError):
            build_header(_entry("blob.xz", size=64), EntryKind.COMPRESSED)

    def test_bare_suffix_name_is_header_error(self) -> None:
        for name in (".xz", "sub/.xz"):
            with self.subTest(name=name), self.assertRaises(HeaderError):
                build_header(_entry(name, size=64), EntryKind.COMPRESSED, 1)

    def test_header_carries_owner_names(self) -> None:
        entry = FilesystemEntry(
            path=Path("/root-dir/f.txt"),
            relative_path="f.txt",
            is_dir=False,
            size=1,
            mode=stat.S_IFREG | 0o644,
            mtime=0,
            uid=501,
            gid=20,
            uname="alice",
            gname="staff",
        )
        info = build_header(entry, EntryKind.REGULAR)
        self.assertEqual((info.uid, info.gid), (501, 20))
        self.assertEqual((info.uname, info.gname), ("alice", "staff"))

    def test_regular_header_keeps_name_and_size(self) -> None:
        info = build_header(_entry("sub/file.txt", size=3), EntryKind.REGULAR)
        self.assertEqual(info.name, "sub/file.txt")
        self.assertEqual(info.size, 3)
        self.assertEqual(info.mode, 0o640)

    def test_symlink_header(self) -> None:
        entry = FilesystemEntry(
            path=Path("/root-dir/link"),
            relative_path="link",
            is_dir=False,
            size=4,
            mode=stat.S_IFLNK | 0o777,
            mtime=0,
            is_symlink=True,
            link_target="real",
        )
        info = build_header(entry, EntryKind.SYMLINK)
        self.assertTrue(info.issym())
        self.assertEqual(info.linkname, "real")
        self.assertEqual(info.size, 0)


class PlanEntryTests(unittest.TestCase):
    def test_compressed_entry_resolves_size_before_header(self) -> None:
        with mock.patch("xztar.builder.resolve_uncompressed_size", return_value=100) as resolve:
            plan = plan_entry(_entry("blob.xz", size=64), OPTIONS)

        resolve.assert_called_once_with(Path("/root-dir/blob.xz"), "xz")
        self.assertEqual(plan.header.name, "blob")
        self.assertEqual(plan.header.size, 100)
        self.assertIsInstance(plan.open_source(), ProcessOutputSource)

    def test_compressed_source_passes_thread_hint(self) -> None:
        with mock.patch("xztar.builder.resolve_uncompressed_size", return_value=0):
            plan = plan_entry(_entry("blob.xz", size=64), OPTIONS)

        with mock.patch("xztar.builder.spawn_decompressor", side_effect=RuntimeError("stop")) as spawn:
            with plan.open_source() as source, self.assertRaises(RuntimeError):
                list(source.chunks())
        spawn.assert_called_once_with(Path("/root-dir/blob.xz"), 3, "xz")

    def test_size_resolution_failure_propagates(self) -> None:
        with mock.patch(
            "xztar.builder.resolve_uncompressed_size",
            side_effect=SizeResolutionError("bad listing"),
        ):
            with self.assertRaises(SizeResolutionError):
                plan_entry(_entry("blob.xz", size=64), OPTIONS)

    def test_regular_entry_uses_file_source(self) -> None:
        plan = plan_entry(_entry("a.txt", size=1), OPTIONS)
        self.assertIs(plan.kind, EntryKind.REGULAR)
        self.assertIsInstance(plan.open_source(), FileSource)

    def test_directory_entry_has_no_body(self) -> None:
        plan = plan_entry(_entry("d", is_dir=True), OPTIONS)
        self.assertIsNone(plan.open_source)


class _StaticSource:
    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks
        self.closed = False

    def __enter__(self) -> "_StaticSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def chunks(self):
        yield from self._chunks

    def close(self) -> None:
        self.closed = True


class WriteEntryTests(unittest.TestCase):
    def _plan(self, size: int, source: _StaticSource) -> EntryPlan:
        entry = _entry("blob.xz", size=1)
        return EntryPlan(entry, EntryKind.COMPRESSED, build_header(entry, EntryKind.COMPRESSED, size), lambda: source)

    def test_streams_body_and_releases_source(self) -> None:
        sink = io.BytesIO()
        source = _StaticSource([b"ab", b"c"])
        writer = ArchiveWriter(sink)
        streamed = write_entry(writer, self._plan(3, source))

        self.assertEqual(streamed, 3)
        self.assertTrue(source.closed)
        self.assertEqual(len(sink.getvalue()) % 512, 0)

    def test_short_body_is_size_mismatch(self) -> None:
        source = _StaticSource([b"ab"])
        with self.assertRaises(SizeMismatchError):
            write_entry(ArchiveWriter(io.BytesIO()), self._plan(3, source))
        self.assertTrue(source.closed)

    def test_long_body_is_size_mismatch(self) -> None:
        source = _StaticSource([b"abcd"])
        with self.assertRaises(SizeMismatchError):
            write_entry(ArchiveWriter(io.BytesIO()), self._plan(3, source))

    def test_unreadable_file_is_tagged_read_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            missing = Path(tmp) / "gone.txt"
            entry = FilesystemEntry(
                path=missing,
                relative_path="gone.txt",
                is_dir=False,
                size=1,
                mode=stat.S_IFREG | 0o644,
                mtime=0,
            )
            plan = plan_entry(entry, OPTIONS)
            with self.assertRaises(ReadError) as ctx:
                write_entry(ArchiveWriter(io.BytesIO()), plan)
        self.assertEqual(ctx.exception.tag, "read")
        self.assertNotIsInstance(ctx.exception, WriteError)

    def test_failed_pipe_read_is_decompression_error(self) -> None:
        proc = mock.Mock()
        proc.stdout.read.side_effect = OSError(errno.EIO, "Input/output error")
        proc.poll.return_value = None
        entry = _entry("b.xz", size=1)
        source = ProcessOutputSource(lambda: proc, label="xz --decompress b.xz")
        plan = EntryPlan(entry, EntryKind.COMPRESSED, build_header(entry, EntryKind.COMPRESSED, 4), lambda: source)

        with self.assertRaises(SubprocessError) as ctx:
            write_entry(ArchiveWriter(io.BytesIO()), plan)

        self.assertIsInstance(ctx.exception, DecompressionError)
        self.assertNotIsInstance(ctx.exception, WriteError)
        proc.kill.assert_called_once_with()


if __name__ == "__main__":
    unittest.main()
