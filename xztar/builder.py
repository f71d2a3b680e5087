"""Per-entry classification, header construction and archive assembly.

Each walked entry is classified as a directory, an xz-compressed file, a
plain file or a symlink. Compressed files have their uncompressed size
resolved with ``xz --list`` before the header is written, then their body is
streamed from ``xz --decompress``; everything else passes through unchanged.
"""

from __future__ import annotations

import enum
import logging
import os
import stat
import tarfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from .config import ArchiveOptions
from .errors import HeaderError
from .sources import ByteSource, FileSource, ProcessOutputSource
from .walk import FilesystemEntry, walk_tree
from .writer import ArchiveWriter
from .xz import is_xz_path, resolve_uncompressed_size, spawn_decompressor, strip_xz_suffix

LOG = logging.getLogger(__name__)


class EntryKind(enum.Enum):
    DIRECTORY = "directory"
    COMPRESSED = "compressed"
    REGULAR = "regular"
    SYMLINK = "symlink"


@dataclass(frozen=True)
class EntryPlan:
    """Header plus a deferred body source for one archive entry."""

    entry: FilesystemEntry
    kind: EntryKind
    header: tarfile.TarInfo
    open_source: Callable[[], ByteSource] | None = None


@dataclass(frozen=True)
class ArchiveSummary:
    entries: int = 0
    decompressed: int = 0
    bytes_written: int = 0


def classify_entry(entry: FilesystemEntry) -> EntryKind:
    """Pick the archive treatment for ``entry``.

    Raises ``HeaderError`` for file types tar entries are not produced for
    (fifos, sockets, devices).
    """
    if entry.is_dir:
        return EntryKind.DIRECTORY
    if entry.is_symlink:
        return EntryKind.SYMLINK
    if not stat.S_ISREG(entry.mode):
        raise HeaderError(f"unsupported file type for {entry.relative_path}: mode {oct(entry.mode)}")
    if is_xz_path(entry.name):
        return EntryKind.COMPRESSED
    return EntryKind.REGULAR


def _base_header(entry: FilesystemEntry, name: str) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.mode = entry.permissions
    info.mtime = entry.mtime
    info.uid = entry.uid
    info.gid = entry.gid
    info.uname = entry.uname
    info.gname = entry.gname
    return info


def build_header(entry: FilesystemEntry, kind: EntryKind, size: int | None = None) -> tarfile.TarInfo:
    """Build the tar header for ``entry``.

    ``size`` is the resolved uncompressed size and is required for
    ``EntryKind.COMPRESSED``; other kinds take their size from the entry.
    """
    if kind is EntryKind.DIRECTORY:
        info = _base_header(entry, entry.relative_path + "/")
        info.type = tarfile.DIRTYPE
        info.size = 0
        return info

    if kind is EntryKind.SYMLINK:
        info = _base_header(entry, entry.relative_path)
        info.type = tarfile.SYMTYPE
        info.linkname = entry.link_target
        info.size = 0
        return info

    if kind is EntryKind.COMPRESSED:
        if size is None or size < 0:
            raise HeaderError(f"no uncompressed size for {entry.relative_path}")
        name = strip_xz_suffix(entry.relative_path)
        if not name or name.endswith("/"):
            raise HeaderError(f"{entry.relative_path}: nothing left of the name once .xz is removed")
        info = _base_header(entry, name)
        info.type = tarfile.REGTYPE
        info.size = size
        return info

    info = _base_header(entry, entry.relative_path)
    info.type = tarfile.REGTYPE
    info.size = entry.size
    return info


def plan_entry(entry: FilesystemEntry, options: ArchiveOptions) -> EntryPlan:
    """Classify ``entry`` and build its final header and body source."""
    kind = classify_entry(entry)

    if kind is EntryKind.COMPRESSED:
        size = resolve_uncompressed_size(entry.path, options.xz_command)
        LOG.info("  - uncompressed size: %d", size)
        path = entry.path

        def open_decompressor() -> ByteSource:
            return ProcessOutputSource(
                lambda: spawn_decompressor(path, options.xz_threads, options.xz_command),
                label=f"{options.xz_command} --decompress {path}",
            )

        return EntryPlan(entry, kind, build_header(entry, kind, size), open_decompressor)

    if kind is EntryKind.REGULAR:
        path = entry.path
        return EntryPlan(entry, kind, build_header(entry, kind), lambda: FileSource(path))

    return EntryPlan(entry, kind, build_header(entry, kind))


def write_entry(writer: ArchiveWriter, plan: EntryPlan) -> int:
    """Write header and full body of one planned entry; return body bytes."""
    writer.write_header(plan.header)
    streamed = 0
    if plan.open_source is not None:
        with plan.open_source() as source:
            for chunk in source.chunks():
                streamed += writer.write(chunk)
    writer.flush()
    return streamed


def sink_identity(sink: BinaryIO) -> tuple[int, int] | None:
    """Return ``(st_dev, st_ino)`` of a file-backed sink, else ``None``."""
    try:
        st = os.fstat(sink.fileno())
    except (AttributeError, OSError, ValueError):
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return int(st.st_dev), int(st.st_ino)


def build_archive(root: Path | str, sink: BinaryIO, options: ArchiveOptions) -> ArchiveSummary:
    """Stream a tar of everything under ``root`` into ``sink``.

    Entries are processed strictly one after another. The first error
    aborts the run; ``sink`` then holds a truncated archive without an end
    marker. When ``sink`` is a file inside ``root`` it is left out of the
    archive.
    """
    root_path = Path(root)
    own_output = sink_identity(sink)
    entries = 0
    decompressed = 0
    with ArchiveWriter(sink) as writer:
        for entry in walk_tree(root_path):
            if own_output is not None and (entry.device, entry.inode) == own_output:
                LOG.warning("skipping %s: it is the archive being written", entry.relative_path)
                continue
            LOG.info("%s", entry.relative_path)
            plan = plan_entry(entry, options)
            write_entry(writer, plan)
            entries += 1
            if plan.kind is EntryKind.COMPRESSED:
                decompressed += 1
    return ArchiveSummary(entries=entries, decompressed=decompressed, bytes_written=writer.offset)


__all__ = [
    "EntryKind",
    "EntryPlan",
    "ArchiveSummary",
    "sink_identity",
    "classify_entry",
    "build_header",
    "plan_entry",
    "write_entry",
    "build_archive",
]
