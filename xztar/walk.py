"""Directory traversal producing archive-ready filesystem entries."""

from __future__ import annotations

import functools
import os
import stat
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from .errors import WalkError

try:
    import grp
    import pwd
except ImportError:
    grp = pwd = None


@dataclass(frozen=True)
class FilesystemEntry:
    """One descendant of the scanned root with the metadata headers need."""

    path: Path
    relative_path: str  # POSIX separators, no leading root prefix
    is_dir: bool
    size: int
    mode: int  # full ``st_mode``; permission bits via ``stat.S_IMODE``
    mtime: int  # whole seconds
    uid: int = 0
    gid: int = 0
    uname: str = ""
    gname: str = ""
    is_symlink: bool = False
    link_target: str = ""
    device: int = 0
    inode: int = 0

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def permissions(self) -> int:
        return stat.S_IMODE(self.mode)


@functools.lru_cache(maxsize=256)
def owner_name(uid: int) -> str:
    """User name for ``uid``, or ``""`` when it has none on this host."""
    if pwd is None:
        return ""
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return ""


@functools.lru_cache(maxsize=256)
def group_name(gid: int) -> str:
    """Group name for ``gid``, or ``""`` when it has none on this host."""
    if grp is None:
        return ""
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return ""


def _entry_from_dirent(dirent: os.DirEntry, relative_path: str) -> FilesystemEntry:
    """Build a ``FilesystemEntry`` from ``lstat`` data (symlinks not followed)."""
    path = Path(dirent.path)
    try:
        st = dirent.stat(follow_symlinks=False)
        link_target = os.readlink(dirent.path) if stat.S_ISLNK(st.st_mode) else ""
    except OSError as exc:
        raise WalkError(f"cannot stat {path}: {exc}") from exc

    is_dir = stat.S_ISDIR(st.st_mode)
    return FilesystemEntry(
        path=path,
        relative_path=relative_path,
        is_dir=is_dir,
        size=0 if is_dir else int(st.st_size),
        mode=int(st.st_mode),
        mtime=int(st.st_mtime_ns // 1_000_000_000),
        uid=int(st.st_uid),
        gid=int(st.st_gid),
        uname=owner_name(int(st.st_uid)),
        gname=group_name(int(st.st_gid)),
        is_symlink=stat.S_ISLNK(st.st_mode),
        link_target=link_target,
        device=int(st.st_dev),
        inode=int(st.st_ino),
    )


def _sorted_children(directory: Path) -> list[os.DirEntry]:
    try:
        with os.scandir(directory) as entries:
            children = list(entries)
    except OSError as exc:
        raise WalkError(f"cannot read directory {directory}: {exc}") from exc
    children.sort(key=lambda item: os.fsencode(item.name))
    return children


def walk_tree(root: Path | str) -> Iterator[FilesystemEntry]:
    """Yield every descendant of ``root`` in pre-order, root excluded.

    Children are visited in byte-wise name order so repeated runs over an
    unchanged tree produce the same sequence. Directories are yielded before
    anything nested in them; symlinks to directories are yielded but not
    descended into. Raises ``WalkError`` on the first unreadable path.
    """
    root_path = Path(root)
    if not root_path.is_dir():
        raise WalkError(f"not a directory: {root_path}")

    # Stack of (relative prefix, unvisited children in reverse order).
    stack: list[tuple[str, list[os.DirEntry]]] = [("", _sorted_children(root_path)[::-1])]
    while stack:
        prefix, pending = stack[-1]
        if not pending:
            stack.pop()
            continue
        dirent = pending.pop()
        relative_path = f"{prefix}{dirent.name}"
        entry = _entry_from_dirent(dirent, relative_path)
        yield entry
        if entry.is_dir:
            stack.append((f"{relative_path}/", _sorted_children(entry.path)[::-1]))


__all__ = ["FilesystemEntry", "owner_name", "group_name", "walk_tree"]
