"""Wrappers around the external ``xz`` tool.

Two invocations are used: ``xz -l --robot`` to read a file's uncompressed
size from its index without decompressing it, and ``xz -d -c`` to stream the
decompressed bytes through a pipe.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from .config import DEFAULT_XZ_COMMAND
from .errors import SizeResolutionError, SubprocessError

LOG = logging.getLogger(__name__)

XZ_SUFFIX = ".xz"
# ``file`` record of ``xz --robot --list``:
# file <streams> <blocks> <compressed> <uncompressed> <ratio> <check> <padding>
_ROBOT_FILE_RECORD = "file"
_ROBOT_UNCOMPRESSED_FIELD = 4


def is_xz_path(name: str) -> bool:
    """Return whether ``name`` carries the ``.xz`` suffix, ignoring case."""
    return name.lower().endswith(XZ_SUFFIX)


def strip_xz_suffix(name: str) -> str:
    """Drop the trailing ``.xz`` (any case) from ``name``."""
    if not is_xz_path(name):
        return name
    return name[: -len(XZ_SUFFIX)]


def parse_robot_listing(output: str) -> int:
    """Extract the uncompressed byte count from ``xz -l --robot`` output.

    The first ``file`` record wins. Raises ``SizeResolutionError`` when no such
    record exists, it is too short, or the size field is not a non-negative
    integer.
    """
    for line in output.splitlines():
        fields = line.split()
        if not fields or fields[0] != _ROBOT_FILE_RECORD:
            continue
        if len(fields) <= _ROBOT_UNCOMPRESSED_FIELD:
            raise SizeResolutionError(f"unexpected xz output format: {line!r}")
        raw = fields[_ROBOT_UNCOMPRESSED_FIELD]
        if not (raw.isascii() and raw.isdigit()):
            raise SizeResolutionError(f"failed to parse uncompressed size: {raw!r}")
        return int(raw)
    raise SizeResolutionError("could not find file information in xz output")


def list_command(path: Path, xz_command: str = DEFAULT_XZ_COMMAND) -> list[str]:
    return [xz_command, "--list", "--robot", str(path)]


def decompress_command(path: Path, threads: int, xz_command: str = DEFAULT_XZ_COMMAND) -> list[str]:
    return [xz_command, "--decompress", "--stdout", f"--threads={threads}", str(path)]


def resolve_uncompressed_size(path: Path, xz_command: str = DEFAULT_XZ_COMMAND) -> int:
    """Ask ``xz`` for the uncompressed size of ``path``.

    Must complete before the entry header is written; the size cannot be
    amended afterwards.
    """
    try:
        proc = subprocess.run(
            list_command(path, xz_command),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except OSError as exc:
        raise SizeResolutionError(f"failed to execute {xz_command}: {exc}") from exc

    if proc.returncode != 0:
        err = proc.stderr.strip() or f"{xz_command} --list exited with status {proc.returncode}"
        raise SizeResolutionError(f"{path}: {err}")

    try:
        size = parse_robot_listing(proc.stdout)
    except SizeResolutionError as exc:
        raise SizeResolutionError(f"{path}: {exc.args[0]}") from exc
    LOG.debug("xz reports %d uncompressed bytes for %s", size, path)
    return size


def spawn_decompressor(path: Path, threads: int, xz_command: str = DEFAULT_XZ_COMMAND) -> subprocess.Popen:
    """Start ``xz`` decompressing ``path`` to a pipe.

    The caller owns the returned process: it must drain ``stdout`` and then
    wait for the exit status.
    """
    cmd = decompress_command(path, threads, xz_command)
    try:
        return subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as exc:
        raise SubprocessError(f"failed to execute {xz_command}: {exc}") from exc


__all__ = [
    "XZ_SUFFIX",
    "is_xz_path",
    "strip_xz_suffix",
    "parse_robot_listing",
    "list_command",
    "decompress_command",
    "resolve_uncompressed_size",
    "spawn_decompressor",
]
