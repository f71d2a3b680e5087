"""Failure taxonomy for archive builds.

Every error carries a short stable ``tag`` naming the failure site so the
one-line diagnostic printed by the CLI can be correlated with logs.
"""

from __future__ import annotations


class XzTarError(Exception):
    """Base class for every fatal archive-build failure."""

    tag = "xztar"

    def __init__(self, message: str, *, tag: str | None = None) -> None:
        super().__init__(message)
        if tag is not None:
            self.tag = tag

    def __str__(self) -> str:
        return f"[{self.tag}] {super().__str__()}"


class WalkError(XzTarError):
    """Directory traversal could not read the filesystem."""

    tag = "walk"


class HeaderError(XzTarError):
    """An archive header cannot be derived from filesystem metadata."""

    tag = "header"


class SizeResolutionError(XzTarError):
    """``xz --list`` failed or produced output without a usable size."""

    tag = "xz-list"


class DecompressionError(XzTarError):
    """Decompressed body could not be streamed as declared."""

    tag = "decompress"


class SubprocessError(DecompressionError):
    """The decompressor failed to launch or exited non-zero."""

    tag = "xz-decompress"


class SizeMismatchError(DecompressionError):
    """Streamed body length disagrees with the size declared in its header."""

    tag = "size-mismatch"


class ReadError(XzTarError):
    """An input file could not be opened or read."""

    tag = "read"


class WriteError(XzTarError):
    """Writing or flushing the output sink failed."""

    tag = "write"


__all__ = [
    "XzTarError",
    "WalkError",
    "HeaderError",
    "SizeResolutionError",
    "DecompressionError",
    "SubprocessError",
    "SizeMismatchError",
    "WriteError",
    "ReadError",
]
