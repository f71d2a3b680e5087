"""Sequential tar writer with explicit header/body/flush steps.

``tarfile.TarFile.addfile`` wants a file object of known length up front;
bodies here come from pipes, so framing is done directly: the header block
from ``TarInfo.tobuf``, the body as it arrives, NUL padding to the block
boundary, and the end-of-archive marker on close.
"""

from __future__ import annotations

import logging
import tarfile
from typing import BinaryIO

from .errors import HeaderError, SizeMismatchError, WriteError

LOG = logging.getLogger(__name__)

BLOCKSIZE = tarfile.BLOCKSIZE
RECORDSIZE = tarfile.RECORDSIZE
NUL = tarfile.NUL


class ArchiveWriter:
    """Write tar entries one at a time to ``sink``.

    Per entry the call order is ``write_header`` then zero or more ``write``
    calls then ``flush``. The writer counts body bytes and refuses to frame an
    entry whose body length differs from the size in its header.
    """

    def __init__(
        self,
        sink: BinaryIO,
        format: int = tarfile.PAX_FORMAT,
        encoding: str = tarfile.ENCODING,
        errors: str = "surrogateescape",
    ) -> None:
        self.sink = sink
        self.format = format
        self.encoding = encoding
        self.errors = errors
        self.offset = 0
        self.closed = False
        self._current: tarfile.TarInfo | None = None
        self._remaining = 0

    def __enter__(self) -> "ArchiveWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # Only a complete archive gets an end marker.
        if exc_type is None:
            self.close()

    def _emit(self, data: bytes) -> None:
        try:
            self.sink.write(data)
        except OSError as exc:
            raise WriteError(f"cannot write archive: {exc}") from exc
        self.offset += len(data)

    def _check_open(self) -> None:
        if self.closed:
            raise WriteError("archive writer is closed")

    def write_header(self, info: tarfile.TarInfo) -> None:
        """Emit the header block(s) for ``info``; ``info.size`` is final."""
        self._check_open()
        if self._current is not None:
            self.flush()
        try:
            buf = info.tobuf(self.format, self.encoding, self.errors)
        except (ValueError, UnicodeError) as exc:
            raise HeaderError(f"cannot encode header for {info.name!r}: {exc}") from exc
        self._emit(buf)
        self._current = info
        self._remaining = info.size if info.isreg() else 0

    def write(self, data: bytes) -> int:
        """Append body bytes of the current entry."""
        self._check_open()
        if self._current is None:
            raise WriteError("body bytes written before any header")
        if len(data) > self._remaining:
            declared = self._current.size
            written = declared - self._remaining + len(data)
            raise SizeMismatchError(
                f"{self._current.name}: body exceeds declared size "
                f"({written} bytes so far, header says {declared})"
            )
        self._emit(data)
        self._remaining -= len(data)
        return len(data)

    def flush(self) -> None:
        """Finish the current entry: verify its length and pad to a block."""
        self._check_open()
        info = self._current
        if info is not None:
            if self._remaining:
                raise SizeMismatchError(
                    f"{info.name}: body ended after {info.size - self._remaining} bytes, "
                    f"header says {info.size}"
                )
            _blocks, tail = divmod(info.size if info.isreg() else 0, BLOCKSIZE)
            if tail:
                self._emit(NUL * (BLOCKSIZE - tail))
            self._current = None
        try:
            self.sink.flush()
        except OSError as exc:
            raise WriteError(f"cannot flush archive: {exc}") from exc

    def close(self) -> None:
        """Write the end-of-archive marker and pad to a full record."""
        if self.closed:
            return
        self.flush()
        self._emit(NUL * (BLOCKSIZE * 2))
        _records, tail = divmod(self.offset, RECORDSIZE)
        if tail:
            self._emit(NUL * (RECORDSIZE - tail))
        try:
            self.sink.flush()
        except OSError as exc:
            raise WriteError(f"cannot flush archive: {exc}") from exc
        self.closed = True
        LOG.debug("archive closed after %d bytes", self.offset)


__all__ = ["ArchiveWriter", "BLOCKSIZE", "RECORDSIZE"]
