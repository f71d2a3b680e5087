"""Entry body sources: raw file bytes or a decompressor's output pipe.

Both variants expose ``chunks()`` and are used as context managers so the
archive writer never needs to know which one it is draining.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import BinaryIO, Protocol

from .errors import ReadError, SubprocessError

LOG = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class ByteSource(Protocol):
    """Anything that yields body bytes until exhausted and can be released."""

    def chunks(self) -> Iterator[bytes]: ...

    def close(self) -> None: ...

    def __enter__(self) -> "ByteSource": ...

    def __exit__(self, *exc_info: object) -> None: ...


class FileSource:
    """Stream a regular file's bytes as stored on disk."""

    def __init__(self, path: Path, chunk_size: int = CHUNK_SIZE) -> None:
        self.path = path
        self.chunk_size = chunk_size
        self._handle: BinaryIO | None = None

    def __enter__(self) -> "FileSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def chunks(self) -> Iterator[bytes]:
        try:
            self._handle = self.path.open("rb")
        except OSError as exc:
            raise ReadError(f"cannot open {self.path}: {exc}") from exc
        while True:
            try:
                chunk = self._handle.read(self.chunk_size)
            except OSError as exc:
                raise ReadError(f"cannot read {self.path}: {exc}") from exc
            if not chunk:
                break
            yield chunk

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class ProcessOutputSource:
    """Stream the stdout of an external process, then check its exit status.

    ``spawn`` is called lazily on the first ``chunks()`` call so nothing runs
    before the entry header has been written. A non-zero exit raises
    ``SubprocessError`` once the pipe is drained.
    """

    def __init__(
        self,
        spawn: Callable[[], subprocess.Popen],
        label: str,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self._spawn = spawn
        self.label = label
        self.chunk_size = chunk_size
        self._proc: subprocess.Popen | None = None

    def __enter__(self) -> "ProcessOutputSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def chunks(self) -> Iterator[bytes]:
        proc = self._spawn()
        self._proc = proc
        assert proc.stdout is not None
        while True:
            try:
                chunk = proc.stdout.read(self.chunk_size)
            except OSError as exc:
                raise SubprocessError(f"cannot read output of {self.label}: {exc}") from exc
            if not chunk:
                break
            yield chunk

        stderr_bytes = proc.stderr.read() if proc.stderr is not None else b""
        returncode = proc.wait()
        self._release()
        if returncode != 0:
            err = stderr_bytes.decode("utf-8", errors="replace").strip()
            detail = f": {err}" if err else ""
            raise SubprocessError(f"{self.label} exited with status {returncode}{detail}")

    def _release(self) -> None:
        proc = self._proc
        if proc is None:
            return
        for stream in (proc.stdout, proc.stderr):
            if stream is not None:
                stream.close()
        self._proc = None

    def close(self) -> None:
        """Stop a process abandoned mid-stream and reap it."""
        proc = self._proc
        if proc is None:
            return
        if proc.poll() is None:
            LOG.debug("terminating unfinished %s", self.label)
            proc.kill()
        proc.wait()
        self._release()


__all__ = ["CHUNK_SIZE", "ByteSource", "FileSource", "ProcessOutputSource"]
