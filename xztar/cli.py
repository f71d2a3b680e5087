"""Command-line front door for xztar.

Parses arguments, resolves the output destination and run options, then
streams the archive. This is the single place errors are reported: any
``XzTarError`` is logged with its tag and turned into exit status 1.
"""

from __future__ import annotations

import argparse
import contextlib
import logging
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from .builder import build_archive
from .config import THREADS_ENV_VAR, resolve_options
from .errors import WriteError, XzTarError

LOG = logging.getLogger("xztar")


def _positive_int(value: str) -> int:
    """argparse type for positive integer values."""
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be >= 1")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xztar",
        description="Stream a directory as a tar archive, decompressing .xz files on the fly.",
    )
    parser.add_argument("directory", help="Directory to archive.")
    parser.add_argument("output", nargs="?", default=None, help="Output file. Defaults to standard output.")
    parser.add_argument(
        "--threads",
        type=_positive_int,
        default=None,
        help=f"xz decompression threads (default: ${THREADS_ENV_VAR}, config, or CPU count).",
    )
    parser.add_argument("--xz", dest="xz_command", default=None, help="Path to the xz executable.")
    parser.add_argument(
        "--keep-partial",
        action="store_true",
        help="Keep a partially written output file when archiving fails.",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log debug details to stderr.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors.")
    return parser


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Send diagnostics to stderr; stdout may be carrying the archive."""
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    LOG.handlers[:] = [handler]
    LOG.setLevel(level)
    LOG.propagate = False


@contextlib.contextmanager
def open_output(path: Path | None, keep_partial: bool = False) -> Iterator[BinaryIO]:
    """Yield the archive sink: ``path`` opened for writing, or stdout.

    When the body of the ``with`` block fails, a file created here is
    removed unless ``keep_partial`` is set.
    """
    if path is None:
        yield sys.stdout.buffer
        return

    try:
        handle = path.open("wb")
    except OSError as exc:
        raise WriteError(f"cannot create output file {path}: {exc}", tag="open-output") from exc

    try:
        with handle:
            yield handle
    except BaseException:
        if not keep_partial:
            try:
                path.unlink()
            except OSError as exc:
                LOG.warning("could not remove incomplete archive %s: %s", path, exc)
            else:
                LOG.warning("removed incomplete archive %s", path)
        raise


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and write the archive; return the exit status."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    root = Path(args.directory)
    output = Path(args.output) if args.output is not None else None
    LOG.info("Processing directory: %s", root)

    options = resolve_options(threads=args.threads, xz_command=args.xz_command)
    LOG.info(
        "Using %d xz threads (customize using %s environment variable)",
        options.xz_threads,
        THREADS_ENV_VAR,
    )

    try:
        with open_output(output, keep_partial=args.keep_partial) as sink:
            summary = build_archive(root, sink, options)
    except XzTarError as exc:
        LOG.error("error: %s", exc)
        return 1

    LOG.debug(
        "wrote %d entries (%d decompressed), %d bytes",
        summary.entries,
        summary.decompressed,
        summary.bytes_written,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
