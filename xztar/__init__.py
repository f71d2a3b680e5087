"""Public package surface for xztar.

Exports ``main`` for programmatic CLI invocation and ``build_archive`` for
library use. Implementation lives in the submodules.
"""

from __future__ import annotations

from .builder import build_archive
from .config import ArchiveOptions


def main(*args, **kwargs):
    """Lazily import CLI entrypoint to keep package imports lightweight."""
    from .cli import main as _main

    return _main(*args, **kwargs)


__all__ = ["main", "build_archive", "ArchiveOptions"]
