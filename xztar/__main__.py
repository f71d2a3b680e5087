"""Module entrypoint for ``python -m xztar``.

Argument parsing and error reporting happen in ``xztar.cli``.
"""

import sys

from .cli import main


if __name__ == "__main__":
    sys.exit(main())
