"""Run configuration: decompressor thread hint and ``xz`` executable.

Values come from CLI flags, the environment, then an optional JSON config
file. Config access is defensive: a malformed or missing file falls back to
built-in defaults.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_config_dir

LOG = logging.getLogger(__name__)

APP_NAME = "xztar"
CONFIG_FILENAME = "config.json"
DEFAULT_CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
CONFIG_PATH = DEFAULT_CONFIG_PATH

THREADS_ENV_VAR = "XZ_NUM_THREADS"
XZ_COMMAND_ENV_VAR = "XZTAR_XZ"
DEFAULT_XZ_COMMAND = "xz"


@dataclass(frozen=True)
class ArchiveOptions:
    """Settings passed explicitly into ``build_archive``."""

    xz_threads: int
    xz_command: str = DEFAULT_XZ_COMMAND


def load_config() -> dict[str, object]:
    """Load the JSON config object.

    Returns an empty dict when the file is missing, unreadable, malformed, or
    does not decode to a top-level JSON object.
    """
    try:
        data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        LOG.warning("ignoring unreadable config %s: %s", CONFIG_PATH, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _coerce_positive_int(value: object) -> int | None:
    """Accept positive ints and their decimal string forms; ``None`` otherwise."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int) or value <= 0:
        return None
    return value


def default_thread_count() -> int:
    """Number of processing units on this host, at least 1."""
    return max(1, os.cpu_count() or 1)


def resolve_xz_threads(
    cli_value: int | None = None,
    environ: Mapping[str, str] | None = None,
    config: Mapping[str, object] | None = None,
) -> int:
    """Resolve the decompressor parallelism hint.

    Precedence is ``cli_value``, ``XZ_NUM_THREADS``, the ``xz_threads`` config
    key, then the host CPU count. Invalid values at any level are skipped.
    """
    if cli_value is not None and cli_value > 0:
        return cli_value

    env = os.environ if environ is None else environ
    raw_env = env.get(THREADS_ENV_VAR)
    if raw_env:
        parsed = _coerce_positive_int(raw_env)
        if parsed is not None:
            return parsed
        LOG.debug("ignoring invalid %s=%r", THREADS_ENV_VAR, raw_env)

    cfg = load_config() if config is None else config
    parsed = _coerce_positive_int(cfg.get("xz_threads"))
    if parsed is not None:
        return parsed

    return default_thread_count()


def resolve_xz_command(
    cli_value: str | None = None,
    environ: Mapping[str, str] | None = None,
    config: Mapping[str, object] | None = None,
) -> str:
    """Resolve the ``xz`` executable from flag, ``XZTAR_XZ``, config, or default."""
    if cli_value:
        return cli_value

    env = os.environ if environ is None else environ
    from_env = env.get(XZ_COMMAND_ENV_VAR, "").strip()
    if from_env:
        return from_env

    cfg = load_config() if config is None else config
    value = cfg.get("xz_command")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return DEFAULT_XZ_COMMAND


def resolve_options(
    threads: int | None = None,
    xz_command: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ArchiveOptions:
    """Build ``ArchiveOptions`` reading the config file at most once."""
    config = load_config()
    return ArchiveOptions(
        xz_threads=resolve_xz_threads(threads, environ, config),
        xz_command=resolve_xz_command(xz_command, environ, config),
    )


__all__ = [
    "ArchiveOptions",
    "CONFIG_PATH",
    "THREADS_ENV_VAR",
    "XZ_COMMAND_ENV_VAR",
    "DEFAULT_XZ_COMMAND",
    "load_config",
    "default_thread_count",
    "resolve_xz_threads",
    "resolve_xz_command",
    "resolve_options",
]
