"""Filesystem cache directory management.

The cache root is determined by the ``COSMOJAX_CACHE`` environment variable.
If unset, it defaults to ``~/.cache/cosmojax``.  Generated ephemerides are
stored in the ``ephemerides`` subdirectory.
"""

from __future__ import annotations

import os
from pathlib import Path

_ENV_VAR = "COSMOJAX_CACHE"
_DEFAULT_SUBDIR = ".cache/cosmojax"


def get_cache_dir(subdirectory: str | None = None) -> Path:
    """Return the cosmojax cache directory, creating it if needed.

    The root is ``$COSMOJAX_CACHE`` if set, otherwise ``~/.cache/cosmojax``.
    An optional *subdirectory* is appended and also created.

    Args:
        subdirectory: Optional subdirectory to append (e.g. ``"ephemerides"``).

    Returns:
        Resolved :class:`~pathlib.Path` to the cache directory.
    """
    env = os.environ.get(_ENV_VAR)
    if env is not None:
        root = Path(env)
    else:
        root = Path.home() / _DEFAULT_SUBDIR

    if subdirectory is not None:
        root = root / subdirectory

    root.mkdir(parents=True, exist_ok=True)
    return root


def get_ephemeris_cache_dir() -> Path:
    """Return the ephemeris cache directory (``<cache>/ephemerides``)."""
    return get_cache_dir("ephemerides")
