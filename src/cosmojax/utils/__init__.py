"""Utility helpers for cosmojax."""

from cosmojax.utils.caching import get_cache_dir, get_ephemeris_cache_dir

__all__ = [
    "get_cache_dir",
    "get_ephemeris_cache_dir",
]
