"""Chebyshev ephemerides of the solar system bodies.

Available components:

- :class:`Ephemeris` -- A body of the ephemeris hierarchy
- :class:`EphemerisStore` -- Hierarchy with interpolation and ``.npz`` persistence
- :func:`chebyshev_state` -- Evaluate one Chebyshev window
- :func:`approximate_ephemeris` -- Fit a store to the analytic models
- :func:`load_cached_ephemeris` -- Same, cached on disk
- :class:`ApproximateEphemerisConfig` -- Fit configuration
"""

from cosmojax.ephemerides.builder import (
    ApproximateEphemerisConfig,
    approximate_ephemeris,
    fit_chebyshev_windows,
    load_cached_ephemeris,
)
from cosmojax.ephemerides.store import Ephemeris, EphemerisStore, chebyshev_state

__all__ = [
    "Ephemeris",
    "EphemerisStore",
    "chebyshev_state",
    "ApproximateEphemerisConfig",
    "approximate_ephemeris",
    "fit_chebyshev_windows",
    "load_cached_ephemeris",
]
