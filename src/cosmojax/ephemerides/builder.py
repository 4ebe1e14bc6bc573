"""Build Chebyshev ephemerides from the analytic planetary models.

cosmojax does not ship a licensed numerical ephemeris.  Instead,
:func:`approximate_ephemeris` fits Chebyshev windows to the analytic
models in :mod:`cosmojax.ephemerides._analytic` and arranges them in the
same hierarchy as the JPL development ephemerides:

| Path     | Body                 | Stored relative to    |
|----------|----------------------|-----------------------|
| ``()``   | Solar System Barycenter |                    |
| ``(0,)`` | Sun                  | barycenter            |
| ``(1,)`` | Mercury Barycenter   | barycenter            |
| ``(2,)`` | Venus Barycenter     | barycenter            |
| ``(3,)`` | Earth Barycenter     | barycenter            |
| ``(3, 0)`` | Earth              | Earth Barycenter      |
| ``(3, 1)`` | Moon               | Earth Barycenter      |
| ``(4,)`` ... ``(8,)`` | Mars ... Neptune Barycenter | barycenter |

Each window is a constrained least-squares fit: the series matches the
model position and velocity exactly at both window edges, so adjacent
windows join continuously, and fits the model in a least-squares sense
at Chebyshev-Lobatto nodes in between.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import NamedTuple

import jax
import jax.numpy as jnp
from jax import Array

from cosmojax.config import get_dtype
from cosmojax.constants import (
    GM_EARTH,
    GM_EARTH_BARYCENTER,
    GM_JUPITER_BARYCENTER,
    GM_MARS_BARYCENTER,
    GM_MERCURY_BARYCENTER,
    GM_MOON,
    GM_NEPTUNE_BARYCENTER,
    GM_SATURN_BARYCENTER,
    GM_URANUS_BARYCENTER,
    GM_VENUS_BARYCENTER,
    JD_J2000,
    MOON_FLATTENING,
    R_EARTH,
    R_MOON,
    SUN_GM,
    SUN_RADIUS,
    WGS84_f,
)
from cosmojax.ephemerides._analytic import moon_geocentric, planet_heliocentric, sun_barycentric
from cosmojax.ephemerides.store import Ephemeris, EphemerisStore
from cosmojax.epoch import Epoch
from cosmojax.utils.caching import get_ephemeris_cache_dir

logger = logging.getLogger(__name__)

# Planetary system GMs in the row order of the JPL element table
_PLANET_GMS = (
    GM_MERCURY_BARYCENTER,
    GM_VENUS_BARYCENTER,
    GM_EARTH_BARYCENTER,
    GM_MARS_BARYCENTER,
    GM_JUPITER_BARYCENTER,
    GM_SATURN_BARYCENTER,
    GM_URANUS_BARYCENTER,
    GM_NEPTUNE_BARYCENTER,
)


class ApproximateEphemerisConfig(NamedTuple):
    """Sampling configuration of the Chebyshev fits.

    Attributes:
        samples_per_coefficient: Number of fit nodes per Chebyshev
            coefficient in each window.
        version: Cache file format version; bump to invalidate caches.
    """

    samples_per_coefficient: int = 3
    version: int = 1


class _BodySpec(NamedTuple):
    name: str
    exb_id: int
    path: tuple[int, ...]
    window_duration: float
    degree: int
    constants: dict[str, float]


_BODIES = (
    _BodySpec("Sun", 10, (0,), 16.0, 11,
              {"GM": SUN_GM, "Flattening": 0.0, "Equatorial radius": SUN_RADIUS}),
    _BodySpec("Mercury Barycenter", 1, (1,), 8.0, 14, {"GM": GM_MERCURY_BARYCENTER}),
    _BodySpec("Venus Barycenter", 2, (2,), 16.0, 10, {"GM": GM_VENUS_BARYCENTER}),
    _BodySpec("Earth Barycenter", 3, (3,), 16.0, 13, {"GM": GM_EARTH_BARYCENTER}),
    _BodySpec("Earth", 399, (3, 0), 4.0, 13,
              {"GM": GM_EARTH, "Flattening": WGS84_f, "Equatorial radius": R_EARTH}),
    _BodySpec("Moon", 301, (3, 1), 4.0, 13,
              {"GM": GM_MOON, "Flattening": MOON_FLATTENING, "Equatorial radius": R_MOON}),
    _BodySpec("Mars Barycenter", 4, (4,), 32.0, 11, {"GM": GM_MARS_BARYCENTER}),
    _BodySpec("Jupiter Barycenter", 5, (5,), 32.0, 8, {"GM": GM_JUPITER_BARYCENTER}),
    _BodySpec("Saturn Barycenter", 6, (6,), 32.0, 7, {"GM": GM_SATURN_BARYCENTER}),
    _BodySpec("Uranus Barycenter", 7, (7,), 32.0, 6, {"GM": GM_URANUS_BARYCENTER}),
    _BodySpec("Neptune Barycenter", 8, (8,), 32.0, 6, {"GM": GM_NEPTUNE_BARYCENTER}),
)


def _body_model(path: tuple[int, ...]) -> Callable[[Array], Array]:
    """Return the position model of the body at *path*, relative to its parent."""
    gms = jnp.asarray(_PLANET_GMS, dtype=get_dtype())
    moon_ratio = GM_MOON / (GM_EARTH + GM_MOON)

    if path == (0,):
        return lambda d: sun_barycentric(d, gms)
    if path == (3, 0):
        return lambda d: -moon_ratio * moon_geocentric(d)
    if path == (3, 1):
        return lambda d: (1.0 - moon_ratio) * moon_geocentric(d)

    planet_id = path[0] - 1
    return lambda d: planet_heliocentric(planet_id, d) + sun_barycentric(d, gms)


def _chebyshev_basis(x: Array, degree: int) -> Array:
    """Chebyshev polynomials ``T_0 .. T_{degree-1}`` at nodes *x*, shape ``(len(x), degree)``."""
    cols = [jnp.ones_like(x), x]
    for _ in range(2, degree):
        cols.append(2.0 * x * cols[-1] - cols[-2])
    return jnp.stack(cols[:degree], axis=-1)


def fit_chebyshev_windows(
    model: Callable[[Array], Array],
    start: float,
    window_duration: float,
    n_windows: int,
    degree: int,
    samples: int,
) -> Array:
    """Fit contiguous Chebyshev windows to a position model.

    Solves, for every window, the equality-constrained least-squares
    problem ``min |A c - y|^2`` subject to matching position and velocity
    at both window edges, through its KKT system.

    Args:
        model: Position model ``f(d) -> (3,)`` in km, *d* in days.
        start: Start of the first window in days since J2000.
        window_duration: Window duration in days.
        n_windows: Number of windows.
        degree: Number of Chebyshev coefficients per component (>= 4).
        samples: Number of Chebyshev-Lobatto fit nodes per window.

    Returns:
        jax.Array: Coefficients of shape ``(n_windows, 3, degree)``.
    """
    if degree < 4:
        raise ValueError("at least four coefficients are needed to match both window edges")
    dtype = get_dtype()

    x = -jnp.cos(jnp.pi * jnp.arange(samples, dtype=dtype) / (samples - 1))
    A = _chebyshev_basis(x, degree)

    k = jnp.arange(degree, dtype=dtype)
    scale = 2.0 / window_duration
    C = jnp.stack([
        (-1.0) ** k,
        jnp.ones(degree, dtype=dtype),
        scale * (-1.0) ** (k + 1) * k ** 2,
        scale * k ** 2,
    ])
    kkt = jnp.block([
        [2.0 * A.T @ A, C.T],
        [C, jnp.zeros((4, 4), dtype=dtype)],
    ])

    starts = start + window_duration * jnp.arange(n_windows, dtype=dtype)
    times = starts[:, None] + 0.5 * (x[None, :] + 1.0) * window_duration

    positions = jax.jit(jax.vmap(model))(times.ravel()).reshape(n_windows, samples, 3)
    rates = jax.jit(jax.vmap(jax.jacfwd(model)))(jnp.concatenate([starts, starts + window_duration]))
    rate_lo, rate_hi = rates[:n_windows], rates[n_windows:]

    top = 2.0 * jnp.einsum("mk,nmc->nkc", A, positions)
    bottom = jnp.stack([positions[:, 0], positions[:, -1], rate_lo, rate_hi], axis=1)
    rhs = jnp.concatenate([top, bottom], axis=1)

    size = degree + 4
    solution = jnp.linalg.solve(kkt, rhs.transpose(1, 0, 2).reshape(size, n_windows * 3))
    coeffs = solution[:degree].reshape(degree, n_windows, 3)
    return coeffs.transpose(1, 2, 0)


def approximate_ephemeris(
    start: Epoch,
    end: Epoch,
    config: ApproximateEphemerisConfig = ApproximateEphemerisConfig(),
) -> EphemerisStore:
    """Build an ephemeris store covering ``[start, end]``.

    Args:
        start: First epoch to cover.
        end: Last epoch to cover.
        config: Fit configuration.

    Returns:
        EphemerisStore: Store with the Sun, the planetary system
            barycenters, the Earth and the Moon.

    Raises:
        ValueError: If *end* precedes *start*.

    Examples:
        ```python
        from cosmojax import Epoch
        from cosmojax.ephemerides import approximate_ephemeris
        store = approximate_ephemeris(Epoch(2020, 1, 1), Epoch(2020, 3, 1))
        store.names()[:3]  # ['Sun', 'Mercury Barycenter', 'Venus Barycenter']
        ```
    """
    if end < start:
        raise ValueError(f"ephemeris end {end} precedes start {start}")

    # Windows start on a TDB midnight
    start_jde = math.floor(start.jde_tdb() - 0.5) + 0.5
    span = end.jde_tdb() - start_jde
    start_d = start_jde - JD_J2000

    root = Ephemeris("Solar System Barycenter", 0)
    store = EphemerisStore(root)
    for body in _BODIES:
        n_windows = max(1, math.ceil(span / body.window_duration))
        coeffs = fit_chebyshev_windows(
            _body_model(body.path),
            start_d,
            body.window_duration,
            n_windows,
            body.degree,
            config.samples_per_coefficient * body.degree,
        )
        parent = store.ephemeris_from_path(body.path[:-1])
        parent.children.append(
            Ephemeris(
                name=body.name,
                exb_id=body.exb_id,
                constants=dict(body.constants),
                start_jde=start_jde,
                window_duration=body.window_duration,
                coefficients=coeffs,
            )
        )
        logger.debug("Fitted %d windows for %s", n_windows, body.name)

    logger.info("Built approximate ephemeris from JDE %.1f over %.1f days", start_jde, span)
    return store


def load_cached_ephemeris(
    start: Epoch,
    end: Epoch,
    config: ApproximateEphemerisConfig = ApproximateEphemerisConfig(),
) -> EphemerisStore:
    """Return an approximate ephemeris, building and caching it on first use.

    Cached stores live in ``<cache>/ephemerides`` and are keyed by the
    covered span and the configuration.

    Args:
        start: First epoch to cover.
        end: Last epoch to cover.
        config: Fit configuration.

    Returns:
        EphemerisStore: The cached or newly built store.
    """
    start_jde = math.floor(start.jde_tdb() - 0.5) + 0.5
    end_jde = math.ceil(end.jde_tdb() - 0.5) + 0.5
    filename = (
        f"approx_{start_jde:.1f}_{end_jde:.1f}_"
        f"s{config.samples_per_coefficient}_v{config.version}.npz"
    )
    filepath = get_ephemeris_cache_dir() / filename

    if filepath.exists():
        logger.info("Using cached ephemeris %s", filepath)
        return EphemerisStore.load(filepath)

    store = approximate_ephemeris(start, Epoch.from_jde_tdb(end_jde), config)
    store.save(filepath)
    return store
