"""Analytic planetary and lunar position models used to build ephemerides.

Every function takes *d*, the TDB days elapsed since J2000.0, as a JAX
scalar and returns a position in kilometres in the EME2000 (J2000
equatorial) axes.  They are written for ``jax.vmap`` over time and
``jax.jacfwd`` with respect to time, which the Chebyshev fitter uses to
sample positions and velocities.

- :func:`planet_heliocentric` -- JPL Keplerian elements (Table 1)
- :func:`moon_geocentric` -- Montenbruck & Gill low-precision lunar theory
- :func:`sun_barycentric` -- Sun relative to the solar system barycenter

References:
    1. E.M. Standish & J.G. Williams, "Keplerian Elements for Approximate
       Positions of the Major Planets", https://ssd.jpl.nasa.gov/planets/approx_pos.html
    2. O. Montenbruck and E. Gill, *Satellite Orbits: Models, Methods
       and Applications*, 2012.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
from jax import Array

from cosmojax.constants import AS2RAD, AU, DAYS_PER_CENTURY, DEG2RAD, SUN_GM
from cosmojax.ephemerides._jpl_coefficients import TABLE1_ELEMENTS, TABLE1_OBLIQUITY
from cosmojax.rotations import Rx, Rz

# Obliquity of the J2000 ecliptic used by the lunar theory [rad]
_EPSILON = 23.43929111 * DEG2RAD


def _frac(x):
    """Fractional part of x: ``x - floor(x)``."""
    return x - jnp.floor(x)


def _solve_kepler(M: Array, e: Array) -> Array:
    """Solve Kepler's equation ``M = E - e sin(E)`` for ``E`` (radians).

    Newton-Raphson iteration with ``jax.lax.fori_loop`` so the solver can
    be traced and differentiated.
    """
    E0 = jnp.where(e < 0.8, M, jnp.pi)

    def newton_step(_, E):
        f = E - e * jnp.sin(E) - M
        return E - f / (1.0 - e * jnp.cos(E))

    return jax.lax.fori_loop(0, 10, newton_step, E0)


def planet_heliocentric(planet_id: int, d: Array) -> Array:
    """Heliocentric position of a planet (system barycenter) in EME2000.

    Propagates the Keplerian elements to the requested time, solves
    Kepler's equation, rotates the orbital-plane position into the
    ecliptic and then into the equator of J2000.

    Args:
        planet_id: Row of ``TABLE1_ELEMENTS`` (0=Mercury ... 7=Neptune).
        d: TDB days since J2000.0.

    Returns:
        Heliocentric position in km. Shape ``(3,)``.
    """
    T = d / DAYS_PER_CENTURY
    coeffs = TABLE1_ELEMENTS[planet_id]

    a = coeffs[0, 0] + coeffs[0, 1] * T
    e = coeffs[1, 0] + coeffs[1, 1] * T
    incl = coeffs[2, 0] + coeffs[2, 1] * T
    L = coeffs[3, 0] + coeffs[3, 1] * T
    lon_peri = coeffs[4, 0] + coeffs[4, 1] * T
    lon_node = coeffs[5, 0] + coeffs[5, 1] * T

    omega = lon_peri - lon_node
    M = (L - lon_peri) % 360.0
    M = jnp.where(M > 180.0, M - 360.0, M)

    E = _solve_kepler(jnp.deg2rad(M), e)
    x_prime = a * (jnp.cos(E) - e)
    y_prime = a * jnp.sqrt(1.0 - e * e) * jnp.sin(E)

    r_orbital = jnp.array([x_prime, y_prime, 0.0])
    r_ecliptic = Rz(-lon_node, use_degrees=True) @ (
        Rx(-incl, use_degrees=True) @ (Rz(-omega, use_degrees=True) @ r_orbital)
    )
    return Rx(-TABLE1_OBLIQUITY, use_degrees=True) @ r_ecliptic * AU


def sun_barycentric(d: Array, planet_gms: Array) -> Array:
    """Position of the Sun relative to the solar system barycenter.

    The barycenter is the mass-weighted mean of the Sun and the planetary
    system barycenters, so the Sun sits at ``-sum(GM_i r_i) / sum(GM)``
    where ``r_i`` are the heliocentric planet positions.

    Args:
        d: TDB days since J2000.0.
        planet_gms: Gravitational parameters of the eight planetary
            systems, ordered as ``TABLE1_ELEMENTS``. Units: *km^3/s^2*

    Returns:
        Barycentric position of the Sun in km. Shape ``(3,)``.
    """
    helio = jnp.stack([planet_heliocentric(i, d) for i in range(TABLE1_ELEMENTS.shape[0])])
    total_gm = SUN_GM + jnp.sum(planet_gms)
    return -(planet_gms @ helio) / total_gm


def moon_geocentric(d: Array) -> Array:
    """Position of the Moon relative to the Earth in EME2000.

    Args:
        d: TDB days since J2000.0.

    Returns:
        Geocentric lunar position in km. Shape ``(3,)``.
    """
    pi2 = 2.0 * jnp.pi
    T = d / DAYS_PER_CENTURY

    # Mean elements of the lunar orbit
    L_0 = _frac(0.606433 + 1336.851344 * T)
    l_m = pi2 * _frac(0.374897 + 1325.552410 * T)
    lp = pi2 * _frac(0.993133 + 99.997361 * T)
    D = pi2 * _frac(0.827361 + 1236.853086 * T)
    F = pi2 * _frac(0.259086 + 1342.227825 * T)

    # Ecliptic longitude perturbation [arcsec]
    dL = (
        22640.0 * jnp.sin(l_m)
        - 4586.0 * jnp.sin(l_m - 2.0 * D)
        + 2370.0 * jnp.sin(2.0 * D)
        + 769.0 * jnp.sin(2.0 * l_m)
        - 668.0 * jnp.sin(lp)
        - 412.0 * jnp.sin(2.0 * F)
        - 212.0 * jnp.sin(2.0 * l_m - 2.0 * D)
        - 206.0 * jnp.sin(l_m + lp - 2.0 * D)
        + 192.0 * jnp.sin(l_m + 2.0 * D)
        - 165.0 * jnp.sin(lp - 2.0 * D)
        - 125.0 * jnp.sin(D)
        - 110.0 * jnp.sin(l_m + lp)
        + 148.0 * jnp.sin(l_m - lp)
        - 55.0 * jnp.sin(2.0 * F - 2.0 * D)
    )

    L = pi2 * _frac(L_0 + dL / 1296.0e3)

    S = F + (dL + 412.0 * jnp.sin(2.0 * F) + 541.0 * jnp.sin(lp)) * AS2RAD
    h = F - 2.0 * D
    N = (
        -526.0 * jnp.sin(h)
        + 44.0 * jnp.sin(l_m + h)
        - 31.0 * jnp.sin(-l_m + h)
        - 23.0 * jnp.sin(lp + h)
        + 11.0 * jnp.sin(-lp + h)
        - 25.0 * jnp.sin(-2.0 * l_m + F)
        + 21.0 * jnp.sin(-l_m + F)
    )
    B = (18520.0 * jnp.sin(S) + N) * AS2RAD

    # Distance [km]
    r = (
        385000.0
        - 20905.0 * jnp.cos(l_m)
        - 3699.0 * jnp.cos(2.0 * D - l_m)
        - 2956.0 * jnp.cos(2.0 * D)
        - 570.0 * jnp.cos(2.0 * l_m)
        + 246.0 * jnp.cos(2.0 * l_m - 2.0 * D)
        - 205.0 * jnp.cos(lp - 2.0 * D)
        - 171.0 * jnp.cos(l_m + 2.0 * D)
        - 152.0 * jnp.cos(l_m + lp - 2.0 * D)
    )

    r_ecliptic = jnp.array([
        r * jnp.cos(L) * jnp.cos(B),
        r * jnp.sin(L) * jnp.cos(B),
        r * jnp.sin(B),
    ])
    return Rx(-_EPSILON) @ r_ecliptic
