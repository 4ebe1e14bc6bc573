"""Equations of motion for the estimated states.

Builds ``dynamics(t, state) -> derivative`` closures compatible with
:func:`~cosmojax.dynamics.integrators.rk4_step`.  The closures work on
the vector form of a :class:`~cosmojax.orbit.State`: six orbital
elements, optionally followed by the fuel mass.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from cosmojax.config import get_dtype
from cosmojax.dynamics.gravity import accel_point_mass


def two_body_dynamics(
    gm: float,
    third_bodies: Sequence[tuple[ArrayLike, float]] = (),
) -> Callable[[ArrayLike, ArrayLike], Array]:
    """Create the point-mass dynamics about a central body.

    Args:
        gm: Gravitational parameter of the central body [km^3/s^2].
        third_bodies: Optional fixed perturbing bodies as
            ``(position, gm)`` pairs expressed in the integration frame.

    Returns:
        A callable ``dynamics(t, state) -> derivative`` where *state* is
        ``[x, y, z, vx, vy, vz, ...]`` [km, km/s] and the derivative of
        any element past the sixth is zero (constant mass).

    Examples:
        ```python
        import jax.numpy as jnp
        from cosmojax.constants import GM_EARTH
        from cosmojax.dynamics import rk4_step, two_body_dynamics
        dynamics = two_body_dynamics(GM_EARTH)
        x0 = jnp.array([7000.0, 0.0, 0.0, 0.0, 7.5, 0.0])
        result = rk4_step(dynamics, 0.0, x0, 10.0)
        ```
    """
    _float = get_dtype()
    _bodies = tuple((jnp.asarray(r, dtype=_float), float(mu)) for r, mu in third_bodies)
    _origin = jnp.zeros(3, dtype=_float)

    def dynamics(t: ArrayLike, state: ArrayLike) -> Array:
        r = state[:3]
        v = state[3:6]

        a = accel_point_mass(r, _origin, gm)
        for r_body, mu in _bodies:
            a = a + accel_point_mass(r, r_body, mu)

        return jnp.concatenate([v, a, jnp.zeros_like(state[6:])])

    return dynamics
