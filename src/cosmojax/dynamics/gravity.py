"""Point-mass gravity.

All inputs and outputs use kilometres and seconds.

References:
    1. O. Montenbruck and E. Gill, *Satellite Orbits: Models, Methods
       and Applications*, 2012, p. 56-68.
"""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from cosmojax.config import get_dtype


def accel_point_mass(
    r_object: ArrayLike,
    r_body: ArrayLike,
    gm: float,
) -> Array:
    """Acceleration due to point-mass gravity.

    Computes the gravitational acceleration on *r_object* due to a body
    at *r_body* with gravitational parameter *gm*.  When the body sits at
    the origin of the frame the central form ``-gm * r / |r|^3`` is used,
    otherwise the indirect (third-body) form.

    Args:
        r_object: Position of the object [km].  Shape ``(3,)`` or longer
            (only the first 3 elements are used).
        r_body: Position of the attracting body [km].  Shape ``(3,)``.
        gm: Gravitational parameter of the attracting body [km^3/s^2].

    Returns:
        Acceleration vector [km/s^2], shape ``(3,)``.

    Examples:
        ```python
        import jax.numpy as jnp
        from cosmojax.constants import GM_EARTH, R_EARTH
        from cosmojax.dynamics import accel_point_mass
        a = accel_point_mass(jnp.array([R_EARTH, 0.0, 0.0]), jnp.zeros(3), GM_EARTH)
        ```
    """
    _float = get_dtype()
    r_obj = jnp.asarray(r_object, dtype=_float)[:3]
    r_cb = jnp.asarray(r_body, dtype=_float)

    d = r_obj - r_cb
    d_norm = jnp.linalg.norm(d)
    r_cb_norm = jnp.linalg.norm(r_cb)

    # Guard the norm so the unused branch stays finite under jacfwd
    safe_cb_norm = jnp.where(r_cb_norm > 0.0, r_cb_norm, 1.0)
    a_third = -gm * (d / d_norm**3 + r_cb / safe_cb_norm**3)
    a_central = -gm * d / d_norm**3

    return jnp.where(r_cb_norm > _float(0.0), a_third, a_central)
