"""Rotation matrices and the rotation models attached to frame-tree nodes.

Provides the elementary passive rotations ``Rx``, ``Ry``, ``Rz``, the
axis-angle rotation ``rotv`` used by the aberration correction, and the
closed set of parent-rotation models a frame may carry:

- :class:`IdentityRotation` -- axes coincide with the parent's axes
- :class:`IauRotation` -- IAU right ascension, declination and prime
  meridian angles given as expressions of ``T`` and ``d``

Both models expose ``dcm_to_parent(epoch)`` returning the 3x3 direction
cosine matrix that maps components in the frame's axes to components in
its parent's axes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from .config import get_dtype
from .epoch import Epoch
from .errors import LoadingError
from .expressions import Expression


def Rx(angle: float, use_degrees: bool = False) -> Array:
    """Rotation matrix, for a rotation about the x-axis.

    Args:
        angle (float): Counter-clockwise angle of rotation as viewed
            looking back along the postive direction of the rotation axis.
        use_degrees (bool): Handle input in degrees. Default: ``False``

    Returns:
        jax.Array: Rotation matrix.

    References:

        1. O. Montenbruck, and E. Gill, *Satellite Orbits: Models, Methods and Applications*, 2012, p.27.
    """
    if use_degrees:
        angle = jnp.deg2rad(angle)

    c = jnp.cos(angle)
    s = jnp.sin(angle)

    return jnp.array([[1.0,  0.0,  0.0],
                      [0.0,   +c,   +s],
                      [0.0,   -s,   +c]], dtype=get_dtype())


def Ry(angle: float, use_degrees: bool = False) -> Array:
    """Rotation matrix, for a rotation about the y-axis.

    Args:
        angle (float): Counter-clockwise angle of rotation as viewed
            looking back along the postive direction of the rotation axis.
        use_degrees (bool): Handle input in degrees. Default: ``False``

    Returns:
        jax.Array: Rotation matrix.
    """
    if use_degrees:
        angle = jnp.deg2rad(angle)

    c = jnp.cos(angle)
    s = jnp.sin(angle)

    return jnp.array([[ +c,  0.0,   -s],
                      [0.0, +1.0,  0.0],
                      [ +s,  0.0,   +c]], dtype=get_dtype())


def Rz(angle: float, use_degrees: bool = False) -> Array:
    """Rotation matrix, for a rotation about the z-axis.

    Args:
        angle (float): Counter-clockwise angle of rotation as viewed
            looking back along the postive direction of the rotation axis.
        use_degrees (bool): Handle input in degrees. Default: ``False``

    Returns:
        jax.Array: Rotation matrix.
    """
    if use_degrees:
        angle = jnp.deg2rad(angle)

    c = jnp.cos(angle)
    s = jnp.sin(angle)

    return jnp.array([[ +c,   +s,  0.0],
                      [ -s,   +c,  0.0],
                      [0.0,  0.0,  1.0]], dtype=get_dtype())


def rotv(v: ArrayLike, axis: ArrayLike, angle: float) -> Array:
    """Rotate vector *v* about the unit vector *axis* by *angle* radians.

    Uses the Rodrigues rotation formula. The rotation is active and
    right-handed.

    Args:
        v: Vector to rotate. Shape ``(3,)``.
        axis: Unit rotation axis. Shape ``(3,)``.
        angle: Rotation angle in radians.

    Returns:
        jax.Array: Rotated vector. Shape ``(3,)``.
    """
    v = jnp.asarray(v, dtype=get_dtype())
    k = jnp.asarray(axis, dtype=get_dtype())
    c = jnp.cos(angle)
    s = jnp.sin(angle)
    return v * c + jnp.cross(k, v) * s + k * jnp.dot(k, v) * (1.0 - c)


@dataclass(frozen=True)
class IdentityRotation:
    """Rotation model of a frame whose axes are its parent's axes."""

    def dcm_to_parent(self, epoch: Epoch) -> Array:
        return jnp.eye(3, dtype=get_dtype())


@dataclass(frozen=True)
class IauRotation:
    """IAU body-fixed orientation model.

    The body-fixed axes are obtained from the parent (J2000) axes by the
    3-1-3 sequence ``Rz(W) @ Rx(90 - dec) @ Rz(90 + ra)``.  The three
    angles are expressions of ``T`` (Julian centuries since J2000 TDB),
    ``d`` (days since J2000 TDB) and the named ``context`` expressions,
    which are themselves functions of ``T`` and ``d``.

    Attributes:
        right_asc: Right ascension of the north pole.
        declin: Declination of the north pole.
        w: Prime meridian angle.
        context: Named auxiliary angles referenced by the three expressions.
        angle_unit: ``"degrees"`` or ``"radians"``.

    References:
        B.A. Archinal et al., "Report of the IAU Working Group on Cartographic
        Coordinates and Rotational Elements: 2015", Celest Mech Dyn Astr
        (2018) 130:22.
    """

    right_asc: Expression
    declin: Expression
    w: Expression
    context: Mapping[str, Expression] = field(default_factory=dict)
    angle_unit: str = "degrees"

    @classmethod
    def from_definition(cls, definition: Mapping[str, Any]) -> IauRotation:
        """Build the model from a ``[frames.<name>.rotation]`` table.

        Args:
            definition: Mapping with ``right_asc``, ``declin``, ``w`` and the
                optional ``context`` and ``angle_unit`` keys.

        Returns:
            IauRotation: The parsed rotation model.

        Raises:
            LoadingError: If a key is missing, an expression does not parse,
                or the angle unit is unknown.
        """
        try:
            right_asc = Expression(definition["right_asc"])
            declin = Expression(definition["declin"])
            w = Expression(definition["w"])
        except KeyError as err:
            raise LoadingError(f"rotation definition is missing {err}") from err

        angle_unit = str(definition.get("angle_unit", "degrees")).lower()
        if angle_unit not in ("degrees", "radians"):
            raise LoadingError(f"unknown angle unit `{angle_unit}`")

        context = {
            name: Expression(text)
            for name, text in definition.get("context", {}).items()
        }
        return cls(right_asc, declin, w, context, angle_unit)

    def angles(self, epoch: Epoch) -> tuple[float, float, float]:
        """Evaluate right ascension, declination and prime meridian in radians."""
        d = epoch.tdb_days_since_j2000()
        variables = {"T": d / 36525.0, "d": d}
        degrees = self.angle_unit == "degrees"
        for name, expr in self.context.items():
            variables[name] = expr.evaluate(variables, degrees)

        ra = self.right_asc.evaluate(variables, degrees)
        dec = self.declin.evaluate(variables, degrees)
        w = self.w.evaluate(variables, degrees)
        if degrees:
            return float(jnp.deg2rad(ra)), float(jnp.deg2rad(dec)), float(jnp.deg2rad(w))
        return ra, dec, w

    def dcm_to_parent(self, epoch: Epoch) -> Array:
        ra, dec, w = self.angles(epoch)
        half_pi = jnp.pi / 2.0
        dcm_from_parent = Rz(w) @ Rx(half_pi - dec) @ Rz(half_pi + ra)
        return dcm_from_parent.T


Rotation = Union[IdentityRotation, IauRotation]
