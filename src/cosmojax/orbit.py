"""Cartesian state value types.

- :class:`Orbit` -- position and velocity at an epoch in a frame, with an
  optional 6x6 state transition matrix (STM)
- :class:`SpacecraftState` -- an orbit plus dry and fuel mass, estimated
  as a 7-element state with a 7x7 STM
- :class:`State` -- the protocol both satisfy, consumed by the
  propagator, the measurement devices and the Kalman filter

States are immutable: arithmetic and setters return new instances.
Positions are in km, velocities in km/s.
"""

from __future__ import annotations

from typing import Protocol

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from cosmojax.config import get_dtype
from cosmojax.epoch import Epoch
from cosmojax.errors import FrameMismatch
from cosmojax.frames import Frame, Geoid


class State(Protocol):
    """Contract of an estimated state."""

    epoch: Epoch
    stm: Array | None

    @property
    def size(self) -> int: ...

    @property
    def frame(self) -> Frame: ...

    @property
    def orbit(self) -> Orbit: ...

    def to_vector(self) -> Array: ...

    def with_vector(self, epoch: Epoch, vector: ArrayLike, stm: ArrayLike | None = None) -> State: ...

    def __add__(self, deviation: ArrayLike) -> State: ...


class Orbit:
    """Cartesian orbital state.

    Args:
        epoch: Epoch of the state.
        position: Position vector in km. Shape ``(3,)``.
        velocity: Velocity vector in km/s. Shape ``(3,)``.
        frame: Frame in which the state is expressed.
        stm: Optional 6x6 state transition matrix.

    Examples:
        ```python
        from cosmojax import Cosm, Epoch, Orbit
        cosm = Cosm.approximate(Epoch(2020, 1, 1), Epoch(2020, 1, 10))
        eme2k = cosm.frame("EME2000")
        orbit = Orbit.keplerian(22000.0, 0.01, 30.0, 80.0, 40.0, 0.0,
                                Epoch(2020, 1, 2), eme2k)
        orbit.sma()  # 22000.0
        ```
    """

    __slots__ = ("epoch", "position", "velocity", "_frame", "stm")

    def __init__(
        self,
        epoch: Epoch,
        position: ArrayLike,
        velocity: ArrayLike,
        frame: Frame,
        stm: ArrayLike | None = None,
    ) -> None:
        dtype = get_dtype()
        self.epoch = epoch
        self.position = jnp.asarray(position, dtype=dtype).reshape(3)
        self.velocity = jnp.asarray(velocity, dtype=dtype).reshape(3)
        self._frame = frame
        self.stm = None if stm is None else jnp.asarray(stm, dtype=dtype)

    # Constructors

    @classmethod
    def cartesian(
        cls,
        x: float,
        y: float,
        z: float,
        vx: float,
        vy: float,
        vz: float,
        epoch: Epoch,
        frame: Frame,
    ) -> Orbit:
        """Create an orbit from Cartesian components (km and km/s)."""
        return cls(epoch, [x, y, z], [vx, vy, vz], frame)

    @classmethod
    def from_vector(
        cls,
        vector: ArrayLike,
        epoch: Epoch,
        frame: Frame,
        stm: ArrayLike | None = None,
    ) -> Orbit:
        """Create an orbit from a ``[x, y, z, vx, vy, vz]`` vector."""
        vector = jnp.asarray(vector, dtype=get_dtype())
        return cls(epoch, vector[:3], vector[3:6], frame, stm)

    @classmethod
    def zeros(cls, epoch: Epoch, frame: Frame) -> Orbit:
        """Create the null state of *frame*: its center at rest."""
        zeros = jnp.zeros(3, dtype=get_dtype())
        return cls(epoch, zeros, zeros, frame)

    @classmethod
    def keplerian(
        cls,
        sma: float,
        ecc: float,
        inc: float,
        raan: float,
        aop: float,
        ta: float,
        epoch: Epoch,
        frame: Frame,
    ) -> Orbit:
        """Create an orbit from osculating Keplerian elements.

        Constructs position and velocity from the perifocal P and Q
        vectors using the frame's gravitational parameter.

        Args:
            sma: Semi-major axis in km.
            ecc: Eccentricity (elliptical orbits, ``0 <= ecc < 1``).
            inc: Inclination in degrees.
            raan: Right ascension of the ascending node in degrees.
            aop: Argument of periapsis in degrees.
            ta: True anomaly in degrees.
            epoch: Epoch of the state.
            frame: Frame of the state, providing ``gm``.

        Returns:
            Orbit: The Cartesian state.

        Raises:
            ValueError: If the eccentricity is not elliptical.

        References:
            O. Montenbruck and E. Gill, *Satellite Orbits*, 2012, Eq. 2.43-2.44.
        """
        if not 0.0 <= ecc < 1.0:
            raise ValueError(f"eccentricity must be in [0, 1), got {ecc}")

        i, raan, omega, nu = (jnp.deg2rad(angle) for angle in (inc, raan, aop, ta))

        cos_o = jnp.cos(omega)
        sin_o = jnp.sin(omega)
        cos_R = jnp.cos(raan)
        sin_R = jnp.sin(raan)
        cos_i = jnp.cos(i)
        sin_i = jnp.sin(i)

        P = jnp.array([
            cos_o * cos_R - sin_o * cos_i * sin_R,
            cos_o * sin_R + sin_o * cos_i * cos_R,
            sin_o * sin_i,
        ])
        Q = jnp.array([
            -sin_o * cos_R - cos_o * cos_i * sin_R,
            -sin_o * sin_R + cos_o * cos_i * cos_R,
            cos_o * sin_i,
        ])

        p = sma * (1.0 - ecc * ecc)
        r = p / (1.0 + ecc * jnp.cos(nu))
        position = r * jnp.cos(nu) * P + r * jnp.sin(nu) * Q
        velocity = jnp.sqrt(frame.gm / p) * (-jnp.sin(nu) * P + (ecc + jnp.cos(nu)) * Q)
        return cls(epoch, position, velocity, frame)

    @classmethod
    def from_geodesic(
        cls,
        latitude: float,
        longitude: float,
        height: float,
        epoch: Epoch,
        frame: Frame,
    ) -> Orbit:
        """Create a body-fixed position from geodetic coordinates.

        Uses the prime vertical radius of curvature of the frame's
        reference ellipsoid. The velocity is zero in the body-fixed frame.

        Args:
            latitude: Geodetic latitude in degrees.
            longitude: East longitude in degrees.
            height: Height above the ellipsoid in km.
            epoch: Epoch of the state.
            frame: Body-fixed geoid frame.

        Returns:
            Orbit: The body-fixed state.

        Raises:
            ValueError: If *frame* is not a :class:`~cosmojax.frames.Geoid`.
        """
        if not isinstance(frame, Geoid):
            raise ValueError(f"geodetic coordinates need a geoid frame, got `{frame}`")

        ecc2 = frame.flattening * (2.0 - frame.flattening)
        lat = jnp.deg2rad(latitude)
        lon = jnp.deg2rad(longitude)
        sin_lat = jnp.sin(lat)
        cos_lat = jnp.cos(lat)

        N = frame.semi_major_radius / jnp.sqrt(1.0 - ecc2 * sin_lat * sin_lat)

        position = jnp.array([
            (N + height) * cos_lat * jnp.cos(lon),
            (N + height) * cos_lat * jnp.sin(lon),
            ((1.0 - ecc2) * N + height) * sin_lat,
        ])
        return cls(epoch, position, jnp.zeros(3), frame)

    # Accessors

    @property
    def frame(self) -> Frame:
        return self._frame

    @property
    def orbit(self) -> Orbit:
        return self

    @property
    def size(self) -> int:
        return 6

    def to_vector(self) -> Array:
        """Return ``[x, y, z, vx, vy, vz]``."""
        return jnp.concatenate([self.position, self.velocity])

    def with_vector(self, epoch: Epoch, vector: ArrayLike, stm: ArrayLike | None = None) -> Orbit:
        """Return a state in the same frame built from *vector*."""
        return Orbit.from_vector(vector, epoch, self._frame, stm)

    def with_stm(self, stm: ArrayLike | None = None) -> Orbit:
        """Return a copy tracking the given STM (identity by default)."""
        if stm is None:
            stm = jnp.eye(6, dtype=get_dtype())
        return Orbit(self.epoch, self.position, self.velocity, self._frame, stm)

    def with_frame(self, frame: Frame) -> Orbit:
        """Return the same components re-tagged with *frame*."""
        return Orbit(self.epoch, self.position, self.velocity, frame, self.stm)

    @property
    def radius(self) -> Array:
        """Position vector in km."""
        return self.position

    def rmag(self) -> float:
        return float(jnp.linalg.norm(self.position))

    def vmag(self) -> float:
        return float(jnp.linalg.norm(self.velocity))

    def energy(self) -> float:
        """Specific orbital energy in km^2/s^2."""
        return float(jnp.dot(self.velocity, self.velocity) / 2.0 - self._frame.gm / jnp.linalg.norm(self.position))

    def sma(self) -> float:
        """Semi-major axis in km."""
        return -self._frame.gm / (2.0 * self.energy())

    def evec(self) -> Array:
        """Eccentricity vector."""
        r = self.position
        v = self.velocity
        rmag = jnp.linalg.norm(r)
        return ((jnp.dot(v, v) - self._frame.gm / rmag) * r - jnp.dot(r, v) * v) / self._frame.gm

    def ecc(self) -> float:
        return float(jnp.linalg.norm(self.evec()))

    def inc(self) -> float:
        """Inclination in degrees."""
        h = jnp.cross(self.position, self.velocity)
        return float(jnp.rad2deg(jnp.arccos(h[2] / jnp.linalg.norm(h))))

    # Arithmetic

    def _check_frame(self, other: Orbit) -> None:
        if other.frame != self._frame:
            raise FrameMismatch(f"cannot combine a state in `{self._frame}` with one in `{other.frame}`")

    def __add__(self, other: Orbit | ArrayLike) -> Orbit:
        """Add another state in the same frame, or a state deviation vector."""
        if isinstance(other, Orbit):
            self._check_frame(other)
            return Orbit(self.epoch, self.position + other.position,
                         self.velocity + other.velocity, self._frame, self.stm)
        deviation = jnp.asarray(other, dtype=get_dtype())
        return Orbit(self.epoch, self.position + deviation[:3],
                     self.velocity + deviation[3:6], self._frame, self.stm)

    def __sub__(self, other: Orbit | ArrayLike) -> Orbit:
        if isinstance(other, Orbit):
            self._check_frame(other)
            return Orbit(self.epoch, self.position - other.position,
                         self.velocity - other.velocity, self._frame, self.stm)
        return self.__add__(-jnp.asarray(other, dtype=get_dtype()))

    def __neg__(self) -> Orbit:
        return Orbit(self.epoch, -self.position, -self.velocity, self._frame, self.stm)

    def __repr__(self) -> str:
        return (f"Orbit(epoch={self.epoch}, position={self.position.tolist()}, "
                f"velocity={self.velocity.tolist()}, frame={self._frame.name!r})")

    def __str__(self) -> str:
        r = self.position.tolist()
        v = self.velocity.tolist()
        return (f"[{self._frame}] {self.epoch}\tposition = [{r[0]:.6f}, {r[1]:.6f}, {r[2]:.6f}] km"
                f"\tvelocity = [{v[0]:.6f}, {v[1]:.6f}, {v[2]:.6f}] km/s")


class SpacecraftState:
    """An orbit together with the spacecraft mass.

    The estimated vector is ``[x, y, z, vx, vy, vz, fuel_mass]`` and the
    STM, when tracked, is 7x7.

    Args:
        orbit: Orbital state (its own STM is ignored).
        dry_mass: Dry mass in kg.
        fuel_mass: Fuel mass in kg.
        stm: Optional 7x7 state transition matrix.
    """

    __slots__ = ("_orbit", "dry_mass", "fuel_mass", "stm")

    def __init__(self, orbit: Orbit, dry_mass: float, fuel_mass: float, stm: ArrayLike | None = None) -> None:
        self._orbit = orbit
        self.dry_mass = float(dry_mass)
        self.fuel_mass = float(fuel_mass)
        self.stm = None if stm is None else jnp.asarray(stm, dtype=get_dtype())

    @property
    def epoch(self) -> Epoch:
        return self._orbit.epoch

    @property
    def frame(self) -> Frame:
        return self._orbit.frame

    @property
    def orbit(self) -> Orbit:
        return self._orbit

    @property
    def size(self) -> int:
        return 7

    def to_vector(self) -> Array:
        return jnp.concatenate([self._orbit.to_vector(), jnp.array([self.fuel_mass], dtype=get_dtype())])

    def with_vector(self, epoch: Epoch, vector: ArrayLike, stm: ArrayLike | None = None) -> SpacecraftState:
        vector = jnp.asarray(vector, dtype=get_dtype())
        orbit = Orbit.from_vector(vector[:6], epoch, self.frame)
        return SpacecraftState(orbit, self.dry_mass, float(vector[6]), stm)

    def with_stm(self, stm: ArrayLike | None = None) -> SpacecraftState:
        if stm is None:
            stm = jnp.eye(7, dtype=get_dtype())
        return SpacecraftState(self._orbit, self.dry_mass, self.fuel_mass, stm)

    def __add__(self, deviation: ArrayLike) -> SpacecraftState:
        deviation = jnp.asarray(deviation, dtype=get_dtype())
        return SpacecraftState(self._orbit + deviation[:6], self.dry_mass,
                               self.fuel_mass + float(deviation[6]), self.stm)

    def __repr__(self) -> str:
        return (f"SpacecraftState(orbit={self._orbit!r}, dry_mass={self.dry_mass}, "
                f"fuel_mass={self.fuel_mass})")
