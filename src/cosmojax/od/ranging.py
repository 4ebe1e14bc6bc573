"""Two-way range and range-rate tracking from ground stations.

A :class:`GroundStation` is fixed on the reference ellipsoid of a
body-fixed frame.  Measuring a spacecraft state converts the station into
the frame of the state through :class:`~cosmojax.cosm.Cosm`, computes
the elevation of the spacecraft above the local horizon and, when the
spacecraft is above the elevation mask, a range (km) and range-rate
(km/s) observation together with its sensitivity matrix.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

import jax
import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from cosmojax.config import get_dtype
from cosmojax.cosm import Cosm
from cosmojax.epoch import Epoch
from cosmojax.frames import Frame
from cosmojax.orbit import Orbit, State
from cosmojax.rotations import Ry, Rz

logger = logging.getLogger(__name__)


def _range_and_rate(rel: Array) -> Array:
    """Range and range rate of a relative ``[r, v]`` state."""
    r = rel[:3]
    v = rel[3:6]
    rho = jnp.linalg.norm(r)
    return jnp.stack([rho, jnp.dot(r, v) / rho])


_observe = jax.jit(_range_and_rate)
_sensitivity = jax.jit(jax.jacfwd(_range_and_rate))


class StdMeasurement(NamedTuple):
    """Range and range-rate measurement.

    Attributes:
        epoch: Epoch of the measurement.
        obs: ``[range, range_rate]`` in km and km/s.
        h_tilde: Sensitivity of the observation to the receiver state,
            shape ``(2, n)``.
        visible: Whether the receiver was above the elevation mask.
        device: Name of the station that produced the measurement.
    """

    epoch: Epoch
    obs: Array
    h_tilde: Array
    visible: bool
    device: str | None = None

    @classmethod
    def real(cls, epoch: Epoch, range_km: float, range_rate: float, device: str | None = None,
             state_size: int = 6) -> StdMeasurement:
        """Measurement from real tracking data (zero sensitivity)."""
        obs = jnp.array([range_km, range_rate], dtype=get_dtype())
        return cls(epoch, obs, jnp.zeros((2, state_size), dtype=get_dtype()), True, device)

    def range(self) -> float:
        return float(self.obs[0])

    def range_rate(self) -> float:
        return float(self.obs[1])

    def observation(self) -> Array:
        return self.obs

    def sensitivity(self) -> Array:
        return self.h_tilde


class GroundStation:
    """Two-way ranging station on a body-fixed geoid frame.

    Args:
        name: Station name.
        elevation_mask: Minimum elevation for visibility [deg].
        latitude: Geodetic latitude [deg].
        longitude: East longitude [deg].
        height: Height above the ellipsoid [km].
        range_noise: Standard deviation of the range noise [km].
        range_rate_noise: Standard deviation of the range-rate noise [km/s].
        frame: Body-fixed frame of the station.
        cosm: Frame engine used for the frame changes.
        seed: Seed of the noise generator.

    Examples:
        ```python
        from cosmojax.od import GroundStation
        madrid = GroundStation.dss65_madrid(0.0, 0.0, 0.0, cosm)
        msr = madrid.measure(orbit)
        ```
    """

    def __init__(
        self,
        name: str,
        elevation_mask: float,
        latitude: float,
        longitude: float,
        height: float,
        range_noise: float,
        range_rate_noise: float,
        frame: Frame,
        cosm: Cosm,
        seed: int = 0,
    ) -> None:
        if range_noise < 0.0 or range_rate_noise < 0.0:
            raise ValueError("noise standard deviations must be non-negative")
        self.name = name
        self.elevation_mask = elevation_mask
        self.latitude = latitude
        self.longitude = longitude
        self.height = height
        self.range_noise = range_noise
        self.range_rate_noise = range_rate_noise
        self.frame = frame
        self.cosm = cosm
        self._key = jax.random.PRNGKey(seed)
        # SEZ axes of the station in its body-fixed frame
        self._sez = Ry(jnp.pi / 2.0 - jnp.deg2rad(latitude)) @ Rz(jnp.deg2rad(longitude))

    @classmethod
    def dss65_madrid(cls, elevation_mask: float, range_noise: float, range_rate_noise: float,
                     cosm: Cosm, seed: int = 0) -> GroundStation:
        return cls("Madrid", elevation_mask, 40.427_222, 4.250_556, 0.834_939,
                   range_noise, range_rate_noise, cosm.frame("IAU Earth"), cosm, seed)

    @classmethod
    def dss34_canberra(cls, elevation_mask: float, range_noise: float, range_rate_noise: float,
                       cosm: Cosm, seed: int = 0) -> GroundStation:
        return cls("Canberra", elevation_mask, -35.398_333, 148.981_944, 0.691_750,
                   range_noise, range_rate_noise, cosm.frame("IAU Earth"), cosm, seed)

    @classmethod
    def dss13_goldstone(cls, elevation_mask: float, range_noise: float, range_rate_noise: float,
                        cosm: Cosm, seed: int = 0) -> GroundStation:
        return cls("Goldstone", elevation_mask, 35.247_164, 243.205, 1.071_149_04,
                   range_noise, range_rate_noise, cosm.frame("IAU Earth"), cosm, seed)

    def station_state(self, epoch: Epoch) -> Orbit:
        """Station state in its body-fixed frame."""
        return Orbit.from_geodesic(self.latitude, self.longitude, self.height, epoch, self.frame)

    def elevation(self, rx: Orbit, tx: Orbit) -> float:
        """Elevation of *rx* seen from the station *tx* (same frame) [deg]."""
        rho = rx.position - tx.position
        dcm = self.cosm.try_frame_chg_dcm_from_to(rx.frame, self.frame, rx.epoch)
        rho_sez = self._sez @ (dcm @ rho)
        return float(jnp.rad2deg(jnp.arcsin(rho_sez[2] / jnp.linalg.norm(rho))))

    def _noise(self) -> Array:
        self._key, subkey = jax.random.split(self._key)
        sigma = jnp.array([self.range_noise, self.range_rate_noise], dtype=get_dtype())
        return sigma * jax.random.normal(subkey, (2,), dtype=get_dtype())

    def measure(self, state: State) -> StdMeasurement | None:
        """Measure the range and range rate of *state* from this station.

        The sensitivity matrix has one column per element of the state
        vector; columns past the orbital elements are zero.

        Args:
            state: Receiver state.

        Returns:
            StdMeasurement: The measurement, flagged invisible when the
                receiver is below the elevation mask, or ``None`` if the
                station cannot be expressed in the frame of the state.
        """
        rx = state.orbit
        try:
            tx = self.cosm.try_frame_chg(self.station_state(rx.epoch), rx.frame)
        except (LookupError, ValueError) as err:
            logger.error("Station %s cannot observe a state in `%s`: %s", self.name, rx.frame, err)
            return None

        elevation = self.elevation(rx, tx)
        rel = rx.to_vector() - tx.to_vector()
        obs = _observe(rel)
        if self.range_noise > 0.0 or self.range_rate_noise > 0.0:
            obs = obs + self._noise()

        h_tilde = _sensitivity(rel)
        if state.size > 6:
            h_tilde = jnp.hstack([h_tilde, jnp.zeros((2, state.size - 6), dtype=get_dtype())])

        return StdMeasurement(rx.epoch, obs, h_tilde, elevation >= self.elevation_mask, self.name)

    def __repr__(self) -> str:
        return (f"GroundStation({self.name!r}, lat={self.latitude}, lon={self.longitude}, "
                f"height={self.height} km, frame={self.frame.name!r})")
