"""Chebyshev ephemeris storage and interpolation.

An :class:`EphemerisStore` owns a tree of :class:`Ephemeris` nodes rooted
at the solar system barycenter.  Every non-root node stores the position
of its body relative to its parent node as Chebyshev coefficients over
contiguous fixed-duration windows:

- ``coefficients`` has shape ``(n_windows, 3, degree)``
- window ``k`` covers ``[start_jde + k * window_duration,
  start_jde + (k + 1) * window_duration]`` in TDB Julian days
- positions are in km; the time derivative of the series is per day
  and is converted to km/s on evaluation

Stores persist to NumPy ``.npz`` archives holding one coefficient array
per node and a JSON manifest of the hierarchy.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

import jax.numpy as jnp
import numpy as np
from jax import Array
from jax.typing import ArrayLike

from cosmojax.config import get_dtype
from cosmojax.constants import JD_J2000, SECONDS_PER_DAY
from cosmojax.epoch import Epoch
from cosmojax.errors import (
    InvalidInterpolationData,
    LoadingError,
    NoInterpolationData,
    NoStateData,
    ObjectNotFound,
)

logger = logging.getLogger(__name__)

# Offsets this close to the end of the last window are clamped into it [days]
_BOUNDARY_TOLERANCE_DAYS = 1e-12


def chebyshev_state(coeffs: ArrayLike, t: float, window_duration: float) -> tuple[Array, Array]:
    """Evaluate a Chebyshev position series and its time derivative.

    Uses the three-term recurrences ``T_n = 2t T_{n-1} - T_{n-2}`` and
    ``T'_n = 2t T'_{n-1} - T'_{n-2} + 2 T_{n-1}``.

    Args:
        coeffs: Coefficients of one window, shape ``(3, degree)``.
        t: Normalized time within the window, in ``[-1, 1]``.
        window_duration: Window length in days.

    Returns:
        tuple: Position in km and velocity in km/s, each shape ``(3,)``.
    """
    coeffs = jnp.asarray(coeffs, dtype=get_dtype())
    degree = coeffs.shape[-1]

    poly = [1.0, t]
    dpoly = [0.0, 1.0]
    for i in range(2, degree):
        poly.append(2.0 * t * poly[i - 1] - poly[i - 2])
        dpoly.append(2.0 * t * dpoly[i - 1] - dpoly[i - 2] + 2.0 * poly[i - 1])

    poly = jnp.asarray(poly[:degree], dtype=get_dtype())
    dpoly = jnp.asarray(dpoly[:degree], dtype=get_dtype()) * (2.0 / window_duration)

    position = coeffs @ poly
    velocity = coeffs @ dpoly / SECONDS_PER_DAY
    return position, velocity


@dataclass
class Ephemeris:
    """A body of the ephemeris hierarchy.

    Attributes:
        name: Body name, e.g. ``"Earth Barycenter"``.
        exb_id: Integer identifier of the body.
        constants: Physical constants keyed by name (``"GM"``,
            ``"Flattening"``, ``"Equatorial radius"``).
        start_jde: Start of the first window (TDB Julian days).
        window_duration: Duration of every window in days.
        coefficients: Chebyshev coefficients ``(n_windows, 3, degree)``,
            or ``None`` for nodes without state data.
        children: Bodies whose states are stored relative to this one.
    """

    name: str
    exb_id: int
    constants: dict[str, float] = field(default_factory=dict)
    start_jde: float | None = None
    window_duration: float | None = None
    coefficients: Array | None = None
    children: list[Ephemeris] = field(default_factory=list)

    def __post_init__(self):
        if self.coefficients is not None:
            self.coefficients = jnp.asarray(self.coefficients, dtype=get_dtype())
            if self.coefficients.ndim != 3 or self.coefficients.shape[1] != 3:
                raise InvalidInterpolationData(
                    f"coefficients of {self.name} must have shape (n_windows, 3, degree), "
                    f"got {self.coefficients.shape}"
                )

    @property
    def degree(self) -> int:
        """Number of Chebyshev coefficients per component."""
        if self.coefficients is None:
            return 0
        return int(self.coefficients.shape[-1])

    @property
    def end_jde(self) -> float:
        if self.coefficients is None:
            raise NoStateData(self.name)
        return self.start_jde + self.coefficients.shape[0] * self.window_duration

    def window_of(self, epoch: Epoch) -> tuple[int, float]:
        """Locate the window covering *epoch*.

        Args:
            epoch: Requested epoch.

        Returns:
            tuple: Window index and offset in days from the window start.

        Raises:
            NoStateData: If the node has no coefficients.
            NoInterpolationData: If *epoch* is outside the stored windows.
        """
        if self.coefficients is None or self.window_duration is None or self.start_jde is None:
            raise NoStateData(self.name)

        # Difference in days since J2000 keeps the split epoch precision
        delta = epoch.tdb_days_since_j2000() - (self.start_jde - JD_J2000)
        n_windows = self.coefficients.shape[0]
        index = math.floor(delta / self.window_duration)
        offset = delta - index * self.window_duration

        if index == n_windows and offset <= _BOUNDARY_TOLERANCE_DAYS:
            return n_windows - 1, self.window_duration
        if delta < 0.0 or index >= n_windows:
            raise NoInterpolationData(
                f"{self.name} has no data at JDE {epoch.jde_tdb():.6f} TDB "
                f"(covers {self.start_jde:.1f} to {self.end_jde:.1f})"
            )
        return index, offset

    def state(self, epoch: Epoch) -> tuple[Array, Array]:
        """Position (km) and velocity (km/s) relative to the parent body.

        Raises:
            InvalidInterpolationData: If the position degree is 2 or less.
        """
        if self.coefficients is not None and self.degree <= 2:
            raise InvalidInterpolationData(f"position degree is less than 3 for {self.name}")
        index, offset = self.window_of(epoch)
        t = 2.0 * offset / self.window_duration - 1.0
        return chebyshev_state(self.coefficients[index], t, self.window_duration)


class EphemerisStore:
    """Hierarchy of Chebyshev ephemerides rooted at the solar system barycenter.

    Args:
        root: Root node (the barycenter, without coefficients).

    Examples:
        ```python
        from cosmojax import Epoch
        from cosmojax.ephemerides import approximate_ephemeris

        store = approximate_ephemeris(Epoch(2020, 1, 1), Epoch(2020, 2, 1))
        r, v = store.raw_celestial_state((3, 0), Epoch(2020, 1, 15))
        ```
    """

    def __init__(self, root: Ephemeris) -> None:
        self.root = root

    def ephemeris_from_path(self, path: tuple[int, ...]) -> Ephemeris:
        """Return the node at *path*.

        Raises:
            ObjectNotFound: If the path does not exist.
        """
        node = self.root
        for idx in path:
            if idx < 0 or idx >= len(node.children):
                raise ObjectNotFound(f"ephemeris path {list(path)}")
            node = node.children[idx]
        return node

    def raw_celestial_state(self, path: tuple[int, ...], epoch: Epoch) -> tuple[Array, Array]:
        """Interpolate the state of the body at *path* relative to its parent.

        An empty path designates the barycenter, whose state is zero.

        Args:
            path: Ephemeris path of the body.
            epoch: Epoch of the state.

        Returns:
            tuple: Position in km and velocity in km/s in J2000 axes.
        """
        if len(path) == 0:
            zeros = jnp.zeros(3, dtype=get_dtype())
            return zeros, zeros
        return self.ephemeris_from_path(tuple(path)).state(epoch)

    def walk(self) -> Iterator[tuple[tuple[int, ...], Ephemeris]]:
        """Iterate depth-first over ``(path, node)`` pairs, excluding the root."""

        def _walk(node, path):
            for idx, child in enumerate(node.children):
                child_path = (*path, idx)
                yield child_path, child
                yield from _walk(child, child_path)

        yield from _walk(self.root, ())

    def names(self) -> list[str]:
        return [node.name for _, node in self.walk()]

    def save(self, filepath: str | Path) -> Path:
        """Write the store to a compressed ``.npz`` archive.

        Args:
            filepath: Destination file.

        Returns:
            Path: The written file.
        """
        filepath = Path(filepath)
        arrays = {}
        manifest = {"root": {"name": self.root.name, "exb_id": self.root.exb_id,
                             "constants": self.root.constants}, "nodes": []}
        for path, node in self.walk():
            key = "coeffs_" + "_".join(str(i) for i in path)
            entry = {
                "path": list(path),
                "name": node.name,
                "exb_id": node.exb_id,
                "constants": node.constants,
                "start_jde": node.start_jde,
                "window_duration": node.window_duration,
                "coefficients": None,
            }
            if node.coefficients is not None:
                arrays[key] = np.asarray(node.coefficients)
                entry["coefficients"] = key
            manifest["nodes"].append(entry)

        with open(filepath, "wb") as f:
            np.savez_compressed(f, manifest=np.array(json.dumps(manifest)), **arrays)
        logger.info("Saved ephemeris store with %d bodies to %s", len(manifest["nodes"]), filepath)
        return filepath

    @classmethod
    def load(cls, filepath: str | Path) -> EphemerisStore:
        """Read a store written by :meth:`save`.

        Args:
            filepath: Path to the ``.npz`` archive.

        Returns:
            EphemerisStore: The loaded store.

        Raises:
            FileNotFoundError: If *filepath* does not exist.
            LoadingError: If the archive is not a valid ephemeris store.
        """
        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"Ephemeris file not found: {filepath}")

        try:
            with np.load(filepath, allow_pickle=False) as data:
                manifest = json.loads(str(data["manifest"]))
                arrays = {key: data[key] for key in data.files if key != "manifest"}
            root_def = manifest["root"]
            root = Ephemeris(root_def["name"], root_def["exb_id"], dict(root_def["constants"]))
            store = cls(root)
            for entry in manifest["nodes"]:
                path = tuple(entry["path"])
                parent = store.ephemeris_from_path(path[:-1])
                coeffs = entry["coefficients"]
                parent.children.append(
                    Ephemeris(
                        name=entry["name"],
                        exb_id=entry["exb_id"],
                        constants=dict(entry["constants"]),
                        start_jde=entry["start_jde"],
                        window_duration=entry["window_duration"],
                        coefficients=arrays[coeffs] if coeffs is not None else None,
                    )
                )
        except (KeyError, ValueError, TypeError, ObjectNotFound) as err:
            raise LoadingError(f"invalid ephemeris file {filepath}: {err}") from err

        logger.info("Loaded ephemeris store from %s", filepath)
        return store
