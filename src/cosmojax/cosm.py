"""Frame and ephemeris engine.

:class:`Cosm` owns an :class:`~cosmojax.ephemerides.EphemerisStore` and
the :class:`~cosmojax.frames.FrameTree` built from it and from the bundled
IAU frame table. It resolves frame names, interpolates body states,
applies light-time and stellar aberration corrections and changes the
frame of arbitrary states.

A Cosm is read-only once built, apart from :meth:`Cosm.frame_mut_gm`
and :meth:`Cosm.append_frames`, which are meant to be called before the
instance is handed to propagators and measurement devices.

Operations prefixed ``try_`` raise the typed errors of
:mod:`cosmojax.errors`. Their counterparts without the prefix treat a
failure as a programming error and raise :class:`RuntimeError` chained to
the typed error.
"""

from __future__ import annotations

import logging
import tomllib
from enum import Enum
from importlib import resources
from pathlib import Path

import jax.numpy as jnp
from jax import Array

from cosmojax.config import get_dtype
from cosmojax.constants import SPEED_OF_LIGHT_KMS, SS_MASS, SUN_GM, WGS84_a
from cosmojax.ephemerides import (
    ApproximateEphemerisConfig,
    EphemerisStore,
    approximate_ephemeris,
    load_cached_ephemeris,
)
from cosmojax.epoch import Epoch
from cosmojax.errors import CosmojaxError, LoadingError, ObjectNotFound
from cosmojax.frames import Celestial, Frame, FrameTree, Geoid, fix_frame_name
from cosmojax.orbit import Orbit
from cosmojax.rotations import IauRotation, IdentityRotation, rotv

logger = logging.getLogger(__name__)

LIGHT_TIME_ITERATIONS = 3
"""Fixed-point iterations of the light-time solution. Three iterations
converge to double precision for solar system distances."""

_INHERIT = -1

# Gravitational parameters of the GMAT default solar system [km^3/s^2]
_GMAT_GMS = {
    "Sun J2000": 132_712_440_017.99,
    "iau sun": 132_712_440_017.99,
    "Mercury Barycenter J2000": 22_032.080_486_418,
    "Venus Barycenter J2000": 324_858.598_826_46,
    "iau venus": 324_858.598_826_46,
    "Earth J2000": 398_600.441_5,
    "iau earth": 398_600.441_5,
    "Moon J2000": 4_902.800_582_147_8,
    "iau moon": 4_902.800_582_147_8,
    "Mars Barycenter J2000": 42_828.314_258_067,
    "iau mars": 42_828.314_258_067,
    "Jupiter Barycenter J2000": 126_712_767.857_80,
    "iau jupiter": 126_712_767.857_80,
    "Saturn Barycenter J2000": 37_940_626.061_137,
    "iau saturn": 37_940_626.061_137,
    "Uranus Barycenter J2000": 5_794_549.007_071_9,
    "iau uranus": 5_794_549.007_071_9,
    "Neptune Barycenter J2000": 6_836_534.063_879_3,
    "iau neptune": 6_836_534.063_879_3,
}


class LTCorr(Enum):
    """Correction applied to relative celestial states.

    Attributes:
        NONE: Geometric state at the requested epoch.
        LIGHT_TIME: Target state at the signal emission epoch.
        ABERRATION: Light-time correction plus stellar aberration of the
            observer velocity.
    """

    NONE = "none"
    LIGHT_TIME = "light_time"
    ABERRATION = "aberration"


class Bodies(Enum):
    """Ephemeris paths of the bodies of the standard hierarchy."""

    SSB = ()
    SUN = (0,)
    MERCURY_BARYCENTER = (1,)
    VENUS_BARYCENTER = (2,)
    EARTH_BARYCENTER = (3,)
    EARTH = (3, 0)
    LUNA = (3, 1)
    MARS_BARYCENTER = (4,)
    JUPITER_BARYCENTER = (5,)
    SATURN_BARYCENTER = (6,)
    URANUS_BARYCENTER = (7,)
    NEPTUNE_BARYCENTER = (8,)

    def ephem_path(self) -> tuple[int, ...]:
        return self.value


def _as_path(path: Bodies | tuple[int, ...] | list[int]) -> tuple[int, ...]:
    if isinstance(path, Bodies):
        return path.value
    return tuple(path)


class Cosm:
    """Frames, ephemerides and frame changes.

    Args:
        store: Ephemeris hierarchy of the solar system.
        load_iau_frames: Whether to append the bundled IAU body-fixed frames.

    Examples:
        ```python
        from cosmojax import Cosm, Epoch, LTCorr, Bodies
        cosm = Cosm.approximate(Epoch(2020, 1, 1), Epoch(2020, 2, 1))
        eme2k = cosm.frame("EME2000")
        moon = cosm.celestial_state(Bodies.LUNA, Epoch(2020, 1, 10), eme2k, LTCorr.NONE)
        moon.rmag()  # ~ 4e5 km
        ```
    """

    def __init__(self, store: EphemerisStore, load_iau_frames: bool = True) -> None:
        self.store = store
        root = Celestial(name="SSB J2000", gm=SS_MASS * SUN_GM)
        self._tree = FrameTree(root.name, root)
        self._ephem2frame: dict[tuple[int, ...], tuple[int, ...]] = {(): ()}
        self._append_ephemeris_frames()
        if load_iau_frames:
            table = resources.files("cosmojax.data").joinpath("iau_frames.toml").read_text()
            self.append_frames(table)

    # Constructors

    @classmethod
    def approximate(
        cls,
        start: Epoch,
        end: Epoch,
        config: ApproximateEphemerisConfig = ApproximateEphemerisConfig(),
        cache: bool = False,
    ) -> Cosm:
        """Build a Cosm over the approximate analytic ephemeris.

        Args:
            start: First epoch the ephemeris must cover.
            end: Last epoch the ephemeris must cover.
            config: Chebyshev fit configuration.
            cache: Whether to read and write the on-disk ephemeris cache.

        Returns:
            Cosm: A new instance.
        """
        if cache:
            return cls(load_cached_ephemeris(start, end, config))
        return cls(approximate_ephemeris(start, end, config))

    @classmethod
    def from_file(cls, filepath: str | Path) -> Cosm:
        """Build a Cosm from an ephemeris store saved with :meth:`EphemerisStore.save`."""
        return cls(EphemerisStore.load(filepath))

    @classmethod
    def de438_gmat(cls, start: Epoch, end: Epoch, cache: bool = False) -> Cosm:
        """Build an approximate Cosm using the GMAT default gravitational parameters."""
        cosm = cls.approximate(start, end, cache=cache)
        for name, gm in _GMAT_GMS.items():
            cosm.frame_mut_gm(name, gm)
        return cosm

    # Frame tree construction

    def _append_ephemeris_frames(self) -> None:
        for path, node in self.store.walk():
            gm = node.constants.get("GM")
            if gm is None:
                logger.warning("No GM value for ephemeris body %s, skipping its frame", node.name)
                continue

            parent_exb_id = self.store.ephemeris_from_path(path[:-1]).exb_id
            frame_path = (len(self._tree.children),)
            name = f"{node.name} J2000"
            common = dict(
                name=name,
                gm=gm,
                exb_id=node.exb_id,
                axb_id=0,
                parent_exb_id=parent_exb_id,
                parent_axb_id=0,
                ephem_path=path,
                frame_path=frame_path,
            )
            if "Equatorial radius" in node.constants:
                radius = node.constants["Equatorial radius"]
                frame = Geoid(
                    **common,
                    flattening=node.constants.get("Flattening", 0.0),
                    equatorial_radius=radius,
                    semi_major_radius=WGS84_a if node.exb_id == 399 else radius,
                )
            else:
                frame = Celestial(**common)

            # Ephemeris frames share the J2000 axes of the root
            self._tree.children.append(FrameTree(name, frame, IdentityRotation()))
            self._ephem2frame[path] = frame_path

    def append_frames(self, toml_text: str) -> None:
        """Add the frames of a definition table to the tree.

        Every ``[frames.<key>]`` table inherits an existing frame and is
        inserted as its child under the canonical form of ``<key>``
        (see :func:`~cosmojax.frames.fix_frame_name`). ``gm``,
        ``flattening``, ``equatorial_radius`` and ``semi_major_radius``
        values of ``-1`` are copied from the inherited frame.

        Args:
            toml_text: Content of the table (not a file name).

        Raises:
            LoadingError: If the table does not parse or a definition is
                malformed.
        """
        try:
            table = tomllib.loads(toml_text)
        except tomllib.TOMLDecodeError as err:
            logger.error("%s", err)
            raise LoadingError(f"could not parse frame table: {err}") from err

        for key, definition in table.get("frames", {}).items():
            name = fix_frame_name(key)
            if "inherit" not in definition:
                logger.warning("Frame `%s` does not inherit from any frame, cannot place it in the tree", name)
                continue

            try:
                parent_path = self._tree.seek_by_name(fix_frame_name(definition["inherit"]))
            except ObjectNotFound:
                logger.error("Frame `%s` is derived from unknown frame `%s`, skipping!", name, definition["inherit"])
                continue

            parent = self._tree.node_at(parent_path)
            if "rotation" in definition:
                rotation = IauRotation.from_definition(definition["rotation"])
            else:
                rotation = IdentityRotation()

            try:
                existing = self._tree.seek_by_name(name)
            except ObjectNotFound:
                existing = None

            if existing is not None:
                logger.warning("Overwriting frame `%s`", name)
                frame_path = existing
            else:
                frame_path = (*parent_path, len(parent.children))

            try:
                frame = self._frame_from_definition(name, definition, parent.frame, frame_path)
            except (TypeError, ValueError) as err:
                raise LoadingError(f"[frames.{key}] {err}") from err

            if existing is not None:
                node = self._tree.node_at(existing)
                node.frame = frame
                node.parent_rotation = rotation
            else:
                parent.children.append(FrameTree(name, frame, rotation))
            logger.debug("Loaded frame %s", name)

    @staticmethod
    def _frame_from_definition(name, definition, parent: Frame, frame_path) -> Frame:
        def inherited(field, default):
            value = definition.get(field, _INHERIT)
            return default if value == _INHERIT else float(value)

        center = int(definition.get("center", _INHERIT))
        parent_center = int(definition.get("parent_center", _INHERIT))
        common = dict(
            name=name,
            gm=inherited("gm", parent.gm),
            exb_id=parent.exb_id if center == _INHERIT else center,
            axb_id=int(definition.get("orientation", 0)),
            parent_exb_id=parent.exb_id if parent_center == _INHERIT else parent_center,
            parent_axb_id=int(definition.get("parent_orientation", parent.axb_id)),
            ephem_path=parent.ephem_path,
            frame_path=frame_path,
        )

        geoid_fields = ("flattening", "equatorial_radius", "semi_major_radius")
        explicit = any(definition.get(field, _INHERIT) != _INHERIT for field in geoid_fields)
        if isinstance(parent, Geoid) or explicit:
            return Geoid(
                **common,
                flattening=inherited("flattening", getattr(parent, "flattening", 0.0)),
                equatorial_radius=inherited("equatorial_radius", getattr(parent, "equatorial_radius", 0.0)),
                semi_major_radius=inherited("semi_major_radius", getattr(parent, "semi_major_radius", 0.0)),
            )
        return Celestial(**common)

    # Frame resolution

    def try_frame(self, name: str) -> Frame:
        """Return the frame called *name* after canonicalization.

        Args:
            name: Frame name or alias, e.g. ``"EME2000"`` or ``"IAU_Earth"``.

        Returns:
            Frame: The resolved frame.

        Raises:
            ObjectNotFound: If no frame has that name.
        """
        path = self._tree.seek_by_name(fix_frame_name(name))
        return self._tree.node_at(path).frame

    def frame(self, name: str) -> Frame:
        """Like :meth:`try_frame` but raises :class:`RuntimeError` on failure."""
        try:
            return self.try_frame(name)
        except CosmojaxError as err:
            raise RuntimeError(f"could not resolve frame `{name}`") from err

    def frames_get_names(self) -> list[str]:
        """Names of every frame in depth-first order."""
        return self._tree.names()

    def frame_mut_gm(self, name: str, gm: float) -> None:
        """Replace the gravitational parameter of the frame called *name*.

        Raises:
            RuntimeError: If the frame does not exist.
        """
        try:
            node = self._tree.node_at(self._tree.seek_by_name(fix_frame_name(name)))
        except ObjectNotFound as err:
            raise RuntimeError(f"could not find frame `{name}` to update its GM") from err
        node.frame = node.frame.with_gm(gm)

    def frame_from_ephem_path(self, path: Bodies | tuple[int, ...]) -> Frame:
        """Return the J2000 frame centered on the body at *path*.

        Raises:
            ObjectNotFound: If the body has no frame.
        """
        path = _as_path(path)
        try:
            frame_path = self._ephem2frame[path]
        except KeyError as err:
            raise ObjectNotFound(f"frame of ephemeris path {list(path)}") from err
        return self._tree.node_at(frame_path).frame

    # Ephemeris queries

    def raw_celestial_state(self, path: Bodies | tuple[int, ...], epoch: Epoch) -> Orbit:
        """State of the body at *path* relative to its parent body.

        The state is expressed in the J2000 frame of the parent body.
        """
        path = _as_path(path)
        position, velocity = self.store.raw_celestial_state(path, epoch)
        return Orbit(epoch, position, velocity, self.frame_from_ephem_path(path[:-1]))

    def _ssb_state(self, path: tuple[int, ...], epoch: Epoch) -> tuple[Array, Array]:
        """Sum the raw states along *path*: the state relative to the barycenter."""
        return self._chain_state(path, 0, epoch)

    def _chain_state(self, path: tuple[int, ...], depth: int, epoch: Epoch) -> tuple[Array, Array]:
        """State of the body at *path* relative to its ancestor at *depth*."""
        position = jnp.zeros(3, dtype=get_dtype())
        velocity = jnp.zeros(3, dtype=get_dtype())
        for level in range(depth + 1, len(path) + 1):
            r, v = self.store.raw_celestial_state(path[:level], epoch)
            position = position + r
            velocity = velocity + v
        return position, velocity

    def try_celestial_state(
        self,
        target: Bodies | tuple[int, ...],
        epoch: Epoch,
        frame: Frame,
        correction: LTCorr = LTCorr.NONE,
        iterations: int = LIGHT_TIME_ITERATIONS,
    ) -> Orbit:
        """State of a body relative to the center of *frame*.

        Args:
            target: Ephemeris path of the observed body.
            epoch: Observation epoch.
            frame: Frame whose center is the observer and whose axes express
                the result.
            correction: Light-time and aberration correction.
            iterations: Number of light-time fixed-point iterations.

        Returns:
            Orbit: The (apparent) state of the target in *frame*.

        Raises:
            ObjectNotFound: If the target path does not exist.
            NoInterpolationData: If an epoch falls outside the ephemeris.
        """
        target = _as_path(target)
        if correction is LTCorr.NONE:
            center = Orbit.zeros(epoch, self.frame_from_ephem_path(target))
            return self.try_frame_chg(center, frame)

        obs_r, obs_v = self._ssb_state(frame.ephem_path, epoch)
        tgt_r, tgt_v = self._ssb_state(target, epoch)
        for _ in range(iterations):
            light_time = float(jnp.linalg.norm(tgt_r - obs_r)) / SPEED_OF_LIGHT_KMS
            tgt_r, tgt_v = self._ssb_state(target, epoch - light_time)

        position = tgt_r - obs_r
        rel_velocity = tgt_v - obs_v
        # Reception case: rate of change of the light time
        dltdt = jnp.dot(position, rel_velocity) / (jnp.linalg.norm(position) * SPEED_OF_LIGHT_KMS)
        velocity = tgt_v * (1.0 - dltdt) - obs_v

        if correction is LTCorr.ABERRATION:
            position = self._aberration(position, obs_v)

        dcm = self._dcm_to_root(frame, epoch)
        return Orbit(epoch, dcm.T @ position, dcm.T @ velocity, frame)

    @staticmethod
    def _aberration(position: Array, obs_velocity: Array) -> Array:
        beta = obs_velocity / SPEED_OF_LIGHT_KMS
        if float(jnp.dot(beta, beta)) >= 1.0:
            logger.warning("Observer faster than light, skipping stellar aberration correction")
            return position
        h = jnp.cross(position / jnp.linalg.norm(position), beta)
        sin_phi = float(jnp.linalg.norm(h))
        if sin_phi <= jnp.finfo(get_dtype()).eps:
            return position
        return rotv(position, h / sin_phi, float(jnp.arcsin(sin_phi)))

    def celestial_state(
        self,
        target: Bodies | tuple[int, ...],
        epoch: Epoch,
        frame: Frame,
        correction: LTCorr = LTCorr.NONE,
    ) -> Orbit:
        """Like :meth:`try_celestial_state` but raises :class:`RuntimeError` on failure."""
        try:
            return self.try_celestial_state(target, epoch, frame, correction)
        except CosmojaxError as err:
            raise RuntimeError(f"could not compute the state of {list(_as_path(target))} in `{frame}`") from err

    # Frame changes

    def _dcm_to_root(self, frame: Frame, epoch: Epoch) -> Array:
        """DCM mapping components in *frame* axes to J2000 axes."""
        dcm = jnp.eye(3, dtype=get_dtype())
        node = self._tree
        for idx in frame.frame_path:
            node = node.children[idx]
            if node.parent_rotation is not None:
                dcm = dcm @ node.parent_rotation.dcm_to_parent(epoch)
        return dcm

    def try_frame_chg_dcm_from_to(self, from_frame: Frame, to_frame: Frame, epoch: Epoch) -> Array:
        """DCM mapping components in *from_frame* axes to *to_frame* axes."""
        return self._dcm_to_root(to_frame, epoch).T @ self._dcm_to_root(from_frame, epoch)

    def _center_offset(self, from_frame: Frame, to_frame: Frame, epoch: Epoch) -> tuple[Array, Array]:
        """State of the center of *from_frame* relative to the center of *to_frame*, J2000 axes."""
        a = from_frame.ephem_path
        b = to_frame.ephem_path
        common = 0
        while common < min(len(a), len(b)) and a[common] == b[common]:
            common += 1

        # Levels above the common prefix cancel and are never evaluated
        r_a, v_a = self._chain_state(a, common, epoch)
        r_b, v_b = self._chain_state(b, common, epoch)
        return r_a - r_b, v_a - v_b

    def try_frame_chg(self, state: Orbit, new_frame: Frame) -> Orbit:
        """Express *state* in *new_frame*.

        The state is rotated into J2000 axes, translated from the center of
        its frame to the center of *new_frame* along the ephemeris
        hierarchy, then rotated into the axes of *new_frame*. The rotation
        is applied to the velocity without a transport term.

        Args:
            state: State to convert.
            new_frame: Target frame.

        Returns:
            Orbit: The converted state, tagged with *new_frame*.

        Raises:
            ObjectNotFound: If either frame is not in this tree.
            NoInterpolationData: If the epoch is outside the ephemeris.
        """
        if state.frame.frame_path == new_frame.frame_path and state.frame.name == new_frame.name:
            return state.with_frame(new_frame)

        for frame in (state.frame, new_frame):
            if self._tree.node_at(frame.frame_path).name != frame.name:
                raise ObjectNotFound(frame.name)

        epoch = state.epoch
        dcm_from = self._dcm_to_root(state.frame, epoch)
        dcm_to = self._dcm_to_root(new_frame, epoch)
        dr, dv = self._center_offset(state.frame, new_frame, epoch)

        position = dcm_to.T @ (dcm_from @ state.position + dr)
        velocity = dcm_to.T @ (dcm_from @ state.velocity + dv)
        return Orbit(epoch, position, velocity, new_frame, state.stm)

    def frame_chg(self, state: Orbit, new_frame: Frame) -> Orbit:
        """Like :meth:`try_frame_chg` but raises :class:`RuntimeError` on failure."""
        try:
            return self.try_frame_chg(state, new_frame)
        except CosmojaxError as err:
            raise RuntimeError(f"could not convert state from `{state.frame}` to `{new_frame}`") from err

    def __repr__(self) -> str:
        return f"Cosm(frames={len(self.frames_get_names())}, bodies={len(self.store.names())})"
