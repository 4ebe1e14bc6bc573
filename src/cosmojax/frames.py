"""Coordinate frames and the frame tree.

A :class:`Frame` is a small immutable value describing a reference frame:
its gravitational parameter, the path of its center in the ephemeris
hierarchy (``ephem_path``) and the path of its node in the frame tree
(``frame_path``).  Two variants exist:

- :class:`Celestial` -- point-mass body
- :class:`Geoid` -- oblate body with flattening and radii

:class:`FrameTree` is the rooted tree of named frames. The root is the
solar system barycenter with J2000 axes; J2000 frames of every
ephemeris body are its direct children and body-fixed frames (IAU
frames) are children of the J2000 frame of their body, each holding the
rotation model relating it to its parent.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator
from dataclasses import dataclass, field

from .errors import ObjectNotFound
from .rotations import Rotation

# Maximum depth of ephemeris and frame-tree paths
MAX_PATH_DEPTH = 3


@dataclass(frozen=True, kw_only=True)
class Frame:
    """Base of the frame variants.

    Attributes:
        name: Canonical frame name, e.g. ``"Earth J2000"`` or ``"iau earth"``.
        gm: Gravitational parameter of the frame center. Units: *km^3/s^2*
        exb_id: Identifier of the center body.
        axb_id: Identifier of the orientation (0 for J2000).
        parent_exb_id: Identifier of the parent center, if any.
        parent_axb_id: Identifier of the parent orientation, if any.
        ephem_path: Path of the center in the ephemeris hierarchy.
        frame_path: Path of this frame in the frame tree.
    """

    name: str
    gm: float
    exb_id: int = 0
    axb_id: int = 0
    parent_exb_id: int | None = None
    parent_axb_id: int | None = None
    ephem_path: tuple[int, ...] = ()
    frame_path: tuple[int, ...] = ()

    def __post_init__(self):
        if len(self.ephem_path) > MAX_PATH_DEPTH or len(self.frame_path) > MAX_PATH_DEPTH:
            raise ValueError(
                f"frame `{self.name}` paths must be at most {MAX_PATH_DEPTH} levels deep"
            )

    def is_geoid(self) -> bool:
        return isinstance(self, Geoid)

    def is_celestial(self) -> bool:
        return isinstance(self, Celestial)

    def with_gm(self, gm: float) -> Frame:
        """Return a copy of this frame with another gravitational parameter."""
        return dataclasses.replace(self, gm=gm)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, kw_only=True)
class Celestial(Frame):
    """A frame centered on a point-mass body."""


@dataclass(frozen=True, kw_only=True)
class Geoid(Frame):
    """A frame centered on an oblate body.

    Attributes:
        flattening: Flattening of the reference ellipsoid.
        equatorial_radius: Mean equatorial radius. Units: *km*
        semi_major_radius: Semi-major radius of the reference ellipsoid. Units: *km*
    """

    flattening: float = 0.0
    equatorial_radius: float = 0.0
    semi_major_radius: float = 0.0


def fix_frame_name(name: str) -> str:
    """Canonicalize a user supplied frame name.

    The name is lower-cased and underscores are replaced with spaces.
    The aliases ``eme2000``, ``luna``, ``earth moon barycenter`` and
    ``ssb`` map to their J2000 frames, IAU frame names are kept
    lower-case, and any other name is capitalized word by word.

    Args:
        name: Name as provided by the caller, e.g. ``"EME2000"``.

    Returns:
        str: Canonical name, e.g. ``"Earth J2000"``.

    Examples:
        ```python
        from cosmojax.frames import fix_frame_name
        fix_frame_name("IAU_Earth")  # 'iau earth'
        fix_frame_name("mars barycenter j2000")  # 'Mars Barycenter J2000'
        ```
    """
    name = name.lower().strip().replace("_", " ")
    aliases = {
        "eme2000": "Earth J2000",
        "luna": "Moon J2000",
        "earth moon barycenter": "Earth Barycenter J2000",
        "ssb": "SSB J2000",
    }
    if name in aliases:
        return aliases[name]

    words = name.split()
    if words and words[0] == "iau":
        return " ".join(words)
    return " ".join(word.capitalize() for word in words)


@dataclass
class FrameTree:
    """A node of the frame tree.

    Attributes:
        name: Unique canonical name of the node.
        frame: Frame value owned by the node.
        parent_rotation: Rotation model relative to the parent node, or
            ``None`` for frames sharing the parent's axes.
        children: Ordered child nodes.
    """

    name: str
    frame: Frame
    parent_rotation: Rotation | None = None
    children: list[FrameTree] = field(default_factory=list)

    def seek_by_name(self, name: str) -> tuple[int, ...]:
        """Return the path of the node called *name* (depth-first search).

        Raises:
            ObjectNotFound: If no node has that name.
        """
        if self.name == name:
            return ()
        for idx, child in enumerate(self.children):
            try:
                return (idx, *child.seek_by_name(name))
            except ObjectNotFound:
                continue
        raise ObjectNotFound(name)

    def node_at(self, path: tuple[int, ...]) -> FrameTree:
        """Return the node at *path*.

        Raises:
            ObjectNotFound: If *path* does not exist in the tree.
        """
        node = self
        for idx in path:
            if idx < 0 or idx >= len(node.children):
                raise ObjectNotFound(f"frame path {list(path)}")
            node = node.children[idx]
        return node

    def walk(self) -> Iterator[FrameTree]:
        """Iterate over this node and its descendants depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def names(self) -> list[str]:
        return [node.name for node in self.walk()]
