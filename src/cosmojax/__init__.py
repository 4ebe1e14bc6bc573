"""
cosmojax is a frame-aware ephemeris and orbit determination toolkit implemented in JAX.
"""

from .config import set_dtype, get_dtype, get_epoch_eq_tolerance

from .constants import (
    JD_J2000,
    JD_MJD_OFFSET,
    SECONDS_PER_DAY,
    SPEED_OF_LIGHT_KMS,
    AU,
    SUN_GM,
    SS_MASS,
    R_EARTH,
    GM_EARTH,
    GM_MOON,
)

from .errors import (
    CosmojaxError,
    ObjectNotFound,
    NoInterpolationData,
    NoStateData,
    InvalidInterpolationData,
    LoadingError,
    FrameMismatch,
    FilterError,
    StateTransitionMatrixNotUpdated,
    SensitivityNotUpdated,
    SingularKalmanGain,
    StateTransitionMatrixSingular,
    CovarianceMatrixSingular,
)

from .epoch import Epoch
from .expressions import Expression

from .rotations import (
    Rx,
    Ry,
    Rz,
    rotv,
    IdentityRotation,
    IauRotation,
)

from .frames import (
    Frame,
    Celestial,
    Geoid,
    FrameTree,
    fix_frame_name,
)

from .orbit import Orbit, SpacecraftState, State

from .cosm import Cosm, LTCorr, Bodies, LIGHT_TIME_ITERATIONS

__all__ = [
    # Config
    "set_dtype",
    "get_dtype",
    "get_epoch_eq_tolerance",
    # Constants
    "JD_J2000",
    "JD_MJD_OFFSET",
    "SECONDS_PER_DAY",
    "SPEED_OF_LIGHT_KMS",
    "AU",
    "SUN_GM",
    "SS_MASS",
    "R_EARTH",
    "GM_EARTH",
    "GM_MOON",
    # Errors
    "CosmojaxError",
    "ObjectNotFound",
    "NoInterpolationData",
    "NoStateData",
    "InvalidInterpolationData",
    "LoadingError",
    "FrameMismatch",
    "FilterError",
    "StateTransitionMatrixNotUpdated",
    "SensitivityNotUpdated",
    "SingularKalmanGain",
    "StateTransitionMatrixSingular",
    "CovarianceMatrixSingular",
    # Time
    "Epoch",
    "Expression",
    # Rotations
    "Rx",
    "Ry",
    "Rz",
    "rotv",
    "IdentityRotation",
    "IauRotation",
    # Frames
    "Frame",
    "Celestial",
    "Geoid",
    "FrameTree",
    "fix_frame_name",
    # States
    "Orbit",
    "SpacecraftState",
    "State",
    # Cosm
    "Cosm",
    "LTCorr",
    "Bodies",
    "LIGHT_TIME_ITERATIONS",
]
