"""Exception types raised by cosmojax.

All exceptions derive from :class:`CosmojaxError` and also from the
builtin exception they refine, so callers may catch either the precise
type or the broad builtin category:

- :class:`ObjectNotFound` -- Frame name or ephemeris path is unknown
- :class:`NoInterpolationData` -- Epoch lies outside the ephemeris windows
- :class:`NoStateData` -- Ephemeris node carries no coefficient data
- :class:`InvalidInterpolationData` -- Coefficients are corrupt or too low degree
- :class:`LoadingError` -- Frame table or ephemeris file cannot be loaded
- :class:`FrameMismatch` -- State arithmetic across different frames
- :class:`FilterError` -- Base class of the Kalman filter errors
"""

from __future__ import annotations


class CosmojaxError(Exception):
    """Base class for all cosmojax errors."""


class ObjectNotFound(CosmojaxError, LookupError):
    """Raised when a frame or ephemeris cannot be resolved."""

    def __init__(self, name: str) -> None:
        super().__init__(f"could not find `{name}`")
        self.name = name


class NoInterpolationData(CosmojaxError, ValueError):
    """Raised when no ephemeris window covers the requested epoch."""


class NoStateData(CosmojaxError, ValueError):
    """Raised when an ephemeris node has no interpolation coefficients."""


class InvalidInterpolationData(CosmojaxError, ValueError):
    """Raised when ephemeris coefficients are malformed or of degree <= 2."""


class LoadingError(CosmojaxError, ValueError):
    """Raised when a frame definition table or ephemeris file is malformed."""


class FrameMismatch(CosmojaxError, ValueError):
    """Raised when combining two states expressed in different frames."""


class FilterError(CosmojaxError):
    """Base class for Kalman filter and smoother failures."""


class StateTransitionMatrixNotUpdated(FilterError, RuntimeError):
    """Raised when an update is attempted before ``update_stm``."""

    def __init__(self) -> None:
        super().__init__("STM was not updated prior to time or measurement update")


class SensitivityNotUpdated(FilterError, RuntimeError):
    """Raised when a measurement update is attempted before ``update_h_tilde``."""

    def __init__(self) -> None:
        super().__init__("The measurement matrix H_tilde was not updated prior to measurement update")


class SingularKalmanGain(FilterError, ArithmeticError):
    """Raised when the innovation covariance cannot be inverted."""

    def __init__(self) -> None:
        super().__init__("Kalman gain is singular")


class StateTransitionMatrixSingular(FilterError, ArithmeticError):
    """Raised when the smoother cannot invert a state transition matrix."""

    def __init__(self) -> None:
        super().__init__("STM is singular")


class CovarianceMatrixSingular(FilterError, ArithmeticError):
    """Raised when the smoother cannot invert a covariance matrix."""

    def __init__(self) -> None:
        super().__init__("Covariance is singular")
