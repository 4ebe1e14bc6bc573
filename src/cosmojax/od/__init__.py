"""Orbit determination.

Available components:

- :class:`KF` -- Classical and extended Kalman filter with Joseph update
- :class:`Estimate` -- Output of a filter step
- :class:`Residual` -- Prefit and postfit measurement residuals
- :class:`SNC` -- State noise compensation entry
- :class:`GroundStation` -- Range and range-rate tracking station
- :class:`StdMeasurement` -- Range and range-rate measurement
- :class:`ODProcess` -- Sequential processing, smoothing and iteration
- :class:`CkfTrigger`, :class:`StdEkfTrigger` -- EKF switching policies
- :func:`estimates_to_dataframe`, :func:`residuals_to_dataframe` -- Tabular export
"""

from cosmojax.od.estimate import CovarFormat, EpochFormat, Estimate
from cosmojax.od.export import estimates_to_dataframe, residuals_to_dataframe, write_csv
from cosmojax.od.kalman import KF, snc_gamma, try_inverse
from cosmojax.od.process import (
    MAX_CHANNEL_STEPS,
    CkfTrigger,
    ODProcess,
    StdEkfTrigger,
)
from cosmojax.od.ranging import GroundStation, StdMeasurement
from cosmojax.od.residual import Residual
from cosmojax.od.snc import SNC

__all__ = [
    "KF",
    "Estimate",
    "EpochFormat",
    "CovarFormat",
    "Residual",
    "SNC",
    "GroundStation",
    "StdMeasurement",
    "ODProcess",
    "CkfTrigger",
    "StdEkfTrigger",
    "MAX_CHANNEL_STEPS",
    "snc_gamma",
    "try_inverse",
    "estimates_to_dataframe",
    "residuals_to_dataframe",
    "write_csv",
]
