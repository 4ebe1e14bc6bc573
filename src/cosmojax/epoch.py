"""The epoch module provides the ``Epoch`` class for representing instants in time.

The Epoch class uses an internal representation of integer Julian Day number,
seconds within the day, and a Kahan summation compensator for maintaining
precision during arithmetic operations.

The Kahan compensator tracks floating-point rounding errors that accumulate
during repeated additions (e.g., fixed-step propagation over long arcs),
preventing error growth from O(N) to O(1) machine epsilon.

Epochs are stored in the TAI time scale. Ephemeris lookups and IAU frame
rotations require Barycentric Dynamical Time (TDB), which is derived with
TT = TAI + 32.184 s and the dominant periodic TDB - TT terms. Unlike the
array-valued quantities elsewhere in cosmojax, epochs are Python floats:
they drive control flow in the OD process and are never traced.
"""

from __future__ import annotations

import math
import re

from .config import get_epoch_eq_tolerance
from .constants import JD_J2000, JD_MJD_OFFSET, SECONDS_PER_DAY, TT_TAI
from .time import caldate_to_jd, jd_to_caldate

# Valid ISO 8601 epoch string patterns
_EPOCH_PATTERNS = [
    # YYYY-MM-DD
    re.compile(r'^(\d{4})-(\d{2})-(\d{2})$'),
    # YYYY-MM-DDTHH:MM:SS[Z| TAI]
    re.compile(r'^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:Z| TAI)?$'),
    # YYYY-MM-DDTHH:MM:SS.fff[Z| TAI]
    re.compile(r'^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})\.(\d+)(?:Z| TAI)?$'),
]


def tdb_minus_tt(jde_tt: float) -> float:
    """Return the periodic difference TDB - TT in seconds.

    Args:
        jde_tt (float): Julian ephemeris date in TT.

    Returns:
        float: TDB - TT in seconds (below 2 ms in magnitude).

    References:

        1. USNO, *Explanatory Supplement to the Astronomical Almanac*, 1992.
    """
    g = math.radians(357.53 + 0.98560028 * (jde_tt - JD_J2000))
    return 0.001657 * math.sin(g) + 0.000014 * math.sin(2.0 * g)


class Epoch:
    """Represents a single instant in time (TAI) with high-precision arithmetic.

    The internal representation uses three private components:
        ``_jd`` (int), ``_seconds`` (float), ``_kahan_c`` (float).

    Constructors:
        Epoch(2018, 1, 1)
        Epoch(2018, 1, 1, 12, 0, 0.0)
        Epoch("2018-01-01T12:00:00Z")
        Epoch(other_epoch)
        Epoch.from_jde_tdb(2458120.0)
    """

    __slots__ = ('_jd', '_seconds', '_kahan_c')

    def __init__(self, *args: int | float | str | Epoch) -> None:
        """Initialize Epoch. Supports multiple constructor forms.

        Args:
            *args: Either (year, month, day[, hour, minute, second]),
                a string in ISO 8601 format, or another Epoch instance.
        """
        self._jd = 0
        self._seconds = 0.0
        self._kahan_c = 0.0

        if len(args) == 1:
            if isinstance(args[0], str):
                self._init_string(args[0])
            elif isinstance(args[0], Epoch):
                self._init_epoch(args[0])
            else:
                raise ValueError(f"Cannot construct Epoch from {type(args[0])}")
        elif 3 <= len(args) <= 6:
            self._init_date(*args)
        else:
            raise ValueError(
                "Epoch requires date components (3-6 args), a string, or an Epoch"
            )

    @classmethod
    def _from_internal(cls, jd: int, seconds: float, kahan_c: float = 0.0) -> Epoch:
        """Create an Epoch from raw components, normalizing the seconds."""
        obj = object.__new__(cls)
        day_offset = math.floor(seconds / SECONDS_PER_DAY)
        obj._jd = int(jd) + day_offset
        obj._seconds = seconds - day_offset * SECONDS_PER_DAY
        obj._kahan_c = kahan_c
        return obj

    @classmethod
    def from_jde_tai(cls, days: float) -> Epoch:
        """Create an Epoch from a Julian date in the TAI scale.

        Args:
            days (float): Julian date (TAI).

        Returns:
            Epoch: The corresponding epoch.
        """
        jd_int = math.floor(days)
        return cls._from_internal(jd_int, (days - jd_int) * SECONDS_PER_DAY)

    @classmethod
    def from_jde_tdb(cls, days: float) -> Epoch:
        """Create an Epoch from a Julian ephemeris date in the TDB scale.

        Args:
            days (float): Julian ephemeris date (TDB).

        Returns:
            Epoch: The corresponding epoch.

        Examples:
            ```python
            from cosmojax import Epoch
            epc = Epoch.from_jde_tdb(2451545.0)
            abs(epc.jde_tdb() - 2451545.0) < 1e-9
            ```
        """
        jd_int = math.floor(days)
        seconds = (days - jd_int) * SECONDS_PER_DAY - TT_TAI - tdb_minus_tt(days)
        return cls._from_internal(jd_int, seconds)

    def _init_date(self, year, month, day, hour=0, minute=0, second=0.0):
        """Initialize from calendar date components."""
        jd_full = caldate_to_jd(year, month, day)

        jd_int = math.floor(jd_full)
        frac_day = jd_full - jd_int

        seconds = (frac_day * SECONDS_PER_DAY
                   + hour * 3600.0 + minute * 60.0 + second)

        other = Epoch._from_internal(jd_int, seconds)
        self._init_epoch(other)

    def _init_string(self, string):
        """Initialize from an ISO 8601 string.

        Supported formats:
            - ``YYYY-MM-DD``
            - ``YYYY-MM-DDTHH:MM:SSZ``
            - ``YYYY-MM-DDTHH:MM:SS.fffZ``

        A ``" TAI"`` suffix is accepted in place of ``Z``.
        """
        for pattern in _EPOCH_PATTERNS:
            m = pattern.match(string)
            if m:
                groups = m.groups()
                year = int(groups[0])
                month = int(groups[1])
                day = int(groups[2])

                hour = 0
                minute = 0
                second = 0.0

                if len(groups) >= 6:
                    hour = int(groups[3])
                    minute = int(groups[4])
                    second = float(groups[5])

                if len(groups) == 7:
                    second += float(f"0.{groups[6]}")

                self._init_date(year, month, day, hour, minute, second)
                return

        raise ValueError(
            f'Invalid Epoch string: "{string}" is not ISO 8601 compliant'
        )

    def _init_epoch(self, other):
        self._jd = other._jd
        self._seconds = other._seconds
        self._kahan_c = other._kahan_c

    def _compensated_seconds(self) -> float:
        return self._seconds - self._kahan_c

    # Arithmetic operators

    def __add__(self, delta: float) -> Epoch:
        """Return a new Epoch advanced by *delta* seconds (Kahan compensated).

        Args:
            delta (float): Seconds to add.

        Returns:
            Epoch: New Epoch with delta seconds added.
        """
        delta = float(delta)
        y = delta - self._kahan_c
        t = self._seconds + y
        new_kahan_c = (t - self._seconds) - y
        return Epoch._from_internal(self._jd, t, new_kahan_c)

    def __radd__(self, delta: float) -> Epoch:
        return self.__add__(delta)

    def __sub__(self, other: Epoch | float) -> Epoch | float:
        """Subtract seconds or compute difference between Epochs.

        Args:
            other: If Epoch, returns the time difference in seconds.
                If numeric, returns a new Epoch with seconds subtracted.

        Returns:
            float or Epoch: Time difference in seconds, or new Epoch.
        """
        if isinstance(other, Epoch):
            return ((self._jd - other._jd) * SECONDS_PER_DAY
                    + (self._compensated_seconds()
                       - other._compensated_seconds()))
        return self.__add__(-float(other))

    # Comparison operators

    def _key(self) -> tuple[int, float]:
        return self._jd, self._compensated_seconds()

    def __eq__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return abs(self - other) < get_epoch_eq_tolerance()

    def __ne__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return not self.__eq__(other)

    def __lt__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return self._key() < other._key()

    def __le__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return self.__lt__(other) or self.__eq__(other)

    def __gt__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return self._key() > other._key()

    def __ge__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return self.__gt__(other) or self.__eq__(other)

    # Time properties

    def caldate(self) -> tuple[int, int, int, int, int, float]:
        """Return the calendar date components (TAI).

        Returns:
            tuple: (year, month, day, hour, minute, second) where second
                includes fractional part.
        """
        comp_seconds = self._compensated_seconds()
        jd_full = self._jd + comp_seconds / SECONDS_PER_DAY

        year, month, day, _, _, _ = jd_to_caldate(jd_full)

        # JD day starts at noon, so shift by 43200s to get civil time of day.
        civil_time = (comp_seconds + 43200.0) % SECONDS_PER_DAY

        hour = int(civil_time // 3600)
        civil_time -= hour * 3600
        minute = int(civil_time // 60)
        second = civil_time - minute * 60

        return year, month, day, hour, minute, second

    def jd(self) -> float:
        """Return the Julian Date in the TAI scale."""
        return self._jd + self._compensated_seconds() / SECONDS_PER_DAY

    def mjd(self) -> float:
        """Return the Modified Julian Date in the TAI scale."""
        return self.jd() - JD_MJD_OFFSET

    def jde_tt(self) -> float:
        """Return the Julian ephemeris date in Terrestrial Time."""
        return self._jd + (self._compensated_seconds() + TT_TAI) / SECONDS_PER_DAY

    def jde_tdb(self) -> float:
        """Return the Julian ephemeris date in Barycentric Dynamical Time."""
        return self._jd + self._tdb_seconds_of_day() / SECONDS_PER_DAY

    def _tdb_seconds_of_day(self) -> float:
        return self._compensated_seconds() + TT_TAI + tdb_minus_tt(self.jde_tt())

    def tdb_days_since_j2000(self) -> float:
        """Return the number of TDB days elapsed since J2000.0.

        The integer and fractional day components are differenced
        separately to preserve sub-millisecond precision.
        """
        return (self._jd - JD_J2000) + self._tdb_seconds_of_day() / SECONDS_PER_DAY

    def tdb_centuries_since_j2000(self) -> float:
        """Return the number of Julian centuries (TDB) elapsed since J2000.0."""
        return self.tdb_days_since_j2000() / 36525.0

    # String representations

    def __str__(self):
        year, month, day, hour, minute, second = self.caldate()
        return (f'{year:04d}-{month:02d}-{day:02d}T'
                f'{hour:02d}:{minute:02d}:{second:06.3f} TAI')

    def __repr__(self):
        return (f'Epoch(_jd={self._jd}, _seconds={self._seconds}, '
                f'_kahan_c={self._kahan_c})')

    # Unhashable: tolerance equality is not transitive
    __hash__ = None
