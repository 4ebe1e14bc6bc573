"""
The `constants` module defines the mathematical, time and physical constants used by cosmojax.

Distances are in kilometres and gravitational parameters in km^3/s^2.
"""

from math import pi as PI

# Mathematical Constants
"""
Constant to convert degrees to radians. Equal to 2pi/360. Units: *rad/deg*
"""
DEG2RAD = 2.0 * PI / 360.0

"""
Constant to convert radians to degrees. Equal to 360/2pi. Units: *deg/rad*
"""
RAD2DEG = 360.0 / (PI * 2.0)

"""
Constant to convert arcseconds to radians. Equal to 2pi/(360*3600). Units: *rad/as*
"""
AS2RAD = 2.0 * PI / 360.0 / 3600.0

# Time Constants

"""
Offset between Julian Date and Modified Julian Date. Units: *days*
"""
JD_MJD_OFFSET = 2400000.5

"""
Julian Date of the J2000.0 reference epoch (2000-01-01 12:00:00 TT). Units: *days*
"""
JD_J2000 = 2451545.0

"""
Number of seconds in a Julian day. Units: *s*
"""
SECONDS_PER_DAY = 86400.0

"""
Number of days in a Julian century. Units: *days*
"""
DAYS_PER_CENTURY = 36525.0

"""
Offset between Terrestrial Time and International Atomic Time. Units: *s*
"""
TT_TAI = 32.184

# Physical Constants
"""
Speed of light in vacuum. Units: *km/s*

References:

1. D. Vallado, *Fundamentals of Astrodynamics and Applications (4th Ed.)*, 2010
"""
SPEED_OF_LIGHT_KMS = 299792.458

"""
Astronomical Unit. TDB-compatible value. Units: *km*

References:

1. P. Gerard and B. Luzum, *IERS Technical Note 36*, 2010
"""
AU = 1.49597870700e8

"""
Gravitational parameter of the Sun (DE438). Units: *km^3/s^2*
"""
SUN_GM = 132_712_440_041.939_38

"""
Mass of the solar system relative to the Sun, used to build the
gravitational parameter of the solar system barycenter frame. Units: *dimensionless*
"""
SS_MASS = 1.0014

"""
Nominal solar photospheric radius. Units: *km*
"""
SUN_RADIUS = 696_342.0

"""
Earth's equatorial radius (GGM05s). Units: *km*
"""
R_EARTH = 6378.1363

"""
Earth's semi-major axis as defined by WGS84. Units: *km*
"""
WGS84_a = 6378.1370

"""
Earth's flattening as defined by WGS84. Units: *dimensionless*
"""
WGS84_f = 1.0 / 298.257223563

"""
Earth's gravitational parameter (DE438). Units: *km^3/s^2*
"""
GM_EARTH = 398_600.435_436

"""
Moon's gravitational parameter (DE438). Units: *km^3/s^2*
"""
GM_MOON = 4_902.800_066

"""
Moon's mean equatorial radius. Units: *km*
"""
R_MOON = 1738.1

"""
Moon's flattening. Units: *dimensionless*
"""
MOON_FLATTENING = 0.0012

"""
Gravitational parameters of the planetary system barycenters (DE438). Units: *km^3/s^2*
"""
GM_MERCURY_BARYCENTER = 22_031.780_000
GM_VENUS_BARYCENTER = 324_858.592_000
GM_MARS_BARYCENTER = 42_828.375_214
GM_JUPITER_BARYCENTER = 126_712_764.800_000
GM_SATURN_BARYCENTER = 37_940_585.200_000
GM_URANUS_BARYCENTER = 5_794_548.600_000
GM_NEPTUNE_BARYCENTER = 6_836_527.100_580

"""
Gravitational parameter of the Earth-Moon barycenter. Units: *km^3/s^2*
"""
GM_EARTH_BARYCENTER = GM_EARTH + GM_MOON
