"""Low-precision analytical solar ephemeris.

Computes the Sun's apparent declination and right ascension for any UTC
instant from the truncated VSOP87-derived series in Meeus (1998), ch. 25,
plus the Greenwich Mean Sidereal Time polynomial of ch. 12. Accuracy is
about 0.01° in declination over several centuries around J2000.0, which is
far below the width of a gray-line stroke on a world map.

References
----------
- Meeus, J. (1998). "Astronomical Algorithms", 2nd ed., Willmann-Bell.

Notes
-----
The chain for an instant t (UTC) is:

    JD = t_unix / 86400 + 2440587.5
    T  = (JD − 2451545.0) / 36525           (Julian centuries since J2000.0)

    L0 = 280.46646 + 36000.76983·T + 0.0003032·T²      (mean longitude)
    M  = 357.52911 + 35999.05029·T − 0.0001537·T²      (mean anomaly)
    C  = equation of centre (3-term sine series in M)
    λ  = L0 + C − 0.00569 − 0.00478·sin Ω,   Ω = 125.04 − 1934.136·T
    ε  = 23.439291 − 0.0130042·T

    δ = asin(sin ε · sin λ)
    α = atan2(cos ε · sin λ, cos λ)  ∈ [0°, 360°)

Every function here is pure: nothing is cached between calls, so a time
series is produced by calling repeatedly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import numpy as np

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_JD_UNIX_EPOCH: float = 2440587.5
_JD_J2000: float = 2451545.0
_DAYS_PER_CENTURY: float = 36525.0
_SECONDS_PER_DAY: float = 86400.0


# ---------------------------------------------------------------------------
# Result Container
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SolarState:
    """Apparent equatorial position of the Sun at one instant.

    Attributes
    ----------
    declination_deg : float
        Solar declination [deg], within [-23.45, 23.45].
    right_ascension_deg : float
        Solar right ascension [deg], within [0, 360).
    """

    declination_deg: float
    right_ascension_deg: float


# ---------------------------------------------------------------------------
# Time scales
# ---------------------------------------------------------------------------


def julian_date(instant: datetime) -> float:
    """Convert a UTC instant to a Julian Date.

    Parameters
    ----------
    instant : datetime
        Observation time. Naive datetimes are assumed to be UTC.

    Returns
    -------
    float
        Julian Date (UT).
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.timestamp() / _SECONDS_PER_DAY + _JD_UNIX_EPOCH


def julian_centuries(jd: float) -> float:
    """Julian centuries elapsed since J2000.0."""
    return (jd - _JD_J2000) / _DAYS_PER_CENTURY


def greenwich_mean_sidereal_time_deg(jd: float) -> float:
    """Greenwich Mean Sidereal Time as an angle (Meeus eq. 12.4).

    Parameters
    ----------
    jd : float
        Julian Date (UT).

    Returns
    -------
    float
        GMST [deg], within [0, 360).
    """
    T = julian_centuries(jd)
    gmst = (
        280.46061837
        + 360.98564736629 * (jd - _JD_J2000)
        + 0.000387933 * T * T
        - T * T * T / 38710000.0
    )
    return gmst % 360.0


def hour_angle_deg(jd: float, longitude_deg: float, right_ascension_deg: float) -> float:
    """Local hour angle of the Sun at a given longitude.

    Parameters
    ----------
    jd : float
        Julian Date (UT).
    longitude_deg : float
        Observer longitude [deg], east positive.
    right_ascension_deg : float
        Solar right ascension [deg].

    Returns
    -------
    float
        Hour angle [deg], within [0, 360).
    """
    gmst = greenwich_mean_sidereal_time_deg(jd)
    return (gmst + longitude_deg - right_ascension_deg) % 360.0


# ---------------------------------------------------------------------------
# Solar position
# ---------------------------------------------------------------------------


def compute_solar_state(instant: datetime) -> SolarState:
    """Compute the Sun's apparent declination and right ascension.

    Total over all instants: there is no error case.

    Parameters
    ----------
    instant : datetime
        UTC observation time (naive datetimes are assumed UTC).

    Returns
    -------
    SolarState
        Declination and right ascension in degrees.
    """
    return _solar_state_at_jd(julian_date(instant))


def _solar_state_at_jd(jd: float) -> SolarState:
    T = julian_centuries(jd)

    L0 = (280.46646 + 36000.76983 * T + 0.0003032 * T * T) % 360.0
    M = (357.52911 + 35999.05029 * T - 0.0001537 * T * T) % 360.0
    M_rad = np.radians(M)

    # Equation of centre
    C = (
        (1.914602 - 0.004817 * T - 0.000014 * T * T) * np.sin(M_rad)
        + (0.019993 - 0.000101 * T) * np.sin(2.0 * M_rad)
        + 0.000289 * np.sin(3.0 * M_rad)
    )

    true_lon = L0 + C
    omega = 125.04 - 1934.136 * T
    apparent_lon = true_lon - 0.00569 - 0.00478 * np.sin(np.radians(omega))

    epsilon = 23.439291 - 0.0130042 * T
    eps_rad = np.radians(epsilon)
    lam_rad = np.radians(apparent_lon)

    declination = np.degrees(np.arcsin(np.sin(eps_rad) * np.sin(lam_rad)))
    right_ascension = np.degrees(
        np.arctan2(np.cos(eps_rad) * np.sin(lam_rad), np.cos(lam_rad))
    ) % 360.0

    return SolarState(
        declination_deg=float(declination),
        right_ascension_deg=float(right_ascension),
    )


def subsolar_point(instant: datetime) -> tuple[float, float]:
    """Geographic point where the Sun is at the zenith.

    Parameters
    ----------
    instant : datetime
        UTC observation time.

    Returns
    -------
    lat_deg, lon_deg : tuple[float, float]
        Subsolar latitude (= declination) and longitude in [-180, 180).
    """
    jd = julian_date(instant)
    state = _solar_state_at_jd(jd)
    gmst = greenwich_mean_sidereal_time_deg(jd)
    lon = (state.right_ascension_deg - gmst + 180.0) % 360.0 - 180.0
    return state.declination_deg, lon


def solar_altitude_deg(
    instant: datetime,
    latitude_deg: float,
    longitude_deg: float,
) -> float:
    """Geometric altitude of the Sun above the local horizon.

    sin(h) = sin(φ)·sin(δ) + cos(φ)·cos(δ)·cos(H)

    Parameters
    ----------
    instant : datetime
        UTC observation time.
    latitude_deg, longitude_deg : float
        Observer location [deg].

    Returns
    -------
    float
        Solar altitude [deg]. Positive = above horizon. No refraction.
    """
    jd = julian_date(instant)
    state = _solar_state_at_jd(jd)
    ha = np.radians(hour_angle_deg(jd, longitude_deg, state.right_ascension_deg))
    lat = np.radians(latitude_deg)
    dec = np.radians(state.declination_deg)

    sin_alt = np.sin(lat) * np.sin(dec) + np.cos(lat) * np.cos(dec) * np.cos(ha)
    return float(np.degrees(np.arcsin(np.clip(sin_alt, -1.0, 1.0))))
