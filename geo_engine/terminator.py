"""Solar terminator and twilight-line solver.

For a given instant and target solar altitude h, finds for each sampled
longitude the latitude at which the Sun stands exactly at h. The h = 0°
curve is the day/night terminator ("gray line"); h = −6°, −12°, −18° are
the civil, nautical and astronomical twilight lines; the pair h = ±5°
bounds the enhanced long-path propagation zone.

Algorithm
---------
With declination δ and local hour angle H (from GMST and right ascension):

    sin h = sin φ · sin δ + cos φ · cos δ · cos H

For h = 0 this has the closed form

    φ₀ = atan(−cos H / tan δ)

For h ≠ 0, φ₀ seeds exactly five Newton–Raphson steps on

    f(φ)  = sin φ · sin δ + cos φ · cos δ · cos H − sin h
    f'(φ) = cos φ · sin δ − sin φ · cos δ · cos H

The iteration count is part of the contract: there is no convergence
test, so the output is bounded and bit-for-bit reproducible. A step is
skipped whenever |f'(φ)| ≤ 1e-4. Within 0.01° of an equinox the closed
form degenerates (tan δ → 0) and every latitude is reported as 0°.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime

import numpy as np
from numba import njit

from geo_engine.ephemeris import (
    compute_solar_state,
    greenwich_mean_sidereal_time_deg,
    julian_date,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Solver constants
# ---------------------------------------------------------------------------

_NEWTON_ITERATIONS: int = 5
_DERIVATIVE_FLOOR: float = 1e-4
_EQUINOX_DECLINATION_DEG: float = 0.01

ENHANCED_BAND_ALTITUDE_DEG: float = 5.0

TWILIGHT_ALTITUDES_DEG: dict[str, float] = {
    "civil": -6.0,
    "nautical": -12.0,
    "astronomical": -18.0,
}


# ---------------------------------------------------------------------------
# Result Containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TerminatorCurve:
    """Open curve of constant solar altitude.

    Attributes
    ----------
    points : np.ndarray
        (latitude, longitude) pairs in degrees, ordered by strictly
        increasing longitude over [-180, 180]. Shape: (N, 2). Read-only.
    altitude_deg : float
        Solar altitude the curve was solved for.
    sample_count : int
        Requested number of longitude intervals (N = sample_count + 1
        unless non-finite samples were dropped).
    """

    points: np.ndarray
    altitude_deg: float
    sample_count: int

    @property
    def latitudes(self) -> np.ndarray:
        return self.points[:, 0]

    @property
    def longitudes(self) -> np.ndarray:
        return self.points[:, 1]

    def __len__(self) -> int:
        return int(self.points.shape[0])

    def to_list(self) -> list[list[float]]:
        """Plain ``[[lat, lon], ...]`` list for JSON / map widgets."""
        return self.points.tolist()


@dataclass(frozen=True)
class GeoRing:
    """Closed polygon ring in (latitude, longitude) degrees.

    Attributes
    ----------
    ring : np.ndarray
        Vertices, first vertex repeated at the end. Shape: (M, 2). Read-only.
    label : str
        What the ring outlines ('enhanced_band', 'night').
    """

    ring: np.ndarray
    label: str

    def __len__(self) -> int:
        return int(self.ring.shape[0])

    def to_list(self) -> list[list[float]]:
        return self.ring.tolist()


# ---------------------------------------------------------------------------
# Numba kernel
# ---------------------------------------------------------------------------


@njit(cache=True)
def _solve_latitudes(
    hour_angle_deg: np.ndarray,
    declination_deg: float,
    altitude_deg: float,
) -> np.ndarray:
    """Latitude [deg] of constant solar altitude for each hour angle.

    Parameters
    ----------
    hour_angle_deg : np.ndarray
        Local hour angles [deg]. Shape: (N,).
    declination_deg : float
        Solar declination [deg].
    altitude_deg : float
        Target solar altitude [deg].

    Returns
    -------
    np.ndarray
        Unclamped latitudes [deg]. Shape: (N,). May contain NaN.
    """
    n = hour_angle_deg.shape[0]
    lat = np.zeros(n, dtype=np.float64)

    if abs(declination_deg) < _EQUINOX_DECLINATION_DEG:
        return lat

    dec = math.radians(declination_deg)
    sin_dec = math.sin(dec)
    cos_dec = math.cos(dec)
    tan_dec = math.tan(dec)
    sin_alt = math.sin(math.radians(altitude_deg))

    for i in range(n):
        cos_ha = math.cos(math.radians(hour_angle_deg[i]))
        phi = math.atan(-cos_ha / tan_dec)

        if altitude_deg != 0.0:
            phi = _refine_latitude(phi, sin_dec, cos_dec, cos_ha, sin_alt)

        lat[i] = math.degrees(phi)

    return lat


@njit(cache=True)
def _refine_latitude(
    phi: float,
    sin_dec: float,
    cos_dec: float,
    cos_ha: float,
    sin_alt: float,
) -> float:
    """Exactly ``_NEWTON_ITERATIONS`` guarded Newton steps from ``phi`` [rad].

    A step is skipped (``phi`` kept) whenever |f'(phi)| <= 1e-4.
    """
    for _ in range(_NEWTON_ITERATIONS):
        f = math.sin(phi) * sin_dec + math.cos(phi) * cos_dec * cos_ha - sin_alt
        f_prime = math.cos(phi) * sin_dec - math.sin(phi) * cos_dec * cos_ha
        if abs(f_prime) > _DERIVATIVE_FLOOR:
            phi = phi - f / f_prime
    return phi


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def compute_altitude_curve(
    instant: datetime,
    target_altitude_deg: float = 0.0,
    sample_count: int = 360,
) -> TerminatorCurve:
    """Solve the curve on which the Sun stands at a given altitude.

    Parameters
    ----------
    instant : datetime
        UTC time (naive datetimes are assumed UTC).
    target_altitude_deg : float
        Solar altitude [deg]. 0 = terminator, negative = twilight.
    sample_count : int
        Number of longitude intervals over [-180, 180]. Must be >= 1.

    Returns
    -------
    TerminatorCurve
        ``sample_count + 1`` (lat, lon) points, minus any non-finite ones.

    Raises
    ------
    ValueError
        If sample_count < 1 or the target altitude is not finite.
    """
    _check_sample_count(sample_count)
    if not math.isfinite(target_altitude_deg):
        raise ValueError(f"target_altitude_deg must be finite, got {target_altitude_deg}")

    jd = julian_date(instant)
    state = compute_solar_state(instant)
    gmst = greenwich_mean_sidereal_time_deg(jd)

    longitudes = np.arange(sample_count + 1, dtype=np.float64) / sample_count * 360.0 - 180.0
    hour_angles = (gmst + longitudes - state.right_ascension_deg) % 360.0

    latitudes = _solve_latitudes(
        hour_angles, state.declination_deg, float(target_altitude_deg)
    )
    latitudes = np.clip(latitudes, -90.0, 90.0)

    finite = np.isfinite(latitudes) & np.isfinite(longitudes)
    dropped = int(finite.size - np.count_nonzero(finite))
    if dropped:
        logger.debug(
            "Dropped %d non-finite sample(s) from the %.1f° curve", dropped, target_altitude_deg
        )

    points = np.column_stack((latitudes[finite], longitudes[finite]))
    points.setflags(write=False)

    logger.debug(
        "Altitude curve h=%.1f°: %d points (dec=%.4f°, RA=%.4f°)",
        target_altitude_deg,
        points.shape[0],
        state.declination_deg,
        state.right_ascension_deg,
    )

    return TerminatorCurve(
        points=points,
        altitude_deg=float(target_altitude_deg),
        sample_count=int(sample_count),
    )


def compute_enhanced_band(
    instant: datetime,
    half_width_deg: float = ENHANCED_BAND_ALTITUDE_DEG,
    sample_count: int = 360,
) -> GeoRing:
    """Ring bounding the enhanced-propagation ("gray-line") zone.

    The ring is the +h curve in increasing longitude followed by the −h
    curve in decreasing longitude, closed back onto its first vertex.

    Parameters
    ----------
    instant : datetime
        UTC time.
    half_width_deg : float
        Solar altitude of the band edges [deg]. Must be in (0, 90).
    sample_count : int
        Longitude intervals per edge curve.

    Returns
    -------
    GeoRing
        Closed ring with label 'enhanced_band'.
    """
    if not (0.0 < half_width_deg < 90.0):
        raise ValueError(f"half_width_deg must be in (0, 90), got {half_width_deg}")

    upper = compute_altitude_curve(instant, half_width_deg, sample_count)
    lower = compute_altitude_curve(instant, -half_width_deg, sample_count)

    return _close_ring(
        np.concatenate((upper.points, lower.points[::-1])), "enhanced_band"
    )


def compute_twilight_curves(
    instant: datetime,
    sample_count: int = 360,
    altitudes_deg: dict[str, float] | None = None,
) -> dict[str, TerminatorCurve]:
    """Civil, nautical and astronomical twilight lines.

    Each line is an independent open curve; they are never joined into
    polygons.

    Parameters
    ----------
    instant : datetime
        UTC time.
    sample_count : int
        Longitude intervals per curve.
    altitudes_deg : dict[str, float], optional
        Name → solar altitude mapping. Defaults to −6/−12/−18°.

    Returns
    -------
    dict[str, TerminatorCurve]
        Curves keyed by twilight name, in the mapping's order.
    """
    if altitudes_deg is None:
        altitudes_deg = TWILIGHT_ALTITUDES_DEG

    return {
        name: compute_altitude_curve(instant, altitude, sample_count)
        for name, altitude in altitudes_deg.items()
    }


def compute_night_polygon(instant: datetime, sample_count: int = 360) -> GeoRing:
    """Night-side polygon: the terminator closed over the dark pole.

    When the Sun is north of the equator the south pole is in darkness,
    so the terminator is closed along latitude −90°, and vice versa.

    Parameters
    ----------
    instant : datetime
        UTC time.
    sample_count : int
        Longitude intervals of the terminator.

    Returns
    -------
    GeoRing
        Closed ring with label 'night'.
    """
    terminator = compute_altitude_curve(instant, 0.0, sample_count)
    declination = compute_solar_state(instant).declination_deg

    dark_pole = -90.0 if declination > 0 else 90.0
    ring = np.concatenate((
        [[dark_pole, -180.0]],
        terminator.points,
        [[dark_pole, 180.0]],
    ))
    return _close_ring(ring, "night")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_sample_count(sample_count: int) -> None:
    if (
        isinstance(sample_count, bool)
        or not isinstance(sample_count, (int, float, np.integer, np.floating))
        or not math.isfinite(sample_count)
        or int(sample_count) != sample_count
        or sample_count < 1
    ):
        raise ValueError(f"sample_count must be an integer >= 1, got {sample_count!r}")


def _close_ring(vertices: np.ndarray, label: str) -> GeoRing:
    if vertices.shape[0] and not np.array_equal(vertices[0], vertices[-1]):
        vertices = np.concatenate((vertices, vertices[:1]))
    vertices = np.ascontiguousarray(vertices, dtype=np.float64)
    vertices.setflags(write=False)
    return GeoRing(ring=vertices, label=label)
