"""Tests for the analytical solar ephemeris.

Validates declination / right-ascension ranges, the Meeus worked example,
sidereal time at J2000.0 and the consistency of the derived quantities
(subsolar point, local solar altitude).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from geo_engine.ephemeris import (
    SolarState,
    compute_solar_state,
    greenwich_mean_sidereal_time_deg,
    hour_angle_deg,
    julian_centuries,
    julian_date,
    solar_altitude_deg,
    subsolar_point,
)


# ===================================================================
# TIME SCALES
# ===================================================================


class TestTimeScales:
    """Julian Date, Julian centuries and sidereal time."""

    def test_unix_epoch(self) -> None:
        """1970-01-01T00:00Z is JD 2440587.5."""
        epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert julian_date(epoch) == pytest.approx(2440587.5, abs=1e-9)

    def test_j2000(self) -> None:
        """2000-01-01T12:00Z is JD 2451545.0, T = 0."""
        j2000 = datetime(2000, 1, 1, 12, tzinfo=timezone.utc)
        jd = julian_date(j2000)
        assert jd == pytest.approx(2451545.0, abs=1e-9)
        assert julian_centuries(jd) == pytest.approx(0.0, abs=1e-12)

    def test_naive_is_utc(self) -> None:
        """Naive datetimes are interpreted as UTC."""
        naive = datetime(2024, 6, 20, 20, 51)
        aware = naive.replace(tzinfo=timezone.utc)
        assert julian_date(naive) == julian_date(aware)

    def test_offset_aware(self) -> None:
        """The same instant in another zone gives the same Julian Date."""
        utc = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
        cet = utc.astimezone(timezone(timedelta(hours=1)))
        assert julian_date(cet) == pytest.approx(julian_date(utc), abs=1e-12)

    def test_gmst_at_j2000(self) -> None:
        """GMST at J2000.0 equals the polynomial constant term."""
        assert greenwich_mean_sidereal_time_deg(2451545.0) == pytest.approx(
            280.46061837, abs=1e-9
        )

    def test_gmst_advances_one_sidereal_day(self) -> None:
        """One solar day advances GMST by ~0.9856°."""
        g0 = greenwich_mean_sidereal_time_deg(2451545.0)
        g1 = greenwich_mean_sidereal_time_deg(2451546.0)
        assert (g1 - g0) % 360.0 == pytest.approx(0.98564736629, abs=1e-6)

    def test_hour_angle_range(self) -> None:
        """Hour angle is always within [0, 360)."""
        for lon in np.linspace(-180.0, 180.0, 37):
            ha = hour_angle_deg(2460000.3, float(lon), 359.9)
            assert 0.0 <= ha < 360.0


# ===================================================================
# SOLAR POSITION
# ===================================================================


class TestSolarState:
    """Declination and right ascension."""

    def test_meeus_example_25a(self) -> None:
        """1992-10-13 0h: δ = −7.78507°, α = 198.38083° (Meeus ex. 25.a)."""
        state = compute_solar_state(datetime(1992, 10, 13, tzinfo=timezone.utc))
        assert isinstance(state, SolarState)
        assert state.declination_deg == pytest.approx(-7.78507, abs=0.01)
        assert state.right_ascension_deg == pytest.approx(198.38083, abs=0.01)

    def test_ranges_over_150_years(self) -> None:
        """δ ∈ [−23.45°, 23.45°] and α ∈ [0°, 360°) from 1950 to 2100."""
        t = datetime(1950, 1, 1, tzinfo=timezone.utc)
        end = datetime(2100, 1, 1, tzinfo=timezone.utc)
        step = timedelta(days=7, hours=5, minutes=13)
        while t < end:
            state = compute_solar_state(t)
            assert -23.45 <= state.declination_deg <= 23.45
            assert 0.0 <= state.right_ascension_deg < 360.0
            t += step

    def test_solstice_declination(self, june_solstice: datetime) -> None:
        """At the June solstice the declination is at its maximum (~23.44°)."""
        state = compute_solar_state(june_solstice)
        assert state.declination_deg == pytest.approx(23.44, abs=0.01)

    def test_idempotent(self) -> None:
        """Repeated calls with the same instant are identical."""
        t = datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc)
        assert compute_solar_state(t) == compute_solar_state(t)


# ===================================================================
# DERIVED QUANTITIES
# ===================================================================


class TestDerived:
    """Subsolar point and local solar altitude."""

    def test_subsolar_latitude_is_declination(self) -> None:
        """Subsolar latitude equals the declination."""
        t = datetime(2025, 2, 14, 6, tzinfo=timezone.utc)
        lat, lon = subsolar_point(t)
        assert lat == pytest.approx(compute_solar_state(t).declination_deg)
        assert -180.0 <= lon < 180.0

    def test_sun_overhead_at_subsolar_point(self) -> None:
        """Solar altitude at the subsolar point is 90°."""
        t = datetime(2025, 8, 3, 17, 45, tzinfo=timezone.utc)
        lat, lon = subsolar_point(t)
        assert solar_altitude_deg(t, lat, lon) == pytest.approx(90.0, abs=1e-3)

    def test_antipode_is_nadir(self) -> None:
        """Solar altitude at the antisolar point is −90°."""
        t = datetime(2025, 8, 3, 17, 45, tzinfo=timezone.utc)
        lat, lon = subsolar_point(t)
        anti_lon = (lon + 360.0) % 360.0 - 180.0
        assert solar_altitude_deg(t, -lat, anti_lon) == pytest.approx(-90.0, abs=1e-3)

    def test_noon_near_greenwich(self) -> None:
        """Around 12:00 UTC the subsolar longitude is within a few degrees of 0°."""
        _, lon = subsolar_point(datetime(2024, 4, 15, 12, tzinfo=timezone.utc))
        # Equation of time is at most ~16 min (4°)
        assert abs(lon) < 4.5
