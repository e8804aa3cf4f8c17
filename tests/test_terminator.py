"""Tests for the terminator / twilight solver.

Validates curve shape and ordering, the equinox short-circuit, altitude
accuracy of the solved latitudes at the solstice, and the geometry of
the enhanced-propagation and night rings.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from geo_engine.ephemeris import compute_solar_state, solar_altitude_deg
from geo_engine.terminator import (
    GeoRing,
    TerminatorCurve,
    _refine_latitude,
    _solve_latitudes,
    compute_altitude_curve,
    compute_enhanced_band,
    compute_night_polygon,
    compute_twilight_curves,
)


# ===================================================================
# FIXTURES
# ===================================================================


@pytest.fixture(scope="module")
def march_equinox() -> datetime:
    """Instant of the 2024 March equinox, found by bisection on δ."""
    lo = datetime(2024, 3, 19, tzinfo=timezone.utc)
    hi = datetime(2024, 3, 21, tzinfo=timezone.utc)
    assert compute_solar_state(lo).declination_deg < 0.0
    assert compute_solar_state(hi).declination_deg > 0.0
    while hi - lo > timedelta(seconds=1):
        mid = lo + (hi - lo) / 2
        if compute_solar_state(mid).declination_deg < 0.0:
            lo = mid
        else:
            hi = mid
    return lo


def _segments_intersect(p1, p2, q1, q2) -> np.ndarray:
    """Vectorized proper-intersection test of segments p1-p2 vs q1-q2."""

    def orient(a, b, c):
        return np.sign(
            (b[..., 0] - a[..., 0]) * (c[..., 1] - a[..., 1])
            - (b[..., 1] - a[..., 1]) * (c[..., 0] - a[..., 0])
        )

    o1 = orient(p1, p2, q1)
    o2 = orient(p1, p2, q2)
    o3 = orient(q1, q2, p1)
    o4 = orient(q1, q2, p2)
    return (o1 * o2 < 0) & (o3 * o4 < 0)


# ===================================================================
# CURVE SHAPE
# ===================================================================


class TestCurveShape:
    """Point count, ordering and ranges."""

    @pytest.mark.parametrize("n", [1, 2, 90, 360, 720])
    def test_point_count(self, june_solstice: datetime, n: int) -> None:
        """A curve carries sample_count + 1 points."""
        curve = compute_altitude_curve(june_solstice, 0.0, n)
        assert isinstance(curve, TerminatorCurve)
        assert len(curve) == n + 1
        assert curve.sample_count == n

    def test_longitudes_strictly_increasing(self, june_solstice: datetime) -> None:
        """Longitudes run from −180° to 180° in strictly increasing order."""
        curve = compute_altitude_curve(june_solstice, 0.0, 360)
        lon = curve.longitudes
        assert lon[0] == pytest.approx(-180.0)
        assert lon[-1] == pytest.approx(180.0)
        assert np.all(np.diff(lon) > 0.0)

    def test_latitudes_in_range(self) -> None:
        """Latitudes lie within [−90°, 90°] across a year of instants."""
        t = datetime(2025, 1, 1, tzinfo=timezone.utc)
        for _ in range(24):
            for alt in (0.0, -6.0, 5.0, -18.0):
                lat = compute_altitude_curve(t, alt, 72).latitudes
                assert np.all(np.isfinite(lat))
                assert np.all((lat >= -90.0) & (lat <= 90.0))
            t += timedelta(days=15, hours=7)

    def test_points_read_only(self, june_solstice: datetime) -> None:
        """Returned point arrays cannot be mutated."""
        curve = compute_altitude_curve(june_solstice)
        with pytest.raises(ValueError):
            curve.points[0, 0] = 1.0

    def test_idempotent(self, june_solstice: datetime) -> None:
        """Same instant and altitude give bit-identical curves."""
        a = compute_altitude_curve(june_solstice, -6.0, 180)
        b = compute_altitude_curve(june_solstice, -6.0, 180)
        np.testing.assert_array_equal(a.points, b.points)

    def test_to_list(self, june_solstice: datetime) -> None:
        """to_list gives plain [lat, lon] pairs."""
        pts = compute_altitude_curve(june_solstice, 0.0, 4).to_list()
        assert len(pts) == 5
        assert all(len(p) == 2 for p in pts)
        assert pts[0][1] == pytest.approx(-180.0)


# ===================================================================
# ACCURACY
# ===================================================================


class TestAltitudeAccuracy:
    """The Sun stands at the target altitude on each solved point."""

    @pytest.mark.parametrize("altitude", [0.0, 5.0, -5.0, -6.0])
    def test_solstice_altitude(self, june_solstice: datetime, altitude: float) -> None:
        """Solar altitude at every point matches the target within 0.1°."""
        curve = compute_altitude_curve(june_solstice, altitude, 360)
        for lat, lon in curve.points:
            if abs(lat) > 89.0:
                continue
            assert solar_altitude_deg(june_solstice, lat, lon) == pytest.approx(
                altitude, abs=0.1
            )

    def test_terminator_closed_form_exact(self, june_solstice: datetime) -> None:
        """The h = 0 curve needs no iteration and is exact."""
        curve = compute_altitude_curve(june_solstice, 0.0, 36)
        alts = [solar_altitude_deg(june_solstice, lat, lon) for lat, lon in curve.points]
        np.testing.assert_allclose(alts, 0.0, atol=1e-6)

    def test_summer_pole_lit(self, june_solstice: datetime) -> None:
        """In June the north pole is lit, so the terminator dips south at the noon meridian."""
        curve = compute_altitude_curve(june_solstice, 0.0, 360)
        assert curve.latitudes.min() == pytest.approx(-66.56, abs=0.2)
        assert curve.latitudes.max() == pytest.approx(66.56, abs=0.2)


# ===================================================================
# EQUINOX
# ===================================================================


class TestEquinox:
    """Degenerate case |δ| < 0.01°."""

    def test_declination_near_zero(self, march_equinox: datetime) -> None:
        """The bisected instant is within the short-circuit window."""
        assert abs(compute_solar_state(march_equinox).declination_deg) < 0.01

    @pytest.mark.parametrize("altitude", [0.0, -6.0])
    def test_all_latitudes_zero(self, march_equinox: datetime, altitude: float) -> None:
        """Every latitude is exactly 0° and no point is dropped."""
        curve = compute_altitude_curve(march_equinox, altitude, 360)
        assert len(curve) == 361
        np.testing.assert_array_equal(curve.latitudes, 0.0)

    def test_enhanced_band_collapses(self, march_equinox: datetime) -> None:
        """At the equinox both band edges lie on the equator."""
        band = compute_enhanced_band(march_equinox, 5.0, 36)
        np.testing.assert_array_equal(band.ring[:, 0], 0.0)


# ===================================================================
# ENHANCED BAND, TWILIGHT, NIGHT
# ===================================================================


class TestRings:
    """Closed rings and twilight lines."""

    def test_band_is_closed(self, june_solstice: datetime) -> None:
        """First and last vertex coincide."""
        band = compute_enhanced_band(june_solstice, 5.0, 360)
        assert isinstance(band, GeoRing)
        assert band.label == "enhanced_band"
        np.testing.assert_array_equal(band.ring[0], band.ring[-1])
        assert len(band) == 2 * 361 + 1

    def test_band_edge_order(self, june_solstice: datetime) -> None:
        """Upper edge in increasing longitude, lower edge in decreasing longitude."""
        band = compute_enhanced_band(june_solstice, 5.0, 36)
        upper = band.ring[:37]
        lower = band.ring[37:-1]
        assert np.all(np.diff(upper[:, 1]) > 0.0)
        assert np.all(np.diff(lower[:, 1]) < 0.0)

    @pytest.mark.parametrize(
        "instant",
        [
            datetime(2024, 6, 20, 20, 51, tzinfo=timezone.utc),
            datetime(2024, 12, 21, 9, 20, tzinfo=timezone.utc),
            datetime(2025, 5, 1, 3, 0, tzinfo=timezone.utc),
            datetime(2025, 10, 30, 15, 45, tzinfo=timezone.utc),
        ],
    )
    def test_band_is_simple(self, instant: datetime) -> None:
        """No two non-adjacent ring edges cross."""
        ring = compute_enhanced_band(instant, 5.0, 90).ring[:, ::-1]  # (lon, lat)
        a, b = ring[:-1], ring[1:]
        crossings = _segments_intersect(
            a[:, None, :], b[:, None, :], a[None, :, :], b[None, :, :]
        )
        m = crossings.shape[0]
        idx = np.arange(m)
        adjacent = np.abs(idx[:, None] - idx[None, :]) <= 1
        adjacent |= (idx[:, None] == 0) & (idx[None, :] == m - 1)
        adjacent |= (idx[:, None] == m - 1) & (idx[None, :] == 0)
        assert not np.any(crossings & ~adjacent)

    def test_bad_half_width(self, june_solstice: datetime) -> None:
        """Half-width outside (0, 90) is rejected."""
        with pytest.raises(ValueError):
            compute_enhanced_band(june_solstice, 0.0)

    def test_twilight_keys(self, june_solstice: datetime) -> None:
        """Default twilight set is civil, nautical, astronomical."""
        curves = compute_twilight_curves(june_solstice, 90)
        assert list(curves) == ["civil", "nautical", "astronomical"]
        assert curves["nautical"].altitude_deg == -12.0
        assert all(len(c) == 91 for c in curves.values())

    def test_custom_twilight(self, june_solstice: datetime) -> None:
        """A custom altitude mapping is honoured."""
        curves = compute_twilight_curves(june_solstice, 10, {"golden": -4.0})
        assert list(curves) == ["golden"]
        assert curves["golden"].altitude_deg == -4.0

    def test_night_polygon_closes_over_dark_pole(self, june_solstice: datetime) -> None:
        """In June the night ring closes over the south pole."""
        night = compute_night_polygon(june_solstice, 36)
        assert night.label == "night"
        assert night.ring[0, 0] == -90.0
        np.testing.assert_array_equal(night.ring[0], night.ring[-1])

    def test_night_polygon_winter(self) -> None:
        """In December the night ring closes over the north pole."""
        night = compute_night_polygon(datetime(2024, 12, 21, tzinfo=timezone.utc), 36)
        assert night.ring[0, 0] == 90.0


# ===================================================================
# INVALID INPUT
# ===================================================================


class TestInvalidInput:
    """Configuration errors fail fast."""

    @pytest.mark.parametrize("n", [0, -5, 2.5, float("inf"), float("nan"), "360"])
    def test_bad_sample_count(self, june_solstice: datetime, n: object) -> None:
        with pytest.raises(ValueError):
            compute_altitude_curve(june_solstice, 0.0, n)

    def test_non_finite_altitude(self, june_solstice: datetime) -> None:
        with pytest.raises(ValueError):
            compute_altitude_curve(june_solstice, float("nan"))


# ===================================================================
# NEWTON KERNEL
# ===================================================================


def _reference_latitude(
    hour_angle_deg: float, declination_deg: float, altitude_deg: float, iterations: int
) -> float:
    """Closed-form seed plus a given number of guarded Newton steps [deg]."""
    dec = math.radians(declination_deg)
    sin_dec, cos_dec, tan_dec = math.sin(dec), math.cos(dec), math.tan(dec)
    sin_alt = math.sin(math.radians(altitude_deg))
    cos_ha = math.cos(math.radians(hour_angle_deg))
    phi = math.atan(-cos_ha / tan_dec)
    for _ in range(iterations):
        f = math.sin(phi) * sin_dec + math.cos(phi) * cos_dec * cos_ha - sin_alt
        f_prime = math.cos(phi) * sin_dec - math.sin(phi) * cos_dec * cos_ha
        if abs(f_prime) > 1e-4:
            phi = phi - f / f_prime
    return math.degrees(phi)


class TestNewtonKernel:
    """Fixed iteration budget and derivative guard of the latitude solver."""

    # At HA = 90° the curve sin φ · sin δ = sin h has its root near 82°,
    # where Newton from φ₀ = 0 still moves after five steps.
    HA, DEC, ALT = 90.0, 10.0, 9.9

    def test_exactly_five_iterations(self) -> None:
        """The kernel matches a five-step reference, not a converged root."""
        lat = _solve_latitudes(np.array([self.HA]), self.DEC, self.ALT)[0]
        five = _reference_latitude(self.HA, self.DEC, self.ALT, 5)
        four = _reference_latitude(self.HA, self.DEC, self.ALT, 4)
        converged = _reference_latitude(self.HA, self.DEC, self.ALT, 50)

        assert lat == pytest.approx(five, abs=1e-9)
        assert abs(five - four) > 1e-6
        assert abs(lat - converged) > 1e-6

    def test_terminator_skips_iteration(self) -> None:
        """h = 0 returns the closed-form seed untouched."""
        ha = np.array([0.0, 45.0, 200.0])
        lat = _solve_latitudes(ha, 20.0, 0.0)
        expected = [_reference_latitude(h, 20.0, 0.0, 0) for h in ha]
        np.testing.assert_allclose(lat, expected, atol=1e-12)

    def test_flat_derivative_skips_step(self) -> None:
        """A start point with |f'| <= 1e-4 is returned unchanged."""
        # cos HA = 0 and φ = 90°: f'(φ) = cos φ · sin δ ≈ 0
        dec = math.radians(10.0)
        phi = math.pi / 2
        out = _refine_latitude(
            phi, math.sin(dec), math.cos(dec), 0.0, math.sin(math.radians(5.0))
        )
        assert out == phi

    def test_steep_derivative_takes_step(self) -> None:
        """Away from the stationary point the same inputs are refined."""
        dec = math.radians(10.0)
        sin_alt = math.sin(math.radians(5.0))
        out = _refine_latitude(0.0, math.sin(dec), math.cos(dec), 0.0, sin_alt)
        assert out != 0.0
        assert math.sin(out) * math.sin(dec) == pytest.approx(sin_alt, abs=1e-9)

    def test_seed_derivative_bounded_below(self) -> None:
        """Outside the equinox window f'(φ₀) >= sin δ > 1e-4, so the seed is always refined."""
        for dec_deg in (0.01, 0.5, 10.0, 23.44):
            dec = math.radians(dec_deg)
            for ha_deg in np.linspace(0.0, 359.0, 37):
                cos_ha = math.cos(math.radians(ha_deg))
                phi0 = math.atan(-cos_ha / math.tan(dec))
                f_prime = math.cos(phi0) * math.sin(dec) - math.sin(phi0) * math.cos(dec) * cos_ha
                assert f_prime >= math.sin(dec) * (1.0 - 1e-9)
                assert f_prime > 1e-4
