"""Overlay lifecycle — explicit recompute-on-new-input for the map overlays.

The numeric engines are pure functions; this module owns the state around
them that a map surface needs:

- **GrayLineOverlay** recomputes the terminator, enhanced-propagation band
  and twilight lines whenever it is handed a new instant (once a minute by
  default) and drops the previous geometry.
- **AuroraOverlay** rebuilds the aurora raster whenever a new grid is
  submitted. Each submission opens a new *generation*; a build that finishes
  after a newer grid arrived is discarded instead of installed, so a newer
  fetch supersedes an older build rather than queueing behind it.
- **OverlayScheduler** drives both from a single ``tick(now)`` call.

Opacity is a render-time scalar held here and handed to the renderer; it is
never baked into the raster's own alpha channel.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from geo_engine.color_ramp import ColorRamp
from geo_engine.compositor import RasterImage, composite_from_config
from geo_engine.constants import (
    CompositorConfig,
    LifecycleConfig,
    OverlayConfig,
    TerminatorConfig,
)
from geo_engine.ephemeris import subsolar_point
from geo_engine.terminator import (
    ENHANCED_BAND_ALTITUDE_DEG,
    GeoRing,
    TerminatorCurve,
    compute_altitude_curve,
    compute_enhanced_band,
    compute_twilight_curves,
)
from grid_ingestion.ovation_loader import OvationGrid

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GrayLineGeometry:
    """Everything the gray-line layer draws for one instant.

    Attributes
    ----------
    instant : datetime
        UTC time the geometry was solved for.
    terminator : TerminatorCurve
        Solar altitude 0° curve.
    enhanced_band : GeoRing | None
        ±h enhanced-propagation ring, None when the zone is hidden.
    twilight : dict[str, TerminatorCurve]
        Twilight lines keyed by name; empty when twilight is hidden.
    subsolar_point : tuple[float, float]
        (lat, lon) where the Sun is overhead.
    band_half_width_deg : float
        Solar altitude of the enhanced band edges [deg].
    """

    instant: datetime
    terminator: TerminatorCurve
    enhanced_band: GeoRing | None
    twilight: dict[str, TerminatorCurve] = field(default_factory=dict)
    subsolar_point: tuple[float, float] = (0.0, 0.0)
    band_half_width_deg: float = ENHANCED_BAND_ALTITUDE_DEG


# ---------------------------------------------------------------------------
# Gray line
# ---------------------------------------------------------------------------


class GrayLineOverlay:
    """Gray-line layer state.

    Parameters
    ----------
    config : TerminatorConfig
        Curve resolution, band half-width and twilight altitudes.
    refresh_interval_s : float
        Recompute cadence [s].
    opacity : float
        Render-time opacity in [0, 1].
    """

    def __init__(
        self,
        config: TerminatorConfig,
        refresh_interval_s: float = 60.0,
        opacity: float = 0.5,
    ) -> None:
        self._config = config
        self._refresh_interval_s = refresh_interval_s
        self._opacity = _check_opacity(opacity)
        self._enabled = True
        self._show_twilight = True
        self._show_enhanced_zone = True
        self._geometry: GrayLineGeometry | None = None
        self._last_update: datetime | None = None

    @property
    def geometry(self) -> GrayLineGeometry | None:
        return self._geometry

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def opacity(self) -> float:
        return self._opacity

    @opacity.setter
    def opacity(self, value: float) -> None:
        self._opacity = _check_opacity(value)

    @property
    def show_twilight(self) -> bool:
        return self._show_twilight

    @show_twilight.setter
    def show_twilight(self, value: bool) -> None:
        self._show_twilight = bool(value)
        self._last_update = None

    @property
    def show_enhanced_zone(self) -> bool:
        return self._show_enhanced_zone

    @show_enhanced_zone.setter
    def show_enhanced_zone(self, value: bool) -> None:
        self._show_enhanced_zone = bool(value)
        self._last_update = None

    def is_due(self, now: datetime) -> bool:
        """True if enabled and the refresh interval has elapsed."""
        if not self._enabled:
            return False
        if self._last_update is None:
            return True
        return _elapsed_s(self._last_update, now) >= self._refresh_interval_s

    def update(self, instant: datetime) -> GrayLineGeometry | None:
        """Recompute and install the geometry for ``instant``.

        Returns None (and computes nothing) while the layer is disabled.
        """
        if not self._enabled:
            return None

        cfg = self._config
        terminator = compute_altitude_curve(instant, 0.0, cfg.sample_count)

        enhanced_band = None
        if self._show_enhanced_zone:
            enhanced_band = compute_enhanced_band(
                instant, cfg.enhanced_band_altitude_deg, cfg.sample_count
            )

        twilight: dict[str, TerminatorCurve] = {}
        if self._show_twilight:
            twilight = compute_twilight_curves(
                instant, cfg.sample_count, cfg.twilight_altitudes_deg
            )

        self._geometry = GrayLineGeometry(
            instant=instant,
            terminator=terminator,
            enhanced_band=enhanced_band,
            twilight=twilight,
            subsolar_point=subsolar_point(instant),
            band_half_width_deg=cfg.enhanced_band_altitude_deg,
        )
        self._last_update = instant

        logger.debug(
            "Gray line rendered at %s (%s twilight line(s), enhanced zone %s)",
            instant.isoformat(),
            len(twilight),
            "on" if enhanced_band is not None else "off",
        )
        return self._geometry

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        """Hide the layer and dispose of its geometry."""
        self._enabled = False
        self._geometry = None
        self._last_update = None


# ---------------------------------------------------------------------------
# Aurora raster
# ---------------------------------------------------------------------------


class AuroraOverlay:
    """Aurora raster layer state with generation-based supersession.

    Parameters
    ----------
    config : CompositorConfig
        Raster grid geometry.
    ramp : ColorRamp
        Probability colour ramp.
    refresh_interval_s : float
        Grid poll cadence [s].
    opacity : float
        Render-time opacity in [0, 1].
    """

    def __init__(
        self,
        config: CompositorConfig,
        ramp: ColorRamp,
        refresh_interval_s: float = 600.0,
        opacity: float = 0.6,
    ) -> None:
        self._config = config
        self._ramp = ramp
        self._refresh_interval_s = refresh_interval_s
        self._opacity = _check_opacity(opacity)

        self._lock = threading.Lock()
        self._enabled = True
        self._generation = 0
        self._pending: Any = None
        self._pending_forecast: str | None = None
        self._raster: RasterImage | None = None
        self._forecast_time: str | None = None
        self._last_submit: datetime | None = None

    @property
    def raster(self) -> RasterImage | None:
        return self._raster

    @property
    def ramp(self) -> ColorRamp:
        return self._ramp

    @property
    def forecast_time(self) -> str | None:
        return self._forecast_time

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def opacity(self) -> float:
        return self._opacity

    @opacity.setter
    def opacity(self, value: float) -> None:
        self._opacity = _check_opacity(value)

    def is_due(self, now: datetime) -> bool:
        """True if enabled and no grid was polled within the poll interval."""
        if not self._enabled:
            return False
        if self._last_submit is None:
            return True
        return _elapsed_s(self._last_submit, now) >= self._refresh_interval_s

    def submit(
        self,
        samples: Any,
        forecast_time: str | None = None,
        received_at: datetime | None = None,
    ) -> int:
        """Hand over a new grid; supersedes any pending or running build.

        Parameters
        ----------
        samples : array-like
            Flat (longitude, latitude, value) samples.
        forecast_time : str, optional
            Forecast stamp carried alongside the raster.
        received_at : datetime, optional
            Arrival time used for the poll cadence (default: now, UTC).

        Returns
        -------
        int
            Generation number of this grid.
        """
        with self._lock:
            self._generation += 1
            self._pending = samples
            self._pending_forecast = forecast_time
            self._last_submit = received_at or datetime.now(timezone.utc)
            generation = self._generation

        logger.debug("Aurora grid generation %d submitted", generation)
        return generation

    def mark_polled(self, polled_at: datetime) -> None:
        """Record a poll that produced no grid; the next one waits a full interval."""
        with self._lock:
            self._last_submit = polled_at

    def submit_grid(self, grid: OvationGrid, received_at: datetime | None = None) -> int:
        """`submit` for a parsed OVATION grid."""
        return self.submit(grid.samples, grid.forecast_time, received_at)

    def build_pending(self) -> RasterImage | None:
        """Composite the most recently submitted grid and install it.

        Returns
        -------
        RasterImage or None
            The installed raster, or None if there was nothing to build,
            the layer is disabled, or a newer grid arrived while building
            (that grid stays pending for the next call).
        """
        with self._lock:
            if not self._enabled or self._pending is None:
                return None
            generation = self._generation
            samples, forecast = self._pending, self._pending_forecast
            self._pending = None

        raster = composite_from_config(samples, self._ramp, self._config)

        with self._lock:
            if generation != self._generation or not self._enabled:
                logger.debug(
                    "Aurora build for generation %d superseded by %d; discarded",
                    generation,
                    self._generation,
                )
                return None
            previous = self._raster
            self._raster = raster
            self._forecast_time = forecast

        if previous is not None and previous.digest() == raster.digest():
            logger.debug("Aurora raster generation %d unchanged", generation)
        else:
            logger.info(
                "Aurora raster generation %d installed (%dx%d, %d visible texels)",
                generation,
                raster.width,
                raster.height,
                int(raster.visible_mask().sum()),
            )
        return raster

    def enable(self) -> None:
        with self._lock:
            self._enabled = True

    def disable(self) -> None:
        """Hide the layer, discard the raster and any pending grid."""
        with self._lock:
            self._enabled = False
            self._generation += 1
            self._pending = None
            self._raster = None
            self._forecast_time = None
            self._last_submit = None


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class OverlayScheduler:
    """Drives both overlays from periodic ``tick`` calls.

    Parameters
    ----------
    grayline : GrayLineOverlay
        Gray-line layer.
    aurora : AuroraOverlay
        Aurora layer.
    fetch_grid : callable, optional
        Zero-argument callable returning a fresh ``OvationGrid`` (or None
        when no data is available). Transport is the caller's concern.
        A failed or empty fetch is logged and retried after the full poll
        interval.
    """

    def __init__(
        self,
        grayline: GrayLineOverlay,
        aurora: AuroraOverlay,
        fetch_grid: Callable[[], OvationGrid | None] | None = None,
    ) -> None:
        self.grayline = grayline
        self.aurora = aurora
        self._fetch_grid = fetch_grid

    @classmethod
    def from_config(
        cls,
        config: OverlayConfig,
        fetch_grid: Callable[[], OvationGrid | None] | None = None,
        ramp_name: str = "aurora",
    ) -> OverlayScheduler:
        """Build both overlays from a loaded configuration."""
        lc: LifecycleConfig = config.lifecycle
        if ramp_name in config.ramps:
            ramp = ColorRamp.from_config(config.ramps[ramp_name], name=ramp_name)
        else:
            logger.warning("Ramp '%s' not configured; using built-in aurora ramp", ramp_name)
            ramp = ColorRamp.aurora()

        return cls(
            grayline=GrayLineOverlay(
                config.terminator, lc.terminator_refresh_s, lc.grayline_opacity
            ),
            aurora=AuroraOverlay(
                config.compositor, ramp, lc.grid_refresh_s, lc.aurora_opacity
            ),
            fetch_grid=fetch_grid,
        )

    def tick(self, now: datetime) -> list[str]:
        """Refresh whatever is due at ``now``.

        Returns
        -------
        list[str]
            Names of the products that were replaced ('grayline', 'aurora').
        """
        updated: list[str] = []

        if self.grayline.is_due(now) and self.grayline.update(now) is not None:
            updated.append("grayline")

        if self._fetch_grid is not None and self.aurora.is_due(now):
            try:
                grid = self._fetch_grid()
            except Exception:
                logger.exception("Aurora grid fetch failed at %s", now.isoformat())
                grid = None
            else:
                if grid is None:
                    logger.warning(
                        "Aurora grid source returned no data at %s", now.isoformat()
                    )

            if grid is None:
                self.aurora.mark_polled(now)
            else:
                self.aurora.submit_grid(grid, received_at=now)
                if self.aurora.build_pending() is not None:
                    updated.append("aurora")

        return updated


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_opacity(value: float) -> float:
    value = float(value)
    if not (0.0 <= value <= 1.0):
        raise ValueError(f"Opacity must be in [0, 1], got {value}")
    return value


def _elapsed_s(since: datetime, now: datetime) -> float:
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - since).total_seconds()
