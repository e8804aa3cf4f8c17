"""Visualization module for the gray-line and aurora overlays.

Generates equirectangular world figures using matplotlib:
- Aurora raster draped over the globe at a render-time opacity
- Terminator, enhanced-propagation band and twilight lines
- Colour-ramp legend for the raster
- Solar altitude vs. time at a fixed location
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for headless rendering

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import Normalize
from matplotlib.cm import ScalarMappable

from geo_engine.color_ramp import ColorRamp
from geo_engine.compositor import RasterImage
from geo_engine.ephemeris import solar_altitude_deg
from geo_engine.terminator import ENHANCED_BAND_ALTITUDE_DEG
from overlays.lifecycle import GrayLineGeometry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Style Configuration
# ---------------------------------------------------------------------------

_TERMINATOR_COLOR = "#ff6600"
_ENHANCED_COLOR = "#ffaa00"
_TWILIGHT_STYLES: dict[str, tuple[str, float, float, tuple[float, float]]] = {
    # name: (color, linewidth, opacity multiplier, dash pattern)
    "civil": ("#4488ff", 2.0, 0.6, (5, 5)),
    "nautical": ("#6666ff", 1.5, 0.4, (3, 3)),
    "astronomical": ("#8888ff", 1.0, 0.3, (2, 2)),
}
_DEFAULT_TWILIGHT_STYLE = ("#8888ff", 1.0, 0.3, (2, 2))
_BACKGROUND = "#0f0f1a"
_DPI = 150


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def plot_overlay_map(
    geometry: GrayLineGeometry | None = None,
    raster: RasterImage | None = None,
    ramp: ColorRamp | None = None,
    grayline_opacity: float = 0.5,
    aurora_opacity: float = 0.6,
    title: str | None = None,
    output_path: Path | str | None = None,
    dpi: int = _DPI,
) -> plt.Figure:
    """Plot the overlays on an equirectangular world frame.

    Opacities are applied here, at render time; the raster's own alpha
    channel is drawn unchanged underneath that scalar.

    Parameters
    ----------
    geometry : GrayLineGeometry, optional
        Terminator / band / twilight geometry.
    raster : RasterImage, optional
        Aurora raster (full-globe bounds).
    ramp : ColorRamp, optional
        If given together with a raster, a colour legend is added.
    grayline_opacity, aurora_opacity : float
        Render-time opacities in [0, 1].
    title : str, optional
        Figure title (default: derived from the geometry instant).
    output_path : Path or str, optional
        If provided, save figure to this path.
    dpi : int
        Figure resolution.

    Returns
    -------
    matplotlib.figure.Figure
        The generated figure.
    """
    fig, ax = plt.subplots(1, 1, figsize=(14, 7), facecolor=_BACKGROUND)
    ax.set_facecolor(_BACKGROUND)

    if raster is not None:
        (south, west), (north, east) = raster.bounds
        ax.imshow(
            raster.pixels,
            extent=(west, east, south, north),
            origin="upper",
            alpha=aurora_opacity,
            interpolation="nearest",
            zorder=1,
        )
        if ramp is not None:
            mappable = ScalarMappable(
                norm=Normalize(vmin=ramp.thresholds[0], vmax=ramp.thresholds[-1]),
                cmap=ramp.to_colormap(),
            )
            cbar = fig.colorbar(mappable, ax=ax, label="Aurora probability [%]", shrink=0.7)
            cbar.ax.yaxis.label.set_color("white")
            cbar.ax.tick_params(colors="white")

    if geometry is not None:
        _draw_grayline(ax, geometry, grayline_opacity)

    if title is None:
        title = (
            f"Gray line: {geometry.instant.strftime('%Y-%m-%d %H:%M UTC')}"
            if geometry is not None
            else "Overlays"
        )

    ax.set_xlim(-180.0, 180.0)
    ax.set_ylim(-90.0, 90.0)
    ax.set_xticks(np.arange(-180, 181, 30))
    ax.set_yticks(np.arange(-90, 91, 30))
    ax.set_xlabel("Longitude [°]", color="white")
    ax.set_ylabel("Latitude [°]", color="white")
    ax.set_title(title, fontsize=14, fontweight="bold", color="white")
    ax.set_aspect("equal")
    ax.tick_params(colors="white")
    ax.grid(True, alpha=0.15, color="white")

    for spine in ax.spines.values():
        spine.set_edgecolor("#444")

    fig.tight_layout()

    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=dpi, facecolor=fig.get_facecolor())
        logger.info("Overlay map saved: %s", output_path)

    plt.close(fig)
    return fig


def plot_solar_altitude(
    instants: list[datetime],
    latitude_deg: float,
    longitude_deg: float,
    title: str = "Solar Altitude vs. Time",
    output_path: Path | str | None = None,
    dpi: int = _DPI,
    band_half_width_deg: float = ENHANCED_BAND_ALTITUDE_DEG,
) -> plt.Figure:
    """Plot the Sun's altitude at one location over a series of instants.

    Twilight thresholds are marked so gray-line windows at the location
    can be read off directly.

    Parameters
    ----------
    instants : list[datetime]
        UTC instants (at least one).
    latitude_deg, longitude_deg : float
        Location [deg].
    title : str
        Figure title.
    output_path : Path or str, optional
        If provided, save figure to this path.
    dpi : int
        Figure resolution.
    band_half_width_deg : float
        Altitudes within ±this value [deg] are shaded as the enhanced zone.

    Returns
    -------
    matplotlib.figure.Figure
        The generated figure.
    """
    if not instants:
        raise ValueError("plot_solar_altitude needs at least one instant.")

    t0 = instants[0]
    hours = [(t - t0).total_seconds() / 3600.0 for t in instants]
    altitudes = [solar_altitude_deg(t, latitude_deg, longitude_deg) for t in instants]

    fig, ax = plt.subplots(1, 1, figsize=(12, 4), facecolor=_BACKGROUND)
    ax.set_facecolor(_BACKGROUND)

    ax.plot(hours, altitudes, color="#ffd43b", linewidth=2.0, label="Solar altitude")
    ax.axhline(0.0, color=_TERMINATOR_COLOR, linestyle="--", linewidth=0.8, label="Horizon")
    for name, (color, _, _, _) in _TWILIGHT_STYLES.items():
        level = {"civil": -6.0, "nautical": -12.0, "astronomical": -18.0}[name]
        ax.axhline(level, color=color, linestyle=":", linewidth=0.8, label=f"{name.title()} twilight")

    ax.fill_between(
        hours, altitudes, 0,
        where=[abs(a) <= band_half_width_deg for a in altitudes],
        color=_ENHANCED_COLOR, alpha=0.2,
    )

    ax.set_xlabel(f"Hours since {t0.strftime('%Y-%m-%d %H:%M')} UTC", color="white", fontsize=12)
    ax.set_ylabel("Altitude [°]", color="white", fontsize=12)
    ax.set_title(title, fontsize=14, fontweight="bold", color="white")
    ax.tick_params(colors="white")
    ax.grid(True, alpha=0.2, color="white")

    legend = ax.legend(facecolor="#1a1a2e", edgecolor="#444", fontsize=9)
    for text in legend.get_texts():
        text.set_color("white")

    for spine in ax.spines.values():
        spine.set_edgecolor("#444")

    fig.tight_layout()

    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=dpi, facecolor=fig.get_facecolor())
        logger.info("Solar altitude plot saved: %s", output_path)

    plt.close(fig)
    return fig


def generate_all_plots(
    geometry: GrayLineGeometry | None,
    raster: RasterImage | None,
    ramp: ColorRamp | None = None,
    output_dir: Path | str = "output",
    grayline_opacity: float = 0.5,
    aurora_opacity: float = 0.6,
    dpi: int = _DPI,
    location: tuple[float, float] | None = None,
) -> list[Path]:
    """Generate the standard overlay figure(s).

    With gray-line geometry, a 24 h solar-altitude trace starting at the
    geometry instant is drawn for ``location`` (lat, lon) [deg], which
    defaults to the subsolar point.

    Returns
    -------
    list[Path]
        Paths to all generated plot files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    saved: list[Path] = []

    if geometry is not None or raster is not None:
        p = output_dir / "overlay_map.png"
        plot_overlay_map(
            geometry,
            raster,
            ramp=ramp,
            grayline_opacity=grayline_opacity,
            aurora_opacity=aurora_opacity,
            output_path=p,
            dpi=dpi,
        )
        saved.append(p)

    if geometry is not None:
        lat, lon = location if location is not None else geometry.subsolar_point
        instants = [geometry.instant + timedelta(minutes=10 * i) for i in range(145)]
        p = output_dir / "solar_altitude.png"
        plot_solar_altitude(
            instants,
            lat,
            lon,
            title=f"Solar Altitude at ({lat:.2f}°, {lon:.2f}°)",
            output_path=p,
            dpi=dpi,
            band_half_width_deg=geometry.band_half_width_deg,
        )
        saved.append(p)

    logger.info("Generated %d plots in %s", len(saved), output_dir)
    return saved


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _draw_grayline(ax: plt.Axes, geometry: GrayLineGeometry, opacity: float) -> None:
    if geometry.enhanced_band is not None and len(geometry.enhanced_band):
        ring = geometry.enhanced_band.ring
        ax.fill(
            ring[:, 1], ring[:, 0],
            facecolor=_ENHANCED_COLOR,
            edgecolor=_ENHANCED_COLOR,
            alpha=opacity * 0.3,
            linewidth=1.0,
            zorder=2,
            label=f"Enhanced DX zone (±{geometry.band_half_width_deg:g}°)",
        )

    for name, curve in geometry.twilight.items():
        color, width, mult, dashes = _TWILIGHT_STYLES.get(name, _DEFAULT_TWILIGHT_STYLE)
        ax.plot(
            curve.longitudes, curve.latitudes,
            color=color,
            linewidth=width,
            alpha=opacity * mult,
            dashes=dashes,
            zorder=3,
            label=f"{name.title()} twilight ({curve.altitude_deg:.0f}°)",
        )

    ax.plot(
        geometry.terminator.longitudes, geometry.terminator.latitudes,
        color=_TERMINATOR_COLOR,
        linewidth=3.0,
        alpha=opacity * 0.8,
        dashes=(10, 5),
        zorder=4,
        label="Solar terminator",
    )

    sun_lat, sun_lon = geometry.subsolar_point
    ax.plot(sun_lon, sun_lat, marker="o", markersize=10, color="#ffd43b", zorder=5, label="Subsolar point")

    legend = ax.legend(loc="lower left", facecolor="#1a1a2e", edgecolor="#444", fontsize=8)
    for text in legend.get_texts():
        text.set_color("white")
