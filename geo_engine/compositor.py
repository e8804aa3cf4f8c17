"""Probability-grid → RGBA raster compositor.

Turns a sparse ``(longitude, latitude, value)`` grid (e.g. the NOAA OVATION
aurora probability field, 1° × 1°) into an equirectangular RGBA raster that
can be draped over a whole-globe map with bounds [-180, 180] × [-90, 90].

Pipeline
--------
1. Allocate a transparent ``grid_height × grid_width`` base raster.
2. Drop samples that are non-finite, outside the globe, or below the
   colour ramp's visibility floor.
3. Colour the survivors through the ramp and scatter them onto the base
   raster (later samples overwrite earlier ones on the same cell):

       x = round(lon · W / 360)  (+ W/2 when centred on Greenwich)  mod W
       y = H // 2 − round(lat · (H − 1) / 180)  clamped to [0, H − 1]

   so that row 0 is the north pole and, in the map convention, column 0
   is −180°.
4. Upscale by an integer factor with premultiplied-alpha bilinear
   interpolation (columns wrap across the antimeridian, rows clamp at
   the poles).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from numba import njit

from geo_engine.color_ramp import ColorRamp
from geo_engine.constants import CompositorConfig, hash_array

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# ((south, west), (north, east)), full globe
GLOBE_BOUNDS: tuple[tuple[float, float], tuple[float, float]] = ((-90.0, -180.0), (90.0, 180.0))

_DEFAULT_GRID_WIDTH = 360
_DEFAULT_GRID_HEIGHT = 181
_DEFAULT_UPSCALE = 2


# ---------------------------------------------------------------------------
# Result Container
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RasterImage:
    """Immutable RGBA raster plus its geographic bounds.

    Attributes
    ----------
    pixels : np.ndarray
        RGBA texels, dtype uint8, row 0 = north. Shape: (height, width, 4).
        Read-only.
    bounds : tuple
        ((south, west), (north, east)) in degrees.
    """

    pixels: np.ndarray
    bounds: tuple[tuple[float, float], tuple[float, float]] = GLOBE_BOUNDS

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def to_bytes(self) -> bytes:
        """Row-major RGBA byte buffer (width · height · 4 bytes)."""
        return self.pixels.tobytes()

    def digest(self) -> str:
        """SHA-256 of the texels; equal digests mean identical rasters."""
        return hash_array(self.pixels)

    def visible_mask(self) -> np.ndarray:
        """Boolean (height, width) mask of texels with alpha > 0."""
        return self.pixels[:, :, 3] > 0


# ---------------------------------------------------------------------------
# Numba kernel
# ---------------------------------------------------------------------------


@njit(cache=True)
def _scatter_texels(
    base: np.ndarray,
    rows: np.ndarray,
    cols: np.ndarray,
    texels: np.ndarray,
) -> None:
    """Write texels into the base raster in input order (last write wins).

    Parameters
    ----------
    base : np.ndarray
        Raster to fill in place. Shape: (H, W, 4), dtype uint8.
    rows, cols : np.ndarray
        Target cell per texel. Shape: (N,), dtype int64.
    texels : np.ndarray
        RGBA per sample. Shape: (N, 4), dtype uint8.
    """
    for i in range(rows.shape[0]):
        for c in range(4):
            base[rows[i], cols[i], c] = texels[i, c]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def composite(
    samples: Any,
    ramp: ColorRamp,
    grid_width: int = _DEFAULT_GRID_WIDTH,
    grid_height: int = _DEFAULT_GRID_HEIGHT,
    upscale_factor: int = _DEFAULT_UPSCALE,
    center_on_greenwich: bool = True,
) -> RasterImage:
    """Composite a sparse value grid into a smoothed RGBA raster.

    Parameters
    ----------
    samples : array-like
        Flat sequence of ``(longitude, latitude, value)`` triples, or an
        (N, 3) array. Longitudes may use [0, 360) or [-180, 180).
    ramp : ColorRamp
        Value → colour mapping; its first threshold is the visibility floor.
    grid_width, grid_height : int
        Base raster size in texels (360 × 181 for a 1° global grid).
    upscale_factor : int
        Integer smoothing factor; the result is
        ``(grid_height · f, grid_width · f)``.
    center_on_greenwich : bool
        If True, column 0 is −180° (map convention); otherwise 0°.

    Returns
    -------
    RasterImage
        Immutable upscaled raster with full-globe bounds.

    Raises
    ------
    ValueError
        If a grid dimension or the upscale factor is not a positive
        integer. Malformed samples never raise; they are dropped.
    """
    _check_positive_int("grid_width", grid_width)
    _check_positive_int("grid_height", grid_height)
    _check_positive_int("upscale_factor", upscale_factor)

    base = np.zeros((grid_height, grid_width, 4), dtype=np.uint8)

    data = _coerce_samples(samples)
    lon, lat, value = data[:, 0], data[:, 1], data[:, 2]

    keep = (
        np.isfinite(lon)
        & np.isfinite(lat)
        & np.isfinite(value)
        & (lon >= -180.0)
        & (lon <= 360.0)
        & (lat >= -90.0)
        & (lat <= 90.0)
    )
    malformed = int(keep.size - np.count_nonzero(keep))
    keep &= ramp.is_visible(value)

    lon, lat, value = lon[keep], lat[keep], value[keep]

    cols = np.rint(lon * grid_width / 360.0).astype(np.int64)
    if center_on_greenwich:
        cols += grid_width // 2
    cols %= grid_width

    lat_scale = (grid_height - 1) / 180.0 if grid_height > 1 else 0.0
    rows = grid_height // 2 - np.rint(lat * lat_scale).astype(np.int64)
    # Even heights put -90 one row past the bottom edge
    np.clip(rows, 0, grid_height - 1, out=rows)

    texels = ramp.evaluate(value)
    _scatter_texels(base, rows, cols, texels)

    logger.debug(
        "Composited %d/%d samples onto %dx%d base raster (%d malformed dropped)",
        rows.size,
        data.shape[0],
        grid_width,
        grid_height,
        malformed,
    )

    pixels = upscale_bilinear(base, upscale_factor)
    pixels.setflags(write=False)
    return RasterImage(pixels=pixels)


def composite_from_config(
    samples: Any,
    ramp: ColorRamp,
    config: CompositorConfig,
) -> RasterImage:
    """`composite` with grid geometry taken from configuration."""
    return composite(
        samples,
        ramp,
        grid_width=config.grid_width,
        grid_height=config.grid_height,
        upscale_factor=config.upscale_factor,
        center_on_greenwich=config.center_on_greenwich,
    )


def upscale_bilinear(base: np.ndarray, factor: int) -> np.ndarray:
    """Upscale an RGBA raster with premultiplied-alpha bilinear filtering.

    Sample positions follow pixel-centre alignment,
    ``src = (dst + 0.5) / factor − 0.5``. Columns wrap around (the raster
    spans the whole globe in longitude); rows clamp at the edges.
    Premultiplying keeps fully transparent texels from bleeding their
    (black) colour into visible neighbours, and a destination texel is
    transparent whenever all four contributing source texels are.

    Parameters
    ----------
    base : np.ndarray
        RGBA raster, dtype uint8. Shape: (H, W, 4).
    factor : int
        Integer upscale factor >= 1.

    Returns
    -------
    np.ndarray
        Upscaled raster, dtype uint8. Shape: (H · factor, W · factor, 4).
    """
    _check_positive_int("factor", factor)
    if factor == 1:
        return base.copy()

    height, width = base.shape[:2]
    src = base.astype(np.float64)
    alpha = src[:, :, 3:4] / 255.0
    premult = np.concatenate((src[:, :, :3] * alpha, alpha), axis=2)

    # Vertical (clamped)
    y = (np.arange(height * factor) + 0.5) / factor - 0.5
    y0 = np.floor(y).astype(np.int64)
    wy = (y - y0)[:, None, None]
    y1 = np.clip(y0 + 1, 0, height - 1)
    y0 = np.clip(y0, 0, height - 1)
    rows = premult[y0] * (1.0 - wy) + premult[y1] * wy

    # Horizontal (wrapped)
    x = (np.arange(width * factor) + 0.5) / factor - 0.5
    x0 = np.floor(x).astype(np.int64)
    wx = (x - x0)[None, :, None]
    x1 = (x0 + 1) % width
    x0 = x0 % width
    out = rows[:, x0] * (1.0 - wx) + rows[:, x1] * wx

    out_alpha = out[:, :, 3]
    rgb = np.zeros(out.shape[:2] + (3,), dtype=np.float64)
    opaque = out_alpha > 0.0
    rgb[opaque] = out[opaque, :3] / out_alpha[opaque, None]

    result = np.empty(out.shape, dtype=np.uint8)
    result[:, :, :3] = np.clip(np.rint(rgb), 0, 255)
    result[:, :, 3] = np.clip(np.rint(out_alpha * 255.0), 0, 255)
    return result


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_positive_int(name: str, value: Any) -> None:
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, np.integer))
        or value < 1
    ):
        raise ValueError(f"{name} must be a positive integer, got {value!r}")


def _coerce_samples(samples: Any) -> np.ndarray:
    """Best-effort conversion of the input to an (N, 3) float64 array.

    Rows that cannot be read as three numbers become NaN rows, which the
    finiteness filter then drops.
    """
    if samples is None:
        return np.empty((0, 3), dtype=np.float64)

    try:
        data = np.asarray(samples, dtype=np.float64)
        if data.ndim == 2 and data.shape[1] >= 3:
            return data[:, :3]
        if data.size == 0:
            return np.empty((0, 3), dtype=np.float64)
    except (TypeError, ValueError):
        pass

    rows = [_coerce_row(row) for row in _iter_rows(samples)]
    if not rows:
        return np.empty((0, 3), dtype=np.float64)
    return np.array(rows, dtype=np.float64)


def _iter_rows(samples: Any) -> Sequence[Any]:
    try:
        return list(samples)
    except TypeError:
        return []


def _coerce_row(row: Any) -> tuple[float, float, float]:
    try:
        lon, lat, value = (float(v) for v in list(row)[:3])
    except (TypeError, ValueError):
        return (math.nan, math.nan, math.nan)
    return (lon, lat, value)
