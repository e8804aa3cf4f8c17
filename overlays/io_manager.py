"""Product I/O manager — persist overlay geometry and rasters.

Saves the gray-line geometry and the aurora raster so a map front-end (or a
later re-render) can pick them up without recomputing.

File layout under output_dir/:
    grayline.json   — terminator, twilight lines, enhanced band ([lat, lon] lists)
    aurora.png      — RGBA raster, row 0 = north, bounds [-180, 180] × [-90, 90]
    aurora.npy      — the same raster as a uint8 (H, W, 4) array
    metadata.json   — instant, forecast time, bounds, digests (JSON)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for headless rendering

import matplotlib.pyplot as plt
import numpy as np

from geo_engine.compositor import GLOBE_BOUNDS, RasterImage
from overlays.lifecycle import GrayLineGeometry

logger = logging.getLogger(__name__)


def geometry_to_dict(geometry: GrayLineGeometry) -> dict:
    """Plain-JSON view of a gray-line geometry."""
    return {
        "instant": geometry.instant.isoformat(),
        "subsolar_point": list(geometry.subsolar_point),
        "terminator": {
            "altitude_deg": geometry.terminator.altitude_deg,
            "points": geometry.terminator.to_list(),
        },
        "enhanced_band": (
            None if geometry.enhanced_band is None else geometry.enhanced_band.to_list()
        ),
        "twilight": {
            name: {"altitude_deg": curve.altitude_deg, "points": curve.to_list()}
            for name, curve in geometry.twilight.items()
        },
    }


def save_products(
    output_dir: Path | str,
    geometry: GrayLineGeometry | None = None,
    raster: RasterImage | None = None,
    metadata: dict | None = None,
) -> list[Path]:
    """Save overlay products to disk.

    Parameters
    ----------
    output_dir : Path or str
        Output directory (created if needed).
    geometry : GrayLineGeometry, optional
        Gray-line geometry to write as ``grayline.json``.
    raster : RasterImage, optional
        Aurora raster to write as ``aurora.png`` / ``aurora.npy``.
    metadata : dict, optional
        Extra metadata merged into ``metadata.json``.

    Returns
    -------
    list[Path]
        Paths to all saved files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    saved: list[Path] = []
    meta: dict = dict(metadata or {})

    if geometry is not None:
        path = output_dir / "grayline.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(_sanitize_for_json(geometry_to_dict(geometry)), f, indent=2)
        saved.append(path)
        meta["instant"] = geometry.instant.isoformat()
        logger.debug("Saved grayline.json: %d terminator points", len(geometry.terminator))

    if raster is not None:
        png_path = output_dir / "aurora.png"
        plt.imsave(png_path, raster.pixels)
        saved.append(png_path)

        npy_path = output_dir / "aurora.npy"
        np.save(npy_path, raster.pixels)
        saved.append(npy_path)

        meta["raster"] = {
            "width": raster.width,
            "height": raster.height,
            "bounds": raster.bounds,
            "sha256": raster.digest(),
        }
        logger.debug("Saved aurora raster: shape=%s", raster.pixels.shape)

    meta_path = output_dir / "metadata.json"
    with open(meta_path, "w", encoding="utf-8") as f:
        json.dump(_sanitize_for_json(meta), f, indent=2, ensure_ascii=False)
    saved.append(meta_path)

    logger.info("Saved %d files to %s", len(saved), output_dir)
    return saved


def load_raster(output_dir: Path | str) -> RasterImage:
    """Load a previously saved aurora raster.

    Parameters
    ----------
    output_dir : Path or str
        Directory containing ``aurora.npy``.

    Returns
    -------
    RasterImage
        Read-only raster with full-globe bounds.
    """
    path = Path(output_dir) / "aurora.npy"
    if not path.exists():
        raise FileNotFoundError(f"Saved raster not found: {path}")

    pixels = np.load(path)
    if pixels.ndim != 3 or pixels.shape[2] != 4 or pixels.dtype != np.uint8:
        raise ValueError(
            f"{path} is not an RGBA uint8 raster (shape={pixels.shape}, dtype={pixels.dtype})"
        )
    pixels.setflags(write=False)
    logger.debug("Loaded raster %s: shape=%s", path, pixels.shape)
    return RasterImage(pixels=pixels, bounds=GLOBE_BOUNDS)


def _sanitize_for_json(obj: object) -> object:
    """Recursively convert NumPy types and other non-JSON types to Python natives."""
    if isinstance(obj, dict):
        return {k: _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(v) for v in obj]
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    return obj
