"""Overlay configuration, engine constants, and configuration loader.

Tunable overlay parameters (sample counts, twilight altitudes, raster grid
geometry, colour ramps, refresh cadences) are loaded from YAML files into
frozen dataclasses. Numerical constants that define the solver's contract
(the Newton iteration budget, the equinox short-circuit) live next to the
algorithms that use them and are deliberately not configurable.

References
----------
- Meeus, J. (1998). "Astronomical Algorithms", 2nd ed., Willmann-Bell.
  Chapters 12 (sidereal time) and 25 (solar coordinates).
- NOAA SWPC OVATION Prime aurora forecast product description.
"""

from __future__ import annotations

import hashlib
import logging
import platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration Data Classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TerminatorConfig:
    """Gray-line geometry settings.

    Attributes
    ----------
    sample_count : int
        Number of longitude intervals across [-180°, 180°]. Each curve
        carries ``sample_count + 1`` points.
    enhanced_band_altitude_deg : float
        Half-width of the enhanced-propagation band in solar altitude [deg].
        The band spans +h to −h around the terminator.
    twilight_altitudes_deg : dict[str, float]
        Named twilight lines and their solar altitudes [deg]
        (civil −6°, nautical −12°, astronomical −18°).
    """

    sample_count: int
    enhanced_band_altitude_deg: float
    twilight_altitudes_deg: dict[str, float]


@dataclass(frozen=True)
class CompositorConfig:
    """Probability-grid raster settings.

    Attributes
    ----------
    grid_width : int
        Base raster width in texels (one per integer degree of longitude).
    grid_height : int
        Base raster height in texels (one per integer degree of latitude,
        poles included).
    upscale_factor : int
        Integer smoothing factor applied to the base raster.
    center_on_greenwich : bool
        If True, column 0 of the output is −180° (map convention). If False,
        column 0 is 0° (the grid's native convention).
    """

    grid_width: int
    grid_height: int
    upscale_factor: int
    center_on_greenwich: bool


@dataclass(frozen=True)
class RampBreakConfig:
    """One colour-ramp break point as written in the configuration file.

    Attributes
    ----------
    threshold : float
        Scalar value at which this break point applies.
    color : str | tuple[float, ...]
        Any matplotlib colour specification ('#00ff00', 'darkgreen',
        'none', or an RGB(A) tuple in [0, 1]).
    alpha : float | None
        Opacity in [0, 1]. None means "take the colour's own alpha".
    """

    threshold: float
    color: str | tuple[float, ...]
    alpha: float | None = None


@dataclass(frozen=True)
class LifecycleConfig:
    """Refresh cadences and render-time opacities for the overlays.

    Attributes
    ----------
    terminator_refresh_s : float
        Gray-line recomputation interval [s].
    grid_refresh_s : float
        Aurora grid poll interval [s].
    grayline_opacity : float
        Default render-time opacity of the gray-line layer [0, 1].
    aurora_opacity : float
        Default render-time opacity of the aurora raster [0, 1].
    """

    terminator_refresh_s: float
    grid_refresh_s: float
    grayline_opacity: float
    aurora_opacity: float


@dataclass
class OverlayConfig:
    """Top-level overlay configuration loaded from YAML.

    Attributes
    ----------
    terminator : TerminatorConfig
        Gray-line geometry settings.
    compositor : CompositorConfig
        Raster compositor settings.
    ramps : dict[str, tuple[RampBreakConfig, ...]]
        Named colour ramps.
    lifecycle : LifecycleConfig
        Refresh cadences and opacities.
    source_path : Path | None
        File the configuration was read from.
    """

    terminator: TerminatorConfig
    compositor: CompositorConfig
    ramps: dict[str, tuple[RampBreakConfig, ...]]
    lifecycle: LifecycleConfig
    source_path: Path | None = field(default=None)


# ---------------------------------------------------------------------------
# Configuration Loader
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path) -> OverlayConfig:
    """Load and validate an overlay configuration from a YAML file.

    Parameters
    ----------
    config_path : str or Path
        Path to the YAML configuration file.

    Returns
    -------
    OverlayConfig
        Fully populated, typed configuration object.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If required configuration keys are missing or values are invalid.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f)

    logger.info("Loading configuration from: %s", config_path)

    try:
        config = _parse_config(raw)
    except (KeyError, TypeError) as e:
        raise ValueError(
            f"Malformed configuration in {config_path}: {e!r}"
        ) from e

    config.source_path = config_path
    _validate_config(config)
    logger.info(
        "Configuration loaded successfully. %d colour ramp(s) registered.",
        len(config.ramps),
    )

    return config


def _parse_config(raw: dict[str, Any]) -> OverlayConfig:
    """Build the typed configuration tree from the raw YAML mapping."""
    # --- Gray line ---
    term = raw["terminator"]
    terminator = TerminatorConfig(
        sample_count=int(term["sample_count"]),
        enhanced_band_altitude_deg=float(term["enhanced_band_altitude_deg"]),
        twilight_altitudes_deg={
            str(name): float(alt)
            for name, alt in term["twilight_altitudes_deg"].items()
        },
    )

    # --- Raster compositor ---
    comp = raw["compositor"]
    compositor = CompositorConfig(
        grid_width=int(comp["grid_width"]),
        grid_height=int(comp["grid_height"]),
        upscale_factor=int(comp["upscale_factor"]),
        center_on_greenwich=bool(comp["center_on_greenwich"]),
    )

    # --- Colour ramps ---
    ramps: dict[str, tuple[RampBreakConfig, ...]] = {}
    for name, breaks in raw["ramps"].items():
        ramps[str(name)] = tuple(
            RampBreakConfig(
                threshold=float(b["threshold"]),
                color=_parse_color(b["color"]),
                alpha=None if b.get("alpha") is None else float(b["alpha"]),
            )
            for b in breaks
        )

    # --- Lifecycle ---
    lc = raw["lifecycle"]
    lifecycle = LifecycleConfig(
        terminator_refresh_s=float(lc["terminator_refresh_s"]),
        grid_refresh_s=float(lc["grid_refresh_s"]),
        grayline_opacity=float(lc["opacity"]["grayline"]),
        aurora_opacity=float(lc["opacity"]["aurora"]),
    )

    return OverlayConfig(
        terminator=terminator,
        compositor=compositor,
        ramps=ramps,
        lifecycle=lifecycle,
    )


def _parse_color(value: Any) -> str | tuple[float, ...]:
    """YAML lists become tuples; strings are passed through to matplotlib."""
    if isinstance(value, (list, tuple)):
        return tuple(float(v) for v in value)
    return str(value)


def _validate_config(config: OverlayConfig) -> None:
    """Validate structural constraints on configuration values.

    Parameters
    ----------
    config : OverlayConfig
        Configuration to validate.

    Raises
    ------
    ValueError
        If any value is invalid.
    """
    if config.terminator.sample_count < 1:
        raise ValueError(
            f"Terminator sample_count must be >= 1, got {config.terminator.sample_count}"
        )
    if not (0.0 < config.terminator.enhanced_band_altitude_deg < 90.0):
        raise ValueError(
            "Enhanced band altitude must be in (0, 90) degrees, got "
            f"{config.terminator.enhanced_band_altitude_deg}"
        )
    for name, alt in config.terminator.twilight_altitudes_deg.items():
        if not (-90.0 < alt < 0.0):
            raise ValueError(f"Twilight '{name}' altitude must be in (-90, 0), got {alt}")
    if config.compositor.grid_width < 1 or config.compositor.grid_height < 1:
        raise ValueError("Compositor grid dimensions must be positive.")
    if config.compositor.upscale_factor < 1:
        raise ValueError("Compositor upscale factor must be >= 1.")
    for name, breaks in config.ramps.items():
        if not breaks:
            raise ValueError(f"Colour ramp '{name}' has no break points.")
        thresholds = [b.threshold for b in breaks]
        if any(b <= a for a, b in zip(thresholds, thresholds[1:])):
            raise ValueError(
                f"Colour ramp '{name}' thresholds must be strictly increasing, got {thresholds}"
            )
    if config.lifecycle.terminator_refresh_s <= 0 or config.lifecycle.grid_refresh_s <= 0:
        raise ValueError("Refresh intervals must be positive.")
    for label, opacity in (
        ("grayline", config.lifecycle.grayline_opacity),
        ("aurora", config.lifecycle.aurora_opacity),
    ):
        if not (0.0 <= opacity <= 1.0):
            raise ValueError(f"Opacity for '{label}' must be in [0, 1], got {opacity}")

    logger.debug("Configuration validation passed.")


def log_platform_info() -> None:
    """Log platform and library version information for reproducibility."""
    logger.info("=" * 70)
    logger.info("PLATFORM INFORMATION (for reproducibility)")
    logger.info("=" * 70)
    logger.info("  Python:    %s", sys.version)
    logger.info("  Platform:  %s", platform.platform())
    logger.info("  NumPy:     %s", np.__version__)
    logger.info("  Float64 eps: %e", np.finfo(np.float64).eps)
    logger.info("=" * 70)


def hash_array(arr: np.ndarray) -> str:
    """Compute SHA-256 hash of a NumPy array for reproducibility verification.

    Parameters
    ----------
    arr : np.ndarray
        Array to hash.

    Returns
    -------
    str
        Hex digest of the SHA-256 hash.
    """
    return hashlib.sha256(arr.tobytes()).hexdigest()
