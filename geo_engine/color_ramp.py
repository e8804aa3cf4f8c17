"""Piecewise-linear colour ramps for scalar geophysical grids.

A ramp is an ordered table of break points (threshold, colour, alpha).
Values are mapped by linear interpolation between neighbouring break
points, clamped to the last break point above the top threshold. Values
below the first threshold (the visibility floor) are fully transparent:
they are noise, not signal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

import numpy as np
from matplotlib.colors import Colormap, LinearSegmentedColormap, ListedColormap, to_rgba

from geo_engine.constants import RampBreakConfig

logger = logging.getLogger(__name__)

# NOAA-style aurora probability ramp: floor at 4 %, saturating at 84 %.
# Yellow-green steps to yellow at 44 %.
AURORA_BREAKS: tuple[tuple[float, str, float], ...] = (
    (4.0, "#005028", 0.30),
    (24.0, "#00ff00", 0.60),
    (43.99, "#c8ff00", 0.7499),
    (44.0, "#ffff00", 0.75),
    (64.0, "#ff8700", 0.85),
    (84.0, "#ff001e", 1.00),
)


@dataclass(frozen=True)
class ColorRamp:
    """Ordered colour ramp.

    Attributes
    ----------
    thresholds : np.ndarray
        Strictly increasing break-point values. Shape: (K,).
    colors : np.ndarray
        RGB of each break point in [0, 255]. Shape: (K, 3).
    alphas : np.ndarray
        Opacity of each break point in [0, 1]. Shape: (K,).
    name : str
        Ramp name (used for legends).
    """

    thresholds: np.ndarray
    colors: np.ndarray
    alphas: np.ndarray
    name: str = "ramp"

    def __post_init__(self) -> None:
        thresholds = np.array(self.thresholds, dtype=np.float64).reshape(-1)
        colors = np.array(self.colors, dtype=np.float64).reshape(-1, 3)
        alphas = np.array(self.alphas, dtype=np.float64).reshape(-1)

        if thresholds.size == 0:
            raise ValueError("A colour ramp needs at least one break point.")
        if colors.shape[0] != thresholds.size or alphas.size != thresholds.size:
            raise ValueError(
                f"Ramp '{self.name}': {thresholds.size} thresholds, "
                f"{colors.shape[0]} colours, {alphas.size} alphas"
            )
        if not np.all(np.isfinite(thresholds)):
            raise ValueError(f"Ramp '{self.name}' thresholds must be finite.")
        if np.any(np.diff(thresholds) <= 0.0):
            raise ValueError(
                f"Ramp '{self.name}' thresholds must be strictly increasing, "
                f"got {thresholds.tolist()}"
            )
        if np.any((colors < 0.0) | (colors > 255.0)):
            raise ValueError(f"Ramp '{self.name}' colours must lie in [0, 255].")
        if np.any((alphas < 0.0) | (alphas > 1.0)):
            raise ValueError(f"Ramp '{self.name}' alphas must lie in [0, 1].")

        for arr in (thresholds, colors, alphas):
            arr.setflags(write=False)
        object.__setattr__(self, "thresholds", thresholds)
        object.__setattr__(self, "colors", colors)
        object.__setattr__(self, "alphas", alphas)

    # -----------------------------------------------------------------------
    # Constructors
    # -----------------------------------------------------------------------

    @classmethod
    def from_breaks(
        cls,
        breaks: Iterable[tuple[Any, ...]],
        name: str = "ramp",
    ) -> ColorRamp:
        """Build a ramp from ``(threshold, colour[, alpha])`` tuples.

        Colours are any matplotlib colour specification. When alpha is
        omitted (or None) the colour's own alpha is used, so 'none'
        yields a fully transparent break point.

        Examples
        --------
        >>> ramp = ColorRamp.from_breaks([(4, "none"), (25, "darkgreen"), (100, "red")])
        >>> ramp.floor
        4.0
        """
        thresholds, colors, alphas = [], [], []
        for brk in breaks:
            threshold, color = brk[0], brk[1]
            alpha = brk[2] if len(brk) > 2 else None
            r, g, b, a = to_rgba(color)
            thresholds.append(float(threshold))
            colors.append((r * 255.0, g * 255.0, b * 255.0))
            alphas.append(a if alpha is None else float(alpha))
        return cls(
            thresholds=np.array(thresholds),
            colors=np.array(colors),
            alphas=np.array(alphas),
            name=name,
        )

    @classmethod
    def from_config(cls, breaks: Iterable[RampBreakConfig], name: str = "ramp") -> ColorRamp:
        """Build a ramp from configuration break points."""
        return cls.from_breaks(((b.threshold, b.color, b.alpha) for b in breaks), name=name)

    @classmethod
    def aurora(cls) -> ColorRamp:
        """Transparent → green → yellow → red aurora probability ramp."""
        return cls.from_breaks(AURORA_BREAKS, name="aurora")

    # -----------------------------------------------------------------------
    # Evaluation
    # -----------------------------------------------------------------------

    @property
    def floor(self) -> float:
        """Minimum visible value (first threshold)."""
        return float(self.thresholds[0])

    def is_visible(self, values: np.ndarray) -> np.ndarray:
        """Boolean mask of values at or above the floor (NaN is invisible)."""
        values = np.asarray(values, dtype=np.float64)
        with np.errstate(invalid="ignore"):
            return values >= self.floor

    def evaluate(self, values: np.ndarray) -> np.ndarray:
        """Map scalar values to RGBA texels.

        Parameters
        ----------
        values : np.ndarray
            Scalar values. Shape: (N,).

        Returns
        -------
        np.ndarray
            RGBA texels, dtype uint8. Shape: (N, 4). Values below the
            floor map to (0, 0, 0, 0); visible values always carry
            alpha >= 1 so they survive 8-bit quantisation.
        """
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        visible = self.is_visible(values)
        safe = np.where(visible, values, self.floor)

        rgba = np.zeros((values.size, 4), dtype=np.float64)
        for channel in range(3):
            rgba[:, channel] = np.interp(safe, self.thresholds, self.colors[:, channel])
        rgba[:, 3] = np.interp(safe, self.thresholds, self.alphas) * 255.0

        texels = np.rint(rgba).astype(np.uint8)
        texels[visible, 3] = np.maximum(texels[visible, 3], 1)
        texels[~visible] = 0
        return texels

    def to_colormap(self) -> Colormap:
        """Matplotlib colormap spanning the ramp's thresholds (for legends)."""
        rgba = [
            (c[0] / 255.0, c[1] / 255.0, c[2] / 255.0, a)
            for c, a in zip(self.colors, self.alphas)
        ]
        if len(rgba) == 1:
            return ListedColormap(rgba, name=self.name)

        span = self.thresholds[-1] - self.thresholds[0]
        positions = (self.thresholds - self.thresholds[0]) / span
        return LinearSegmentedColormap.from_list(
            self.name, list(zip(positions.tolist(), rgba))
        )
