"""Loader for NOAA SWPC OVATION aurora forecast documents.

The OVATION Prime "latest" product is a JSON document of the form::

    {
      "Observation Time": "2026-10-17T11:52:00Z",
      "Forecast Time": "2026-10-17T12:37:00Z",
      "Data Format": "[Longitude, Latitude, Aurora]",
      "coordinates": [[0, -90, 0], [0, -89, 0], ..., [359, 90, 0]]
    }

i.e. 360 longitudes (0..359) × 181 latitudes (-90..90) of aurora
probability in percent. Fetching the document is the caller's concern;
this module only turns an already-retrieved payload (dict or file) into a
flat ``(N, 3)`` sample array for the compositor.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)

_COORDINATES_KEY = "coordinates"
_FORECAST_TIME_KEY = "Forecast Time"
_OBSERVATION_TIME_KEY = "Observation Time"


class GridPayloadError(ValueError):
    """The document carries no usable coordinate grid."""


@dataclass(frozen=True)
class OvationGrid:
    """Parsed OVATION aurora grid.

    Attributes
    ----------
    samples : np.ndarray
        (longitude, latitude, probability) rows. Shape: (N, 3), float64.
        Rows that could not be read are NaN and are dropped downstream.
    forecast_time : str | None
        "Forecast Time" stamp as published, if present.
    observation_time : str | None
        "Observation Time" stamp as published, if present.
    """

    samples: np.ndarray
    forecast_time: str | None = None
    observation_time: str | None = None

    def __len__(self) -> int:
        return int(self.samples.shape[0])


def parse_ovation_payload(payload: dict[str, Any]) -> OvationGrid:
    """Parse an already-decoded OVATION JSON document.

    Parameters
    ----------
    payload : dict
        Decoded JSON object.

    Returns
    -------
    OvationGrid
        Samples plus the forecast / observation stamps.

    Raises
    ------
    GridPayloadError
        If the payload is not an object or has no non-empty
        ``coordinates`` list.
    """
    if not isinstance(payload, dict):
        raise GridPayloadError(
            f"OVATION payload must be a JSON object, got {type(payload).__name__}"
        )

    coordinates = payload.get(_COORDINATES_KEY)
    if not isinstance(coordinates, list) or not coordinates:
        raise GridPayloadError("OVATION payload has no 'coordinates' samples.")

    samples = np.full((len(coordinates), 3), np.nan, dtype=np.float64)
    bad_rows = 0
    for i, row in enumerate(coordinates):
        try:
            lon, lat, prob = row[0], row[1], row[2]
            samples[i] = (float(lon), float(lat), float(prob))
        except (TypeError, ValueError, IndexError, KeyError):
            bad_rows += 1

    if bad_rows:
        logger.warning("OVATION payload: %d unreadable coordinate row(s)", bad_rows)

    grid = OvationGrid(
        samples=samples,
        forecast_time=_optional_str(payload.get(_FORECAST_TIME_KEY)),
        observation_time=_optional_str(payload.get(_OBSERVATION_TIME_KEY)),
    )
    logger.debug(
        "Parsed OVATION grid: %d samples, forecast=%s", len(grid), grid.forecast_time
    )
    return grid


def load_ovation_json(path: str | Path) -> OvationGrid:
    """Load an OVATION JSON document from disk.

    Parameters
    ----------
    path : str or Path
        Path to the saved ``ovation_aurora_latest.json`` document.

    Returns
    -------
    OvationGrid
        Parsed grid.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    GridPayloadError
        If the file is not valid JSON or has no coordinate samples.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"OVATION grid file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as e:
            raise GridPayloadError(f"Invalid JSON in {path}: {e}") from e

    logger.info("Loading OVATION grid from: %s", path)
    return parse_ovation_payload(payload)


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)
