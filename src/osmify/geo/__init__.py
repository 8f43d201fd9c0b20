"""Coordinates, bounding boxes and coordinate precision."""

from __future__ import annotations

from .bbox import BBox
from .coordinates import (
    LATITUDE_RANGE,
    LONGITUDE_RANGE,
    Coordinates,
    clamp_latitude,
    wrap_longitude,
)
from .precision import CoordinatePrecision

__all__ = [
    "BBox",
    "Coordinates",
    "CoordinatePrecision",
    "LATITUDE_RANGE",
    "LONGITUDE_RANGE",
    "clamp_latitude",
    "wrap_longitude",
]
