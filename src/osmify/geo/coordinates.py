"""Validated latitude/longitude pairs.

See https://wiki.openstreetmap.org/wiki/Coordinates
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from osmify.errors import OsmifyCoordinateError

LATITUDE_RANGE: tuple[float, float] = (-90.0, 90.0)
LONGITUDE_RANGE: tuple[float, float] = (-180.0, 180.0)


def _check(value: float, bounds: tuple[float, float], axis: str) -> float:
    lo, hi = bounds
    if not lo <= value <= hi:
        raise OsmifyCoordinateError(
            message=f"{axis} {value} is outside [{lo}, {hi}]",
            context={"value": value, "range": bounds, "axis": axis},
        )
    return float(value)


def clamp_latitude(value: float) -> float:
    """Clamp *value* into :data:`LATITUDE_RANGE`."""
    return max(LATITUDE_RANGE[0], min(LATITUDE_RANGE[1], float(value)))


def wrap_longitude(value: float) -> float:
    """Wrap *value* into :data:`LONGITUDE_RANGE` (180 stays 180)."""
    lo, hi = LONGITUDE_RANGE
    if lo <= value <= hi:
        return float(value)
    span = hi - lo
    return (value - lo) % span + lo


@dataclass(frozen=True, order=False)
class Coordinates:
    """A single point on earth.

    Attributes
    ----------
    lat:
        Latitude in degrees (the y coordinate).
    lon:
        Longitude in degrees (the x coordinate).
    """

    lat: float
    lon: float

    @classmethod
    def from_value(cls, lat: float, lon: float) -> Coordinates:
        """Build a point, raising :class:`OsmifyCoordinateError` when either
        axis is out of range."""
        return cls(_check(lat, LATITUDE_RANGE, "latitude"), _check(lon, LONGITUDE_RANGE, "longitude"))

    @classmethod
    def from_clamped(cls, lat: float, lon: float) -> Coordinates:
        """Build a point, clamping the latitude and wrapping the longitude."""
        return cls(clamp_latitude(lat), wrap_longitude(lon))

    def as_tuple(self) -> tuple[float, float]:
        """Return ``(lat, lon)``."""
        return (self.lat, self.lon)

    def __add__(self, other: Coordinates) -> Coordinates:
        return Coordinates.from_clamped(self.lat + other.lat, self.lon + other.lon)

    def __sub__(self, other: Coordinates) -> Coordinates:
        return Coordinates.from_clamped(self.lat - other.lat, self.lon - other.lon)

    def __mul__(self, factor: float) -> Coordinates:
        return Coordinates.from_clamped(self.lat * factor, self.lon * factor)

    def __truediv__(self, divisor: float) -> Coordinates:
        return Coordinates.from_clamped(self.lat / divisor, self.lon / divisor)

    # Partial order: a point is smaller when it lies south-west of (or on
    # one axis with) the other.  Points in opposite quadrants compare as
    # neither smaller nor greater.

    def partial_cmp(self, other: Coordinates) -> int | None:
        """Return -1, 0 or 1, or ``None`` when the points are not ordered."""
        if any(math.isnan(v) for v in (self.lat, self.lon, other.lat, other.lon)):
            return None
        by_lat = (self.lat > other.lat) - (self.lat < other.lat)
        by_lon = (self.lon > other.lon) - (self.lon < other.lon)
        if by_lat == 0:
            return by_lon
        if by_lon in (0, by_lat):
            return by_lat
        return None

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Coordinates):
            return NotImplemented
        order = self.partial_cmp(other)
        return order is not None and order < 0

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Coordinates):
            return NotImplemented
        order = self.partial_cmp(other)
        return order is not None and order <= 0

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Coordinates):
            return NotImplemented
        order = self.partial_cmp(other)
        return order is not None and order > 0

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Coordinates):
            return NotImplemented
        order = self.partial_cmp(other)
        return order is not None and order >= 0

    def __str__(self) -> str:
        ns = "N" if self.lat >= 0 else "S"
        ew = "E" if self.lon >= 0 else "W"
        return f"{abs(self.lat)} °{ns} {abs(self.lon)} °{ew}"
