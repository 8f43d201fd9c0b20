"""Axis-aligned bounding boxes.

Used to describe the extent of a changeset and to scope read queries.
See https://wiki.openstreetmap.org/wiki/Bounding_box
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from osmify.errors import OsmifyCoordinateError

from .coordinates import Coordinates


@dataclass(frozen=True)
class BBox:
    """A bounding box given by its south-west and north-east corners.

    Boxes built through :meth:`from_points` or :meth:`extend` may be
    degenerate (a single point has zero width and height).
    """

    south_west: Coordinates
    north_east: Coordinates

    @classmethod
    def from_corners(cls, south_west: Coordinates, north_east: Coordinates) -> BBox:
        """Build a box, requiring *south_west* to lie strictly south-west of
        *north_east*."""
        if not (south_west.lat < north_east.lat and south_west.lon < north_east.lon):
            raise OsmifyCoordinateError(
                message="south_west must be more south-west than north_east",
                context={
                    "south_west": south_west.as_tuple(),
                    "north_east": north_east.as_tuple(),
                },
            )
        return cls(south_west, north_east)

    @classmethod
    def from_tuple(cls, south: float, west: float, north: float, east: float) -> BBox:
        """Build a box from ``(south, west, north, east)`` degrees."""
        return cls.from_corners(
            Coordinates.from_value(south, west),
            Coordinates.from_value(north, east),
        )

    @classmethod
    def from_points(cls, points: Iterable[Coordinates]) -> BBox | None:
        """Return the smallest box containing every point, or ``None`` when
        *points* is empty."""
        box: BBox | None = None
        for point in points:
            box = cls(point, point) if box is None else box.extend(point)
        return box

    # -- accessors -------------------------------------------------------

    @property
    def south(self) -> float:
        return self.south_west.lat

    @property
    def west(self) -> float:
        return self.south_west.lon

    @property
    def north(self) -> float:
        return self.north_east.lat

    @property
    def east(self) -> float:
        return self.north_east.lon

    def corners(self) -> tuple[float, float, float, float]:
        """Return ``(south, west, north, east)``."""
        return (self.south, self.west, self.north, self.east)

    def to_query(self) -> str:
        """Render as the ``left,bottom,right,top`` string used by the API."""
        return f"{self.west},{self.south},{self.east},{self.north}"

    # -- geometry --------------------------------------------------------

    def delta_lat_deg(self) -> float:
        return self.north - self.south

    def delta_lon_deg(self) -> float:
        return self.east - self.west

    def area_deg2(self) -> float:
        """Area in square degrees."""
        return self.delta_lat_deg() * self.delta_lon_deg()

    def center(self) -> Coordinates:
        return Coordinates(
            self.south + self.delta_lat_deg() / 2.0,
            self.west + self.delta_lon_deg() / 2.0,
        )

    def contains(self, point: Coordinates) -> bool:
        """Inclusive point-in-box test."""
        return (
            self.south <= point.lat <= self.north
            and self.west <= point.lon <= self.east
        )

    def contains_bbox(self, other: BBox) -> bool:
        return self.contains(other.south_west) and self.contains(other.north_east)

    def intersects(self, other: BBox) -> bool:
        return (
            self.south <= other.north
            and other.south <= self.north
            and self.west <= other.east
            and other.west <= self.east
        )

    def intersection(self, other: BBox) -> BBox | None:
        if not self.intersects(other):
            return None
        return BBox(
            Coordinates(max(self.south, other.south), max(self.west, other.west)),
            Coordinates(min(self.north, other.north), min(self.east, other.east)),
        )

    def extend(self, other: Coordinates | BBox) -> BBox:
        """Return the smallest box containing this box and *other*."""
        if isinstance(other, BBox):
            return self.extend(other.south_west).extend(other.north_east)
        return BBox(
            Coordinates(min(self.south, other.lat), min(self.west, other.lon)),
            Coordinates(max(self.north, other.lat), max(self.east, other.lon)),
        )

    def __str__(self) -> str:
        return (
            f"(( South: {self.south}, West: {self.west} ), "
            f"( North: {self.north}, East: {self.east} ))"
        )
