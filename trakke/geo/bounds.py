"""
National bounds and viewport windows.

Everything is plain WGS84 degrees.  The national box is the rectangle the
whole app works inside (mainland Norway, Svalbard excluded):
lat 57.5–72.0, lng 4.0–32.0, edges inclusive.

Usage
-----
    from trakke.geo.bounds import ViewportWindow, clip_to_national
    vp = ViewportWindow(north=59.92, south=59.90, east=10.76, west=10.74, zoom=14)
    clipped = clip_to_national(vp)      # None when fully outside
    key = quantize(vp)                  # cache-key bbox, snapped outward
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from shapely.geometry import box

from ..errors import OutOfBounds

NATIONAL_SOUTH = 57.5
NATIONAL_NORTH = 72.0
NATIONAL_WEST = 4.0
NATIONAL_EAST = 32.0

NATIONAL_BOX = box(NATIONAL_WEST, NATIONAL_SOUTH, NATIONAL_EAST, NATIONAL_NORTH)

_QUANTUM = 0.01  # degrees (~1 km north-south)


@dataclass(frozen=True)
class ViewportWindow:
    """Geographic window currently visible on the map."""
    north: float
    south: float
    east: float
    west: float
    zoom: float

    def contains(self, lat: float, lng: float, tolerance: float = 0.0) -> bool:
        return (self.south - tolerance <= lat <= self.north + tolerance
                and self.west - tolerance <= lng <= self.east + tolerance)

    def polygon(self):
        return box(self.west, self.south, self.east, self.north)

    @property
    def center(self) -> Tuple[float, float]:
        return (self.south + self.north) / 2.0, (self.west + self.east) / 2.0

    def as_dict(self) -> dict:
        return {
            "north": self.north, "south": self.south,
            "east": self.east, "west": self.west, "zoom": self.zoom,
        }


def in_national_bounds(lat: float, lng: float) -> bool:
    return (NATIONAL_SOUTH <= lat <= NATIONAL_NORTH
            and NATIONAL_WEST <= lng <= NATIONAL_EAST)


def check_bounds(lat: float, lng: float) -> None:
    """Raise OutOfBounds unless (lat, lng) lies in the national box."""
    if not in_national_bounds(lat, lng):
        raise OutOfBounds(lat, lng)


def clip_to_national(viewport: ViewportWindow) -> Optional[ViewportWindow]:
    """Intersect *viewport* with the national box.

    Returns None when the intersection has no area.
    """
    clipped = viewport.polygon().intersection(NATIONAL_BOX)
    if clipped.is_empty or clipped.area == 0.0:
        return None
    west, south, east, north = clipped.bounds
    return ViewportWindow(north=north, south=south, east=east, west=west,
                          zoom=viewport.zoom)


def quantize(viewport: ViewportWindow,
             quantum: float = _QUANTUM) -> Tuple[float, float, float, float]:
    """Snap the window outward to a *quantum* grid.

    Returns ``(south, west, north, east)``.  Small pans inside the same
    grid cell produce the same tuple, which is what the cache keys on.
    """
    def down(v: float) -> float:
        return round(math.floor(v / quantum + 1e-9) * quantum, 6)

    def up(v: float) -> float:
        return round(math.ceil(v / quantum - 1e-9) * quantum, 6)

    return down(viewport.south), down(viewport.west), up(viewport.north), up(viewport.east)


def quantized_window(viewport: ViewportWindow) -> ViewportWindow:
    south, west, north, east = quantize(viewport)
    return ViewportWindow(north=north, south=south, east=east, west=west,
                          zoom=viewport.zoom)
