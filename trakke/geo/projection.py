"""
Web-mercator projection between geographic coordinates and screen pixels.

``project`` is the per-frame hot path: pure arithmetic on an immutable
``ViewportTransform`` snapshot, no I/O.  ``project_many`` does the same for
a whole marker set at once with numpy.  pyproj converts marker
coordinates once per POI list and the visible area once per settle,
never per frame.

Usage
-----
    t = ViewportTransform.from_center(59.91, 10.75, zoom=14, width=800, height=600)
    pos = project((59.91, 10.75), t)      # ScreenPosition(x=400.0, y=300.0)
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
import pyproj

from .bounds import ViewportWindow

EARTH_RADIUS_M = 6378137.0
TILE_SIZE_PX = 256
MAX_LATITUDE = 85.0511287798

_WORLD_M = 2.0 * math.pi * EARTH_RADIUS_M

_TO_MERCATOR = pyproj.Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)
_TO_LONLAT = pyproj.Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True)


@dataclass(frozen=True)
class ScreenPosition:
    x: float
    y: float


@dataclass(frozen=True)
class ViewportTransform:
    """Snapshot of the map camera.

    ``center_x``/``center_y`` are EPSG:3857 metres, ``resolution`` is
    metres per screen pixel, ``width``/``height`` are the canvas size.
    """
    center_x: float
    center_y: float
    resolution: float
    width: float
    height: float

    @classmethod
    def from_center(cls, lat: float, lng: float, zoom: float,
                    width: float, height: float) -> "ViewportTransform":
        cx, cy = to_mercator(lat, lng)
        return cls(cx, cy, resolution_for_zoom(zoom), width, height)

    @property
    def zoom(self) -> float:
        return math.log2(_WORLD_M / (TILE_SIZE_PX * self.resolution))

    def panned(self, dx_px: float, dy_px: float) -> "ViewportTransform":
        return ViewportTransform(
            self.center_x - dx_px * self.resolution,
            self.center_y + dy_px * self.resolution,
            self.resolution, self.width, self.height,
        )

    def zoomed(self, factor: float, anchor: Optional[Tuple[float, float]] = None) -> "ViewportTransform":
        """Zoom by *factor* keeping the screen point *anchor* fixed."""
        ax, ay = anchor if anchor is not None else (self.width / 2.0, self.height / 2.0)
        mx = self.center_x + (ax - self.width / 2.0) * self.resolution
        my = self.center_y - (ay - self.height / 2.0) * self.resolution
        res = self.resolution / factor
        return ViewportTransform(
            mx - (ax - self.width / 2.0) * res,
            my + (ay - self.height / 2.0) * res,
            res, self.width, self.height,
        )

    def resized(self, width: float, height: float) -> "ViewportTransform":
        return ViewportTransform(self.center_x, self.center_y, self.resolution,
                                 width, height)

    def mercator_bounds(self) -> Tuple[float, float, float, float]:
        """(minx, miny, maxx, maxy) in EPSG:3857 metres."""
        half_w = self.width / 2.0 * self.resolution
        half_h = self.height / 2.0 * self.resolution
        return (self.center_x - half_w, self.center_y - half_h,
                self.center_x + half_w, self.center_y + half_h)

    def viewport_window(self) -> ViewportWindow:
        minx, miny, maxx, maxy = self.mercator_bounds()
        west, south = _TO_LONLAT.transform(minx, miny)
        east, north = _TO_LONLAT.transform(maxx, maxy)
        return ViewportWindow(north=north, south=south, east=east, west=west,
                              zoom=round(self.zoom, 2))


def resolution_for_zoom(zoom: float) -> float:
    return _WORLD_M / (TILE_SIZE_PX * 2.0 ** zoom)


def to_mercator(lat: float, lng: float) -> Tuple[float, float]:
    lat = max(-MAX_LATITUDE, min(MAX_LATITUDE, lat))
    x = EARTH_RADIUS_M * math.radians(lng)
    y = EARTH_RADIUS_M * math.log(math.tan(math.pi / 4.0 + math.radians(lat) / 2.0))
    return x, y


def from_mercator(x: float, y: float) -> Tuple[float, float]:
    lng = math.degrees(x / EARTH_RADIUS_M)
    lat = math.degrees(2.0 * math.atan(math.exp(y / EARTH_RADIUS_M)) - math.pi / 2.0)
    return lat, lng


def project(coordinate: Tuple[float, float], transform: ViewportTransform) -> ScreenPosition:
    """Screen position of a (lat, lng) under *transform*."""
    mx, my = to_mercator(coordinate[0], coordinate[1])
    return ScreenPosition(
        (mx - transform.center_x) / transform.resolution + transform.width / 2.0,
        (transform.center_y - my) / transform.resolution + transform.height / 2.0,
    )


def unproject(position: ScreenPosition, transform: ViewportTransform) -> Tuple[float, float]:
    mx = transform.center_x + (position.x - transform.width / 2.0) * transform.resolution
    my = transform.center_y - (position.y - transform.height / 2.0) * transform.resolution
    return from_mercator(mx, my)


# ── Vectorized ────────────────────────────────────────────────────────

def mercator_array(coordinates: Iterable[Sequence[float]]) -> np.ndarray:
    """(N, 2) array of mercator metres for an iterable of (lat, lng)."""
    arr = np.asarray(list(coordinates), dtype=float).reshape(-1, 2)
    if arr.size == 0:
        return np.empty((0, 2))
    xs, ys = _TO_MERCATOR.transform(arr[:, 1], np.clip(arr[:, 0], -MAX_LATITUDE, MAX_LATITUDE))
    return np.column_stack([xs, ys])


def project_many(mercator_xy: np.ndarray, transform: ViewportTransform) -> np.ndarray:
    """Project an (N, 2) mercator array to an (N, 2) array of pixels."""
    if mercator_xy.size == 0:
        return np.empty((0, 2))
    out = np.empty_like(mercator_xy, dtype=float)
    out[:, 0] = (mercator_xy[:, 0] - transform.center_x) / transform.resolution + transform.width / 2.0
    out[:, 1] = (transform.center_y - mercator_xy[:, 1]) / transform.resolution + transform.height / 2.0
    return out
