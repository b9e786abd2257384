import math

import numpy as np
import pytest

from trakke.errors import OutOfBounds
from trakke.geo.bounds import (
    ViewportWindow, check_bounds, clip_to_national, in_national_bounds, quantize,
)
from trakke.geo.projection import (
    ScreenPosition, ViewportTransform, mercator_array, project, project_many,
    to_mercator, unproject,
)


class TestNationalBounds:
    @pytest.mark.parametrize("lat,lng", [
        (57.5, 4.0), (72.0, 32.0), (59.91, 10.75), (69.65, 18.96),
    ])
    def test_inside_including_edges(self, lat, lng):
        assert in_national_bounds(lat, lng)
        check_bounds(lat, lng)

    @pytest.mark.parametrize("lat,lng", [
        (57.49, 10.0), (72.01, 20.0), (60.0, 3.99), (60.0, 32.01), (0.0, 0.0),
    ])
    def test_outside(self, lat, lng):
        assert not in_national_bounds(lat, lng)
        with pytest.raises(OutOfBounds):
            check_bounds(lat, lng)

    def test_clip_partially_outside(self):
        vp = ViewportWindow(north=58.0, south=57.0, east=5.0, west=3.0, zoom=9)
        clipped = clip_to_national(vp)
        assert clipped is not None
        assert clipped.south == pytest.approx(57.5)
        assert clipped.west == pytest.approx(4.0)
        assert clipped.north == pytest.approx(58.0)
        assert clipped.east == pytest.approx(5.0)
        assert clipped.zoom == 9

    def test_clip_fully_outside(self):
        vp = ViewportWindow(north=56.0, south=55.0, east=13.0, west=12.0, zoom=9)
        assert clip_to_national(vp) is None


class TestQuantize:
    def test_grid_aligned_window_unchanged(self):
        vp = ViewportWindow(north=59.92, south=59.90, east=10.76, west=10.74, zoom=14)
        assert quantize(vp) == (59.9, 10.74, 59.92, 10.76)

    def test_small_pan_same_key(self):
        a = ViewportWindow(north=59.9161, south=59.9012, east=10.7588, west=10.7411, zoom=14)
        b = ViewportWindow(north=59.9163, south=59.9015, east=10.7590, west=10.7413, zoom=14)
        assert quantize(a) == quantize(b)

    def test_snaps_outward(self):
        vp = ViewportWindow(north=59.9161, south=59.9012, east=10.7588, west=10.7411, zoom=14)
        south, west, north, east = quantize(vp)
        assert south <= vp.south and west <= vp.west
        assert north >= vp.north and east >= vp.east


class TestProjection:
    def test_center_maps_to_canvas_middle(self):
        t = ViewportTransform.from_center(59.91, 10.75, zoom=14, width=800, height=600)
        pos = project((59.91, 10.75), t)
        assert pos.x == pytest.approx(400.0)
        assert pos.y == pytest.approx(300.0)

    def test_north_is_up_east_is_right(self):
        t = ViewportTransform.from_center(59.91, 10.75, zoom=14, width=800, height=600)
        ne = project((59.92, 10.76), t)
        assert ne.x > 400.0
        assert ne.y < 300.0

    def test_unproject_round_trip(self):
        t = ViewportTransform.from_center(63.43, 10.39, zoom=12, width=1024, height=768)
        lat, lng = unproject(ScreenPosition(100.0, 700.0), t)
        pos = project((lat, lng), t)
        assert pos.x == pytest.approx(100.0, abs=1e-6)
        assert pos.y == pytest.approx(700.0, abs=1e-6)

    def test_zoom_in_doubles_distances(self):
        t = ViewportTransform.from_center(59.91, 10.75, zoom=14, width=800, height=600)
        t2 = t.zoomed(2.0)
        a = project((59.915, 10.76), t)
        b = project((59.915, 10.76), t2)
        assert (b.x - 400.0) == pytest.approx(2 * (a.x - 400.0))
        assert t2.zoom == pytest.approx(15.0)

    def test_zoom_keeps_anchor_fixed(self):
        t = ViewportTransform.from_center(59.91, 10.75, zoom=14, width=800, height=600)
        anchor = (120.0, 80.0)
        before = unproject(ScreenPosition(*anchor), t)
        after = unproject(ScreenPosition(*anchor), t.zoomed(1.25, anchor))
        assert after[0] == pytest.approx(before[0], abs=1e-9)
        assert after[1] == pytest.approx(before[1], abs=1e-9)

    def test_pan_moves_points_with_the_drag(self):
        t = ViewportTransform.from_center(59.91, 10.75, zoom=14, width=800, height=600)
        before = project((59.91, 10.75), t)
        after = project((59.91, 10.75), t.panned(30, -20))
        assert after.x - before.x == pytest.approx(30.0)
        assert after.y - before.y == pytest.approx(-20.0)

    def test_pyproj_matches_spherical_formula(self):
        coords = [(59.91, 10.75), (69.65, 18.96), (58.97, 5.73)]
        arr = mercator_array(coords)
        for (lat, lng), (x, y) in zip(coords, arr):
            ex, ey = to_mercator(lat, lng)
            assert x == pytest.approx(ex, abs=1e-3)
            assert y == pytest.approx(ey, abs=1e-3)

    def test_project_many_matches_project(self):
        t = ViewportTransform.from_center(60.39, 5.32, zoom=13, width=640, height=480)
        coords = [(60.39, 5.32), (60.40, 5.30), (60.38, 5.35)]
        out = project_many(mercator_array(coords), t)
        for (lat, lng), (x, y) in zip(coords, out):
            p = project((lat, lng), t)
            assert x == pytest.approx(p.x, abs=1e-6)
            assert y == pytest.approx(p.y, abs=1e-6)

    def test_project_many_empty(self):
        t = ViewportTransform.from_center(60.0, 10.0, zoom=10, width=10, height=10)
        assert project_many(mercator_array([]), t).shape == (0, 2)

    def test_viewport_window_contains_center(self):
        t = ViewportTransform.from_center(59.91, 10.75, zoom=14, width=800, height=600)
        vp = t.viewport_window()
        assert vp.south < 59.91 < vp.north
        assert vp.west < 10.75 < vp.east
        assert vp.zoom == pytest.approx(14.0)
