"""Tests for ray geometry helpers."""

import numpy as np
import pytest

from py_knet.core.geometry import Intersection, Point, PositionedNode, Ray
from py_knet.core.raycasting import (
    closest_intersection,
    filter_intersections_by_distance,
    normalize,
    point_ray_offset,
    ray_arrays,
    ray_from_points,
    ray_volume_interval,
)


class TestSlabTest:
    """Test ray/volume intersection intervals."""

    def test_hit(self):
        interval = ray_volume_interval(
            np.array([0.0, 5.0]), np.array([1.0, 0.0]), np.array([10.0, 0.0]), np.array([20.0, 10.0])
        )
        assert interval == pytest.approx((10.0, 20.0))

    def test_miss_parallel(self):
        """A ray parallel to a slab and outside it never enters."""
        assert ray_volume_interval(
            np.array([0.0, 15.0]), np.array([1.0, 0.0]), np.array([10.0, 0.0]), np.array([20.0, 10.0])
        ) is None

    def test_volume_behind_origin(self):
        assert ray_volume_interval(
            np.array([30.0, 5.0]), np.array([1.0, 0.0]), np.array([10.0, 0.0]), np.array([20.0, 10.0])
        ) is None

    def test_origin_inside(self):
        interval = ray_volume_interval(
            np.array([15.0, 5.0, 5.0]), np.array([0.0, 0.0, -1.0]),
            np.array([10.0, 0.0, 0.0]), np.array([20.0, 10.0, 10.0]),
        )
        assert interval == pytest.approx((0.0, 5.0))

    def test_diagonal_miss(self):
        assert ray_volume_interval(
            np.array([0.0, 0.0]), np.array([1.0, -1.0]), np.array([10.0, 10.0]), np.array([20.0, 20.0])
        ) is None


class TestRayHelpers:
    """Test projection and ray construction."""

    def test_normalize(self):
        np.testing.assert_allclose(normalize(np.array([3.0, 4.0])), [0.6, 0.8])
        assert normalize(np.array([0.0, 0.0, 0.0])) is None

    def test_point_ray_offset(self):
        t, closest, offset = point_ray_offset(
            np.array([5.0, 3.0]), np.array([0.0, 0.0]), np.array([1.0, 0.0])
        )
        assert t == pytest.approx(5.0)
        np.testing.assert_allclose(closest, [5.0, 0.0])
        assert offset == pytest.approx(3.0)

    def test_point_behind(self):
        t, _, _ = point_ray_offset(np.array([-2.0, 0.0]), np.array([0.0, 0.0]), np.array([1.0, 0.0]))
        assert t < 0

    def test_ray_arrays_lift_and_project(self):
        origin, direction = ray_arrays(Ray(Point(1, 2), Point(0, 2)), 3)
        np.testing.assert_allclose(origin, [1, 2, 0])
        np.testing.assert_allclose(direction, [0, 1, 0])

        origin, direction = ray_arrays(Ray(Point(1, 2, 3), Point(1, 0, 5)), 2)
        np.testing.assert_allclose(origin, [1, 2])
        np.testing.assert_allclose(direction, [1, 0])

    def test_ray_arrays_vertical_ray_in_2d(self):
        """A purely vertical 3D ray has no XY direction."""
        assert ray_arrays(Ray(Point(0, 0, 0), Point(0, 0, 1)), 2) is None

    def test_ray_from_points(self):
        ray = ray_from_points((1, 1), (4, 5))
        assert ray.origin == Point(1, 1)
        assert ray.direction == Point(3, 4)
        assert not ray.is_3d

        ray = ray_from_points((0, 0), (0, 0, 10))
        assert ray.direction == Point(0, 0, 10)
        assert ray.is_3d


class TestIntersectionHelpers:
    """Test intersection list helpers."""

    @pytest.fixture
    def hits(self):
        node = PositionedNode("n", 0, 0)
        return [
            Intersection(node, Point(0, 0), 12.0),
            Intersection(node, Point(0, 0), 3.0),
            Intersection(node, Point(0, 0), 7.5),
        ]

    def test_closest(self, hits):
        assert closest_intersection(hits).distance == 3.0
        assert closest_intersection([]) is None

    def test_filter(self, hits):
        kept = filter_intersections_by_distance(hits, 7.5)
        assert [hit.distance for hit in kept] == [3.0, 7.5]
