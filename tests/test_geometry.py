"""Tests for geometry primitives."""

import math

import numpy as np
import pytest

from py_knet.core.geometry import (
    BoundingVolume,
    Box,
    Point,
    PositionedNode,
    Rectangle,
    as_point,
    as_positioned_node,
    coords_array,
    distance,
)


class TestPoints:
    """Test point coercion."""

    @pytest.mark.parametrize("value, expected", [
        ((1, 2), Point(1.0, 2.0)),
        ([1, 2, 3], Point(1.0, 2.0, 3.0)),
        ({"x": 1, "y": 2}, Point(1.0, 2.0)),
        ({"x": 1, "y": 2, "z": None}, Point(1.0, 2.0)),
        (np.array([4.0, 5.0, 6.0]), Point(4.0, 5.0, 6.0)),
        (PositionedNode("n", 7, 8, 9), Point(7.0, 8.0, 9.0)),
    ])
    def test_as_point(self, value, expected):
        assert as_point(value) == expected

    def test_nan_z_dropped(self):
        assert as_point((1, 2, float("nan"))).z is None
        assert not PositionedNode("n", 0, 0, float("nan")).is_3d

    def test_wrong_arity(self):
        with pytest.raises(ValueError):
            as_point((1,))

    def test_as_3d(self):
        assert Point(1, 2).as_3d() == Point(1, 2, 0.0)

    def test_distance(self):
        assert distance((0, 0), (3, 4)) == pytest.approx(5.0)
        assert distance((0, 0), (0, 0, 2)) == pytest.approx(2.0)

    def test_coords_array(self):
        coords = coords_array([(0, 0), (1, 2, 3)], 3)
        np.testing.assert_allclose(coords, [[0, 0, 0], [1, 2, 3]])
        assert coords_array([], 2).shape == (0, 2)


class TestPositionedNode:
    """Test node records."""

    def test_from_mapping(self):
        node = PositionedNode.from_mapping({"id": 7, "x": "1.5", "y": 2, "group": "a"})
        assert node.id == "7"
        assert node.x == 1.5
        assert node.data == {"group": "a"}

    def test_frozen(self):
        node = PositionedNode("n", 0, 0)
        with pytest.raises(AttributeError):
            node.x = 5

    def test_data_ignored_in_equality(self):
        assert PositionedNode("n", 0, 0, data={"a": 1}) == PositionedNode("n", 0, 0)

    def test_as_positioned_node_rejects_other(self):
        with pytest.raises(TypeError):
            as_positioned_node((1, 2))


class TestBoundingVolume:
    """Test bounding volume operations."""

    def test_normalized(self):
        volume = BoundingVolume(10, 0, 5, -5, 3, 1).normalized()
        assert volume == BoundingVolume(0, 10, -5, 5, 1, 3)

    def test_contains_inclusive(self):
        volume = BoundingVolume(0, 10, 0, 10)
        assert volume.contains((10, 10))
        assert not volume.contains((10.01, 5))

    def test_intersects(self):
        a = BoundingVolume(0, 10, 0, 10)
        assert a.intersects(BoundingVolume(10, 20, 5, 6))
        assert not a.intersects(BoundingVolume(11, 20, 5, 6))
        # 2D volume against a box: only shared axes count
        assert a.intersects(BoundingVolume(5, 6, 5, 6, 100, 200))

    @pytest.mark.parametrize("volume, count", [
        (BoundingVolume(0, 8, 0, 8), 4),
        (BoundingVolume(0, 8, 0, 8, 0, 8), 8),
    ])
    def test_subdivide_matches_child_slot(self, volume, count):
        children = volume.subdivide()
        assert len(children) == count
        rng = np.random.default_rng(3)
        coords = rng.uniform(0, 8, size=(50, volume.dimensions))
        for point, slot in zip(coords, volume.child_slot(coords)):
            assert children[slot].contains(point)

    def test_from_points_padding(self):
        coords = np.array([[0.0, 0.0], [100.0, 50.0]])
        volume = BoundingVolume.from_points(coords)
        assert volume == BoundingVolume(-20, 120, -20, 70)
        assert BoundingVolume.from_points(coords, padding=0) == BoundingVolume(0, 100, 0, 50)

    def test_clamp(self):
        volume = BoundingVolume(0, 10, 0, 10)
        clamped = volume.clamp(np.array([[-5.0, 5.0], [20.0, 11.0]]))
        np.testing.assert_allclose(clamped, [[0, 5], [10, 10]])

    def test_distance_squared(self):
        volume = BoundingVolume(0, 10, 0, 10)
        assert volume.distance_squared_to(np.array([5.0, 5.0])) == 0.0
        assert volume.distance_squared_to(np.array([13.0, 14.0])) == pytest.approx(25.0)

    def test_depth_helpers(self):
        volume = BoundingVolume(0, 1, 0, 1)
        assert volume.with_depth(0, 4).is_3d
        assert not volume.with_depth(0, 4).flattened().is_3d
        assert volume.expanded(1) == BoundingVolume(-1, 2, -1, 2)
        assert volume.center == Point(0.5, 0.5)


class TestRegions:
    """Test query region shapes."""

    def test_rectangle_negative_extent(self):
        assert Rectangle(10, 10, -10, -5).to_volume() == BoundingVolume(0, 10, 5, 10)

    def test_box_volume(self):
        assert Box(0, 0, 0, 1, 2, 3).to_volume() == BoundingVolume(0, 1, 0, 2, 0, 3)

    def test_from_center(self):
        assert Rectangle.from_center((5, 5), 4, 2) == Rectangle(3, 4, 4, 2)
        assert Box.from_center((0, 0), 2, 2, 2) == Box(-1, -1, -1, 2, 2, 2)
        assert math.isclose(Rectangle.from_center((0, 0), 1, 1).x, -0.5)
