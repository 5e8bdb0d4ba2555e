"""
Geometry primitives shared by the optimizer and the spatial index.

Points carry an optional ``z``: ``None`` means the point is 2D. Bounding
volumes follow the same rule with ``min_z``/``max_z``.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

import numpy as np


class Point(NamedTuple):
    """A 2D or 3D point (also used for direction vectors)."""
    x: float
    y: float
    z: Optional[float] = None

    @property
    def is_3d(self) -> bool:
        return self.z is not None

    def as_3d(self) -> "Point":
        """Lift to 3D, placing 2D points on the ``z=0`` plane."""
        return Point(self.x, self.y, 0.0 if self.z is None else self.z)

    def to_array(self, dimensions: int) -> np.ndarray:
        if dimensions == 3:
            return np.array([self.x, self.y, 0.0 if self.z is None else self.z], dtype=float)
        return np.array([self.x, self.y], dtype=float)


PointLike = Union[Point, Tuple[float, ...], List[float], Mapping[str, Any], np.ndarray]


def _valid_z(z: Any) -> Optional[float]:
    if z is None:
        return None
    z = float(z)
    return None if math.isnan(z) else z


def as_point(value: Any) -> Point:
    """
    Coerce point-like input to a ``Point``.

    Accepts ``Point``, ``PositionedNode``, ``(x, y[, z])`` sequences, numpy
    arrays and mappings with ``x``/``y``/``z`` keys. A NaN ``z`` is treated
    as absent.
    """
    if isinstance(value, Point):
        return Point(float(value.x), float(value.y), _valid_z(value.z))
    if isinstance(value, PositionedNode):
        return value.point
    if isinstance(value, Mapping):
        return Point(float(value["x"]), float(value["y"]), _valid_z(value.get("z")))
    coords = list(value)
    if len(coords) not in (2, 3):
        raise ValueError(f"Expected 2 or 3 coordinates, got {len(coords)}")
    z = _valid_z(coords[2]) if len(coords) == 3 else None
    return Point(float(coords[0]), float(coords[1]), z)


@dataclass(frozen=True)
class PositionedNode:
    """A node with a fixed position, as produced by a layout stage."""
    id: str
    x: float
    y: float
    z: Optional[float] = None
    data: Optional[Dict[str, Any]] = field(default=None, compare=False, hash=False)

    @property
    def point(self) -> Point:
        return Point(self.x, self.y, _valid_z(self.z))

    @property
    def is_3d(self) -> bool:
        return _valid_z(self.z) is not None

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any]) -> "PositionedNode":
        """Build from a ``{"id", "x", "y", "z"?}`` mapping; extra keys go to ``data``."""
        extra = {k: v for k, v in value.items() if k not in ("id", "x", "y", "z")}
        return cls(
            id=str(value["id"]),
            x=float(value["x"]),
            y=float(value["y"]),
            z=_valid_z(value.get("z")),
            data=extra or None,
        )


def as_positioned_node(value: Any) -> PositionedNode:
    if isinstance(value, PositionedNode):
        return value
    if isinstance(value, Mapping):
        return PositionedNode.from_mapping(value)
    raise TypeError(f"Cannot interpret {type(value).__name__} as a positioned node")


@dataclass(frozen=True)
class BoundingVolume:
    """Axis-aligned rectangle (2D) or box (3D), bounds inclusive."""
    min_x: float
    max_x: float
    min_y: float
    max_y: float
    min_z: Optional[float] = None
    max_z: Optional[float] = None

    @property
    def is_3d(self) -> bool:
        return self.min_z is not None and self.max_z is not None

    @property
    def dimensions(self) -> int:
        return 3 if self.is_3d else 2

    @property
    def center(self) -> Point:
        z = (self.min_z + self.max_z) / 2 if self.is_3d else None
        return Point((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2, z)

    def lower(self) -> np.ndarray:
        if self.is_3d:
            return np.array([self.min_x, self.min_y, self.min_z], dtype=float)
        return np.array([self.min_x, self.min_y], dtype=float)

    def upper(self) -> np.ndarray:
        if self.is_3d:
            return np.array([self.max_x, self.max_y, self.max_z], dtype=float)
        return np.array([self.max_x, self.max_y], dtype=float)

    @classmethod
    def from_arrays(cls, lower: np.ndarray, upper: np.ndarray) -> "BoundingVolume":
        if len(lower) == 3:
            return cls(float(lower[0]), float(upper[0]), float(lower[1]), float(upper[1]),
                       float(lower[2]), float(upper[2]))
        return cls(float(lower[0]), float(upper[0]), float(lower[1]), float(upper[1]))

    @classmethod
    def from_points(cls, coords: np.ndarray, padding: Optional[float] = None) -> "BoundingVolume":
        """
        Smallest volume containing ``coords`` (shape ``(n, d)``).

        Args:
            coords: Point coordinates
            padding: Margin added on every side. When None, uses
                ``max(extent) * 0.1 + 10`` so points never sit on the root edge.

        Returns:
            BoundingVolume covering all points
        """
        lower = coords.min(axis=0)
        upper = coords.max(axis=0)
        if padding is None:
            padding = float(np.max(upper - lower)) * 0.1 + 10
        return cls.from_arrays(lower - padding, upper + padding)

    def normalized(self) -> "BoundingVolume":
        """Swap any inverted axis so every min is <= its max."""
        lx, ux = sorted((self.min_x, self.max_x))
        ly, uy = sorted((self.min_y, self.max_y))
        if self.is_3d:
            lz, uz = sorted((self.min_z, self.max_z))
            return BoundingVolume(lx, ux, ly, uy, lz, uz)
        return BoundingVolume(lx, ux, ly, uy)

    def with_depth(self, min_z: float, max_z: float) -> "BoundingVolume":
        return BoundingVolume(self.min_x, self.max_x, self.min_y, self.max_y, min_z, max_z)

    def flattened(self) -> "BoundingVolume":
        return BoundingVolume(self.min_x, self.max_x, self.min_y, self.max_y)

    def expanded(self, margin: float) -> "BoundingVolume":
        return BoundingVolume.from_arrays(self.lower() - margin, self.upper() + margin)

    def contains(self, point: PointLike) -> bool:
        p = as_point(point).to_array(self.dimensions)
        return bool(np.all(p >= self.lower()) and np.all(p <= self.upper()))

    def intersects(self, other: "BoundingVolume") -> bool:
        """Overlap test on the axes both volumes share (touching counts)."""
        d = min(self.dimensions, other.dimensions)
        return bool(
            np.all(self.lower()[:d] <= other.upper()[:d])
            and np.all(other.lower()[:d] <= self.upper()[:d])
        )

    def clamp(self, coords: np.ndarray) -> np.ndarray:
        """Clamp ``(n, d)`` coordinates into the volume."""
        d = coords.shape[1]
        return np.clip(coords, self.lower()[:d], self.upper()[:d])

    def distance_squared_to(self, point: np.ndarray) -> float:
        """Squared distance from ``point`` to the nearest point of the volume (0 inside)."""
        d = len(point)
        closest = np.clip(point, self.lower()[:d], self.upper()[:d])
        delta = point - closest
        return float(np.dot(delta, delta))

    def subdivide(self) -> List["BoundingVolume"]:
        """
        Split into 2^d equal children.

        Child ``k`` takes the upper half of axis ``a`` when bit ``a`` of ``k``
        is set, which matches how ``child_slot`` assigns points.
        """
        lower, upper = self.lower(), self.upper()
        mid = (lower + upper) / 2
        dims = len(lower)
        children = []
        for k in range(2 ** dims):
            lo = lower.copy()
            hi = mid.copy()
            for axis in range(dims):
                if k >> axis & 1:
                    lo[axis] = mid[axis]
                    hi[axis] = upper[axis]
            children.append(BoundingVolume.from_arrays(lo, hi))
        return children

    def child_slot(self, coords: np.ndarray) -> np.ndarray:
        """Child index (see ``subdivide``) for each row of ``coords``."""
        mid = (self.lower() + self.upper()) / 2
        upper_half = coords >= mid
        weights = 1 << np.arange(coords.shape[1])
        return (upper_half * weights).sum(axis=1)

    def to_data(self) -> Dict[str, Optional[float]]:
        return {
            "min_x": self.min_x, "max_x": self.max_x,
            "min_y": self.min_y, "max_y": self.max_y,
            "min_z": self.min_z, "max_z": self.max_z,
        }


class Rectangle(NamedTuple):
    """2D query region given by corner and size."""
    x: float
    y: float
    width: float
    height: float

    def to_volume(self) -> BoundingVolume:
        return BoundingVolume(self.x, self.x + self.width, self.y, self.y + self.height).normalized()

    @classmethod
    def from_center(cls, center: PointLike, width: float, height: float) -> "Rectangle":
        c = as_point(center)
        return cls(c.x - width / 2, c.y - height / 2, width, height)


class Box(NamedTuple):
    """3D query region given by corner and size."""
    x: float
    y: float
    z: float
    width: float
    height: float
    depth: float

    def to_volume(self) -> BoundingVolume:
        return BoundingVolume(
            self.x, self.x + self.width,
            self.y, self.y + self.height,
            self.z, self.z + self.depth,
        ).normalized()

    @classmethod
    def from_center(cls, center: PointLike, width: float, height: float, depth: float) -> "Box":
        c = as_point(center).as_3d()
        return cls(c.x - width / 2, c.y - height / 2, c.z - depth / 2, width, height, depth)


class Ray(NamedTuple):
    """Ray from ``origin`` along ``direction`` (any non-zero length)."""
    origin: Point
    direction: Point

    @property
    def is_3d(self) -> bool:
        return self.origin.z is not None and self.direction.z is not None


@dataclass(frozen=True)
class Intersection:
    """A node hit by a ray: closest ray point, distance along the ray, and offset from it."""
    node: PositionedNode
    point: Point
    distance: float
    offset: float = 0.0


@dataclass(frozen=True)
class NodeDistance:
    node: PositionedNode
    distance: float


def distance(a: PointLike, b: PointLike) -> float:
    """Euclidean distance; a missing ``z`` on either side counts as 0."""
    pa, pb = as_point(a).as_3d(), as_point(b).as_3d()
    return math.sqrt((pa.x - pb.x) ** 2 + (pa.y - pb.y) ** 2 + (pa.z - pb.z) ** 2)


def coords_array(points: Iterable[PointLike], dimensions: int) -> np.ndarray:
    """Stack points into an ``(n, dimensions)`` float array."""
    rows = [as_point(p).to_array(dimensions) for p in points]
    if not rows:
        return np.zeros((0, dimensions), dtype=float)
    return np.vstack(rows)
