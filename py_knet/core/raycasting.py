"""
Ray geometry used by spatial index ray queries.

All helpers work on numpy vectors of matching dimensionality (2 or 3).
Directions passed in are expected to be unit length; ``normalize`` produces
them and reports zero-length input as None.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .geometry import Intersection, Point, PointLike, Ray, as_point


def normalize(vector: np.ndarray) -> Optional[np.ndarray]:
    """Unit vector along ``vector``, or None when its length is 0."""
    length = float(np.linalg.norm(vector))
    if length == 0 or not np.isfinite(length):
        return None
    return vector / length


def ray_arrays(ray: Ray, dimensions: int) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    Origin and unit direction of ``ray`` in ``dimensions`` axes.

    A 2D ray cast into 3D lies on the ``z=0`` plane; a 3D ray cast into 2D
    is projected onto XY.

    Returns:
        ``(origin, direction)``, or None when the direction has no length
        in the requested dimensions
    """
    origin = as_point(ray.origin).to_array(dimensions)
    direction = normalize(as_point(ray.direction).to_array(dimensions))
    if direction is None:
        return None
    return origin, direction


def ray_volume_interval(
    origin: np.ndarray,
    direction: np.ndarray,
    lower: np.ndarray,
    upper: np.ndarray,
) -> Optional[Tuple[float, float]]:
    """
    Slab test of a ray against an axis-aligned volume.

    Args:
        origin: Ray origin
        direction: Ray direction (need not be unit length)
        lower: Volume minimum corner
        upper: Volume maximum corner

    Returns:
        ``(t_enter, t_exit)`` clipped to ``t >= 0``, or None when the ray
        misses the volume or the volume lies entirely behind the origin
    """
    t_min, t_max = 0.0, np.inf
    for axis in range(len(origin)):
        d = direction[axis]
        if d == 0:
            # Parallel to this slab: inside it or never
            if origin[axis] < lower[axis] or origin[axis] > upper[axis]:
                return None
            continue
        t1 = (lower[axis] - origin[axis]) / d
        t2 = (upper[axis] - origin[axis]) / d
        if t1 > t2:
            t1, t2 = t2, t1
        t_min = max(t_min, t1)
        t_max = min(t_max, t2)
        if t_min > t_max:
            return None
    return float(t_min), float(t_max)


def point_ray_offset(
    point: np.ndarray, origin: np.ndarray, direction: np.ndarray
) -> Tuple[float, np.ndarray, float]:
    """
    Project ``point`` onto the ray's line.

    Args:
        point: Point to project
        origin: Ray origin
        direction: Unit ray direction

    Returns:
        ``(t, closest, offset)``: parametric distance along the ray (negative
        when behind the origin), the closest point on the line, and the
        perpendicular distance from ``point`` to it
    """
    t = float(np.dot(point - origin, direction))
    closest = origin + direction * t
    offset = float(np.linalg.norm(point - closest))
    return t, closest, offset


def ray_from_points(start: PointLike, end: PointLike) -> Ray:
    """Ray from ``start`` pointing at ``end``."""
    a, b = as_point(start), as_point(end)
    if a.is_3d or b.is_3d:
        a, b = a.as_3d(), b.as_3d()
        return Ray(a, Point(b.x - a.x, b.y - a.y, b.z - a.z))
    return Ray(a, Point(b.x - a.x, b.y - a.y))


def closest_intersection(intersections: Iterable[Intersection]) -> Optional[Intersection]:
    return min(intersections, key=lambda hit: hit.distance, default=None)


def filter_intersections_by_distance(
    intersections: Sequence[Intersection], max_distance: float
) -> List[Intersection]:
    """Hits no farther than ``max_distance`` along the ray, order preserved."""
    return [hit for hit in intersections if hit.distance <= max_distance]
