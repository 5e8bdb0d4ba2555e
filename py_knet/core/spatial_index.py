"""
Quadtree/octree spatial index over a static snapshot of positioned nodes.

The tree is stored as a flat arena: a list of ``IndexNode`` records where the
2^d children of an internal node occupy consecutive slots starting at
``first_child``. Leaves hold indices into the index's node list, and node
coordinates live in one numpy array so leaf tests are vectorized.

The index is 2D (quadtree) or 3D (octree), decided at build time: it is 3D
when any node carries a ``z``. Queries in the other dimensionality are
adapted rather than rejected.
"""

import heapq
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
import structlog

from .geometry import (
    BoundingVolume,
    Box,
    Intersection,
    NodeDistance,
    Point,
    PointLike,
    PositionedNode,
    Ray,
    Rectangle,
    as_point,
    as_positioned_node,
)
from .raycasting import point_ray_offset, ray_arrays, ray_volume_interval
from ..config.index_presets import (
    IndexPreset,
    SpatialIndexConfig,
    get_preset,
    merge_config,
)

logger = structlog.get_logger()

Region = Union[Rectangle, Box, BoundingVolume]
ConfigLike = Union[SpatialIndexConfig, Mapping[str, Any], str, IndexPreset, None]


@dataclass
class IndexNode:
    """One quadtree/octree cell in the arena."""
    bounds: BoundingVolume
    depth: int
    items: List[int] = field(default_factory=list)
    first_child: int = -1

    @property
    def is_leaf(self) -> bool:
        return self.first_child < 0


@dataclass(frozen=True)
class IndexStatistics:
    node_count: int = 0
    build_time: float = 0.0
    max_depth: int = 0
    average_depth: float = 0.0
    leaf_count: int = 0
    tree_node_count: int = 0
    is_3d: bool = False


def _resolve_config(config: ConfigLike, base: Optional[SpatialIndexConfig] = None) -> SpatialIndexConfig:
    if isinstance(config, (str, IndexPreset)):
        return get_preset(config)
    return merge_config(base, config)


class SpatialIndex:
    """
    Spatial index answering point, region, ray and nearest-neighbor queries.

    Build once from a position snapshot, query many times, rebuild when
    positions change. Point and region query results are memoized in an
    LRU cache that is dropped on every build.
    """

    def __init__(self, config: ConfigLike = None):
        """
        Initialize an empty index.

        Args:
            config: ``SpatialIndexConfig``, a dict of overrides onto the
                defaults, or a preset name
        """
        self.config = _resolve_config(config)
        self._nodes: List[PositionedNode] = []
        self._coords = np.zeros((0, 2), dtype=float)
        self._arena: List[IndexNode] = []
        self._is_3d = False
        self._build_time = 0.0
        self._generation = 0
        self._cache: "OrderedDict[tuple, Tuple[int, ...]]" = OrderedDict()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def build(self, nodes: Iterable[Any]) -> None:
        """
        Build the tree from positioned nodes, replacing any previous content.

        Args:
            nodes: ``PositionedNode`` instances or ``{"id", "x", "y", "z"?}`` dicts
        """
        start = time.perf_counter()
        nodes = [as_positioned_node(node) for node in nodes]
        self.clear()

        if not nodes:
            logger.debug("Spatial index built empty")
            return

        self._nodes = nodes
        self._is_3d = any(node.is_3d for node in nodes)
        dims = self.dimensions
        self._coords = np.array([node.point.to_array(dims) for node in nodes], dtype=float)

        root = IndexNode(BoundingVolume.from_points(self._coords), 0, list(range(len(nodes))))
        self._arena = [root]
        self._subdivide()

        self._build_time = (time.perf_counter() - start) * 1000
        logger.info("Spatial index built",
                    node_count=len(nodes),
                    is_3d=self._is_3d,
                    tree_nodes=len(self._arena),
                    max_depth=max(cell.depth for cell in self._arena),
                    build_time_ms=round(self._build_time, 3))

    def _subdivide(self) -> None:
        """Split overfull cells until every leaf fits or sits at ``max_depth``."""
        capacity = self.config.max_nodes_per_leaf
        max_depth = self.config.max_depth
        stack = [0]

        while stack:
            index = stack.pop()
            cell = self._arena[index]
            if len(cell.items) <= capacity or cell.depth >= max_depth:
                continue

            items = np.asarray(cell.items)
            slots = cell.bounds.child_slot(self._coords[items])
            cell.first_child = len(self._arena)
            for slot, child_bounds in enumerate(cell.bounds.subdivide()):
                self._arena.append(
                    IndexNode(child_bounds, cell.depth + 1, items[slots == slot].tolist())
                )
                stack.append(len(self._arena) - 1)
            cell.items = []

    def clear(self) -> None:
        """Drop all nodes and the tree."""
        self._nodes = []
        self._coords = np.zeros((0, 2), dtype=float)
        self._arena = []
        self._is_3d = False
        self._build_time = 0.0
        self._generation += 1
        self._cache.clear()

    def rebuild(self, nodes: Optional[Iterable[Any]] = None, config: ConfigLike = None) -> None:
        """
        Rebuild, optionally with new nodes and/or new options.

        Args:
            nodes: New node snapshot; the current nodes when None
            config: Options to merge onto the current ones
        """
        if config is not None:
            self.config = _resolve_config(config, self.config)
        self.build(list(self._nodes) if nodes is None else nodes)

    def set_config(self, config: ConfigLike) -> None:
        """Validate and apply new options, rebuilding when the index holds nodes."""
        self.config = _resolve_config(config, self.config)
        if self._nodes:
            self.rebuild()
        else:
            self._cache.clear()

    def get_config(self) -> SpatialIndexConfig:
        return self.config.model_copy()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_point(self, point: PointLike, radius: float = 0.0) -> List[PositionedNode]:
        """
        Nodes within ``radius`` of ``point``, boundary inclusive.

        A negative radius is treated as 0. A 2D point on a 3D index is placed
        on ``z=0``; a 3D point on a 2D index ignores ``z``.
        """
        if self.is_empty:
            return []
        center = as_point(point).to_array(self.dimensions)
        radius = max(0.0, float(radius))
        key = ("point", *self._round(center), round(radius, 9))
        return self._cached(key, lambda: self._sphere_indices(center, radius))

    def query_exact_point(
        self, point: PointLike, tolerance: Optional[float] = None
    ) -> List[PositionedNode]:
        """Nodes at ``point`` within ``point_query_tolerance`` (or ``tolerance``)."""
        if tolerance is None:
            tolerance = self.config.point_query_tolerance
        return self.query_point(point, tolerance)

    def query_region(self, region: Region) -> List[PositionedNode]:
        """
        Nodes inside a Rectangle, Box or BoundingVolume, bounds inclusive.

        Inverted extents are normalized. A Rectangle on a 3D index covers all
        of ``z``; a Box on a 2D index ignores ``z``.
        """
        if self.is_empty:
            return []
        lower, upper = self._region_arrays(region)
        key = ("region", *self._round(lower), *self._round(upper))
        return self._cached(key, lambda: self._box_indices(lower, upper))

    def query_cylinder(
        self, center: PointLike, radius: float, min_z: float, max_z: float
    ) -> List[PositionedNode]:
        """
        Nodes within ``radius`` of ``center`` in XY and between ``min_z`` and
        ``max_z``. On a 2D index this is a circle query.
        """
        if self.is_empty:
            return []
        if not self._is_3d:
            return self.query_point(as_point(center).to_array(2), radius)

        c = as_point(center).to_array(2)
        r2 = max(0.0, float(radius)) ** 2
        z_low, z_high = sorted((float(min_z), float(max_z)))

        def cell_hit(bounds: BoundingVolume) -> bool:
            if bounds.max_z < z_low or bounds.min_z > z_high:
                return False
            flat = bounds.flattened()
            return flat.distance_squared_to(c) <= r2

        def item_hit(coords: np.ndarray) -> np.ndarray:
            d2 = ((coords[:, :2] - c) ** 2).sum(axis=1)
            return (d2 <= r2) & (coords[:, 2] >= z_low) & (coords[:, 2] <= z_high)

        return [self._nodes[i] for i in self._collect(cell_hit, item_hit)]

    def query_ray(self, ray: Ray) -> List[Intersection]:
        """
        Nodes within ``ray_intersection_tolerance`` of a ray, nearest first.

        Nodes behind the origin are skipped. A zero-length direction hits
        nothing. 2D rays on a 3D index travel in the ``z=0`` plane; 3D rays on
        a 2D index are projected onto XY.
        """
        if self.is_empty:
            return []
        arrays = ray_arrays(ray, self.dimensions)
        if arrays is None:
            return []
        origin, direction = arrays
        tolerance = self.config.ray_intersection_tolerance

        hits = []
        stack = [0]
        while stack:
            cell = self._arena[stack.pop()]
            bounds = cell.bounds
            if ray_volume_interval(origin, direction,
                                   bounds.lower() - tolerance, bounds.upper() + tolerance) is None:
                continue
            if not cell.is_leaf:
                stack.extend(range(cell.first_child, cell.first_child + self._fanout))
                continue
            for i in cell.items:
                t, closest, offset = point_ray_offset(self._coords[i], origin, direction)
                if t < 0 or offset > tolerance:
                    continue
                hits.append(Intersection(self._nodes[i], self._to_point(closest), t, offset))

        hits.sort(key=lambda hit: hit.distance)
        return hits

    def find_nearest(
        self, point: PointLike, max_distance: Optional[float] = None
    ) -> Optional[PositionedNode]:
        """
        Closest node to ``point``.

        Best-first search: cells and nodes share one priority queue ordered by
        squared distance, so the first node popped is the nearest.

        Args:
            point: Query point
            max_distance: Ignore nodes farther than this (no limit when None)

        Returns:
            The nearest node, or None when the index is empty or nothing lies
            within ``max_distance``
        """
        if self.is_empty:
            return None
        target = as_point(point).to_array(self.dimensions)
        limit = np.inf if max_distance is None else max(0.0, float(max_distance)) ** 2

        counter = 0
        queue: List[Tuple[float, int, bool, int]] = [
            (self._arena[0].bounds.distance_squared_to(target), counter, False, 0)
        ]
        while queue:
            d2, _, is_item, index = heapq.heappop(queue)
            if d2 > limit:
                break
            if is_item:
                return self._nodes[index]

            cell = self._arena[index]
            if cell.is_leaf:
                if not cell.items:
                    continue
                items = np.asarray(cell.items)
                distances = ((self._coords[items] - target) ** 2).sum(axis=1)
                for item, item_d2 in zip(items.tolist(), distances.tolist()):
                    counter += 1
                    heapq.heappush(queue, (item_d2, counter, True, item))
            else:
                for child in range(cell.first_child, cell.first_child + self._fanout):
                    counter += 1
                    child_d2 = self._arena[child].bounds.distance_squared_to(target)
                    heapq.heappush(queue, (child_d2, counter, False, child))
        return None

    def get_nodes_within_distance(
        self, point: PointLike, max_distance: float
    ) -> List[NodeDistance]:
        """Nodes within ``max_distance`` of ``point`` with their distances, nearest first."""
        if self.is_empty:
            return []
        center = as_point(point).to_array(self.dimensions)
        indices = self._sphere_indices(center, max(0.0, float(max_distance)))
        if not indices:
            return []
        distances = np.linalg.norm(self._coords[list(indices)] - center, axis=1)
        results = [NodeDistance(self._nodes[i], float(d)) for i, d in zip(indices, distances)]
        results.sort(key=lambda item: item.distance)
        return results

    def get_leaf_nodes(self, point: PointLike) -> List[PositionedNode]:
        """Nodes stored in the leaf cell that contains ``point``."""
        if self.is_empty:
            return []
        p = as_point(point).to_array(self.dimensions)
        cell = self._arena[0]
        if not cell.bounds.contains(p):
            return []
        while not cell.is_leaf:
            slot = int(cell.bounds.child_slot(p[None, :])[0])
            cell = self._arena[cell.first_child + slot]
        return [self._nodes[i] for i in cell.items]

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_3d(self) -> bool:
        return self._is_3d

    @property
    def is_empty(self) -> bool:
        return not self._arena

    @property
    def dimensions(self) -> int:
        return 3 if self._is_3d else 2

    def get_nodes(self) -> List[PositionedNode]:
        """Indexed nodes in build order."""
        return list(self._nodes)

    def get_all_nodes(self) -> List[PositionedNode]:
        """Indexed nodes in tree order (leaf by leaf)."""
        return [self._nodes[i] for cell in self._arena for i in cell.items]

    def get_bounds(self) -> Optional[BoundingVolume]:
        return self._arena[0].bounds if self._arena else None

    def get_statistics(self) -> IndexStatistics:
        if not self._arena:
            return IndexStatistics(build_time=self._build_time)
        leaf_depths = [cell.depth for cell in self._arena if cell.is_leaf]
        return IndexStatistics(
            node_count=len(self._nodes),
            build_time=self._build_time,
            max_depth=max(cell.depth for cell in self._arena),
            average_depth=float(np.mean(leaf_depths)),
            leaf_count=len(leaf_depths),
            tree_node_count=len(self._arena),
            is_3d=self._is_3d,
        )

    def to_data(self) -> List[Dict[str, Any]]:
        """Serialize the arena; leaf items are given as node ids."""
        return [
            {
                "bounds": cell.bounds.to_data(),
                "depth": cell.depth,
                "first_child": cell.first_child,
                "items": [self._nodes[i].id for i in cell.items],
            }
            for cell in self._arena
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @property
    def _fanout(self) -> int:
        return 2 ** self.dimensions

    def _collect(
        self,
        cell_hit: Callable[[BoundingVolume], bool],
        item_hit: Callable[[np.ndarray], np.ndarray],
    ) -> Tuple[int, ...]:
        """Indices of nodes passing ``item_hit`` in cells passing ``cell_hit``."""
        found: List[int] = []
        stack = [0]
        while stack:
            cell = self._arena[stack.pop()]
            if not cell_hit(cell.bounds):
                continue
            if not cell.is_leaf:
                stack.extend(range(cell.first_child, cell.first_child + self._fanout))
            elif cell.items:
                items = np.asarray(cell.items)
                found.extend(items[item_hit(self._coords[items])].tolist())
        return tuple(found)

    def _sphere_indices(self, center: np.ndarray, radius: float) -> Tuple[int, ...]:
        r2 = radius * radius
        return self._collect(
            lambda bounds: bounds.distance_squared_to(center) <= r2,
            lambda coords: ((coords - center) ** 2).sum(axis=1) <= r2,
        )

    def _box_indices(self, lower: np.ndarray, upper: np.ndarray) -> Tuple[int, ...]:
        return self._collect(
            lambda bounds: bool(np.all(bounds.lower() <= upper) and np.all(lower <= bounds.upper())),
            lambda coords: np.all((coords >= lower) & (coords <= upper), axis=1),
        )

    def _region_arrays(self, region: Region) -> Tuple[np.ndarray, np.ndarray]:
        if isinstance(region, (Rectangle, Box)):
            volume = region.to_volume()
        elif isinstance(region, BoundingVolume):
            volume = region.normalized()
        else:
            raise TypeError(f"Unsupported query region: {type(region).__name__}")

        lower, upper = volume.lower(), volume.upper()
        if self._is_3d and not volume.is_3d:
            lower = np.append(lower, -np.inf)
            upper = np.append(upper, np.inf)
        return lower[:self.dimensions], upper[:self.dimensions]

    def _cached(self, key: tuple, compute: Callable[[], Tuple[int, ...]]) -> List[PositionedNode]:
        """LRU-memoized query by index tuple; cache entries are tied to the build."""
        size = self.config.cache_size
        if not self.config.enable_caching or size <= 0:
            return [self._nodes[i] for i in compute()]

        key = (self._generation, *key)
        indices = self._cache.get(key)
        if indices is None:
            indices = compute()
            self._cache[key] = indices
            while len(self._cache) > size:
                self._cache.popitem(last=False)
        else:
            self._cache.move_to_end(key)
        return [self._nodes[i] for i in indices]

    @staticmethod
    def _round(values: np.ndarray) -> Tuple[float, ...]:
        return tuple(round(float(v), 9) for v in values)

    def _to_point(self, coords: np.ndarray) -> Point:
        if self._is_3d:
            return Point(float(coords[0]), float(coords[1]), float(coords[2]))
        return Point(float(coords[0]), float(coords[1]))


class SpatialIndexFactory:
    """Shortcuts for indexes built from the named presets."""

    @staticmethod
    def create_fast() -> SpatialIndex:
        return SpatialIndex(get_preset(IndexPreset.FAST))

    @staticmethod
    def create_precise() -> SpatialIndex:
        return SpatialIndex(get_preset(IndexPreset.PRECISE))

    @staticmethod
    def create_balanced() -> SpatialIndex:
        return SpatialIndex(get_preset(IndexPreset.BALANCED))

    @staticmethod
    def create_memory_efficient() -> SpatialIndex:
        return SpatialIndex(get_preset(IndexPreset.MEMORY_EFFICIENT))


def create_index(preset: Union[str, IndexPreset, None] = None) -> SpatialIndex:
    """
    Create an empty index from a preset.

    Args:
        preset: Preset name; ``settings.default_index_preset`` when None

    Raises:
        ValueError: If the preset name is unknown
    """
    if preset is None:
        from ..config import settings

        preset = settings.default_index_preset
    return SpatialIndex(get_preset(preset))
