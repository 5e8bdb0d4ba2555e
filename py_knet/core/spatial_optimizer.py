"""
Similarity-driven layout optimization.

This module implements:
- Stress minimization that places nodes so their pairwise distances match
  the distances a similarity mapping asks for
- Convergence monitoring between successive position snapshots
- Layout stress as a quality metric, and a benchmark that ranks mappings by it
- A blending step for hybrid similarity + physics layouts
"""

import math
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field
from scipy.spatial.distance import pdist, squareform

from .geometry import BoundingVolume, Point, as_point, coords_array
from .similarity import extract_node_ids, get_similarity, similarity_array
from .similarity_mapping import (
    DEFAULT_MAPPING,
    SimilarityMapping,
    parse_mapping,
    target_distances,
)
from ..utils.random import make_prng

logger = structlog.get_logger()


class MismatchedLengthError(ValueError):
    """Position snapshots passed to convergence monitoring differ in length."""


class OptimizerConfig(BaseModel):
    """Layout optimization options."""

    model_config = ConfigDict(extra="forbid")

    max_iterations: int = Field(default=50, ge=0, description="Majorization iterations per run")
    learning_rate: float = Field(default=0.1, gt=0, description="Step scale for pair corrections")
    stability_threshold: float = Field(
        default=0.01, ge=0, description="Movement below which a node counts as stable"
    )
    convergence_ratio: float = Field(
        default=0.95, ge=0, le=1, description="Stable fraction required for convergence"
    )
    frame_time_ms: float = Field(
        default=16.67, ge=0, description="Time credited per convergence check"
    )
    seed: Optional[str] = Field(default=None, description="Seed for initial positions")


@dataclass
class LayoutConstraints:
    """Where and in how many dimensions to lay nodes out."""
    bounding_volume: Optional[BoundingVolume] = None
    dimensions: int = 2

    def __post_init__(self):
        if self.dimensions not in (2, 3):
            raise ValueError(f"dimensions must be 2 or 3, got {self.dimensions}")

    def resolve_volume(self) -> BoundingVolume:
        """Bounding volume for this run, normalized and matched to ``dimensions``."""
        from ..config import settings

        volume = self.bounding_volume
        if volume is None:
            volume = BoundingVolume(0.0, settings.layout_width, 0.0, settings.layout_height)
        volume = volume.normalized()
        if self.dimensions == 3 and not volume.is_3d:
            volume = volume.with_depth(0.0, settings.layout_depth)
        elif self.dimensions == 2 and volume.is_3d:
            volume = volume.flattened()
        return volume


@dataclass(frozen=True)
class ConvergenceMetrics:
    is_converged: bool = False
    stability_ratio: float = 0.0
    average_movement: float = 0.0
    max_movement: float = 0.0
    iteration_count: int = 0
    time_elapsed: float = 0.0


@dataclass(frozen=True)
class PositionDelta:
    dx: float
    dy: float
    dz: float
    magnitude: float


@dataclass(frozen=True)
class BenchmarkResult:
    """Quality of one mapping candidate on a similarity matrix."""
    name: str
    stress_score: float
    convergence_iterations: int
    quality_metric: float
    elapsed_ms: float = field(default=0.0, compare=False)


ConstraintsLike = Union[LayoutConstraints, Mapping[str, Any], None]


def as_layout_constraints(constraints: ConstraintsLike) -> LayoutConstraints:
    if constraints is None:
        return LayoutConstraints()
    if isinstance(constraints, LayoutConstraints):
        return constraints
    return LayoutConstraints(
        bounding_volume=constraints.get("bounding_volume"),
        dimensions=constraints.get("dimensions", 2),
    )


def _as_coords(positions) -> np.ndarray:
    """Positions as an ``(n, 3)`` array, 2D inputs placed on ``z=0``."""
    if isinstance(positions, np.ndarray):
        arr = np.asarray(positions, dtype=float).reshape(len(positions), -1)
        if arr.shape[1] == 2:
            arr = np.hstack([arr, np.zeros((len(arr), 1))])
        return arr
    return coords_array(positions, 3)


def _to_points(coords: np.ndarray, dimensions: int) -> List[Point]:
    if dimensions == 3:
        return [Point(float(x), float(y), float(z)) for x, y, z in coords]
    return [Point(float(x), float(y)) for x, y in coords]


class SpatialOptimizer:
    """
    Places nodes so that spatial distance reflects similarity.

    The optimizer holds a similarity mapping, its options, and the most
    recent convergence metrics. Nothing else persists between calls.
    """

    def __init__(
        self,
        mapping: Optional[Union[SimilarityMapping, Mapping[str, Any], str]] = None,
        config: Optional[OptimizerConfig] = None,
    ):
        """
        Initialize the optimizer.

        Args:
            mapping: Similarity-to-distance strategy (exponential by default)
            config: Optimization options
        """
        self.mapping = parse_mapping(mapping) if mapping is not None else DEFAULT_MAPPING
        self.config = config or OptimizerConfig()
        self.convergence_metrics = ConvergenceMetrics()

    def optimize_positions(
        self,
        similarities: Mapping[str, float],
        constraints: ConstraintsLike = None,
        node_ids: Optional[Sequence[str]] = None,
    ) -> List[Point]:
        """
        Lay out the nodes of a similarity matrix.

        Args:
            similarities: Pair key to similarity score
            constraints: Bounding volume and dimensionality (2D, 800x600 by default)
            node_ids: Optional fixed node order. Without it, nodes are taken in
                order of first appearance in the matrix keys.

        Returns:
            Positions parallel to the node id list
        """
        constraints = as_layout_constraints(constraints)
        ids = list(node_ids) if node_ids is not None else extract_node_ids(similarities)
        volume = constraints.resolve_volume()

        start = time.perf_counter()
        coords = self._initial_positions(len(ids), volume)
        coords = self._apply_similarity_optimization(coords, similarities, ids, volume)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info("Layout optimized",
                    nodes=len(ids),
                    dimensions=constraints.dimensions,
                    mapping=self.mapping.kind,
                    iterations=self.config.max_iterations,
                    elapsed_ms=round(elapsed_ms, 2))

        return _to_points(coords, constraints.dimensions)

    def monitor_convergence(self, positions, previous_positions) -> ConvergenceMetrics:
        """
        Measure movement between two snapshots of the same nodes.

        Each call counts as one iteration and credits ``frame_time_ms`` of
        elapsed time, regardless of wall-clock time.

        Args:
            positions: Current positions
            previous_positions: Positions from the previous step, same order

        Returns:
            Updated convergence metrics

        Raises:
            MismatchedLengthError: If the snapshots differ in length
        """
        if len(positions) != len(previous_positions):
            raise MismatchedLengthError(
                f"Position arrays must have same length for convergence monitoring "
                f"({len(positions)} != {len(previous_positions)})"
            )

        current = _as_coords(positions)
        previous = _as_coords(previous_positions)
        n = len(current)
        threshold = self.config.stability_threshold

        if n:
            movement = np.linalg.norm(current - previous, axis=1)
            average_movement = float(movement.mean())
            max_movement = float(movement.max())
            stability_ratio = float(np.count_nonzero(movement < threshold)) / n
        else:
            average_movement = max_movement = 0.0
            stability_ratio = 1.0

        previous_metrics = self.convergence_metrics
        self.convergence_metrics = ConvergenceMetrics(
            is_converged=bool(
                stability_ratio > self.config.convergence_ratio and max_movement < threshold
            ),
            stability_ratio=stability_ratio,
            average_movement=average_movement,
            max_movement=max_movement,
            iteration_count=previous_metrics.iteration_count + 1,
            time_elapsed=previous_metrics.time_elapsed + self.config.frame_time_ms,
        )
        return self.convergence_metrics

    def calculate_stress(
        self,
        similarities: Mapping[str, float],
        positions,
        node_ids: Sequence[str],
    ) -> float:
        """
        Root-mean-square gap between target and actual pair distances.

        Only pairs with a similarity entry contribute; pairs whose index is
        past the end of ``positions`` are skipped.

        Returns:
            0 when every pair sits exactly at its target distance (or there are
            no pairs), larger as the layout deviates
        """
        coords = _as_coords(positions)
        limit = min(len(node_ids), len(coords))
        rows, cols, sims = [], [], []
        for i in range(limit):
            for j in range(i + 1, limit):
                similarity = get_similarity(similarities, node_ids[i], node_ids[j])
                if similarity is None:
                    continue
                rows.append(i)
                cols.append(j)
                sims.append(similarity)

        if not sims:
            return 0.0

        rows, cols = np.asarray(rows), np.asarray(cols)
        targets = target_distances(np.asarray(sims, dtype=float), self.mapping)
        actual = np.linalg.norm(coords[rows] - coords[cols], axis=1)
        return float(np.sqrt(np.mean((targets - actual) ** 2)))

    def benchmark_mapping_algorithms(
        self,
        similarities: Mapping[str, float],
        candidates: Iterable[Any],
    ) -> List[BenchmarkResult]:
        """
        Run one 2D layout per candidate mapping and rank them.

        Args:
            similarities: Matrix to lay out
            candidates: ``(name, mapping)`` pairs or ``{"name", "mapping"}`` dicts;
                mappings may be models, dicts or strategy names

        Returns:
            Results sorted by ``1 / (1 + stress + ms / 1000)``, best first
        """
        node_ids = extract_node_ids(similarities)
        original_mapping = self.mapping
        results = []

        try:
            for candidate in candidates:
                if isinstance(candidate, Mapping):
                    name, mapping = candidate["name"], candidate["mapping"]
                else:
                    name, mapping = candidate
                self.set_similarity_mapping(mapping)

                start = time.perf_counter()
                positions = self.optimize_positions(
                    similarities, LayoutConstraints(dimensions=2), node_ids=node_ids
                )
                elapsed_ms = (time.perf_counter() - start) * 1000

                stress = self.calculate_stress(similarities, positions, node_ids)
                quality = 1 / (1 + stress + elapsed_ms / 1000)
                frame = self.config.frame_time_ms
                results.append(BenchmarkResult(
                    name=name,
                    stress_score=stress,
                    convergence_iterations=math.ceil(elapsed_ms / frame) if frame > 0 else 0,
                    quality_metric=quality,
                    elapsed_ms=elapsed_ms,
                ))
        finally:
            self.mapping = original_mapping

        results.sort(key=lambda r: r.quality_metric, reverse=True)
        logger.info("Mapping benchmark complete",
                    candidates=len(results),
                    best=results[0].name if results else None)
        return results

    def apply_force_integration(
        self,
        similarities: Mapping[str, float],
        external_forces: Sequence[Any],
        dimensions: int = 2,
        node_ids: Optional[Sequence[str]] = None,
    ) -> List[Point]:
        """
        Blend similarity-weighted centroids with external force vectors.

        Every node gets a random seed position. A node's result is the
        similarity-weighted mean of the seed positions of nodes it shares
        similarity > 0.1 with (its own seed when there are none), nudged by
        10% of its external force.

        Args:
            similarities: Pair key to similarity score
            external_forces: Force vectors parallel to the node list, e.g. from
                a physics step; missing entries and components count as 0
            dimensions: 2 or 3
            node_ids: Optional fixed node order

        Returns:
            Positions parallel to the node id list
        """
        ids = list(node_ids) if node_ids is not None else extract_node_ids(similarities)
        dims = LayoutConstraints(dimensions=dimensions).dimensions
        n = len(ids)
        if n == 0:
            return []

        prng = make_prng(self.config.seed)
        extent = np.array([400.0, 300.0, 200.0][:dims])
        seeds = np.array([[prng.random() * e for e in extent] for _ in range(n)])

        dense = similarity_array(similarities, ids)
        weights = np.where(dense > 0.1, dense, 0.0)
        weight_sum = weights.sum(axis=1)
        centroids = seeds.copy()
        weighted = weight_sum > 0
        centroids[weighted] = (weights[weighted] @ seeds) / weight_sum[weighted, None]

        forces = np.zeros((n, dims))
        for i, force in enumerate(list(external_forces)[:n]):
            forces[i] = self._force_vector(force, dims)

        return _to_points(centroids + forces * 0.1, dims)

    def set_similarity_mapping(self, mapping) -> None:
        """Replace the similarity-to-distance strategy."""
        self.mapping = parse_mapping(mapping)

    def get_mapping_config(self) -> SimilarityMapping:
        return self.mapping

    def get_convergence_state(self) -> ConvergenceMetrics:
        return self.convergence_metrics

    def reset_convergence(self) -> None:
        self.convergence_metrics = ConvergenceMetrics()

    @staticmethod
    def calculate_position_delta(current, previous) -> PositionDelta:
        """Per-axis difference between two positions, missing ``z`` as 0."""
        a, b = as_point(current).as_3d(), as_point(previous).as_3d()
        dx, dy, dz = a.x - b.x, a.y - b.y, a.z - b.z
        return PositionDelta(dx, dy, dz, math.sqrt(dx * dx + dy * dy + dz * dz))

    def _initial_positions(self, n: int, volume: BoundingVolume) -> np.ndarray:
        """Uniform random positions inside ``volume``, one row per node."""
        prng = make_prng(self.config.seed)
        lower, upper = volume.lower(), volume.upper()
        return np.array(
            [[prng.uniform(lo, hi) for lo, hi in zip(lower, upper)] for _ in range(n)],
            dtype=float,
        ).reshape(n, len(lower))

    def _apply_similarity_optimization(
        self,
        coords: np.ndarray,
        similarities: Mapping[str, float],
        node_ids: Sequence[str],
        volume: BoundingVolume,
    ) -> np.ndarray:
        """
        Parallel stress-minimization updates.

        Every unordered pair pulls together when farther apart than its
        target and pushes apart when closer. Corrections for all pairs are
        accumulated before any node moves, then positions are clamped back
        into ``volume``.
        """
        n = len(node_ids)
        if n < 2:
            return volume.clamp(coords)

        # Missing pairs have similarity 0, i.e. the mapping's largest distance
        targets = target_distances(similarity_array(similarities, node_ids), self.mapping)
        learning_rate = self.config.learning_rate

        for _ in range(self.config.max_iterations):
            current = squareform(pdist(coords))
            coefficients = (current - targets) * learning_rate / np.maximum(current, 1.0)
            np.fill_diagonal(coefficients, 0.0)

            # sum_j c_ij * (p_j - p_i)
            forces = coefficients @ coords - coefficients.sum(axis=1)[:, None] * coords
            coords = volume.clamp(coords + forces)

        return coords

    @staticmethod
    def _force_vector(force: Any, dims: int) -> np.ndarray:
        if force is None:
            return np.zeros(dims)
        if isinstance(force, Mapping):
            values = [force.get(axis) or 0.0 for axis in ("x", "y", "z")]
        else:
            values = list(force) + [0.0, 0.0, 0.0]
            values = [v if v is not None else 0.0 for v in values[:3]]
        return np.array(values[:dims], dtype=float)
