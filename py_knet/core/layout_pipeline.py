"""
End-to-end layout: similarity matrix to positions to a queryable index.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Union

import structlog

from .geometry import Point, PositionedNode
from .similarity import extract_node_ids
from .spatial_index import SpatialIndex, create_index
from .spatial_optimizer import (
    ConstraintsLike,
    ConvergenceMetrics,
    OptimizerConfig,
    SpatialOptimizer,
    as_layout_constraints,
)
from ..config.index_presets import IndexPreset
from ..utils.random import get_prng

logger = structlog.get_logger()


@dataclass
class LayoutResult:
    """Positions for every node plus an index built over them."""
    node_ids: List[str]
    positions: List[Point]
    nodes: List[PositionedNode]
    index: SpatialIndex
    stress: float
    convergence: ConvergenceMetrics


def layout_graph(
    similarities: Mapping[str, float],
    node_ids: Optional[Sequence[str]] = None,
    mapping: Any = None,
    constraints: ConstraintsLike = None,
    optimizer_config: Optional[OptimizerConfig] = None,
    index_preset: Union[str, IndexPreset, None] = "balanced",
) -> LayoutResult:
    """
    Lay out a similarity graph and index the result.

    The optimizer runs twice with one seed: once with no iterations to get
    the starting positions, once in full. Convergence is measured between
    the two.

    Args:
        similarities: Pair key to similarity score
        node_ids: Optional fixed node order
        mapping: Similarity mapping model, dict or name (exponential by default)
        constraints: Bounding volume and dimensionality
        optimizer_config: Optimization options
        index_preset: Spatial index preset; ``settings.default_index_preset``
            when None

    Returns:
        LayoutResult
    """
    constraints = as_layout_constraints(constraints)
    ids = list(node_ids) if node_ids is not None else extract_node_ids(similarities)
    config = optimizer_config or OptimizerConfig()
    if config.seed is None:
        # Both runs must start from the same positions
        config = config.model_copy(update={"seed": f"layout-{get_prng().random()!r}"})

    optimizer = SpatialOptimizer(mapping=mapping, config=config)
    seed_run = SpatialOptimizer(
        mapping=optimizer.mapping, config=config.model_copy(update={"max_iterations": 0})
    )
    initial = seed_run.optimize_positions(similarities, constraints, node_ids=ids)
    positions = optimizer.optimize_positions(similarities, constraints, node_ids=ids)

    convergence = optimizer.monitor_convergence(positions, initial)
    stress = optimizer.calculate_stress(similarities, positions, ids)

    nodes = [PositionedNode(node_id, p.x, p.y, p.z) for node_id, p in zip(ids, positions)]
    index = create_index(index_preset)
    index.build(nodes)

    logger.info("Graph layout complete",
                nodes=len(ids),
                dimensions=constraints.dimensions,
                stress=round(stress, 4),
                converged=convergence.is_converged)

    return LayoutResult(
        node_ids=ids,
        positions=positions,
        nodes=nodes,
        index=index,
        stress=stress,
        convergence=convergence,
    )
