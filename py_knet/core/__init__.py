"""
Core layout and spatial indexing functionality.
"""

from .geometry import Point, PositionedNode, BoundingVolume, Rectangle, Box, Ray, Intersection, NodeDistance
from .similarity import pair_key, extract_node_ids, build_similarity_matrix
from .similarity_mapping import create_mapping, map_similarity, MappingKind
from .spatial_optimizer import SpatialOptimizer, OptimizerConfig, LayoutConstraints, ConvergenceMetrics
from .spatial_index import SpatialIndex, SpatialIndexFactory, IndexStatistics, create_index
from .layout_pipeline import layout_graph, LayoutResult

__all__ = ['Point', 'PositionedNode', 'BoundingVolume', 'Rectangle', 'Box', 'Ray', 'Intersection',
           'NodeDistance', 'pair_key', 'extract_node_ids', 'build_similarity_matrix',
           'create_mapping', 'map_similarity', 'MappingKind',
           'SpatialOptimizer', 'OptimizerConfig', 'LayoutConstraints', 'ConvergenceMetrics',
           'SpatialIndex', 'SpatialIndexFactory', 'IndexStatistics', 'create_index',
           'layout_graph', 'LayoutResult']
