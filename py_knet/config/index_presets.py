"""
Spatial index configuration and named presets.

This module defines the option model that parameterizes quadtree/octree
construction, and the preset bundles that trade build cost, query precision
and memory against each other.
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SpatialIndexConfig(BaseModel):
    """Options for building and querying a spatial index."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    # Tree shape
    max_depth: int = Field(default=6, ge=0, description="Maximum subdivision depth")
    max_nodes_per_leaf: int = Field(
        default=10, ge=1, description="Leaf capacity before subdividing"
    )

    # Query cache
    enable_caching: bool = Field(default=True, description="Memoize point and region queries")
    cache_size: int = Field(default=100, ge=0, description="Maximum cached query results")

    # Intersection tolerances
    ray_intersection_tolerance: float = Field(
        default=1.0, ge=0, description="Maximum node offset from a ray to count as a hit"
    )
    point_query_tolerance: float = Field(
        default=0.1, ge=0, description="Default radius for exact point queries"
    )


class IndexPreset(str, Enum):
    """Named spatial index configurations."""

    FAST = "fast"
    PRECISE = "precise"
    BALANCED = "balanced"
    MEMORY_EFFICIENT = "memory_efficient"


PRESETS: Dict[IndexPreset, Dict[str, Any]] = {
    IndexPreset.FAST: {
        "max_depth": 6,
        "max_nodes_per_leaf": 20,
        "enable_caching": True,
        "cache_size": 50,
    },
    IndexPreset.PRECISE: {
        "max_depth": 12,
        "max_nodes_per_leaf": 5,
        "enable_caching": True,
        "cache_size": 200,
        "ray_intersection_tolerance": 0.5,
        "point_query_tolerance": 0.05,
    },
    IndexPreset.BALANCED: {
        "max_depth": 8,
        "max_nodes_per_leaf": 10,
        "enable_caching": True,
        "cache_size": 100,
    },
    IndexPreset.MEMORY_EFFICIENT: {
        "max_depth": 8,
        "max_nodes_per_leaf": 15,
        "enable_caching": False,
        "cache_size": 0,
    },
}

# camelCase names accepted for callers porting configuration files
_ALIASES = {
    "memoryefficient": IndexPreset.MEMORY_EFFICIENT,
    "memory-efficient": IndexPreset.MEMORY_EFFICIENT,
}


def resolve_preset(name: Union[str, IndexPreset]) -> IndexPreset:
    """
    Resolve a preset name to an ``IndexPreset``.

    Args:
        name: Preset enum member or name ("fast", "memoryEfficient", ...)

    Returns:
        IndexPreset: The matching preset

    Raises:
        ValueError: If the name is not a known preset
    """
    if isinstance(name, IndexPreset):
        return name
    key = str(name).strip().lower()
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        return IndexPreset(key)
    except ValueError:
        raise ValueError(
            f"Unknown index preset '{name}'. Available: {', '.join(list_presets())}"
        ) from None


def get_preset(name: Union[str, IndexPreset]) -> SpatialIndexConfig:
    """Return a fresh config for the named preset."""
    return SpatialIndexConfig(**PRESETS[resolve_preset(name)])


def list_presets() -> List[str]:
    """List available preset names."""
    return [preset.value for preset in IndexPreset]


def merge_config(
    base: Optional[SpatialIndexConfig],
    overrides: Optional[Union[SpatialIndexConfig, Mapping[str, Any]]],
) -> SpatialIndexConfig:
    """
    Merge partial overrides onto a base config, validating the result.

    Args:
        base: Starting config, defaults when None
        overrides: A full config, a dict of changed fields, or None

    Returns:
        SpatialIndexConfig: A new validated config
    """
    base = base or SpatialIndexConfig()
    if overrides is None:
        return base.model_copy()
    if isinstance(overrides, SpatialIndexConfig):
        return overrides.model_copy()
    return SpatialIndexConfig(**{**base.model_dump(), **dict(overrides)})
