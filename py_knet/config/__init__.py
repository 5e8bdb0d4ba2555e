"""
Configuration: environment settings and spatial index presets.
"""

from .config import Settings, settings
from .index_presets import (
    SpatialIndexConfig,
    IndexPreset,
    PRESETS,
    get_preset,
    list_presets,
    merge_config,
    resolve_preset,
)

__all__ = ['Settings', 'settings', 'SpatialIndexConfig', 'IndexPreset', 'PRESETS',
           'get_preset', 'list_presets', 'merge_config', 'resolve_preset']
