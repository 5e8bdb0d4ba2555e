"""
Similarity-to-distance mappings.

Each mapping is a small pydantic model tagged by ``kind``. ``map_similarity``
is the single dispatch point: it clips the similarity into [0, 1] and applies
the strategy's formula. Inputs may be scalars or numpy arrays, so the
optimizer can map a whole similarity matrix in one call.

Similarity 1 (identical) maps to the strategy's minimum distance and
similarity 0 to its maximum.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class MappingKind(str, Enum):
    """Available similarity-to-distance strategies."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    LOGARITHMIC = "logarithmic"
    SPRING = "spring"
    THRESHOLD = "threshold"
    POWER_LAW = "powerLaw"


class _Mapping(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ExponentialMapping(_Mapping):
    """``max_distance * (1 - s^exponent)``"""

    kind: Literal["exponential"] = "exponential"
    max_distance: float = Field(default=100.0, ge=0, description="Distance at similarity 0")
    exponent: float = Field(default=2.0, gt=0, description="Curve exponent")


class LinearMapping(_Mapping):
    """``max_distance * (1 - s)``"""

    kind: Literal["linear"] = "linear"
    max_distance: float = Field(default=100.0, ge=0, description="Distance at similarity 0")


class LogarithmicMapping(_Mapping):
    """``max_distance * (-ln(s + epsilon) / -ln(epsilon))``"""

    kind: Literal["logarithmic"] = "logarithmic"
    max_distance: float = Field(default=100.0, ge=0, description="Distance at similarity 0")
    epsilon: float = Field(default=0.01, gt=0, lt=1, description="Offset that keeps log finite")


class SpringMapping(_Mapping):
    """``rest_length * (1 - s * spring_constant)``; negative when ``s * k > 1``."""

    kind: Literal["spring"] = "spring"
    rest_length: float = Field(default=80.0, ge=0, description="Distance at similarity 0")
    spring_constant: float = Field(default=0.8, description="Contraction per unit similarity")


class ThresholdMapping(_Mapping):
    """``close_distance`` at or above ``threshold``, else ``far_distance``."""

    kind: Literal["threshold"] = "threshold"
    threshold: float = Field(default=0.5, ge=0, le=1, description="Similarity cut-off")
    close_distance: float = Field(default=20.0, ge=0, description="Distance for similar pairs")
    far_distance: float = Field(default=100.0, ge=0, description="Distance for dissimilar pairs")


class PowerLawMapping(_Mapping):
    """``scale * (1 - s + 0.01)^exponent``"""

    kind: Literal["powerLaw"] = "powerLaw"
    scale: float = Field(default=100.0, ge=0, description="Distance scale")
    exponent: float = Field(default=1.5, gt=0, description="Power-law exponent")


SimilarityMapping = Annotated[
    Union[
        ExponentialMapping,
        LinearMapping,
        LogarithmicMapping,
        SpringMapping,
        ThresholdMapping,
        PowerLawMapping,
    ],
    Field(discriminator="kind"),
]

_mapping_adapter = TypeAdapter(SimilarityMapping)

DEFAULT_MAPPING = ExponentialMapping()

_ALIASES = {
    "power_law": MappingKind.POWER_LAW.value,
    "powerlaw": MappingKind.POWER_LAW.value,
}


def create_mapping(kind: Union[str, MappingKind], **params: Any) -> SimilarityMapping:
    """
    Build a mapping model from its strategy name and parameters.

    Args:
        kind: Strategy name ("exponential", "powerLaw", "power_law", ...)
        **params: Strategy parameters; omitted ones take their defaults

    Returns:
        The validated mapping model

    Raises:
        ValueError: If ``kind`` is unknown
        pydantic.ValidationError: If a parameter is out of range
    """
    name = kind.value if isinstance(kind, MappingKind) else str(kind)
    name = _ALIASES.get(name.lower(), name.lower())
    if name not in {k.value for k in MappingKind}:
        raise ValueError(
            f"Unknown similarity mapping '{kind}'. "
            f"Available: {', '.join(k.value for k in MappingKind)}"
        )
    return _mapping_adapter.validate_python({"kind": name, **params})


def parse_mapping(value: Any) -> SimilarityMapping:
    """Accept a mapping model, a ``{"kind": ..., ...}`` dict or a strategy name."""
    if isinstance(value, _Mapping):
        return value
    if isinstance(value, (str, MappingKind)):
        return create_mapping(value)
    if isinstance(value, dict):
        params = dict(value)
        kind = params.pop("kind", None)
        if kind is None:
            raise ValueError("Mapping dict needs a 'kind' entry")
        return create_mapping(kind, **params)
    raise TypeError(f"Cannot interpret {type(value).__name__} as a similarity mapping")


def map_similarity(similarity, mapping: SimilarityMapping = DEFAULT_MAPPING):
    """
    Convert similarity to a target distance.

    Args:
        similarity: Score(s) in [0, 1]; values slightly outside are clipped
        mapping: Strategy model

    Returns:
        float for scalar input, ndarray for array input
    """
    s = np.clip(np.asarray(similarity, dtype=float), 0.0, 1.0)

    if isinstance(mapping, ExponentialMapping):
        result = mapping.max_distance * (1 - np.power(s, mapping.exponent))
    elif isinstance(mapping, LinearMapping):
        result = mapping.max_distance * (1 - s)
    elif isinstance(mapping, LogarithmicMapping):
        max_log = -np.log(mapping.epsilon)
        result = mapping.max_distance * (-np.log(s + mapping.epsilon) / max_log)
    elif isinstance(mapping, SpringMapping):
        result = mapping.rest_length * (1 - s * mapping.spring_constant)
    elif isinstance(mapping, ThresholdMapping):
        result = np.where(s >= mapping.threshold, mapping.close_distance, mapping.far_distance)
    elif isinstance(mapping, PowerLawMapping):
        result = mapping.scale * np.power(1 - s + 0.01, mapping.exponent)
    else:
        raise TypeError(f"Unsupported similarity mapping: {mapping!r}")

    if np.ndim(result) == 0:
        return float(result)
    return result.astype(float)


def target_distances(similarity, mapping: SimilarityMapping = DEFAULT_MAPPING):
    """Mapped distances clamped at 0, as used by layout optimization and stress."""
    return np.maximum(map_similarity(similarity, mapping), 0.0)
