"""Tests for similarity-to-distance mappings."""

import math

import numpy as np
import pytest
from pydantic import ValidationError

from py_knet.core.similarity_mapping import (
    DEFAULT_MAPPING,
    ExponentialMapping,
    LinearMapping,
    LogarithmicMapping,
    MappingKind,
    PowerLawMapping,
    SpringMapping,
    ThresholdMapping,
    create_mapping,
    map_similarity,
    parse_mapping,
    target_distances,
)

CONTINUOUS_MAPPINGS = [
    ExponentialMapping(),
    LinearMapping(),
    LogarithmicMapping(),
    SpringMapping(),
    PowerLawMapping(),
    ExponentialMapping(max_distance=250, exponent=0.5),
    PowerLawMapping(scale=40, exponent=3),
]


class TestMappingFormulas:
    """Test each strategy's formula."""

    @pytest.mark.parametrize("mapping", CONTINUOUS_MAPPINGS, ids=lambda m: m.kind)
    def test_monotonic_non_increasing(self, mapping):
        """More similar pairs never get a larger target distance."""
        assert map_similarity(1.0, mapping) <= map_similarity(0.5, mapping)
        assert map_similarity(0.5, mapping) <= map_similarity(0.0, mapping)

    def test_threshold_is_step_function(self):
        """Threshold mapping jumps at the cut-off instead of decreasing smoothly."""
        mapping = ThresholdMapping()
        assert map_similarity(1.0, mapping) == 20.0
        assert map_similarity(0.5, mapping) == 20.0
        assert map_similarity(0.49, mapping) == 100.0
        assert map_similarity(0.0, mapping) == 100.0

    def test_threshold_can_increase(self):
        """A step mapping is not required to be monotonic."""
        mapping = ThresholdMapping(threshold=0.3, close_distance=90, far_distance=10)
        assert map_similarity(1.0, mapping) > map_similarity(0.0, mapping)

    def test_exponential_values(self):
        assert map_similarity(0.0) == pytest.approx(100.0)
        assert map_similarity(0.5) == pytest.approx(75.0)
        assert map_similarity(1.0) == pytest.approx(0.0)

    def test_linear_values(self):
        mapping = LinearMapping(max_distance=200)
        assert map_similarity(0.25, mapping) == pytest.approx(150.0)

    def test_logarithmic_endpoints(self):
        mapping = LogarithmicMapping()
        assert map_similarity(0.0, mapping) == pytest.approx(100.0)
        expected = 100 * math.log(1.01) / math.log(0.01)
        assert map_similarity(1.0, mapping) == pytest.approx(expected)
        assert target_distances(1.0, mapping) == 0.0

    def test_power_law_values(self):
        mapping = PowerLawMapping()
        assert map_similarity(0.0, mapping) == pytest.approx(100 * 1.01 ** 1.5)
        assert map_similarity(1.0, mapping) == pytest.approx(100 * 0.01 ** 1.5)

    def test_spring_can_go_negative(self):
        """Spring targets are returned raw; only target_distances clamps them."""
        mapping = SpringMapping(rest_length=80, spring_constant=2.0)
        assert map_similarity(1.0, mapping) == pytest.approx(-80.0)
        assert target_distances(1.0, mapping) == 0.0

    def test_default_spring_values(self):
        assert map_similarity(1.0, SpringMapping()) == pytest.approx(16.0)
        assert map_similarity(0.0, SpringMapping()) == pytest.approx(80.0)


class TestMappingInputs:
    """Test input handling shared by all strategies."""

    def test_similarity_clipped(self):
        """Scores outside [0, 1] behave like the nearest bound."""
        mapping = LinearMapping()
        assert map_similarity(1.5, mapping) == map_similarity(1.0, mapping)
        assert map_similarity(-0.2, mapping) == map_similarity(0.0, mapping)

    def test_array_input(self):
        """Arrays are mapped elementwise."""
        values = np.array([[0.0, 0.5], [0.5, 1.0]])
        result = map_similarity(values, LinearMapping())
        assert isinstance(result, np.ndarray)
        np.testing.assert_allclose(result, [[100.0, 50.0], [50.0, 0.0]])

    def test_scalar_returns_float(self):
        assert isinstance(map_similarity(0.3, ThresholdMapping()), float)

    def test_default_mapping_is_exponential(self):
        assert DEFAULT_MAPPING.kind == MappingKind.EXPONENTIAL.value


class TestCreateMapping:
    """Test building mappings by name."""

    @pytest.mark.parametrize("name", ["powerLaw", "power_law", "POWERLAW"])
    def test_power_law_aliases(self, name):
        assert isinstance(create_mapping(name), PowerLawMapping)

    def test_parameters_applied(self):
        mapping = create_mapping("exponential", max_distance=300)
        assert mapping.max_distance == 300
        assert mapping.exponent == 2.0

    def test_enum_kind(self):
        assert isinstance(create_mapping(MappingKind.SPRING), SpringMapping)

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown similarity mapping"):
            create_mapping("gaussian")

    def test_invalid_parameters(self):
        with pytest.raises(ValidationError):
            create_mapping("linear", max_distance=-1)
        with pytest.raises(ValidationError):
            create_mapping("logarithmic", epsilon=1.5)
        with pytest.raises(ValidationError):
            create_mapping("threshold", unknown_option=3)

    def test_parse_dict(self):
        mapping = parse_mapping({"kind": "threshold", "threshold": 0.7})
        assert isinstance(mapping, ThresholdMapping)
        assert mapping.threshold == 0.7

    def test_parse_dict_without_kind(self):
        with pytest.raises(ValueError):
            parse_mapping({"max_distance": 10})

    def test_parse_model_passthrough(self):
        mapping = LinearMapping()
        assert parse_mapping(mapping) is mapping

    def test_mappings_are_frozen(self):
        mapping = LinearMapping()
        with pytest.raises(ValidationError):
            mapping.max_distance = 5
