"""Tests for settings, seeded randomness and logging setup."""

import pytest
import structlog
from pydantic import ValidationError

from py_knet.config import Settings
from py_knet.core.alea_prng import AleaPRNG
from py_knet.utils.logging import configure_logging
from py_knet.utils.random import get_prng, make_prng, set_random_seed


class TestSettings:
    """Test environment-driven settings."""

    def test_defaults(self, monkeypatch):
        for name in ("KNET_LAYOUT_WIDTH", "KNET_LOG_LEVEL", "KNET_DEFAULT_INDEX_PRESET"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.layout_width == 800
        assert settings.layout_height == 600
        assert settings.layout_depth == 400
        assert settings.log_level == "INFO"
        assert settings.default_index_preset == "balanced"
        assert settings.layout_seed is None

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("KNET_LAYOUT_WIDTH", "1024")
        monkeypatch.setenv("KNET_LAYOUT_SEED", "abc")
        settings = Settings(_env_file=None)
        assert settings.layout_width == 1024
        assert settings.layout_seed == "abc"

    def test_invalid_value(self, monkeypatch):
        monkeypatch.setenv("KNET_LAYOUT_HEIGHT", "-1")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


class TestRandom:
    """Test the seeded PRNG helpers."""

    def test_same_seed_same_sequence(self):
        a, b = AleaPRNG("seed"), AleaPRNG("seed")
        assert [a.random() for _ in range(5)] == [b.random() for _ in range(5)]

    def test_different_seeds(self):
        assert AleaPRNG("one").random() != AleaPRNG("two").random()

    def test_values_in_range(self):
        prng = AleaPRNG("range")
        for _ in range(100):
            value = prng.uniform(-5, 5)
            assert -5 <= value < 5

    def test_choice(self):
        prng = AleaPRNG("pick")
        assert prng.choice(["a", "b", "c"]) in {"a", "b", "c"}
        with pytest.raises(IndexError):
            prng.choice([])

    def test_global_prng_reset(self):
        set_random_seed("global")
        first = get_prng().random()
        set_random_seed("global")
        assert get_prng().random() == first

    def test_make_prng(self):
        set_random_seed("shared")
        assert make_prng() is get_prng()
        assert make_prng("x") is not get_prng()
        assert make_prng("x").random() == AleaPRNG("x").random()


class TestLogging:
    """Test structlog configuration."""

    @pytest.mark.parametrize("fmt", ["json", "plain"])
    def test_configure(self, fmt):
        configure_logging(level="debug", fmt=fmt)
        logger = structlog.get_logger("py_knet.test")
        logger.info("Logging configured", fmt=fmt)
        structlog.reset_defaults()
