"""Tests for configuration dataclasses."""

import pytest

from seo_multipass_optimizer.config import (
    DEFAULT_PRIORITY_ORDER,
    CorrectorConfig,
    IntegrationConfig,
    OptimizerConfig,
    TrackerConfig,
)
from seo_multipass_optimizer.models import IntegrationMode


class TestOptimizerConfig:
    """Tests for OptimizerConfig."""

    def test_defaults(self):
        """Test default loop settings."""
        config = OptimizerConfig()

        assert config.max_iterations == 5
        assert config.target_compliance_score == 100.0
        assert config.stagnation_threshold == 2
        assert config.keep_best_content is True
        assert config.priority_order == DEFAULT_PRIORITY_ORDER

    def test_fast_preset(self):
        """Test the fast preset and overrides."""
        config = OptimizerConfig.fast(max_iterations=2)

        assert config.max_iterations == 2
        assert config.target_compliance_score == 95.0
        assert config.stagnation_threshold == 1

    def test_thorough_preset(self):
        """Test the thorough preset."""
        assert OptimizerConfig.thorough().max_iterations == 10

    @pytest.mark.parametrize("kwargs,message", [
        ({"max_iterations": 0}, "max_iterations"),
        ({"target_compliance_score": 101}, "target_compliance_score"),
        ({"stagnation_threshold": 0}, "stagnation_threshold"),
        ({"priority_order": ["title", "speed"]}, "Unknown priority_order"),
    ])
    def test_validation(self, kwargs, message):
        """Test that invalid values are rejected."""
        with pytest.raises(ValueError, match=message):
            OptimizerConfig(**kwargs)


class TestCorrectorConfig:
    """Tests for CorrectorConfig."""

    def test_provider_options(self):
        """Test the options forwarded to providers."""
        options = CorrectorConfig(temperature=0.5, max_tokens=100, timeout=5).provider_options()

        assert options == {"temperature": 0.5, "max_tokens": 100, "timeout": 5}

    @pytest.mark.parametrize("kwargs", [
        {"max_retry_attempts": 0},
        {"timeout": 0},
        {"temperature": 1.5},
        {"max_tokens": 0},
        {"retry_delay": -1},
    ])
    def test_validation(self, kwargs):
        """Test that invalid values are rejected."""
        with pytest.raises(ValueError):
            CorrectorConfig(**kwargs)


class TestIntegrationConfig:
    """Tests for IntegrationConfig."""

    def test_mode_from_string(self):
        """Test that string modes are converted to the enum."""
        assert IntegrationConfig(mode="manual").mode == IntegrationMode.MANUAL

    def test_invalid_mode(self):
        """Test that unknown modes are rejected."""
        with pytest.raises(ValueError, match="mode must be"):
            IntegrationConfig(mode="turbo")

    def test_optimizer_config(self):
        """Test the derived optimizer configuration."""
        config = IntegrationConfig(max_iterations=4, target_compliance_score=90.0).optimizer_config()

        assert config.max_iterations == 4
        assert config.target_compliance_score == 90.0


class TestTrackerConfig:
    """Tests for TrackerConfig."""

    def test_history_must_hold_one_entry(self):
        """Test that max_history must be positive."""
        with pytest.raises(ValueError, match="max_history"):
            TrackerConfig(max_history=0)
