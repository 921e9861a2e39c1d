"""
Unit tests for configuration system.

Tests:
- Config loading and initialization
- Path configuration
- Config validation
- Token tracker functionality
"""

import threading

import pytest

from src.config import Config, EvaluationConfig, TokenTracker, config


class TestConfig:
    """Test suite for Config class."""

    def test_config_singleton(self):
        """Test that Config implements singleton pattern."""
        config1 = Config()
        config2 = Config()
        assert config1 is config2, "Config should be a singleton"

    def test_config_initialization(self):
        """Test that config initializes with expected values."""
        assert config.model.default_model
        assert config.model.fallback_model
        assert config.model.request_timeout > 0
        assert config.checkpoints.min_points == 4
        assert config.checkpoints.max_points == 5
        assert config.generation.batch_max_count == 10

    def test_paths_configured(self):
        """Test that all required paths are configured."""
        assert config.paths.schemas_dir.is_absolute()
        assert config.paths.schemas_dir.exists()
        assert (config.paths.schemas_dir / "evaluation.schema.json").exists()

    def test_config_validation_returns_list(self):
        """Test that validation always reports a list of problems."""
        original_key = config.model.api_key
        config.model.api_key = "test-key"
        try:
            errors = config.validate()
        finally:
            config.model.api_key = original_key

        assert errors == []

    def test_config_validation_detects_missing_api_key(self):
        original_key = config.model.api_key
        config.model.api_key = ""
        try:
            errors = config.validate()
        finally:
            config.model.api_key = original_key

        assert any("API_KEY" in err for err in errors)

    def test_config_validation_detects_invalid_temperature(self):
        """Test that config validation detects invalid temperature."""
        original_temp = config.model.tutor_temperature
        config.model.tutor_temperature = 3.0  # Invalid: > 2
        try:
            errors = config.validate()
        finally:
            config.model.tutor_temperature = original_temp

        assert any("tutor_temperature" in err for err in errors)

    def test_config_validation_detects_bad_checkpoint_window(self):
        cp = config.checkpoints
        original = (cp.window_start, cp.window_end)
        cp.window_start, cp.window_end = 0.9, 0.1
        try:
            errors = config.validate()
        finally:
            cp.window_start, cp.window_end = original

        assert any("checkpoint window" in err for err in errors)

    def test_evaluation_weight_outside_unit_interval_is_reset(self, monkeypatch):
        monkeypatch.setenv("REFLECTION_AI_WEIGHT", "1.5")
        assert EvaluationConfig().ai_score_weight == 0.85

    def test_evaluation_threshold_from_env(self, monkeypatch):
        monkeypatch.setenv("REFLECTION_SCORE_THRESHOLD", "0.7")
        assert EvaluationConfig().score_threshold == pytest.approx(0.7)

    def test_unparseable_env_number_falls_back(self, monkeypatch):
        monkeypatch.setenv("REFLECTION_SCORE_THRESHOLD", "not-a-number")
        assert EvaluationConfig().score_threshold == pytest.approx(0.62)


class TestTokenTracker:
    """Test suite for TokenTracker."""

    def test_add_tokens(self):
        tracker = TokenTracker()
        tracker.add_tokens(100, 50, "llama-3.1-8b-instant")
        tracker.add_tokens(10, 5, "llama-3.1-8b-instant")

        stats = tracker.get_stats()
        assert stats["calls"] == 2
        assert stats["total_tokens"] == 165
        assert stats["calls_by_model"] == {"llama-3.1-8b-instant": 2}

    def test_reset(self):
        tracker = TokenTracker()
        tracker.add_tokens(100, 50)
        tracker.reset()
        assert tracker.total_tokens() == 0
        assert tracker.get_stats()["calls"] == 0

    def test_estimated_cost(self):
        tracker = TokenTracker()
        tracker.add_tokens(1000, 1000)
        expected = config.logging.cost_per_1k_input + config.logging.cost_per_1k_output
        assert tracker.estimated_cost() == pytest.approx(expected)

    def test_summary_mentions_totals(self):
        tracker = TokenTracker()
        tracker.add_tokens(1200, 300)
        summary = tracker.summary()
        assert "API Calls: 1" in summary
        assert "Total Tokens: 1,500" in summary

    def test_thread_safety(self):
        tracker = TokenTracker()

        def work():
            for _ in range(200):
                tracker.add_tokens(1, 1)

        threads = [threading.Thread(target=work) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert tracker.get_stats()["calls"] == 1000
        assert tracker.total_tokens() == 2000
