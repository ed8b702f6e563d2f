"""
Unit tests for configuration loading and range validation.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from personaflux.config import (
    DEFAULT_INTERACTION_WEIGHTS,
    EvolutionConfig,
    EvolutionLimits,
    InvalidConfigError,
    load_config,
    merge_configs,
    validate_config,
)
from personaflux.primitives.personality import InteractionType, Trait

REPO_ROOT = Path(__file__).resolve().parents[2]


class TestDefaults:
    def test_defaults_are_valid(self):
        report = validate_config(EvolutionConfig())
        assert report.is_valid
        assert report.errors == []
        assert report.warnings == []

    def test_every_interaction_type_has_a_row(self):
        config = EvolutionConfig()
        assert set(config.interaction_weights) == set(InteractionType)

    def test_shipped_yaml_matches_defaults(self):
        config = load_config(REPO_ROOT / "config" / "default.yaml")
        assert config.model_dump() == EvolutionConfig().model_dump()


class TestStructuralValidation:
    def test_incomplete_weight_row_rejected(self):
        row = dict(DEFAULT_INTERACTION_WEIGHTS[InteractionType.LEARNING])
        del row[Trait.CURIOSITY]
        with pytest.raises(ValidationError, match="curiosity"):
            EvolutionConfig(interaction_weights={InteractionType.LEARNING: row})

    def test_incomplete_trait_limits_rejected(self):
        limits = EvolutionLimits().trait_limits
        del limits[Trait.EMPATHY]
        with pytest.raises(ValidationError, match="empathy"):
            EvolutionLimits(trait_limits=limits)

    def test_missing_multiplier_rejected(self):
        with pytest.raises(ValidationError):
            EvolutionConfig(mode_multipliers={"quick": 0.3, "normal": 1.0})


class TestRangeValidation:
    def test_weight_out_of_range(self):
        config = merge_configs(
            EvolutionConfig(), {"interaction_weights": {"learning": {"openness": 1.5}}}
        )
        report = validate_config(config)
        assert not report.is_valid
        assert any(e.field == "interaction_weights.learning.openness" for e in report.errors)

    def test_missing_weight_row_is_error(self):
        weights = {
            t: dict(row)
            for t, row in DEFAULT_INTERACTION_WEIGHTS.items()
            if t != InteractionType.STORYTELLING
        }
        report = validate_config(EvolutionConfig(interaction_weights=weights))
        assert not report.is_valid
        assert report.errors[0].field == "interaction_weights.storytelling"

    def test_min_above_max(self):
        config = merge_configs(
            EvolutionConfig(),
            {"limits": {"trait_limits": {"openness": {"min_value": 0.8, "max_value": 0.2}}}},
        )
        report = validate_config(config)
        assert any(e.field == "limits.trait_limits.openness" for e in report.errors)

    def test_non_positive_multiplier(self):
        config = merge_configs(EvolutionConfig(), {"mode_multipliers": {"quick": 0.0}})
        assert not validate_config(config).is_valid

    def test_rate_out_of_range(self):
        config = merge_configs(
            EvolutionConfig(), {"baseline_anchoring": {"anchoring_strength": -0.1}}
        )
        report = validate_config(config)
        assert [e.field for e in report.errors] == ["baseline_anchoring.anchoring_strength"]

    def test_period_change_above_cumulative_warns(self):
        config = merge_configs(EvolutionConfig(), {"limits": {"weekly": {"max_change": 0.6}}})
        report = validate_config(config)
        assert report.is_valid
        assert report.warnings[0].field == "limits.weekly"

    def test_large_batch_size_warns(self):
        config = merge_configs(EvolutionConfig(), {"performance": {"batch_size": 1000}})
        report = validate_config(config)
        assert report.is_valid
        assert report.warnings[0].field == "performance.batch_size"
        assert "1 warning" in report.summary


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config.model_dump() == EvolutionConfig().model_dump()

    def test_yaml_deep_merged(self, tmp_path):
        path = tmp_path / "evolution.yaml"
        path.write_text(
            "baseline_anchoring:\n"
            "  anchoring_strength: 0.5\n"
            "limits:\n"
            "  daily:\n"
            "    max_change: 0.1\n"
        )
        config = load_config(path)
        assert config.baseline_anchoring.anchoring_strength == 0.5
        assert config.limits.daily.max_change == 0.1
        assert config.limits.daily.max_events == 20
        assert config.baseline_anchoring.time_decay.decay_function == "exponential"

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PERSONAFLUX_LOGGING__LEVEL", "DEBUG")
        monkeypatch.setenv("PERSONAFLUX_PERFORMANCE__CACHE_ENABLED", "false")
        monkeypatch.setenv("PERSONAFLUX_PERFORMANCE__MAX_EVENTS_PER_CALCULATION", "50")
        config = load_config(None)
        assert config.logging.level == "DEBUG"
        assert config.performance.cache_enabled is False
        assert config.performance.max_events_per_calculation == 50

    def test_invalid_yaml_values_raise(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("time_decay:\n  event_decay:\n    half_life_days: 0\n")
        with pytest.raises(InvalidConfigError) as exc_info:
            load_config(path)
        assert not exc_info.value.report.is_valid
        assert "half_life_days" in str(exc_info.value)

    def test_merge_configs_leaves_base_untouched(self):
        base = EvolutionConfig()
        merged = merge_configs(base, {"performance": {"max_cache_size": 10}})
        assert merged.performance.max_cache_size == 10
        assert base.performance.max_cache_size == 1000
