"""Tests for chordtutor.core.config – engine configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from chordtutor.core.config import (
    HOUR,
    MINUTE,
    ConfidenceConfig,
    ConfidenceTier,
    EngineConfig,
    FailureQuality,
    MasteredThresholds,
    MasteryConfig,
    MatcherConfig,
    SM2Config,
    default_config_path,
    load_engine_config,
)
from chordtutor.core.items import ItemType


def write_yaml(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "engine.yaml"
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

class TestDefaults:
    def test_matcher(self):
        m = MatcherConfig()
        assert m.max_duration_ms == 300
        assert m.settle_delay_ms == 100
        assert m.idle_clear_ms == 1000

    def test_every_item_type_configured(self, config: EngineConfig):
        for item_type in ItemType:
            assert config.for_item(item_type).accelerated_intervals

    def test_character_table(self, config: EngineConfig):
        table = config.for_item(ItemType.CHARACTER).accelerated_intervals
        assert table[:4] == pytest.approx((2 * MINUTE, 10 * MINUTE, HOUR, 4 * HOUR))
        assert table[-1] == 30

    def test_difficulty_lookup(self, config: EngineConfig):
        assert config.difficulty("hard").time_limit_ms == 1000
        with pytest.raises(ValueError, match="Unknown difficulty"):
            config.difficulty("nightmare")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidation:
    def test_ease_bounds(self):
        with pytest.raises(ValueError):
            SM2Config(min_ease_factor=3.0, default_ease_factor=2.5)

    def test_failure_quality_must_be_a_failure(self):
        with pytest.raises(ValueError):
            FailureQuality(otherwise=3)

    def test_mastered_must_imply_familiar(self):
        with pytest.raises(ValueError):
            MasteryConfig(mastered=MasteredThresholds(min_accuracy=0.6))

    def test_confidence_tiers_ordered(self):
        with pytest.raises(ValueError):
            ConfidenceConfig(strong=ConfidenceTier(3, 0.5, 3000))

    def test_matcher_requires_delimiter(self):
        with pytest.raises(ValueError):
            MatcherConfig(delimiters="")


# ---------------------------------------------------------------------------
# Loading from YAML
# ---------------------------------------------------------------------------

class TestLoadEngineConfig:
    def test_bundled_file_matches_defaults(self):
        assert default_config_path().exists()
        assert load_engine_config() == EngineConfig()

    def test_partial_file_keeps_defaults(self, tmp_path: Path):
        path = write_yaml(tmp_path, "matcher:\n  base_max_duration_ms: 50\n")
        config = load_engine_config(path)
        assert config.matcher.base_max_duration_ms == 50
        assert config.matcher.timing_tolerance_multiplier == 2.0
        assert config.sm2 == SM2Config()

    def test_interval_suffixes(self, tmp_path: Path):
        path = write_yaml(
            tmp_path,
            "item_types:\n  word:\n    accelerated_intervals: [5m, 2h, 1d, 2.5]\n    failure_seed_interval: 1m\n",
        )
        word = load_engine_config(path).for_item(ItemType.WORD)
        assert word.accelerated_intervals == pytest.approx((5 * MINUTE, 2 * HOUR, 1.0, 2.5))
        assert word.failure_seed_interval_days == pytest.approx(MINUTE)
        assert word.expected_times_ms.beginner == 4000

    def test_empty_file(self, tmp_path: Path):
        assert load_engine_config(write_yaml(tmp_path, "")) == EngineConfig()

    def test_unknown_key_rejected(self, tmp_path: Path):
        path = write_yaml(tmp_path, "sm2:\n  ease: 2.0\n")
        with pytest.raises(ValueError, match="unknown keys"):
            load_engine_config(path)

    def test_unknown_item_type(self, tmp_path: Path):
        path = write_yaml(tmp_path, "item_types:\n  sentence: {}\n")
        with pytest.raises(ValueError, match="unknown item type"):
            load_engine_config(path)

    def test_unknown_item_type_key_rejected(self, tmp_path: Path):
        path = write_yaml(tmp_path, "item_types:\n  character:\n    failure_seed_intervl: 3d\n")
        with pytest.raises(ValueError, match="unknown keys"):
            load_engine_config(path)

    def test_bad_interval(self, tmp_path: Path):
        path = write_yaml(tmp_path, "item_types:\n  word:\n    accelerated_intervals: [soon]\n")
        with pytest.raises(ValueError, match="invalid interval"):
            load_engine_config(path)

    def test_invalid_value_rejected(self, tmp_path: Path):
        path = write_yaml(tmp_path, "sm2:\n  min_ease_factor: 0\n")
        with pytest.raises(ValueError):
            load_engine_config(path)

    def test_difficulties(self, tmp_path: Path):
        path = write_yaml(
            tmp_path,
            "difficulties:\n  drill: {label: Drill, time_limit_ms: 1500, max_attempts: 2}\n",
        )
        config = load_engine_config(path)
        assert list(config.difficulties) == ["drill"]
        assert config.difficulty("drill").key == "drill"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_engine_config(tmp_path / "missing.yaml")
