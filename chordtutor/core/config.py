"""Engine configuration: timing, scheduling and classification thresholds.

Every tunable lives in a frozen dataclass that validates itself on
construction. Values are read from ``data/engine.yaml``; any field missing
from the file keeps its code default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from chordtutor.core.items import ItemType

logger = logging.getLogger(__name__)

MINUTE = 1 / 1440
HOUR = 1 / 24


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


@dataclass(frozen=True)
class MatcherConfig:
    base_max_duration_ms: float = 150.0
    timing_tolerance_multiplier: float = 2.0
    # Bursts (delimiter included) at or below this length skip the timing check.
    short_input_length: int = 2
    settle_delay_ms: int = 100
    idle_clear_ms: int = 1000
    delimiters: str = " "

    def __post_init__(self) -> None:
        _require(self.base_max_duration_ms > 0, "base_max_duration_ms must be positive")
        _require(self.timing_tolerance_multiplier > 0, "timing_tolerance_multiplier must be positive")
        _require(self.short_input_length >= 0, "short_input_length must be >= 0")
        _require(self.settle_delay_ms >= 0, "settle_delay_ms must be >= 0")
        _require(self.idle_clear_ms > 0, "idle_clear_ms must be positive")
        _require(bool(self.delimiters), "at least one delimiter is required")

    @property
    def max_duration_ms(self) -> float:
        return self.base_max_duration_ms * self.timing_tolerance_multiplier


@dataclass(frozen=True)
class ExpectedTimes:
    beginner: float
    intermediate: float
    advanced: float

    def __post_init__(self) -> None:
        _require(
            self.beginner >= self.intermediate >= self.advanced > 0,
            "expected times must satisfy beginner >= intermediate >= advanced > 0",
        )


@dataclass(frozen=True)
class ItemTypeConfig:
    expected_times_ms: ExpectedTimes
    accelerated_intervals: Tuple[float, ...]
    failure_seed_interval_days: float

    def __post_init__(self) -> None:
        _require(self.failure_seed_interval_days >= 0, "failure_seed_interval_days must be >= 0")
        _require(all(i >= 0 for i in self.accelerated_intervals), "accelerated intervals must be >= 0")
        _require(
            list(self.accelerated_intervals) == sorted(self.accelerated_intervals),
            "accelerated intervals must be non-decreasing",
        )

    def accelerated_interval(self, repetitions: int) -> Optional[float]:
        """Interval for ``repetitions`` prior successes, or None past the end of the table."""
        if 0 <= repetitions < len(self.accelerated_intervals):
            return self.accelerated_intervals[repetitions]
        return None


def _default_item_types() -> Dict[ItemType, ItemTypeConfig]:
    return {
        ItemType.CHARACTER: ItemTypeConfig(
            expected_times_ms=ExpectedTimes(2000, 1000, 500),
            accelerated_intervals=(2 * MINUTE, 10 * MINUTE, HOUR, 4 * HOUR, 1, 3, 7, 14, 30),
            failure_seed_interval_days=2 * MINUTE,
        ),
        ItemType.TWO_KEY_CHORD: ItemTypeConfig(
            expected_times_ms=ExpectedTimes(3000, 1500, 750),
            accelerated_intervals=(2 * MINUTE, 10 * MINUTE, HOUR, 4 * HOUR, 1, 3, 7, 14),
            failure_seed_interval_days=2 * MINUTE,
        ),
        ItemType.WORD: ItemTypeConfig(
            expected_times_ms=ExpectedTimes(4000, 2000, 1000),
            accelerated_intervals=(2 * MINUTE, 10 * MINUTE, HOUR, 1, 6),
            failure_seed_interval_days=2 * MINUTE,
        ),
    }


@dataclass(frozen=True)
class FailureQuality:
    """Quality assigned to a miss, by how the miss happened."""

    first_attempt: int = 0
    recognized: int = 1
    otherwise: int = 2

    def __post_init__(self) -> None:
        for name in ("first_attempt", "recognized", "otherwise"):
            value = getattr(self, name)
            _require(0 <= value <= 2, f"failure quality {name} must be within 0..2")


@dataclass(frozen=True)
class SM2Config:
    default_ease_factor: float = 2.5
    min_ease_factor: float = 1.3
    max_ease_factor: float = 3.5
    success_threshold: int = 3
    max_interval_mastered_days: float = 180
    max_interval_not_mastered_days: float = 14
    max_response_time_ms: float = 17500
    failure_quality: FailureQuality = field(default_factory=FailureQuality)

    def __post_init__(self) -> None:
        _require(
            0 < self.min_ease_factor <= self.default_ease_factor <= self.max_ease_factor,
            "ease factors must satisfy 0 < min <= default <= max",
        )
        _require(1 <= self.success_threshold <= 5, "success_threshold must be within 1..5")
        _require(
            0 < self.max_interval_not_mastered_days <= self.max_interval_mastered_days,
            "interval caps must satisfy 0 < not_mastered <= mastered",
        )
        _require(self.max_response_time_ms > 0, "max_response_time_ms must be positive")


@dataclass(frozen=True)
class MasteredThresholds:
    min_repetitions: int = 5
    min_ease_factor: float = 2.0
    min_accuracy: float = 0.85
    min_interval_days: float = 7
    max_response_time_ms: float = 800


@dataclass(frozen=True)
class FamiliarThresholds:
    min_accuracy: float = 0.7
    min_attempts: int = 5


@dataclass(frozen=True)
class MasteryConfig:
    mastered: MasteredThresholds = field(default_factory=MasteredThresholds)
    familiar: FamiliarThresholds = field(default_factory=FamiliarThresholds)

    def __post_init__(self) -> None:
        _require(0 <= self.familiar.min_accuracy <= 1, "familiar.min_accuracy must be within 0..1")
        _require(0 <= self.mastered.min_accuracy <= 1, "mastered.min_accuracy must be within 0..1")
        # Mastered must imply Familiar. Repetitions never exceed attempts.
        _require(
            self.mastered.min_accuracy >= self.familiar.min_accuracy,
            "mastered.min_accuracy must be >= familiar.min_accuracy",
        )
        _require(
            self.mastered.min_repetitions >= self.familiar.min_attempts,
            "mastered.min_repetitions must be >= familiar.min_attempts",
        )


@dataclass(frozen=True)
class ConfidenceTier:
    min_attempts: int
    min_accuracy: float
    max_response_time_ms: float


@dataclass(frozen=True)
class ConfidenceConfig:
    strong: ConfidenceTier = field(default_factory=lambda: ConfidenceTier(10, 0.9, 800))
    moderate: ConfidenceTier = field(default_factory=lambda: ConfidenceTier(5, 0.7, 1500))

    def __post_init__(self) -> None:
        _require(
            self.strong.min_attempts >= self.moderate.min_attempts
            and self.strong.min_accuracy >= self.moderate.min_accuracy
            and self.strong.max_response_time_ms <= self.moderate.max_response_time_ms,
            "strong confidence thresholds must be at least as strict as moderate",
        )


@dataclass(frozen=True)
class SelectionConfig:
    min_base_weight: float = 0.1
    failed_multiplier: float = 4
    overdue_boost_per_day: float = 1
    low_attempt_threshold: int = 3
    low_attempt_bonus: float = 0.5

    def __post_init__(self) -> None:
        _require(self.min_base_weight > 0, "min_base_weight must be positive")
        _require(self.failed_multiplier >= 0, "failed_multiplier must be >= 0")
        _require(self.overdue_boost_per_day >= 0, "overdue_boost_per_day must be >= 0")
        _require(self.low_attempt_bonus >= 0, "low_attempt_bonus must be >= 0")


@dataclass(frozen=True)
class Difficulty:
    key: str
    label: str
    time_limit_ms: int
    max_attempts: int

    def __post_init__(self) -> None:
        _require(self.time_limit_ms > 0, f"difficulty {self.key}: time_limit_ms must be positive")
        _require(self.max_attempts >= 1, f"difficulty {self.key}: max_attempts must be >= 1")


def _default_difficulties() -> Dict[str, Difficulty]:
    return {
        "beginner": Difficulty("beginner", "Beginner", 10000, 5),
        "easy": Difficulty("easy", "Easy", 5000, 3),
        "medium": Difficulty("medium", "Medium", 2000, 2),
        "hard": Difficulty("hard", "Hard", 1000, 1),
        "expert": Difficulty("expert", "Expert", 500, 1),
    }


@dataclass(frozen=True)
class EngineConfig:
    matcher: MatcherConfig = field(default_factory=MatcherConfig)
    sm2: SM2Config = field(default_factory=SM2Config)
    item_types: Mapping[ItemType, ItemTypeConfig] = field(default_factory=_default_item_types)
    mastery: MasteryConfig = field(default_factory=MasteryConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    difficulties: Mapping[str, Difficulty] = field(default_factory=_default_difficulties)
    feedback_display_ms: int = 400

    def __post_init__(self) -> None:
        missing = [t.value for t in ItemType if t not in self.item_types]
        _require(not missing, f"missing item type configuration: {', '.join(missing)}")
        _require(bool(self.difficulties), "at least one difficulty is required")
        _require(self.feedback_display_ms >= 0, "feedback_display_ms must be >= 0")

    def for_item(self, item_type: ItemType) -> ItemTypeConfig:
        return self.item_types[item_type]

    def difficulty(self, key: str) -> Difficulty:
        try:
            return self.difficulties[key]
        except KeyError:
            raise ValueError(f"Unknown difficulty: {key}") from None


def _build(cls: type, raw: Any, where: str, **nested: Any) -> Any:
    """Construct dataclass ``cls`` from a mapping, rejecting unknown keys."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"{where}: expected a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ValueError(f"{where}: unknown keys {sorted(unknown)}")
    kwargs = {k: v for k, v in raw.items() if k not in nested}
    for key, builder in nested.items():
        if key in raw:
            kwargs[key] = builder(raw[key])
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ValueError(f"{where}: {e}") from None


ITEM_TYPE_KEYS = {"expected_times_ms", "accelerated_intervals", "failure_seed_interval"}


def _build_item_types(raw: Any, where: str) -> Dict[ItemType, ItemTypeConfig]:
    item_types = _default_item_types()
    if raw is None:
        return item_types
    if not isinstance(raw, dict):
        raise ValueError(f"{where}: 'item_types' must be a mapping")
    for name, section in raw.items():
        try:
            item_type = ItemType(name)
        except ValueError:
            raise ValueError(f"{where}: unknown item type {name!r}") from None
        if not isinstance(section, dict):
            raise ValueError(f"{where}: item type {name} must be a mapping")
        unknown = set(section) - ITEM_TYPE_KEYS
        if unknown:
            raise ValueError(f"{where}: {name}: unknown keys {sorted(unknown)}")
        base = item_types[item_type]
        times = section.get("expected_times_ms")
        intervals = section.get("accelerated_intervals")
        item_types[item_type] = ItemTypeConfig(
            expected_times_ms=(
                _build(ExpectedTimes, times, f"{where}: {name}.expected_times_ms")
                if times is not None
                else base.expected_times_ms
            ),
            accelerated_intervals=(
                tuple(_parse_interval(v, where) for v in intervals)
                if intervals is not None
                else base.accelerated_intervals
            ),
            failure_seed_interval_days=_parse_interval(
                section.get("failure_seed_interval", base.failure_seed_interval_days), where
            ),
        )
    return item_types


def _parse_interval(value: Any, where: str) -> float:
    """Intervals are days; strings like ``"10m"``, ``"4h"`` or ``"3d"`` are accepted."""
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower()
    units = {"m": MINUTE, "h": HOUR, "d": 1.0}
    if text and text[-1] in units:
        try:
            return float(text[:-1]) * units[text[-1]]
        except ValueError:
            pass
    raise ValueError(f"{where}: invalid interval {value!r}")


def default_config_path() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "engine.yaml"


def load_engine_config(path: Optional[Path] = None) -> EngineConfig:
    """Read and validate engine configuration from YAML."""
    path = path or default_config_path()
    if not path.exists():
        raise FileNotFoundError(f"Engine configuration not found: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name}: expected a mapping at the top level")
    where = path.name

    def tier(data: Any) -> ConfidenceTier:
        return _build(ConfidenceTier, data, f"{where}: confidence")

    def difficulties(data: Any) -> Dict[str, Difficulty]:
        if not isinstance(data, dict):
            raise ValueError(f"{where}: 'difficulties' must be a mapping")
        return {
            str(key): _build(Difficulty, {"key": str(key), **(value or {})}, f"{where}: difficulty {key}")
            for key, value in data.items()
        }

    config = _build(
        EngineConfig,
        raw,
        where,
        matcher=lambda d: _build(MatcherConfig, d, f"{where}: matcher"),
        sm2=lambda d: _build(
            SM2Config,
            d,
            f"{where}: sm2",
            failure_quality=lambda q: _build(FailureQuality, q, f"{where}: sm2.failure_quality"),
        ),
        item_types=lambda d: _build_item_types(d, where),
        mastery=lambda d: _build(
            MasteryConfig,
            d,
            f"{where}: mastery",
            mastered=lambda m: _build(MasteredThresholds, m, f"{where}: mastery.mastered"),
            familiar=lambda m: _build(FamiliarThresholds, m, f"{where}: mastery.familiar"),
        ),
        confidence=lambda d: _build(ConfidenceConfig, d, f"{where}: confidence", strong=tier, moderate=tier),
        selection=lambda d: _build(SelectionConfig, d, f"{where}: selection"),
        difficulties=difficulties,
    )
    logger.info("Loaded engine configuration from %s", path)
    return config
