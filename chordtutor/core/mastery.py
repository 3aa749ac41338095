from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from chordtutor.core.config import ConfidenceConfig, MasteryConfig
from chordtutor.core.progress import ProgressRecord


class MasteryLevel(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    FAMILIAR = "familiar"
    MASTERED = "mastered"


class ConfidenceLevel(str, Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"


@dataclass(frozen=True)
class Classification:
    mastery_level: MasteryLevel
    confidence_level: ConfidenceLevel


class MasteryClassifier:
    """Derives mastery and confidence labels from a record's stored statistics.

    Pure: the same record always yields the same labels, so the labels can be
    recomputed on every read instead of being persisted.
    """

    def __init__(
        self,
        mastery: Optional[MasteryConfig] = None,
        confidence: Optional[ConfidenceConfig] = None,
    ) -> None:
        self._mastery = mastery or MasteryConfig()
        self._confidence = confidence or ConfidenceConfig()

    def classify(self, record: ProgressRecord) -> Classification:
        return Classification(self.mastery_level(record), self.confidence_level(record))

    def is_mastered(self, record: ProgressRecord) -> bool:
        m = self._mastery.mastered
        avg = record.average_response_time_ms
        return (
            record.repetitions >= m.min_repetitions
            and record.ease_factor >= m.min_ease_factor
            and record.accuracy >= m.min_accuracy
            and record.interval_days >= m.min_interval_days
            and (avg == 0 or avg <= m.max_response_time_ms)
        )

    def mastery_level(self, record: ProgressRecord) -> MasteryLevel:
        if self.is_mastered(record):
            return MasteryLevel.MASTERED
        f = self._mastery.familiar
        if record.accuracy >= f.min_accuracy and record.total_attempts >= f.min_attempts:
            return MasteryLevel.FAMILIAR
        if record.total_attempts > 0:
            return MasteryLevel.LEARNING
        return MasteryLevel.NEW

    def confidence_level(self, record: ProgressRecord) -> ConfidenceLevel:
        for tier, level in (
            (self._confidence.strong, ConfidenceLevel.STRONG),
            (self._confidence.moderate, ConfidenceLevel.MODERATE),
        ):
            if (
                record.total_attempts >= tier.min_attempts
                and record.accuracy >= tier.min_accuracy
                and record.average_response_time_ms <= tier.max_response_time_ms
            ):
                return level
        return ConfidenceLevel.WEAK
