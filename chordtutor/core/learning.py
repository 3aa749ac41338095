from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from chordtutor.core.clock import Clock, SystemClock
from chordtutor.core.config import EngineConfig
from chordtutor.core.items import ItemType
from chordtutor.core.mastery import Classification, ConfidenceLevel, MasteryClassifier, MasteryLevel
from chordtutor.core.progress import ProgressBackend, ProgressRecord
from chordtutor.core.scheduler import SM2Scheduler
from chordtutor.core.selection import (
    SelectionWeighter,
    due_items,
    next_items_to_review,
    weak_items,
    weighted_sample,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemSnapshot:
    """What the UI needs to know about one item after an attempt or on query."""

    item_id: str
    item_type: ItemType
    mastery_level: MasteryLevel
    confidence_level: ConfidenceLevel
    next_review_date: datetime
    accuracy: float
    quality: Optional[int] = None


@dataclass(frozen=True)
class ProgressStats:
    practiced: int
    familiar: int
    mastered: int
    due: int


class LearningService:
    """Connects attempt outcomes to the scheduler, the classifier and storage."""

    def __init__(
        self,
        store: ProgressBackend,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self._classifier = MasteryClassifier(self._config.mastery, self._config.confidence)
        self._scheduler = SM2Scheduler(self._config, self._clock, self._classifier)
        self._weighter = SelectionWeighter(self._config.selection)

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def classifier(self) -> MasteryClassifier:
        return self._classifier

    def get_or_create(self, item_id: str, item_type: ItemType) -> ProgressRecord:
        """Stored record, or a fresh New record (not saved until an attempt is made)."""
        record = self._store.load(item_id, item_type)
        if record is None:
            return ProgressRecord.new(
                item_id, item_type, self._clock.now(), self._config.sm2.default_ease_factor
            )
        sm2 = self._config.sm2
        record.ease_factor = min(sm2.max_ease_factor, max(sm2.min_ease_factor, record.ease_factor))
        record.correct_attempts = min(record.correct_attempts, record.total_attempts)
        return record

    def record_attempt(
        self,
        item_id: str,
        item_type: ItemType,
        matched: bool,
        response_time_ms: float,
        attempt_number: int = 1,
        recognized: bool = False,
        timed_out: bool = False,
    ) -> ItemSnapshot:
        record = self.get_or_create(item_id, item_type)
        quality = self._scheduler.record_attempt(
            record,
            matched,
            response_time_ms,
            attempt_number=attempt_number,
            recognized=recognized,
            timed_out=timed_out,
        )
        self._persist(record)
        return self._snapshot(record, quality)

    def snapshot(self, item_id: str, item_type: ItemType) -> ItemSnapshot:
        return self._snapshot(self.get_or_create(item_id, item_type))

    def classify(self, record: ProgressRecord) -> Classification:
        return self._classifier.classify(record)

    def records(self, item_type: ItemType) -> List[ProgressRecord]:
        return self._store.all(item_type)

    def due_items(self, item_type: ItemType) -> List[ProgressRecord]:
        return due_items(self._store.all(item_type), self._clock.now())

    def next_items_to_review(self, item_type: ItemType, count: int) -> List[ProgressRecord]:
        return next_items_to_review(self._store.all(item_type), self._clock.now(), count)

    def weak_items(self, item_type: ItemType, threshold: float = 0.7) -> List[ProgressRecord]:
        return weak_items(self._store.all(item_type), threshold)

    def selection_weight(self, record: ProgressRecord) -> float:
        return self._weighter.weight(record, self._clock.now())

    def practice_batch(
        self,
        item_ids: Sequence[str],
        item_type: ItemType,
        count: int,
        rng: Optional[random.Random] = None,
    ) -> List[str]:
        """Weighted pick of ``count`` ids; items never attempted count as fresh records."""
        records = [self.get_or_create(item_id, item_type) for item_id in item_ids]
        weights = [self.selection_weight(r) for r in records]
        return [r.item_id for r in weighted_sample(records, weights, count, rng)]

    def stats(self, item_type: ItemType) -> ProgressStats:
        now = self._clock.now()
        levels: Dict[MasteryLevel, int] = {level: 0 for level in MasteryLevel}
        due = 0
        records = self._store.all(item_type)
        for record in records:
            levels[self._classifier.mastery_level(record)] += 1
            if record.is_due(now):
                due += 1
        return ProgressStats(
            practiced=sum(1 for r in records if r.has_practiced),
            familiar=levels[MasteryLevel.FAMILIAR],
            mastered=levels[MasteryLevel.MASTERED],
            due=due,
        )

    def _persist(self, record: ProgressRecord) -> None:
        try:
            saved = self._store.save(record)
        except Exception as e:
            logger.warning("Progress for %s %s not saved: %s", record.item_type.value, record.item_id, e)
            return
        if not saved:
            logger.warning("Progress for %s %s kept in memory only", record.item_type.value, record.item_id)

    def _snapshot(self, record: ProgressRecord, quality: Optional[int] = None) -> ItemSnapshot:
        classification = self._classifier.classify(record)
        return ItemSnapshot(
            item_id=record.item_id,
            item_type=record.item_type,
            mastery_level=classification.mastery_level,
            confidence_level=classification.confidence_level,
            next_review_date=record.next_review_date,
            accuracy=record.accuracy,
            quality=quality,
        )
