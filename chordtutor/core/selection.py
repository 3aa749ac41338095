from __future__ import annotations

import random
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from chordtutor.core.config import SelectionConfig
from chordtutor.core.progress import ProgressRecord


class SelectionWeighter:
    """Sampling weights that favour overdue, failed and rarely practiced items."""

    def __init__(self, config: Optional[SelectionConfig] = None) -> None:
        self._config = config or SelectionConfig()

    def hours_overdue(self, record: ProgressRecord, now: datetime) -> float:
        return max(0.0, (now - record.next_review_date).total_seconds() / 3600.0)

    def weight(self, record: ProgressRecord, now: datetime) -> float:
        c = self._config
        weight = c.min_base_weight
        weight += (1 - record.accuracy) * c.failed_multiplier
        weight += (self.hours_overdue(record, now) / 24) * c.overdue_boost_per_day
        if record.total_attempts < c.low_attempt_threshold:
            weight += c.low_attempt_bonus
        return weight

    def weights(self, records: Iterable[ProgressRecord], now: datetime) -> Dict[Tuple[str, str], float]:
        return {(r.item_id, r.item_type.value): self.weight(r, now) for r in records}


def due_items(records: Iterable[ProgressRecord], now: datetime) -> List[ProgressRecord]:
    """Records whose next review is at or before ``now``."""
    return [r for r in records if r.is_due(now)]


def next_items_to_review(
    records: Iterable[ProgressRecord], now: datetime, count: int
) -> List[ProgressRecord]:
    """Due records, those overdue by more than a day first, then hardest (lowest ease) first."""

    def sort_key(record: ProgressRecord) -> Tuple[int, float]:
        heavily_overdue = (now - record.next_review_date).total_seconds() > 86400
        return (0 if heavily_overdue else 1, record.ease_factor)

    return sorted(due_items(records, now), key=sort_key)[: max(0, count)]


def weak_items(records: Iterable[ProgressRecord], threshold: float) -> List[ProgressRecord]:
    """Practiced records below ``threshold`` accuracy, weakest first."""
    weak = [r for r in records if r.total_attempts > 0 and r.accuracy < threshold]
    return sorted(weak, key=lambda r: r.accuracy)


def weighted_sample(
    items: Sequence[ProgressRecord],
    weights: Sequence[float],
    count: int,
    rng: Optional[random.Random] = None,
) -> List[ProgressRecord]:
    """Pick up to ``count`` distinct items, each draw proportional to its weight."""
    if len(items) != len(weights):
        raise ValueError("items and weights must have the same length")
    rng = rng or random.Random()
    remaining = list(zip(items, weights))
    if len(remaining) <= count:
        return [item for item, _ in remaining]

    selected: List[ProgressRecord] = []
    while len(selected) < count and remaining:
        total = sum(w for _, w in remaining)
        pick = rng.random() * total
        for i, (item, w) in enumerate(remaining):
            pick -= w
            if pick <= 0 or i == len(remaining) - 1:
                selected.append(item)
                del remaining[i]
                break
    return selected
