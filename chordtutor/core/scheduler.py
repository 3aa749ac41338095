from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from chordtutor.core.clock import Clock, SystemClock
from chordtutor.core.config import EngineConfig, ExpectedTimes
from chordtutor.core.mastery import MasteryClassifier, MasteryLevel
from chordtutor.core.progress import ProgressRecord

logger = logging.getLogger(__name__)

QUALITY_LABELS = {
    0: "Blackout",
    1: "Wrong",
    2: "Almost",
    3: "Hard",
    4: "Good",
    5: "Perfect",
}


def expected_time_ms(times: ExpectedTimes, level: MasteryLevel) -> float:
    if level is MasteryLevel.MASTERED:
        return times.advanced
    if level is MasteryLevel.FAMILIAR:
        return times.intermediate
    return times.beginner


def ease_delta(quality: int) -> float:
    """Standard SM-2 ease factor adjustment for a quality rating."""
    miss = 5 - quality
    return 0.1 - miss * (0.08 + miss * 0.02)


class SM2Scheduler:
    """SM-2 variant with per-item-type accelerated early intervals.

    Motor-skill items are reviewed after minutes, then hours, then days,
    before falling back to classic SM-2 growth. A miss resets repetitions and
    the interval but leaves the ease factor alone.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        classifier: Optional[MasteryClassifier] = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self._classifier = classifier or MasteryClassifier(self._config.mastery, self._config.confidence)

    def quality_for_attempt(
        self,
        record: ProgressRecord,
        matched: bool,
        response_time_ms: float,
        attempt_number: int = 1,
        recognized: bool = False,
    ) -> int:
        """Rate an attempt from 0 (blackout) to 5 (instant recall)."""
        if not matched:
            failure = self._config.sm2.failure_quality
            if attempt_number <= 1:
                return failure.first_attempt
            if recognized:
                return failure.recognized
            return failure.otherwise

        level = self._classifier.mastery_level(record)
        expected = expected_time_ms(self._config.for_item(record.item_type).expected_times_ms, level)
        if response_time_ms <= expected * 0.5:
            return 5
        if response_time_ms <= expected:
            return 4
        return 3

    def record_attempt(
        self,
        record: ProgressRecord,
        matched: bool,
        response_time_ms: float,
        attempt_number: int = 1,
        recognized: bool = False,
        timed_out: bool = False,
    ) -> int:
        """Apply one observation to ``record`` in place and return the quality used."""
        sm2 = self._config.sm2
        response_time_ms = min(max(0.0, float(response_time_ms)), sm2.max_response_time_ms)
        if timed_out:
            matched = False
            quality = 0
        else:
            quality = self.quality_for_attempt(record, matched, response_time_ms, attempt_number, recognized)

        self._reschedule(record, quality)

        now = self._clock.now()
        record.total_attempts += 1
        if matched:
            record.correct_attempts += 1
            record.average_response_time_ms += (
                response_time_ms - record.average_response_time_ms
            ) / record.correct_attempts
            record.last_correct_date = now
        record.last_attempt_date = now
        record.next_review_date = now + timedelta(days=record.interval_days)

        logger.debug(
            "%s %s: q=%d (%s) reps=%d ef=%.2f interval=%.4fd",
            record.item_type.value,
            record.item_id,
            quality,
            QUALITY_LABELS[quality],
            record.repetitions,
            record.ease_factor,
            record.interval_days,
        )
        return quality

    def _reschedule(self, record: ProgressRecord, quality: int) -> None:
        sm2 = self._config.sm2
        item_config = self._config.for_item(record.item_type)
        ease = self._clamp_ease(record.ease_factor)
        previous = max(0.0, record.interval_days)

        if quality < sm2.success_threshold:
            record.repetitions = 0
            record.interval_days = item_config.failure_seed_interval_days
            record.ease_factor = ease
            return

        accelerated = item_config.accelerated_interval(record.repetitions)
        if accelerated is not None:
            interval = accelerated
        else:
            cap = (
                sm2.max_interval_mastered_days
                if self._classifier.is_mastered(record)
                else sm2.max_interval_not_mastered_days
            )
            interval = min(previous * ease, cap)
        # Caps stop growth; they never shorten an interval within a success streak.
        record.interval_days = max(interval, previous)
        record.repetitions += 1
        record.ease_factor = self._clamp_ease(ease + ease_delta(quality))

    def _clamp_ease(self, ease: float) -> float:
        sm2 = self._config.sm2
        return min(sm2.max_ease_factor, max(sm2.min_ease_factor, ease))
