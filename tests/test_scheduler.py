"""Tests for chordtutor.core.scheduler – SM-2 scheduling with accelerated intervals."""

from __future__ import annotations

import random
from datetime import timedelta

import pytest

from chordtutor.core.config import HOUR, MINUTE, EngineConfig
from chordtutor.core.items import ItemType
from chordtutor.core.progress import ProgressRecord
from chordtutor.core.scheduler import SM2Scheduler, ease_delta


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def sm2(config: EngineConfig, clock) -> SM2Scheduler:
    return SM2Scheduler(config, clock)


def new_record(clock, item_type: ItemType = ItemType.CHARACTER) -> ProgressRecord:
    return ProgressRecord.new("a", item_type, clock.now())


# ---------------------------------------------------------------------------
# Quality rating
# ---------------------------------------------------------------------------

class TestQuality:
    def test_fast_is_perfect(self, sm2, clock):
        assert sm2.quality_for_attempt(new_record(clock), True, 1000) == 5

    def test_within_expected_is_good(self, sm2, clock):
        assert sm2.quality_for_attempt(new_record(clock), True, 1500) == 4

    def test_slow_is_hard(self, sm2, clock):
        assert sm2.quality_for_attempt(new_record(clock), True, 2500) == 3

    def test_expected_time_depends_on_item_type(self, sm2, clock):
        chord = new_record(clock, ItemType.TWO_KEY_CHORD)
        assert sm2.quality_for_attempt(chord, True, 1500) == 5

    def test_mastered_items_use_advanced_time(self, sm2, clock):
        record = new_record(clock)
        record.repetitions = 6
        record.interval_days = 10
        record.total_attempts = 10
        record.correct_attempts = 10
        record.average_response_time_ms = 400
        assert sm2.quality_for_attempt(record, True, 400) == 4

    def test_miss_on_first_attempt(self, sm2, clock):
        assert sm2.quality_for_attempt(new_record(clock), False, 100, attempt_number=1) == 0

    def test_miss_recognized(self, sm2, clock):
        assert sm2.quality_for_attempt(new_record(clock), False, 100, attempt_number=2, recognized=True) == 1

    def test_miss_on_retry(self, sm2, clock):
        assert sm2.quality_for_attempt(new_record(clock), False, 100, attempt_number=2) == 2


class TestEaseDelta:
    @pytest.mark.parametrize("quality, expected", [(5, 0.1), (4, 0.0), (3, -0.14)])
    def test_standard_formula(self, quality, expected):
        assert ease_delta(quality) == pytest.approx(expected)


# ---------------------------------------------------------------------------
# Success path
# ---------------------------------------------------------------------------

class TestSuccess:
    def test_new_character_gets_two_minutes(self, sm2, clock):
        record = new_record(clock)
        q = sm2.record_attempt(record, True, 500)
        assert q == 5
        assert record.repetitions == 1
        assert record.interval_days == pytest.approx(2 * MINUTE)
        assert record.next_review_date == clock.now() + timedelta(minutes=2)

    def test_accelerated_table_walk(self, sm2, clock):
        record = new_record(clock)
        expected = [2 * MINUTE, 10 * MINUTE, HOUR, 4 * HOUR, 1, 3, 7, 14, 30]
        for interval in expected:
            sm2.record_attempt(record, True, 500)
            assert record.interval_days == pytest.approx(interval)

    def test_classic_growth_after_table(self, sm2, clock):
        record = new_record(clock, ItemType.WORD)
        for _ in range(5):
            sm2.record_attempt(record, True, 500)
        assert record.interval_days == pytest.approx(6)
        sm2.record_attempt(record, True, 500)
        assert record.interval_days == pytest.approx(14)

    def test_not_mastered_cap_never_shrinks_interval(self, sm2, clock):
        record = new_record(clock)
        for _ in range(9):
            sm2.record_attempt(record, True, 500)
        assert record.interval_days == pytest.approx(30)
        # Beyond the table, growth is capped but the 30-day interval is kept.
        record.correct_attempts = record.total_attempts // 2
        sm2.record_attempt(record, True, 500)
        assert record.interval_days == pytest.approx(30)

    def test_mastered_cap(self, sm2, clock):
        record = new_record(clock)
        record.repetitions = 20
        record.interval_days = 100
        record.ease_factor = 2.5
        record.total_attempts = 20
        record.correct_attempts = 20
        record.average_response_time_ms = 300
        sm2.record_attempt(record, True, 200)
        assert record.interval_days == pytest.approx(180)

    def test_ease_increases_on_perfect(self, sm2, clock):
        record = new_record(clock)
        sm2.record_attempt(record, True, 500)
        assert record.ease_factor == pytest.approx(2.6)

    def test_ease_clamped_to_max(self, sm2, clock):
        record = new_record(clock)
        record.ease_factor = 3.45
        sm2.record_attempt(record, True, 100)
        assert record.ease_factor == pytest.approx(3.5)

    def test_ease_clamped_to_min(self, sm2, clock):
        record = new_record(clock)
        record.ease_factor = 1.35
        sm2.record_attempt(record, True, 5000)
        assert record.ease_factor == pytest.approx(1.3)


# ---------------------------------------------------------------------------
# Failure path
# ---------------------------------------------------------------------------

class TestFailure:
    def test_resets_repetitions_and_interval(self, sm2, clock):
        record = new_record(clock)
        for _ in range(6):
            sm2.record_attempt(record, True, 500)
        ease = record.ease_factor
        sm2.record_attempt(record, False, 500)
        assert record.repetitions == 0
        assert record.interval_days == pytest.approx(2 * MINUTE)
        assert record.ease_factor == pytest.approx(ease)

    def test_timeout_is_blackout(self, sm2, clock):
        record = new_record(clock)
        assert sm2.record_attempt(record, True, 500, timed_out=True) == 0
        assert record.correct_attempts == 0

    def test_out_of_range_ease_is_clamped_on_failure(self, sm2, clock):
        record = new_record(clock)
        record.ease_factor = 9.0
        sm2.record_attempt(record, False, 500)
        assert record.ease_factor == pytest.approx(3.5)


# ---------------------------------------------------------------------------
# Running statistics
# ---------------------------------------------------------------------------

class TestStatistics:
    def test_mean_over_correct_only(self, sm2, clock):
        record = new_record(clock)
        sm2.record_attempt(record, True, 400)
        sm2.record_attempt(record, False, 9000)
        sm2.record_attempt(record, True, 800)
        assert record.total_attempts == 3
        assert record.correct_attempts == 2
        assert record.average_response_time_ms == pytest.approx(600)

    def test_response_time_capped(self, sm2, clock):
        record = new_record(clock)
        sm2.record_attempt(record, True, 60_000)
        assert record.average_response_time_ms == pytest.approx(17_500)

    def test_dates_updated(self, sm2, clock):
        record = new_record(clock)
        clock.advance(5000)
        sm2.record_attempt(record, False, 500)
        assert record.last_attempt_date == clock.now()
        assert record.last_correct_date is None
        sm2.record_attempt(record, True, 500)
        assert record.last_correct_date == clock.now()

    def test_invariants_hold_over_random_sequence(self, sm2, clock):
        rng = random.Random(7)
        record = new_record(clock)
        correct = 0
        previous_interval = 0.0
        for i in range(300):
            matched = rng.random() < 0.7
            correct += matched
            sm2.record_attempt(
                record, matched, rng.uniform(0, 20_000), attempt_number=rng.randint(1, 3)
            )
            clock.advance(rng.uniform(0, 3_600_000))
            assert 1.3 <= record.ease_factor <= 3.5
            assert record.interval_days >= 0
            assert record.next_review_date == record.last_attempt_date + timedelta(days=record.interval_days)
            if matched:
                assert record.interval_days >= previous_interval
            else:
                assert record.repetitions == 0
            previous_interval = record.interval_days
            assert record.accuracy == correct / (i + 1)

    def test_deterministic(self, config, clock):
        a, b = new_record(clock), new_record(clock)
        SM2Scheduler(config, clock).record_attempt(a, True, 700)
        SM2Scheduler(config, clock).record_attempt(b, True, 700)
        assert a == b
