"""Tests for chordtutor.core.selection – weights, due lists and sampling."""

from __future__ import annotations

import random
from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest

from chordtutor.core.items import ItemType
from chordtutor.core.progress import ProgressRecord
from chordtutor.core.selection import (
    SelectionWeighter,
    due_items,
    next_items_to_review,
    weak_items,
    weighted_sample,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def record(item_id: str, attempts: int = 0, correct: int = 0, due_in_hours: float = 0.0, ease: float = 2.5):
    r = ProgressRecord.new(item_id, ItemType.CHARACTER, NOW + timedelta(hours=due_in_hours), ease)
    r.total_attempts = attempts
    r.correct_attempts = correct
    return r


# ---------------------------------------------------------------------------
# SelectionWeighter
# ---------------------------------------------------------------------------

class TestWeight:
    def test_overdue_failing_beats_fresh_accurate(self):
        w = SelectionWeighter()
        overdue = record("a", attempts=10, correct=5, due_in_hours=-48)
        accurate = record("b", attempts=10, correct=9, due_in_hours=24)
        assert w.weight(overdue, NOW) > w.weight(accurate, NOW)

    def test_formula(self):
        w = SelectionWeighter()
        r = record("a", attempts=2, correct=1, due_in_hours=-12)
        assert w.weight(r, NOW) == pytest.approx(0.1 + 0.5 * 4 + 0.5 + 0.5)

    def test_not_yet_due_has_no_overdue_boost(self):
        w = SelectionWeighter()
        assert w.hours_overdue(record("a", due_in_hours=5), NOW) == 0.0

    def test_never_zero(self):
        w = SelectionWeighter()
        perfect = record("a", attempts=50, correct=50, due_in_hours=100)
        assert w.weight(perfect, NOW) == pytest.approx(0.1)

    def test_new_item_weight(self):
        w = SelectionWeighter()
        assert w.weight(record("a"), NOW) == pytest.approx(0.1 + 4 + 0.5)

    def test_weights_keyed_by_identity(self):
        w = SelectionWeighter()
        weights = w.weights([record("a"), record("b")], NOW)
        assert set(weights) == {("a", "character"), ("b", "character")}


# ---------------------------------------------------------------------------
# Due and weak lists
# ---------------------------------------------------------------------------

class TestDueItems:
    def test_due_boundary_inclusive(self):
        records = [record("a", due_in_hours=0), record("b", due_in_hours=0.01), record("c", due_in_hours=-3)]
        assert [r.item_id for r in due_items(records, NOW)] == ["a", "c"]

    def test_heavily_overdue_first_then_hardest(self):
        records = [
            record("easy", ease=2.8, due_in_hours=-2),
            record("hard", ease=1.5, due_in_hours=-2),
            record("old", ease=3.0, due_in_hours=-30),
            record("later", due_in_hours=5),
        ]
        ordered = next_items_to_review(records, NOW, 10)
        assert [r.item_id for r in ordered] == ["old", "hard", "easy"]

    def test_count_limits(self):
        records = [record(str(i), due_in_hours=-1) for i in range(5)]
        assert len(next_items_to_review(records, NOW, 2)) == 2

    def test_weak_items_sorted(self):
        records = [
            record("a", attempts=10, correct=6),
            record("b", attempts=10, correct=2),
            record("c", attempts=10, correct=9),
            record("d"),
        ]
        assert [r.item_id for r in weak_items(records, 0.7)] == ["b", "a"]


# ---------------------------------------------------------------------------
# weighted_sample
# ---------------------------------------------------------------------------

class TestWeightedSample:
    def test_returns_all_when_count_exceeds(self):
        items = [record("a"), record("b")]
        assert weighted_sample(items, [1, 1], 5) == items

    def test_no_duplicates(self):
        items = [record(str(i)) for i in range(10)]
        picked = weighted_sample(items, [1.0] * 10, 6, random.Random(1))
        assert len({r.item_id for r in picked}) == 6

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            weighted_sample([record("a")], [1, 2], 1)

    def test_heavier_items_picked_more_often(self):
        items = [record("heavy"), record("light")]
        rng = random.Random(3)
        counts = Counter(weighted_sample(items, [9.0, 1.0], 1, rng)[0].item_id for _ in range(500))
        assert counts["heavy"] > counts["light"] * 3

    def test_seeded_rng_is_reproducible(self):
        items = [record(str(i)) for i in range(8)]
        weights = [float(i + 1) for i in range(8)]
        a = weighted_sample(items, weights, 4, random.Random(11))
        b = weighted_sample(items, weights, 4, random.Random(11))
        assert a == b
