"""Shared fixtures: a hand-driven clock and transition scheduler."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List

import pytest

from chordtutor.core.config import EngineConfig
from chordtutor.core.learning import LearningService
from chordtutor.core.progress import ProgressStore

START = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


class ManualClock:
    """Clock that only moves when told to. Wall time follows monotonic time."""

    def __init__(self, start: datetime = START) -> None:
        self._start = start
        self._ms = 0.0

    def monotonic_ms(self) -> float:
        return self._ms

    def now(self) -> datetime:
        return self._start + timedelta(milliseconds=self._ms)

    def advance(self, ms: float) -> None:
        self._ms += ms

    def advance_to(self, ms: float) -> None:
        self._ms = max(self._ms, ms)

    def advance_days(self, days: float) -> None:
        self._ms += days * 86_400_000


class ManualTimer:
    def __init__(self, due_ms: float, callback: Callable[[], None]) -> None:
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Transition scheduler whose timers fire only from ``advance``."""

    def __init__(self, clock: ManualClock) -> None:
        self._clock = clock
        self._timers: List[ManualTimer] = []

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self._clock.monotonic_ms() + delay_ms, callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> List[ManualTimer]:
        return [t for t in self._timers if not t.cancelled and not t.fired]

    def advance(self, ms: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self._clock.monotonic_ms() + ms
        while True:
            due = [t for t in self.pending if t.due_ms <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due_ms)
            self._clock.advance_to(timer.due_ms)
            timer.fired = True
            timer.callback()
        self._clock.advance_to(target)


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def scheduler(clock: ManualClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture()
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture()
def store(tmp_path: Path) -> ProgressStore:
    """ProgressStore backed by a temp file so tests don't touch ~/.chordtutor."""
    return ProgressStore(tmp_path / "progress.json")


@pytest.fixture()
def learning(store: ProgressStore, config: EngineConfig, clock: ManualClock) -> LearningService:
    return LearningService(store, config=config, clock=clock)
