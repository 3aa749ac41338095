"""Chord recognition for two input styles.

A chording device types a whole resolved word (sometimes after visibly
backspacing over raw characters) and finishes with a delimiter. A plain
keyboard reports the set of keys held down at once. ``ChordMatcher`` holds the
pure decision rules; ``ChordInputController`` feeds both input paths through
those rules and makes sure one physical attempt produces at most one result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Callable, Dict, Iterable, List, Optional, Sequence

from chordtutor.core.clock import Clock, SystemClock, TimerHandle, TransitionScheduler
from chordtutor.core.config import MatcherConfig

logger = logging.getLogger(__name__)

BACKSPACE = "\b"


class ScoringContext(str, Enum):
    """How a completed burst that matches nothing is treated."""

    # Every non-empty completion is scored.
    STRICT = "strict"
    # Survival/endless: unrecognized output is cleared without a score.
    LENIENT = "lenient"


@dataclass(frozen=True)
class MatchDecision:
    text: str
    raw_match: bool
    word_match: bool
    timing_ok: bool
    duration_ms: float

    @property
    def matched(self) -> bool:
        return (self.raw_match or self.word_match) and self.timing_ok

    @property
    def ambiguous(self) -> bool:
        return not self.raw_match and not self.word_match


@dataclass(frozen=True)
class AttemptResult:
    matched: bool
    response_time_ms: float
    source: str
    text: str = ""
    duration_ms: float = 0.0


class ChordMatcher:
    def __init__(self, config: Optional[MatcherConfig] = None) -> None:
        self._config = config or MatcherConfig()

    @property
    def config(self) -> MatcherConfig:
        return self._config

    def normalize(self, raw_input: str) -> str:
        return raw_input.lower().strip().strip(self._config.delimiters)

    def match_text(
        self,
        raw_input: str,
        expected_chars: AbstractSet[str],
        valid_output_words: AbstractSet[str] = frozenset(),
        timestamps: Sequence[float] = (),
        backspace_observed: bool = False,
        tolerance_multiplier: Optional[float] = None,
    ) -> MatchDecision:
        """Decide whether a completed text burst performs the chord.

        ``timestamps`` are the arrival times (ms) of the burst's characters,
        delimiter excluded.
        """
        text = self.normalize(raw_input)
        expected = {c.lower() for c in expected_chars}
        raw_match = bool(text) and set(text) == expected
        word_match = text in {w.lower() for w in valid_output_words}

        duration_ms = float(timestamps[-1] - timestamps[0]) if len(timestamps) >= 2 else 0.0
        multiplier = (
            tolerance_multiplier
            if tolerance_multiplier is not None
            else self._config.timing_tolerance_multiplier
        )
        timing_ok = (
            duration_ms <= self._config.base_max_duration_ms * multiplier
            or len(raw_input.lstrip()) <= self._config.short_input_length
            or backspace_observed
        )
        return MatchDecision(
            text=text,
            raw_match=raw_match,
            word_match=word_match,
            timing_ok=timing_ok,
            duration_ms=duration_ms,
        )

    def match_held_keys(self, held_keys: Iterable[str], expected_chars: AbstractSet[str]) -> bool:
        """Simultaneous-press check: the held printable keys are exactly the chord."""
        keys = held_key_set(held_keys)
        expected = {c.lower() for c in expected_chars}
        return len(keys) == len(expected) and keys == expected


def held_key_set(held_keys: Iterable[str]) -> set:
    return {k.lower() for k in held_keys if len(k) == 1 and k.isprintable() and not k.isspace()}


class HeldKeys:
    """Physical keys currently down, keyed by key code.

    A release that happens while the input lacks focus is never seen, so the
    owner calls :meth:`clear` on focus loss.
    """

    def __init__(self) -> None:
        self._keys: Dict[int, str] = {}

    def press(self, code: int, text: str) -> set:
        if text:
            self._keys[code] = text
        return held_key_set(self._keys.values())

    def release(self, code: int) -> None:
        self._keys.pop(code, None)

    def clear(self) -> None:
        self._keys.clear()

    def __len__(self) -> int:
        return len(self._keys)


class TextBurst:
    """Characters accumulated since the last completion, with arrival times."""

    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        self._text = ""
        self._timestamps: List[float] = []
        self._backspace_observed = False

    @property
    def text(self) -> str:
        return self._text

    @property
    def backspace_observed(self) -> bool:
        return self._backspace_observed

    @property
    def timestamps(self) -> List[float]:
        return list(self._timestamps)

    def push(self, char: str, timestamp_ms: float) -> None:
        """Record one arriving character; ``BACKSPACE`` removes the last one."""
        if char == BACKSPACE:
            if self._text:
                self._backspace_observed = True
                self._text = self._text[:-1]
                self._timestamps.pop()
            return
        self._text += char
        self._timestamps.append(timestamp_ms)

    def update(self, value: str, timestamp_ms: float) -> None:
        """Sync with the full current contents of a text field."""
        if len(value) > len(self._text):
            self._timestamps.extend([timestamp_ms] * (len(value) - len(self._text)))
        elif len(value) < len(self._text):
            self._backspace_observed = True
            del self._timestamps[len(value):]
        self._text = value

    def is_complete(self, delimiters: str) -> bool:
        return bool(self._text) and self._text[-1] in delimiters

    def char_timestamps(self, delimiters: str) -> List[float]:
        """Timestamps of the characters before any trailing delimiters."""
        return self._timestamps[: len(self._text.rstrip(delimiters))]


class ChordInputController:
    """Routes text bursts and held-key snapshots to a single result callback.

    A latch is set before a result is reported and released after the
    configured settle delay, so the same physical chord seen by both paths is
    counted once.
    """

    def __init__(
        self,
        on_result: Callable[[AttemptResult], None],
        scheduler: TransitionScheduler,
        matcher: Optional[ChordMatcher] = None,
        clock: Optional[Clock] = None,
        context: ScoringContext = ScoringContext.STRICT,
        on_clear: Optional[Callable[[], None]] = None,
    ) -> None:
        self._on_result = on_result
        self._on_clear = on_clear
        self._scheduler = scheduler
        self._matcher = matcher or ChordMatcher()
        self._clock = clock or SystemClock()
        self._context = context

        self._burst = TextBurst()
        self._expected: frozenset = frozenset()
        self._valid_words: frozenset = frozenset()
        self._tolerance: Optional[float] = None
        self._enabled = False
        self._in_flight = False
        self._last_processed = ""
        self._timing_start = 0.0
        self._settle_handle: Optional[TimerHandle] = None
        self._idle_handle: Optional[TimerHandle] = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def burst(self) -> TextBurst:
        return self._burst

    @property
    def context(self) -> ScoringContext:
        return self._context

    @context.setter
    def context(self, value: ScoringContext) -> None:
        self._context = value

    def present(
        self,
        expected_chars: AbstractSet[str],
        valid_output_words: AbstractSet[str] = frozenset(),
        tolerance_multiplier: Optional[float] = None,
    ) -> None:
        """Arm the controller for a new item and start its response timer."""
        self._expected = frozenset(c.lower() for c in expected_chars)
        self._valid_words = frozenset(w.lower() for w in valid_output_words)
        self._tolerance = tolerance_multiplier
        self.reset()
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False
        self._cancel_timers()

    def reset(self) -> None:
        self._cancel_timers()
        self._burst.clear()
        self._last_processed = ""
        self._in_flight = False
        self.start_timing()

    def start_timing(self) -> None:
        self._timing_start = self._clock.monotonic_ms()

    def response_time_ms(self) -> float:
        return max(0.0, self._clock.monotonic_ms() - self._timing_start)

    def text_changed(self, value: str, timestamp_ms: Optional[float] = None) -> None:
        if not self._enabled or self._in_flight:
            return
        self._burst.update(value, self._stamp(timestamp_ms))
        self._after_text_input()

    def char_arrived(self, char: str, timestamp_ms: Optional[float] = None) -> None:
        if not self._enabled or self._in_flight:
            return
        self._burst.push(char, self._stamp(timestamp_ms))
        self._after_text_input()

    def keys_held(self, held_keys: Iterable[str], timestamp_ms: Optional[float] = None) -> None:
        """Handle a snapshot of keys currently held on a plain keyboard."""
        if not self._enabled or self._in_flight:
            return
        if len(self._expected) < 2:
            return
        keys = held_key_set(held_keys)
        if len(keys) != len(self._expected):
            # Partial or oversized press; the text path may still resolve it.
            return
        if self._matcher.match_held_keys(keys, self._expected):
            self._report(True, "keys", "".join(sorted(keys)), 0.0)
        elif self._context is ScoringContext.STRICT and len(self._expected) == 2:
            self._report(False, "keys", "".join(sorted(keys)), 0.0)

    def _after_text_input(self) -> None:
        delimiters = self._matcher.config.delimiters
        if not self._burst.is_complete(delimiters):
            self._schedule_idle_clear()
            return

        word = self._matcher.normalize(self._burst.text)
        if not word:
            # A bare delimiter is hesitation, not an answer.
            self._discard()
            return
        if word == self._last_processed:
            self._discard()
            return
        self._last_processed = word

        decision = self._matcher.match_text(
            self._burst.text,
            self._expected,
            self._valid_words,
            self._burst.char_timestamps(delimiters),
            self._burst.backspace_observed,
            self._tolerance,
        )
        logger.debug(
            "burst %r raw=%s word=%s timing=%s duration=%.0fms backspace=%s",
            decision.text,
            decision.raw_match,
            decision.word_match,
            decision.timing_ok,
            decision.duration_ms,
            self._burst.backspace_observed,
        )

        if decision.matched:
            self._report(True, "text", decision.text, decision.duration_ms)
        elif self._context is ScoringContext.LENIENT and decision.ambiguous:
            logger.debug("Discarding unrecognized output %r", decision.text)
            self._discard()
        else:
            self._report(False, "text", decision.text, decision.duration_ms)

    def _report(self, matched: bool, source: str, text: str, duration_ms: float) -> None:
        self._in_flight = True
        result = AttemptResult(
            matched=matched,
            response_time_ms=self.response_time_ms(),
            source=source,
            text=text,
            duration_ms=duration_ms,
        )
        self._burst.clear()
        self._last_processed = ""
        self._cancel_idle()
        self.start_timing()
        self._settle_handle = self._scheduler.call_later(
            self._matcher.config.settle_delay_ms, self._release
        )
        self._on_result(result)

    def _release(self) -> None:
        self._settle_handle = None
        self._in_flight = False

    def _schedule_idle_clear(self) -> None:
        self._cancel_idle()
        self._idle_handle = self._scheduler.call_later(self._matcher.config.idle_clear_ms, self._idle_clear)

    def _idle_clear(self) -> None:
        self._idle_handle = None
        if not self._in_flight and self._burst.text:
            self._discard()

    def _discard(self) -> None:
        self._burst.clear()
        if self._on_clear is not None:
            self._on_clear()

    def _cancel_idle(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _cancel_timers(self) -> None:
        self._cancel_idle()
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None

    def _stamp(self, timestamp_ms: Optional[float]) -> float:
        return self._clock.monotonic_ms() if timestamp_ms is None else timestamp_ms
