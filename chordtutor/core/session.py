"""Timed practice sessions as an explicit state machine.

A session walks a fixed list of challenges. Each item is presented, input
is awaited (with an optional countdown), feedback is shown for a fixed
period and the session advances. Every state change cancels all pending
scheduled transitions first, so no timer armed for one item can act on
another.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from chordtutor.core.clock import Clock, SystemClock, TimerHandle, TransitionScheduler
from chordtutor.core.config import Difficulty
from chordtutor.core.items import Challenge, ChordLibrary, ItemType, display_text, item_key
from chordtutor.core.learning import ItemSnapshot, LearningService
from chordtutor.core.matcher import AttemptResult, ScoringContext

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    READY = "ready"
    PRESENTING = "presenting"
    AWAITING_INPUT = "awaiting_input"
    FEEDBACK = "feedback"
    ADVANCING = "advancing"
    COMPLETE = "complete"


class SessionMode(str, Enum):
    PRACTICE = "practice"
    REVIEW_DUE = "review_due"
    WEAK = "weak"


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of one scored attempt within a session."""

    challenge: Challenge
    matched: bool
    response_time_ms: float
    attempt_number: int
    timed_out: bool = False
    snapshot: Optional[ItemSnapshot] = None


class PracticeSession:
    """Drives one run through a list of challenges.

    The UI arms its input controller when the phase becomes AWAITING_INPUT,
    passes every ``AttemptResult`` to :meth:`submit`, and renders whatever the
    current phase calls for. ``difficulty`` sets the per-question countdown and
    how many tries an item gets; without one the session is untimed.
    """

    def __init__(
        self,
        challenges: Sequence[Challenge],
        learning: LearningService,
        scheduler: TransitionScheduler,
        clock: Optional[Clock] = None,
        difficulty: Optional[Difficulty] = None,
        survival: bool = False,
        on_phase_changed: Optional[Callable[[Phase], None]] = None,
    ) -> None:
        self._challenges = list(challenges)
        self._learning = learning
        self._scheduler = scheduler
        self._clock = clock or SystemClock()
        self._difficulty = difficulty
        self._survival = survival
        self._on_phase_changed = on_phase_changed
        self._feedback_ms = learning.config.feedback_display_ms

        self._phase = Phase.READY
        self._index = 0
        self._presentation = 0
        self._attempt_number = 1
        self._awaiting_since = 0.0
        self._pending: List[TimerHandle] = []
        self._outcomes: List[AttemptOutcome] = []

        self._attempted = 0
        self._correct = 0
        self._total_correct_time_ms = 0.0
        self._streak = 0
        self._best_streak = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def index(self) -> int:
        return self._index

    @property
    def total_items(self) -> int:
        return len(self._challenges)

    @property
    def attempt_number(self) -> int:
        return self._attempt_number

    @property
    def scoring_context(self) -> ScoringContext:
        return ScoringContext.LENIENT if self._survival else ScoringContext.STRICT

    @property
    def time_limit_ms(self) -> Optional[int]:
        return self._difficulty.time_limit_ms if self._difficulty else None

    @property
    def max_attempts(self) -> int:
        return self._difficulty.max_attempts if self._difficulty else 1

    @property
    def last_outcome(self) -> Optional[AttemptOutcome]:
        return self._outcomes[-1] if self._outcomes else None

    @property
    def outcomes(self) -> List[AttemptOutcome]:
        return list(self._outcomes)

    def current(self) -> Optional[Challenge]:
        if self._index >= len(self._challenges):
            return None
        return self._challenges[self._index]

    def is_complete(self) -> bool:
        return self._phase is Phase.COMPLETE

    def remaining_ms(self) -> Optional[float]:
        """Time left on the countdown, or None when untimed or not awaiting input."""
        limit = self.time_limit_ms
        if limit is None or self._phase is not Phase.AWAITING_INPUT:
            return None
        return max(0.0, limit - (self._clock.monotonic_ms() - self._awaiting_since))

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    @property
    def attempted(self) -> int:
        return self._attempted

    @property
    def correct(self) -> int:
        return self._correct

    @property
    def streak(self) -> int:
        return self._streak

    @property
    def best_streak(self) -> int:
        return self._best_streak

    def aggregate_accuracy(self) -> float:
        """Correct attempts / attempts as a percentage."""
        return (self._correct / max(self._attempted, 1)) * 100.0

    def average_response_time_ms(self) -> float:
        """Mean response time over correct attempts."""
        if self._correct == 0:
            return 0.0
        return self._total_correct_time_ms / self._correct

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._phase is not Phase.READY:
            return
        if not self._challenges:
            self._complete()
            return
        self._present()

    def submit(self, result: AttemptResult, recognized: bool = False) -> Optional[AttemptOutcome]:
        """Score a result from the input controller. Ignored unless input is awaited."""
        if self._phase is not Phase.AWAITING_INPUT:
            logger.debug("Ignoring result in phase %s", self._phase.value)
            return None
        outcome = self._score(result.matched, result.response_time_ms, recognized=recognized)
        self._show_feedback()
        return outcome

    def end(self) -> None:
        """Stop the session early (window closed, user quit)."""
        if self._phase is not Phase.COMPLETE:
            self._complete()

    def cancel_pending(self) -> None:
        """Cancel every scheduled transition: countdowns and feedback timers alike."""
        for handle in self._pending:
            handle.cancel()
        self._pending.clear()

    def _transition(self, phase: Phase) -> None:
        self.cancel_pending()
        self._phase = phase
        logger.debug("Session phase -> %s (item %d/%d)", phase.value, self._index + 1, len(self._challenges))
        if self._on_phase_changed is not None:
            self._on_phase_changed(phase)

    def _schedule(self, delay_ms: int, callback: Callable[[], None]) -> None:
        self._pending.append(self._scheduler.call_later(delay_ms, callback))

    def _present(self) -> None:
        self._presentation += 1
        self._attempt_number = 1
        self._transition(Phase.PRESENTING)
        self._await_input()

    def _await_input(self) -> None:
        self._transition(Phase.AWAITING_INPUT)
        self._awaiting_since = self._clock.monotonic_ms()
        limit = self.time_limit_ms
        if limit is not None:
            token = self._presentation
            self._schedule(limit, lambda: self._on_timeout(token))

    def _on_timeout(self, token: int) -> None:
        if token != self._presentation or self._phase is not Phase.AWAITING_INPUT:
            logger.debug("Stale countdown for presentation %d ignored", token)
            return
        elapsed = self._clock.monotonic_ms() - self._awaiting_since
        self._score(False, elapsed, timed_out=True)
        self._show_feedback()

    def _score(
        self,
        matched: bool,
        response_time_ms: float,
        timed_out: bool = False,
        recognized: bool = False,
    ) -> AttemptOutcome:
        challenge = self._challenges[self._index]
        snapshot = None
        key = item_key(challenge)
        if key is not None:
            snapshot = self._learning.record_attempt(
                key[0],
                key[1],
                matched,
                response_time_ms,
                attempt_number=self._attempt_number,
                recognized=recognized,
                timed_out=timed_out,
            )

        self._attempted += 1
        if matched:
            self._correct += 1
            self._total_correct_time_ms += response_time_ms
            self._streak += 1
            self._best_streak = max(self._best_streak, self._streak)
        else:
            self._streak = 0

        outcome = AttemptOutcome(
            challenge=challenge,
            matched=matched,
            response_time_ms=response_time_ms,
            attempt_number=self._attempt_number,
            timed_out=timed_out,
            snapshot=snapshot,
        )
        self._outcomes.append(outcome)
        logger.info(
            "%s %s in %.0fms%s",
            display_text(challenge),
            "correct" if matched else "missed",
            response_time_ms,
            " (timeout)" if timed_out else "",
        )
        return outcome

    def _show_feedback(self) -> None:
        self._transition(Phase.FEEDBACK)
        self._schedule(self._feedback_ms, self._after_feedback)

    def _after_feedback(self) -> None:
        outcome = self._outcomes[-1]
        if self._survival and not outcome.matched:
            self._complete()
            return
        if outcome.matched or outcome.timed_out or self._attempt_number >= self.max_attempts:
            self._advance()
            return
        self._attempt_number += 1
        self._await_input()

    def _advance(self) -> None:
        self._transition(Phase.ADVANCING)
        self._index += 1
        if self._index >= len(self._challenges):
            self._complete()
        else:
            self._present()

    def _complete(self) -> None:
        self._transition(Phase.COMPLETE)
        logger.info(
            "Session complete: %d/%d correct, best streak %d",
            self._correct,
            self._attempted,
            self._best_streak,
        )


def select_challenges(
    library: ChordLibrary,
    learning: LearningService,
    item_type: ItemType,
    count: int,
    mode: SessionMode = SessionMode.PRACTICE,
    rng: Optional[random.Random] = None,
) -> List[Challenge]:
    """Pick the challenges for a new session.

    PRACTICE samples the whole library by selection weight, REVIEW_DUE takes due
    items most urgent first, WEAK takes practiced items under 70% accuracy.
    """
    if mode is SessionMode.PRACTICE:
        candidates = library.challenges_for(item_type)
        ids = [key[0] for key in (item_key(c) for c in candidates) if key is not None]
        picked = learning.practice_batch(ids, item_type, count, rng)
    elif mode is SessionMode.REVIEW_DUE:
        picked = [r.item_id for r in learning.next_items_to_review(item_type, count)]
    elif mode is SessionMode.WEAK:
        picked = [r.item_id for r in learning.weak_items(item_type)[:count]]
    else:
        raise TypeError(f"Unknown session mode: {mode!r}")

    challenges = []
    for item_id in picked:
        challenge = library.find(item_id, item_type)
        if challenge is None:
            logger.warning("No %s %r in the chord library; skipped", item_type.value, item_id)
            continue
        challenges.append(challenge)
    return challenges


def finger_drill(library: ChordLibrary, count: int, rng: Optional[random.Random] = None) -> List[Challenge]:
    """Cycle through the finger fundamentals in shuffled rounds.

    Finger challenges carry no progress record, so there is nothing to weight
    by; every finger appears once per round.
    """
    rng = rng or random.Random()
    fingers = list(library.fingers)
    challenges: List[Challenge] = []
    while fingers and len(challenges) < count:
        round_ = list(fingers)
        rng.shuffle(round_)
        challenges.extend(round_[: count - len(challenges)])
    return challenges
