"""Time sources and deferred-callback scheduling used by the core."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, Protocol


class Clock(Protocol):
    def monotonic_ms(self) -> float:
        """Milliseconds from an arbitrary origin; never goes backwards."""

    def now(self) -> datetime:
        """Current wall-clock time (timezone-aware), used for review dates."""


class SystemClock:
    def monotonic_ms(self) -> float:
        return time.monotonic() * 1000.0

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class TransitionScheduler(Protocol):
    """Runs a callback once after a delay on the owning event loop."""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        ...
