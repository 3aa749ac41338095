from __future__ import annotations

from typing import Callable, Optional

from PySide6.QtCore import QObject, QTimer


class QtTimerHandle:
    """Cancellable handle for one pending single-shot ``QTimer``."""

    def __init__(self, timer: QTimer) -> None:
        self._timer: Optional[QTimer] = timer
        timer.timeout.connect(self._finished)

    @property
    def active(self) -> bool:
        return self._timer is not None

    def cancel(self) -> None:
        if self._timer is None:
            return
        self._timer.stop()
        self._timer.deleteLater()
        self._timer = None

    def _finished(self) -> None:
        if self._timer is not None:
            self._timer.deleteLater()
            self._timer = None


class QtTransitionScheduler:
    """Schedules callbacks on the Qt event loop, one single-shot timer per call."""

    def __init__(self, parent: Optional[QObject] = None) -> None:
        self._parent = parent

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> QtTimerHandle:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        # The handle's own slot runs first so a callback that reschedules sees it spent.
        handle = QtTimerHandle(timer)
        timer.timeout.connect(callback)
        timer.start(max(0, int(delay_ms)))
        return handle
