from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import Qt, QTimer
from PySide6.QtGui import QCloseEvent
from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from chordtutor.core.clock import Clock
from chordtutor.core.items import ChordLibrary, ItemType, display_text, expected_chars, valid_output_words
from chordtutor.core.learning import LearningService
from chordtutor.core.matcher import AttemptResult, ChordInputController, ChordMatcher, HeldKeys
from chordtutor.core.progress import ProgressStore
from chordtutor.core.session import Phase, PracticeSession, SessionMode, finger_drill, select_challenges
from chordtutor.ui.colors import PracticeColors
from chordtutor.ui.timers import QtTransitionScheduler

logger = logging.getLogger(__name__)

SESSION_LENGTH = 20

ITEM_TYPE_LABELS = {
    ItemType.CHARACTER: "Characters",
    ItemType.TWO_KEY_CHORD: "Two-key chords",
    ItemType.WORD: "Words",
}

# Set-picker entry for the finger fundamentals; they have no ItemType.
FINGER_DRILL = "fingers"

MODE_LABELS = {
    SessionMode.PRACTICE: "Practice",
    SessionMode.REVIEW_DUE: "Review due",
    SessionMode.WEAK: "Weak items",
}


class PracticeWindow(QMainWindow):
    """Single-screen chord trainer.

    A hidden line edit receives device output; its text changes and the raw
    key press/release events both feed the ``ChordInputController``.
    """

    def __init__(
        self,
        library: ChordLibrary,
        learning: LearningService,
        progress_store: ProgressStore,
        clock: Clock,
    ) -> None:
        super().__init__()
        self._library = library
        self._learning = learning
        self._progress_store = progress_store
        self._clock = clock
        self._scheduler = QtTransitionScheduler(self)
        self._session: Optional[PracticeSession] = None
        self._held_keys = HeldKeys()

        self._controller = ChordInputController(
            on_result=self._on_result,
            scheduler=self._scheduler,
            matcher=ChordMatcher(learning.config.matcher),
            clock=clock,
            on_clear=self._clear_input,
        )

        self._countdown_timer = QTimer(self)
        self._countdown_timer.timeout.connect(self._update_countdown)

        self._build_ui()
        self._refresh_stats()

    def _build_ui(self) -> None:
        self.setWindowTitle("Chord Tutor")
        self.setMinimumSize(640, 420)
        central = QWidget()
        central.setStyleSheet(f"background-color: {PracticeColors.BG};")
        layout = QVBoxLayout(central)
        layout.setContentsMargins(24, 24, 24, 24)
        layout.setSpacing(16)

        controls = QHBoxLayout()
        self._type_combo = QComboBox()
        for item_type, label in ITEM_TYPE_LABELS.items():
            self._type_combo.addItem(label, item_type)
        self._type_combo.addItem("Finger drill", FINGER_DRILL)
        self._type_combo.currentIndexChanged.connect(self._refresh_stats)
        self._mode_combo = QComboBox()
        for mode, label in MODE_LABELS.items():
            self._mode_combo.addItem(label, mode)
        self._difficulty_combo = QComboBox()
        self._difficulty_combo.addItem("Untimed", None)
        for key, difficulty in self._learning.config.difficulties.items():
            self._difficulty_combo.addItem(difficulty.label, key)
        self._survival_check = QCheckBox("Survival")
        self._start_button = QPushButton("Start")
        self._start_button.clicked.connect(self._start_session)
        for widget in (self._type_combo, self._mode_combo, self._difficulty_combo, self._survival_check):
            controls.addWidget(widget)
        controls.addStretch(1)
        controls.addWidget(self._start_button)
        layout.addLayout(controls)

        self._prompt_label = QLabel("Pick a set and press Start")
        self._prompt_label.setAlignment(Qt.AlignCenter)
        self._prompt_label.setStyleSheet(
            f"color: {PracticeColors.PRIMARY_DARK}; font-size: 48px; font-weight: 900;"
        )
        layout.addWidget(self._prompt_label, 1)

        self._countdown_label = QLabel("")
        self._countdown_label.setAlignment(Qt.AlignCenter)
        self._countdown_label.setStyleSheet(
            f"color: {PracticeColors.PRIMARY}; font-size: 20px; font-family: monospace;"
        )
        layout.addWidget(self._countdown_label)

        self._feedback_label = QLabel("")
        self._feedback_label.setAlignment(Qt.AlignCenter)
        self._feedback_label.setStyleSheet(f"color: {PracticeColors.TEXT_SECONDARY}; font-size: 16px;")
        layout.addWidget(self._feedback_label)

        self._stats_label = QLabel("")
        self._stats_label.setStyleSheet(f"color: {PracticeColors.TEXT_MUTED}; font-size: 12px;")
        layout.addWidget(self._stats_label)

        self.input_box = QLineEdit()
        self.input_box.setFixedHeight(1)
        self.input_box.setStyleSheet("background: transparent; border: none; color: transparent;")
        self.input_box.textChanged.connect(self._on_text_changed)
        self.input_box.installEventFilter(self)
        layout.addWidget(self.input_box)

        self.setCentralWidget(central)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _start_session(self) -> None:
        if self._session is not None:
            self._session.end()
        item_set = self._type_combo.currentData()
        mode: SessionMode = self._mode_combo.currentData()
        difficulty_key = self._difficulty_combo.currentData()
        difficulty = self._learning.config.difficulty(difficulty_key) if difficulty_key else None

        if item_set == FINGER_DRILL:
            challenges = finger_drill(self._library, SESSION_LENGTH)
        else:
            challenges = select_challenges(self._library, self._learning, item_set, SESSION_LENGTH, mode)
        if not challenges:
            self._feedback_label.setText("Nothing to practise here yet.")
            return

        self._session = PracticeSession(
            challenges,
            self._learning,
            self._scheduler,
            clock=self._clock,
            difficulty=difficulty,
            survival=self._survival_check.isChecked(),
            on_phase_changed=self._on_phase_changed,
        )
        logger.info(
            "Starting %s session: %d %s items",
            mode.value,
            len(challenges),
            getattr(item_set, "value", item_set),
        )
        self._feedback_label.setText("")
        self._session.start()
        self.input_box.setFocus()

    def _on_phase_changed(self, phase: Phase) -> None:
        session = self._session
        if session is None:
            return
        if phase is Phase.PRESENTING:
            challenge = session.current()
            if challenge is not None:
                self._prompt_label.setText(display_text(challenge))
        elif phase is Phase.AWAITING_INPUT:
            challenge = session.current()
            self._clear_input()
            self._controller.context = session.scoring_context
            self._controller.present(expected_chars(challenge), valid_output_words(challenge))
            if session.time_limit_ms is not None:
                self._countdown_timer.start(100)
            self._update_countdown()
        elif phase is Phase.FEEDBACK:
            self._controller.disable()
            self._countdown_timer.stop()
            self._show_feedback()
        elif phase is Phase.COMPLETE:
            self._controller.disable()
            self._countdown_timer.stop()
            self._countdown_label.setText("")
            self._prompt_label.setText("Done")
            self._feedback_label.setText(
                f"{session.correct}/{session.attempted} correct "
                f"({session.aggregate_accuracy():.0f}%), "
                f"avg {session.average_response_time_ms():.0f} ms, best streak {session.best_streak}"
            )
            self._refresh_stats()

    def _show_feedback(self) -> None:
        outcome = self._session.last_outcome if self._session else None
        if outcome is None:
            return
        if outcome.timed_out:
            text, color = "Time's up", PracticeColors.TIMEOUT
        elif outcome.matched:
            text, color = f"Correct ({outcome.response_time_ms:.0f} ms)", PracticeColors.CORRECT
        else:
            text, color = "Not quite", PracticeColors.WRONG
        if outcome.snapshot is not None:
            text += f"  ·  {outcome.snapshot.mastery_level.value}"
        self._feedback_label.setText(text)
        self._feedback_label.setStyleSheet(f"color: {color}; font-size: 16px; font-weight: 700;")

    def _update_countdown(self) -> None:
        remaining = self._session.remaining_ms() if self._session else None
        self._countdown_label.setText("" if remaining is None else f"{remaining / 1000:.1f}s")

    def _refresh_stats(self) -> None:
        item_set = self._type_combo.currentData()
        if item_set == FINGER_DRILL:
            self._stats_label.setText(f"{len(self._library.fingers)} fingers  ·  not tracked")
            return
        stats = self._learning.stats(item_set)
        self._stats_label.setText(
            f"Practised {stats.practiced}  ·  Familiar {stats.familiar}  ·  "
            f"Mastered {stats.mastered}  ·  Due {stats.due}"
        )

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _on_result(self, result: AttemptResult) -> None:
        self._clear_input()
        if self._session is not None:
            self._session.submit(result)

    def _on_text_changed(self, text: str) -> None:
        self._controller.text_changed(text)

    def _clear_input(self) -> None:
        self.input_box.blockSignals(True)
        self.input_box.clear()
        self.input_box.blockSignals(False)

    def eventFilter(self, obj, event) -> bool:
        """Track held keys on the hidden input for the simultaneous-press path."""
        if obj == self.input_box and event.type() == event.Type.KeyPress:
            if not event.isAutoRepeat() and event.text():
                self._controller.keys_held(self._held_keys.press(event.key(), event.text()))
        elif obj == self.input_box and event.type() == event.Type.KeyRelease:
            if not event.isAutoRepeat():
                self._held_keys.release(event.key())
        elif obj == self.input_box and event.type() == event.Type.FocusOut:
            self._held_keys.clear()
        return super().eventFilter(obj, event)

    def closeEvent(self, event: QCloseEvent) -> None:
        """Stop the running session and persist progress when closing the app."""
        if self._session is not None:
            self._session.end()
        self._progress_store.flush()
        super().closeEvent(event)
