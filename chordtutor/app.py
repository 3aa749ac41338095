"""Application entry point and setup for the Chord Tutor trainer."""

import logging
import sys

from PySide6.QtWidgets import QApplication

from chordtutor.core.clock import SystemClock
from chordtutor.core.config import load_engine_config
from chordtutor.core.items import load_chord_library
from chordtutor.core.learning import LearningService
from chordtutor.core.progress import ProgressStore
from chordtutor.ui.practice_window import PracticeWindow


def configure_logging() -> None:
    """Configure application-wide logging with a standard format."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def run() -> None:
    """Load configuration and content, then start the practice window."""
    configure_logging()
    app = QApplication(sys.argv)
    app.setApplicationName("Chord Tutor")
    app.setApplicationDisplayName("Chord Tutor")

    config = load_engine_config()
    library = load_chord_library()
    clock = SystemClock()
    progress_store = ProgressStore()
    learning = LearningService(progress_store, config=config, clock=clock)

    window = PracticeWindow(library, learning, progress_store, clock)
    window.show()

    sys.exit(app.exec())
