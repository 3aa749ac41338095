"""Theme colors for the practice window."""


class PracticeColors:
    BG = "#e0f7fa"
    PRIMARY = "#00838f"
    PRIMARY_DARK = "#005662"

    CORRECT = "#2e7d32"
    WRONG = "#c62828"
    TIMEOUT = "#ef6c00"

    TEXT_PRIMARY = "#1a3a3a"
    TEXT_SECONDARY = "#4a6572"
    TEXT_MUTED = "#78909c"

    MASTERY = {
        "new": "#78909c",
        "learning": "#ffb74d",
        "familiar": "#4fb3bf",
        "mastered": "#107878",
    }
