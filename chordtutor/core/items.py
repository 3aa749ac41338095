from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)


class ItemType(str, Enum):
    """Kinds of learnable item that carry a progress record."""

    CHARACTER = "character"
    TWO_KEY_CHORD = "two_key_chord"
    WORD = "word"


@dataclass(frozen=True)
class FingerChallenge:
    """Press any key belonging to a finger. Not tracked by the scheduler."""

    finger_id: str
    chars: FrozenSet[str]


@dataclass(frozen=True)
class CharacterChallenge:
    char: str


@dataclass(frozen=True)
class TwoKeyChordChallenge:
    chord_id: str
    keys: Tuple[str, str]
    produces_words: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class WordChallenge:
    word: str
    chord_keys: FrozenSet[str] = frozenset()


Challenge = Union[FingerChallenge, CharacterChallenge, TwoKeyChordChallenge, WordChallenge]


def expected_chars(challenge: Challenge) -> FrozenSet[str]:
    """Raw characters that together make up the chord for a challenge."""
    if isinstance(challenge, FingerChallenge):
        return frozenset(c.lower() for c in challenge.chars)
    if isinstance(challenge, CharacterChallenge):
        return frozenset({challenge.char.lower()})
    if isinstance(challenge, TwoKeyChordChallenge):
        return frozenset(k.lower() for k in challenge.keys)
    if isinstance(challenge, WordChallenge):
        if challenge.chord_keys:
            return frozenset(k.lower() for k in challenge.chord_keys)
        return frozenset(challenge.word.lower())
    raise TypeError(f"Unknown challenge type: {type(challenge).__name__}")


def valid_output_words(challenge: Challenge) -> FrozenSet[str]:
    """Whole-word outputs a chording device may emit instead of raw characters.

    For a finger challenge any single key of that finger is an accepted output.
    """
    if isinstance(challenge, FingerChallenge):
        return frozenset(c.lower() for c in challenge.chars)
    if isinstance(challenge, CharacterChallenge):
        return frozenset()
    if isinstance(challenge, TwoKeyChordChallenge):
        return frozenset(w.lower() for w in challenge.produces_words)
    if isinstance(challenge, WordChallenge):
        return frozenset({challenge.word.lower()})
    raise TypeError(f"Unknown challenge type: {type(challenge).__name__}")


def item_key(challenge: Challenge) -> Optional[Tuple[str, ItemType]]:
    """(item_id, item_type) for challenges that have a progress record, else None."""
    if isinstance(challenge, FingerChallenge):
        return None
    if isinstance(challenge, CharacterChallenge):
        return challenge.char.lower(), ItemType.CHARACTER
    if isinstance(challenge, TwoKeyChordChallenge):
        return challenge.chord_id, ItemType.TWO_KEY_CHORD
    if isinstance(challenge, WordChallenge):
        return challenge.word.lower(), ItemType.WORD
    raise TypeError(f"Unknown challenge type: {type(challenge).__name__}")


def display_text(challenge: Challenge) -> str:
    if isinstance(challenge, FingerChallenge):
        return challenge.finger_id
    if isinstance(challenge, CharacterChallenge):
        return challenge.char
    if isinstance(challenge, TwoKeyChordChallenge):
        return " + ".join(k.upper() for k in challenge.keys)
    if isinstance(challenge, WordChallenge):
        return challenge.word
    raise TypeError(f"Unknown challenge type: {type(challenge).__name__}")


@dataclass
class ChordLibrary:
    characters: List[CharacterChallenge] = field(default_factory=list)
    chords: List[TwoKeyChordChallenge] = field(default_factory=list)
    words: List[WordChallenge] = field(default_factory=list)
    fingers: List[FingerChallenge] = field(default_factory=list)

    def challenges_for(self, item_type: ItemType) -> List[Challenge]:
        if item_type is ItemType.CHARACTER:
            return list(self.characters)
        if item_type is ItemType.TWO_KEY_CHORD:
            return list(self.chords)
        if item_type is ItemType.WORD:
            return list(self.words)
        raise TypeError(f"Unknown item type: {item_type!r}")

    def find(self, item_id: str, item_type: ItemType) -> Optional[Challenge]:
        for challenge in self.challenges_for(item_type):
            key = item_key(challenge)
            if key is not None and key[0] == item_id:
                return challenge
        return None


def default_library_path() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "chords.yaml"


def load_chord_library(path: Optional[Path] = None) -> ChordLibrary:
    """Load characters, two-key chords, words and fingers from a YAML file."""
    path = path or default_library_path()
    if not path.exists():
        raise FileNotFoundError(f"Chord library not found: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not raw or not isinstance(raw, dict):
        raise ValueError(f"{path.name}: expected a mapping with 'characters', 'chords' and 'words'")

    library = ChordLibrary()

    chars = raw.get("characters") or []
    if not isinstance(chars, (list, str)):
        raise ValueError(f"{path.name}: 'characters' must be a list or a string")
    for char in chars:
        char = str(char).strip()
        if len(char) != 1:
            raise ValueError(f"{path.name}: character entry {char!r} must be a single character")
        library.characters.append(CharacterChallenge(char=char.lower()))

    seen_chords: Dict[str, TwoKeyChordChallenge] = {}
    for entry in raw.get("chords") or []:
        if not isinstance(entry, dict):
            raise ValueError(f"{path.name}: chord entries must be mappings")
        keys = [str(k).strip().lower() for k in entry.get("keys") or []]
        if len(keys) != 2 or keys[0] == keys[1] or any(len(k) != 1 for k in keys):
            raise ValueError(f"{path.name}: chord {entry!r} needs two distinct single-character keys")
        chord_id = str(entry.get("id") or "".join(keys))
        if chord_id in seen_chords:
            logger.warning("%s: duplicate chord id %s ignored", path.name, chord_id)
            continue
        words = frozenset(str(w).strip().lower() for w in entry.get("produces") or [] if str(w).strip())
        chord = TwoKeyChordChallenge(chord_id=chord_id, keys=(keys[0], keys[1]), produces_words=words)
        seen_chords[chord_id] = chord
        library.chords.append(chord)

    for entry in raw.get("words") or []:
        if isinstance(entry, str):
            word, keys = entry, ""
        elif isinstance(entry, dict):
            word, keys = str(entry.get("word") or ""), str(entry.get("chord") or "")
        else:
            raise ValueError(f"{path.name}: word entries must be strings or mappings")
        word = word.strip().lower()
        if not word:
            raise ValueError(f"{path.name}: empty word entry")
        library.words.append(WordChallenge(word=word, chord_keys=frozenset(keys.strip().lower())))

    fingers = raw.get("fingers") or {}
    if not isinstance(fingers, dict):
        raise ValueError(f"{path.name}: 'fingers' must be a mapping of finger id to characters")
    for finger_id, finger_chars in fingers.items():
        library.fingers.append(
            FingerChallenge(finger_id=str(finger_id), chars=frozenset(str(finger_chars).lower()))
        )

    logger.info(
        "Loaded chord library from %s: %d characters, %d chords, %d words",
        path,
        len(library.characters),
        len(library.chords),
        len(library.words),
    )
    return library
