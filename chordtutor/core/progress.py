from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

from chordtutor.core.items import ItemType

logger = logging.getLogger(__name__)

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 3.5


@dataclass
class ProgressRecord:
    """Learning state for one item. Mastery labels are derived, never stored."""

    item_id: str
    item_type: ItemType
    next_review_date: datetime
    repetitions: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval_days: float = 0.0
    total_attempts: int = 0
    correct_attempts: int = 0
    average_response_time_ms: float = 0.0
    last_attempt_date: Optional[datetime] = None
    last_correct_date: Optional[datetime] = None

    @classmethod
    def new(cls, item_id: str, item_type: ItemType, now: datetime, ease_factor: float = DEFAULT_EASE_FACTOR) -> "ProgressRecord":
        return cls(item_id=item_id, item_type=item_type, next_review_date=now, ease_factor=ease_factor)

    @property
    def key(self) -> Tuple[str, ItemType]:
        return self.item_id, self.item_type

    @property
    def accuracy(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.correct_attempts / self.total_attempts

    @property
    def has_practiced(self) -> bool:
        return self.total_attempts > 0

    def is_due(self, now: datetime) -> bool:
        return self.next_review_date <= now

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["item_type"] = self.item_type.value
        for name in ("next_review_date", "last_attempt_date", "last_correct_date"):
            value = getattr(self, name)
            data[name] = value.isoformat() if value is not None else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgressRecord":
        """Rebuild a record from its flat form.

        Absent fields take New-item defaults. Out-of-range values are clamped:
        ease into the SM-2 bounds and correct attempts to at most the total.
        """
        last_attempt = _parse_date(data.get("last_attempt_date"))
        next_review = _parse_date(data.get("next_review_date")) or last_attempt or datetime.now(timezone.utc)
        ease = float(data.get("ease_factor", DEFAULT_EASE_FACTOR))
        total = max(0, int(data.get("total_attempts", 0)))
        return cls(
            item_id=str(data["item_id"]),
            item_type=ItemType(data["item_type"]),
            next_review_date=next_review,
            repetitions=max(0, int(data.get("repetitions", 0))),
            ease_factor=min(MAX_EASE_FACTOR, max(MIN_EASE_FACTOR, ease)),
            interval_days=max(0.0, float(data.get("interval_days", 0.0))),
            total_attempts=total,
            correct_attempts=min(total, max(0, int(data.get("correct_attempts", 0)))),
            average_response_time_ms=max(0.0, float(data.get("average_response_time_ms", 0.0))),
            last_attempt_date=last_attempt,
            last_correct_date=_parse_date(data.get("last_correct_date")),
        )


def _parse_date(value: Any) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ProgressBackend(Protocol):
    """Key-value store addressed by (item_id, item_type)."""

    def load(self, item_id: str, item_type: ItemType) -> Optional[ProgressRecord]:
        ...

    def save(self, record: ProgressRecord) -> bool:
        """Persist ``record``. Returns False (or raises) when the write failed;
        callers keep the in-memory record either way."""
        ...

    def all(self, item_type: Optional[ItemType] = None) -> List[ProgressRecord]:
        ...


def _storage_key(item_id: str, item_type: ItemType) -> str:
    return f"{item_type.value}:{item_id}"


class ProgressStore:
    """Key-value store of progress records, persisted as JSON.

    Default file: ~/.chordtutor/progress.json. Write failures are logged and
    the in-memory copy stays authoritative for the rest of the session.
    """

    def __init__(self, file_path: Optional[Path] = None) -> None:
        self._file_path = file_path or Path.home() / ".chordtutor" / "progress.json"
        self._records = self._load()

    @property
    def file_path(self) -> Path:
        return self._file_path

    def load(self, item_id: str, item_type: ItemType) -> Optional[ProgressRecord]:
        return self._records.get(_storage_key(item_id, item_type))

    def save(self, record: ProgressRecord) -> bool:
        """Store ``record`` and write the file. Returns False if the write failed."""
        self._records[_storage_key(record.item_id, record.item_type)] = record
        return self._save()

    def all(self, item_type: Optional[ItemType] = None) -> List[ProgressRecord]:
        return [r for r in self._records.values() if item_type is None or r.item_type is item_type]

    def reset_type(self, item_type: ItemType) -> None:
        self._records = {k: r for k, r in self._records.items() if r.item_type is not item_type}
        self._save()

    def reset(self) -> None:
        """Clear all progress. Only called on an explicit user reset."""
        self._records = {}
        self._save()

    def flush(self) -> bool:
        """Persist current state to disk (e.g. on app exit)."""
        return self._save()

    def _load(self) -> Dict[str, ProgressRecord]:
        records: Dict[str, ProgressRecord] = {}
        if not self._file_path.exists():
            return records
        try:
            payload = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not load progress from %s: %s", self._file_path, e)
            return records
        if not isinstance(payload, dict):
            logger.warning("Ignoring progress file %s: unexpected top-level type", self._file_path)
            return records

        items = payload.get("items", {})
        if not isinstance(items, dict):
            return records
        for key, value in items.items():
            try:
                record = ProgressRecord.from_dict(value)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping corrupt progress entry %s: %s", key, e)
                continue
            records[_storage_key(record.item_id, record.item_type)] = record
        return records

    def _save(self) -> bool:
        payload = {"items": {key: record.to_dict() for key, record in self._records.items()}}
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            self._file_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not save progress to %s: %s", self._file_path, e)
            return False
        return True
