"""History of completed operations, newest first.

Entries are deduplicated by ``dedup_key`` (source name, operation and
calendar day) for a short suppression window: the same result can arrive
twice, once from the local processing call and once through the bridge,
and only the first insert inside the window is kept.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Protocol, Sequence, Tuple

from .errors import StorageUnavailable
from .operations.types import Operation, Response

DEFAULT_SOURCE_NAME = "Text snippet"
DEFAULT_SUPPRESSION_WINDOW = timedelta(minutes=30)
DEFAULT_RETENTION_DAYS = 7
PREVIEW_LIMIT = 100


def _local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class HistoryEntry:
    source_name: str
    operation: Operation
    created_at: datetime
    preview: str
    favorite: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def dedup_key(self) -> Tuple[str, str, str]:
        return (self.source_name, self.operation.value, self.created_at.date().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_name": self.source_name,
            "operation": self.operation.value,
            "created_at": self.created_at.isoformat(),
            "preview": self.preview,
            "favorite": self.favorite,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HistoryEntry":
        return cls(
            id=str(data["id"]),
            source_name=str(data["source_name"]),
            operation=Operation(data["operation"]),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            preview=str(data.get("preview", "")),
            favorite=bool(data.get("favorite", False)),
        )


class ExpiringSet:
    """Keys that count as present until ``window`` has elapsed since insertion.

    Expiry is evaluated against the ``now`` passed by the caller, so an
    expired key is absent even before ``sweep`` physically drops it.
    """

    def __init__(self, window: timedelta = DEFAULT_SUPPRESSION_WINDOW) -> None:
        self.window = window
        self._inserted: Dict[Hashable, datetime] = {}

    def add(self, key: Hashable, now: datetime) -> None:
        self._inserted[key] = now

    def is_expired(self, key: Hashable, now: datetime) -> bool:
        inserted = self._inserted.get(key)
        return inserted is None or now - inserted >= self.window

    def contains(self, key: Hashable, now: datetime) -> bool:
        self.sweep(now)
        return not self.is_expired(key, now)

    def sweep(self, now: datetime) -> None:
        expired = [key for key in self._inserted if self.is_expired(key, now)]
        for key in expired:
            del self._inserted[key]

    def __len__(self) -> int:
        return len(self._inserted)


class HistoryRepository(Protocol):
    def load_all(self) -> List[HistoryEntry]:
        ...

    def save_all(self, entries: Sequence[HistoryEntry]) -> None:
        ...


class MemoryHistoryRepository:
    def __init__(self, entries: Optional[Sequence[HistoryEntry]] = None) -> None:
        self.saved: List[HistoryEntry] = list(entries or [])
        self.save_count = 0

    def load_all(self) -> List[HistoryEntry]:
        return list(self.saved)

    def save_all(self, entries: Sequence[HistoryEntry]) -> None:
        self.saved = list(entries)
        self.save_count += 1


class JsonHistoryRepository:
    """Stores the full history as a JSON document, rewritten after each change."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()

    def load_all(self) -> List[HistoryEntry]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageUnavailable(f"Cannot read history file {self.path}: {exc}") from exc

        try:
            payload = json.loads(raw)
            items = payload.get("entries", []) if isinstance(payload, dict) else None
            if not isinstance(items, list):
                raise ValueError("'entries' must be a list")
            return [HistoryEntry.from_dict(item) for item in items]
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageUnavailable(f"History file {self.path} is unreadable: {exc}") from exc

    def save_all(self, entries: Sequence[HistoryEntry]) -> None:
        document = json.dumps(
            {"version": 1, "entries": [entry.to_dict() for entry in entries]},
            ensure_ascii=False,
            indent=2,
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".history.", dir=str(self.path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(document)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageUnavailable(f"Cannot write history file {self.path}: {exc}") from exc


class HistoryStore:
    """Ordered, deduplicated and retention-bounded log of completed operations."""

    def __init__(
        self,
        repository: HistoryRepository,
        *,
        clock: Callable[[], datetime] = _local_now,
        suppression_window: timedelta = DEFAULT_SUPPRESSION_WINDOW,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        preview_limit: int = PREVIEW_LIMIT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._recent = ExpiringSet(suppression_window)
        self.retention_days = retention_days
        self.preview_limit = preview_limit
        self._logger = logger or logging.getLogger(__name__)
        self._entries: List[HistoryEntry] = repository.load_all()
        self.purge_expired()

    @property
    def entries(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def insert(self, response: Response, source_name: Optional[str] = None) -> Optional[HistoryEntry]:
        """Record ``response``; returns None when suppressed as a recent duplicate."""
        now = self._clock()
        entry = HistoryEntry(
            source_name=source_name or response.source_name or DEFAULT_SOURCE_NAME,
            operation=response.operation,
            created_at=now,
            preview=response.text[: self.preview_limit],
        )
        key = entry.dedup_key
        if self._recent.contains(key, now):
            self._logger.debug("history-suppressed", extra={"history": {"dedup_key": key}})
            return None

        self._entries.insert(0, entry)
        self._recent.add(key, now)
        self._persist()
        self._logger.debug("history-insert", extra={"history": {"dedup_key": key, "id": entry.id}})
        return entry

    def purge_expired(
        self,
        now: Optional[datetime] = None,
        retention_days: Optional[int] = None,
    ) -> List[HistoryEntry]:
        """Drop non-favorite entries whose day is before ``now - retention_days``."""
        now = now or self._clock()
        days = self.retention_days if retention_days is None else retention_days
        cutoff_day = (now - timedelta(days=days)).date()

        kept: List[HistoryEntry] = []
        removed: List[HistoryEntry] = []
        for entry in self._entries:
            if not entry.favorite and entry.created_at.date() < cutoff_day:
                removed.append(entry)
            else:
                kept.append(entry)

        if removed:
            self._entries = kept
            self._persist()
            self._logger.debug("history-purge", extra={"history": {"removed": len(removed)}})
        return removed

    def toggle_favorite(self, entry_id: str) -> Optional[HistoryEntry]:
        entry = self.get(entry_id)
        if entry is None:
            return None
        entry.favorite = not entry.favorite
        self._persist()
        return entry

    def delete(self, entry_id: str) -> bool:
        entry = self.get(entry_id)
        if entry is None:
            return False
        self._entries.remove(entry)
        self._persist()
        return True

    def _persist(self) -> None:
        self._repository.save_all(self._entries)
