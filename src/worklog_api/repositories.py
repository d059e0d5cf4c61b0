from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from datetime import date, datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import UpdateEntity
from .query import ListQuery, apply
from .schemas import UpdatePayload
from .settings import Settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Optional fields written on update only when the client sent them
_OPTIONAL_FIELDS = ("tags", "date", "priority", "status", "user_id")


class StoreError(Exception):
    """Raised by a repository when the underlying store fails."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def payload_fields(data: UpdatePayload, partial: bool) -> Dict[str, Any]:
    """
    Map a validated payload onto entity keys.

    With partial=False every field is returned (defaults included). With partial=True
    the always-required fields are returned plus whichever optional ones were sent.
    """
    fields: Dict[str, Any] = {
        "title": data.title,
        "description": data.description,
        "time": data.time,
    }
    sent = data.model_fields_set
    for name in _OPTIONAL_FIELDS:
        if partial and name not in sent:
            continue
        value = getattr(data, name)
        if name == "tags":
            value = [t.value for t in value]
        elif name in ("priority", "status"):
            value = value.value
        elif name == "date" and value is None and partial:
            # an explicit null keeps the stored date
            continue
        fields[name] = value
    return fields


def rank_tags(counts: Counter) -> List[Tuple[str, int]]:
    """Most frequent first; equal counts ordered by tag name."""
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract repository contract for work update storage backends."""

    @abstractmethod
    def create(self, data: UpdatePayload) -> UpdateEntity:
        """Create and return a new UpdateEntity."""

    @abstractmethod
    def get(self, update_id: str) -> Optional[UpdateEntity]:
        """Return an UpdateEntity by id, or None if not found."""

    @abstractmethod
    def update(self, update_id: str, data: UpdatePayload) -> Optional[UpdateEntity]:
        """Apply a validated payload to an existing update. Return it or None if not found."""

    @abstractmethod
    def delete(self, update_id: str) -> bool:
        """Delete an update by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[UpdateEntity], int]:
        """
        Return one page of updates and the total count matching the filters.
        - Term search across title and description (case-insensitive)
        - Tag intersection and inclusive date range
        - Sorting on any field in query.SORT_FIELDS, then page/limit
        """

    @abstractmethod
    def count(self, created_since: Optional[datetime] = None) -> int:
        """Count updates, optionally only those created at or after created_since."""

    @abstractmethod
    def distinct_dates(self) -> List[date]:
        """Return each date value carried by at least one update."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time from the clock that stamps created_at and updated_at."""

    @abstractmethod
    def tag_counts(self) -> List[Tuple[str, int]]:
        """Return (tag, occurrences) pairs ordered as rank_tags does."""


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self, clock: Clock = utcnow) -> None:
        self._lock = RLock()
        self._items: dict[str, UpdateEntity] = {}
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def create(self, data: UpdatePayload) -> UpdateEntity:
        now = self.now()
        fields = payload_fields(data, partial=False)
        if fields["date"] is None:
            fields["date"] = now.date()
        entity: UpdateEntity = {  # type: ignore[typeddict-item]
            "id": new_id(),
            **fields,
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            self._items[entity["id"]] = entity
        return _copy(entity)

    def get(self, update_id: str) -> Optional[UpdateEntity]:
        with self._lock:
            item = self._items.get(update_id)
            return None if item is None else _copy(item)

    def update(self, update_id: str, data: UpdatePayload) -> Optional[UpdateEntity]:
        with self._lock:
            existing = self._items.get(update_id)
            if existing is None:
                return None

            updated = _copy(existing)
            updated.update(payload_fields(data, partial=True))  # type: ignore[typeddict-item]
            updated["updated_at"] = self.now()

            self._items[update_id] = updated
            return _copy(updated)

    def delete(self, update_id: str) -> bool:
        with self._lock:
            return self._items.pop(update_id, None) is not None

    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[UpdateEntity], int]:
        q = query or ListQuery()
        with self._lock:
            page, total = apply(self._items.values(), q)
            # Return copies to avoid external mutation
            return [_copy(t) for t in page], total

    def count(self, created_since: Optional[datetime] = None) -> int:
        with self._lock:
            if created_since is None:
                return len(self._items)
            return sum(1 for t in self._items.values() if t["created_at"] >= created_since)

    def distinct_dates(self) -> List[date]:
        with self._lock:
            return sorted({t["date"] for t in self._items.values()})

    def tag_counts(self) -> List[Tuple[str, int]]:
        with self._lock:
            counts: Counter = Counter()
            for t in self._items.values():
                counts.update(t["tags"])
            return rank_tags(counts)

    def reset(self) -> None:
        with self._lock:
            self._items.clear()


def _copy(entity: UpdateEntity) -> UpdateEntity:
    clone = entity.copy()
    clone["tags"] = list(entity["tags"])
    return clone


# PUBLIC_INTERFACE
def build_repository(settings: Settings) -> Repository:
    """
    Construct the configured repository based on settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository backed by settings.sqlite_db_path
    """
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("Using SQLite update store at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    logger.info("Using in-memory update store")
    return InMemoryRepository()
