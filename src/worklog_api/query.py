from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Literal, Optional, Tuple

from .models import UpdateEntity

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

SortBy = Literal["date", "time", "title", "priority", "status", "createdAt", "updatedAt"]
SortOrder = Literal["asc", "desc"]

# Public sort names (camelCase, as sent by clients) -> entity keys
SORT_FIELDS = {
    "date": "date",
    "time": "time",
    "title": "title",
    "priority": "priority",
    "status": "status",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


@dataclass(frozen=True)
class ListQuery:
    """
    Parsed parameters for listing updates.

    Every predicate is optional; active ones are combined with AND.
    - search: whitespace-separated terms, any of which may match title or description
    - tags: record matches when it carries at least one of these tags
    - date_from / date_to: inclusive bounds on the record's date
    """
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    search: Optional[str] = None
    tags: Tuple[str, ...] = ()
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    sort_by: str = "date"  # entity key, see SORT_FIELDS
    descending: bool = True

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if not (1 <= self.limit <= MAX_PAGE_SIZE):
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if self.sort_by not in SORT_FIELDS.values():
            raise ValueError(f"cannot sort by {self.sort_by!r}")
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("dateFrom must not be after dateTo")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def search_terms(self) -> List[str]:
        return (self.search or "").lower().split()


def parse_tags(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated tag list, lowercasing and dropping blanks and repeats."""
    if not raw:
        return ()
    seen: List[str] = []
    for part in raw.split(","):
        tag = part.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return tuple(seen)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit > 0 else 0


def matches(entity: UpdateEntity, q: ListQuery) -> bool:
    terms = q.search_terms
    if terms:
        text = f"{entity['title']}\n{entity['description']}".lower()
        if not any(term in text for term in terms):
            return False
    if q.tags and not set(q.tags).intersection(entity["tags"]):
        return False
    if q.date_from and entity["date"] < q.date_from:
        return False
    if q.date_to and entity["date"] > q.date_to:
        return False
    return True


def apply(items: Iterable[UpdateEntity], q: ListQuery) -> Tuple[List[UpdateEntity], int]:
    """Filter, sort and paginate records in process. Returns (page, total matching)."""
    selected = [t for t in items if matches(t, q)]
    total = len(selected)

    # createdAt breaks ties in the same direction so paging is deterministic
    selected.sort(key=lambda t: (t[q.sort_by], t["created_at"]), reverse=q.descending)
    return selected[q.offset:q.offset + q.limit], total
