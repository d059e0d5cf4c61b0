from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional, TypedDict


class Tag(str, Enum):
    CODE = "code"
    MEETING = "meeting"
    BLOCKER = "blocker"
    REVIEW = "review"
    PLANNING = "planning"
    TESTING = "testing"
    DEPLOYMENT = "deployment"
    RESEARCH = "research"
    DOCUMENTATION = "documentation"
    BUG_FIX = "bug-fix"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Status(str, Enum):
    COMPLETED = "completed"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


TAG_VALUES = frozenset(t.value for t in Tag)


# PUBLIC_INTERFACE
class UpdateEntity(TypedDict):
    """
    Storage-level shape of a work update, shared by every repository backend.

    Fields:
    - id: Opaque identifier assigned by the repository
    - title: Short title (1..200 chars, trimmed on input via schemas)
    - description: Body text (1..2000 chars, trimmed on input via schemas)
    - tags: Lowercase labels drawn from Tag
    - date: Calendar date the work happened on
    - time: HH:MM (24h) string
    - priority / status: Enum values stored as plain strings
    - user_id: Weak reference to a user id, never checked
    - created_at / updated_at: UTC timestamps maintained by the repository
    """

    id: str
    title: str
    description: str
    tags: List[str]
    date: date
    time: str
    priority: str
    status: str
    user_id: Optional[str]
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """Storage-level shape of an account. hashed_password never leaves the server."""

    id: str
    name: str
    email: str
    hashed_password: str
    bio: Optional[str]
    created_at: datetime
    updated_at: datetime
