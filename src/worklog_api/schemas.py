from __future__ import annotations

import datetime as dt
import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from .models import Priority, Status, Tag

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

TITLE_MAX = 200
DESCRIPTION_MAX = 2000


def parse_calendar_date(value: Any) -> dt.date:
    """
    Normalize an ISO8601 date or datetime (string or object) into a calendar date.
    Datetimes are truncated to their date part; a trailing 'Z' is accepted.
    """
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        try:
            return dt.date.fromisoformat(s)
        except ValueError:
            pass
        try:
            return dt.datetime.fromisoformat(s).date()
        except ValueError:
            pass
    raise ValueError("Date must be a valid ISO 8601 date")


def _bounded_text(value: str, upper: int, label: str) -> str:
    s = value.strip()
    if not (1 <= len(s) <= upper):
        raise ValueError(f"{label} must be between 1 and {upper} characters")
    return s


def _enum_member(enum_cls: Any, value: Any, message: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        raise ValueError(message) from None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# PUBLIC_INTERFACE
class UpdatePayload(_CamelModel):
    """
    Body accepted by both create and update.

    title, description and time are required on every call. The remaining fields are
    optional; on update only the ones present in the body are written.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "title": "Reviewed payment service PR",
                "description": "Left comments on retry handling and idempotency keys",
                "tags": ["code", "review"],
                "date": "2024-01-15",
                "time": "14:30",
                "priority": "high",
                "status": "completed",
            }
        },
    )

    title: str = Field(..., description="Short title, 1..200 characters after trimming")
    description: str = Field(..., description="Details, 1..2000 characters after trimming")
    tags: List[Tag] = Field(default_factory=list, description="Labels from the fixed tag set")
    date: Optional[dt.date] = Field(
        default=None, description="ISO8601 date; defaults to today on create"
    )
    time: str = Field(..., description="24-hour HH:MM")
    priority: Priority = Field(default=Priority.MEDIUM)
    status: Status = Field(default=Status.COMPLETED)
    user_id: Optional[str] = Field(default=None, description="Id of the owning user, not checked")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _bounded_text(v, TITLE_MAX, "Title")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        return _bounded_text(v, DESCRIPTION_MAX, "Description")

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: Any) -> Any:
        """Tags must arrive as a list; string entries are lowercased before the enum check."""
        if not isinstance(v, (list, tuple)):
            raise ValueError("Tags must be an array")
        return [t.strip().lower() if isinstance(t, str) else t for t in v]

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Any) -> Optional[dt.date]:
        if v is None:
            return None
        return parse_calendar_date(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        if not TIME_PATTERN.fullmatch(v):
            raise ValueError("Time must be in HH:MM format")
        return v

    @field_validator("priority", mode="before")
    @classmethod
    def validate_priority(cls, v: Any) -> Any:
        return _enum_member(Priority, v, "Priority must be low, medium, or high")

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v: Any) -> Any:
        return _enum_member(
            Status, v, "Status must be completed, in-progress, blocked, or cancelled"
        )


# PUBLIC_INTERFACE
class UpdateOut(_CamelModel):
    """
    Schema returned by the API for a work update.
    """

    id: str = Field(..., description="Unique identifier of the update")
    title: str
    description: str
    tags: List[str]
    date: dt.date
    time: str
    priority: str
    status: str
    user_id: Optional[str] = None
    created_at: dt.datetime = Field(..., description="Creation timestamp (UTC)")
    updated_at: dt.datetime = Field(..., description="Last update timestamp (UTC)")

    @computed_field(alias="formattedDate")  # type: ignore[misc]
    @property
    def formatted_date(self) -> str:
        """US-style M/D/YYYY rendering of date."""
        return f"{self.date.month}/{self.date.day}/{self.date.year}"


class UpdatePage(_CamelModel):
    """
    Envelope for paginated list responses.
    """

    updates: List[UpdateOut]
    total_pages: int = Field(..., description="ceil(total / limit)")
    current_page: int
    total: int = Field(..., description="Number of updates matching the filters")


class TagCount(BaseModel):
    tag: str
    count: int


class UpdateStats(_CamelModel):
    total_updates: int
    recent_updates: int = Field(..., description="Updates created in the last 7 days")
    unique_days: int = Field(..., description="Distinct dates carrying at least one update")
    tag_stats: List[TagCount]


class MessageOut(BaseModel):
    message: str


# Authentication


def _normalize_email(v: str) -> str:
    s = v.strip().lower()
    if not EMAIL_PATTERN.match(s):
        raise ValueError("Please provide a valid email")
    return s


class RegisterPayload(_CamelModel):
    name: str
    email: str
    password: str = Field(..., min_length=6)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _bounded_text(v, 100, "Name")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)


class LoginPayload(_CamelModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return v.strip().lower()


class ProfileUpdate(_CamelModel):
    """All fields optional; only provided fields are written."""

    name: Optional[str] = None
    email: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=500)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _bounded_text(v, 100, "Name")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _normalize_email(v)


class ChangePasswordPayload(_CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class UserOut(_CamelModel):
    id: str
    name: str
    email: str
    bio: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime


class AuthResponse(_CamelModel):
    token: str
    token_type: str = "bearer"
    user: UserOut
