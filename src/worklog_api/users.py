from __future__ import annotations

from abc import ABC, abstractmethod
from threading import RLock
from typing import Any, Dict, Optional

from .models import UserEntity
from .repositories import Clock, new_id, utcnow
from .settings import Settings


class DuplicateEmailError(Exception):
    """Raised when an email is already registered to another account."""


# PUBLIC_INTERFACE
class UserRepository(ABC):
    """Abstract storage contract for accounts."""

    @abstractmethod
    def create(self, name: str, email: str, hashed_password: str) -> UserEntity:
        """Create an account. Raises DuplicateEmailError if the email is taken."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[UserEntity]:
        """Return an account by id, or None."""

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[UserEntity]:
        """Return an account by (lowercase) email, or None."""

    @abstractmethod
    def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserEntity]:
        """
        Write the given fields (name, email, bio, hashed_password) and refresh updated_at.
        Raises DuplicateEmailError if email moves onto another account's address.
        """


class InMemoryUserRepository(UserRepository):
    def __init__(self, clock: Clock = utcnow) -> None:
        self._lock = RLock()
        self._users: dict[str, UserEntity] = {}
        self._clock = clock

    def create(self, name: str, email: str, hashed_password: str) -> UserEntity:
        with self._lock:
            if self.get_by_email(email) is not None:
                raise DuplicateEmailError(email)
            now = self._clock()
            user: UserEntity = {
                "id": new_id(),
                "name": name,
                "email": email,
                "hashed_password": hashed_password,
                "bio": None,
                "created_at": now,
                "updated_at": now,
            }
            self._users[user["id"]] = user
            return user.copy()

    def get(self, user_id: str) -> Optional[UserEntity]:
        with self._lock:
            user = self._users.get(user_id)
            return None if user is None else user.copy()

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._lock:
            for user in self._users.values():
                if user["email"] == email:
                    return user.copy()
            return None

    def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserEntity]:
        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                return None
            email = fields.get("email")
            if email is not None:
                owner = self.get_by_email(email)
                if owner is not None and owner["id"] != user_id:
                    raise DuplicateEmailError(email)
            updated = existing.copy()
            updated.update(fields)  # type: ignore[typeddict-item]
            updated["updated_at"] = self._clock()
            self._users[user_id] = updated
            return updated.copy()


# PUBLIC_INTERFACE
def build_user_repository(settings: Settings) -> UserRepository:
    """Construct the account store matching the configured persistence backend."""
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteUserRepository

        return SQLiteUserRepository(settings.sqlite_db_path)
    return InMemoryUserRepository()
