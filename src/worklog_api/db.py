from __future__ import annotations

import json
import logging
import os
import sqlite3
from collections import Counter
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple

from .models import UpdateEntity, UserEntity
from .query import ListQuery
from .repositories import (
    Clock,
    Repository,
    StoreError,
    new_id,
    payload_fields,
    rank_tags,
    utcnow,
)
from .schemas import UpdatePayload
from .users import DuplicateEmailError, UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "updates"
    tags_table: str = "update_tags"
    id: str = "id"
    title: str = "title"
    description: str = "description"
    tags: str = "tags"
    date: str = "date"
    time: str = "time"
    priority: str = "priority"
    status: str = "status"
    user_id: str = "user_id"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_COLS = _Cols()

_WRITABLE = (
    _COLS.title,
    _COLS.description,
    _COLS.tags,
    _COLS.date,
    _COLS.time,
    _COLS.priority,
    _COLS.status,
    _COLS.user_id,
)


def _ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _py_lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if value is not None else None


class _SQLiteStore(ABC):
    """Connection handling shared by the SQLite repositories."""

    def __init__(self, db_path: str, clock: Clock = utcnow) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._clock = clock
        self._init_db()
        logger.debug("Opened SQLite store %s at %s", type(self).__name__, db_path)

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        conn.row_factory = sqlite3.Row
        try:
            # SQLite lower() only folds ASCII letters
            conn.create_function("py_lower", 1, _py_lower, deterministic=True)
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def now(self) -> datetime:
        return self._clock()

    @abstractmethod
    def _init_db(self) -> None:
        """Create tables and indexes if they do not exist."""


class SQLiteRepository(_SQLiteStore, Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.

    Tags are kept twice: as a JSON array on the row, preserving order, and one row per
    occurrence in update_tags, which backs tag filtering and the tag statistics.
    """

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.title} TEXT NOT NULL,
                    {_COLS.description} TEXT NOT NULL,
                    {_COLS.tags} TEXT NOT NULL DEFAULT '[]',
                    {_COLS.date} TEXT NOT NULL,
                    {_COLS.time} TEXT NOT NULL,
                    {_COLS.priority} TEXT NOT NULL,
                    {_COLS.status} TEXT NOT NULL,
                    {_COLS.user_id} TEXT NULL,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.tags_table} (
                    update_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    tag TEXT NOT NULL,
                    PRIMARY KEY (update_id, position)
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_date ON {_COLS.table}({_COLS.date} DESC)"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_created_at ON {_COLS.table}({_COLS.created_at})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.tags_table}_tag ON {_COLS.tags_table}(tag)"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> UpdateEntity:
        return {
            "id": str(row[_COLS.id]),
            "title": str(row[_COLS.title]),
            "description": str(row[_COLS.description]),
            "tags": json.loads(row[_COLS.tags]),
            "date": date.fromisoformat(row[_COLS.date]),
            "time": str(row[_COLS.time]),
            "priority": str(row[_COLS.priority]),
            "status": str(row[_COLS.status]),
            "user_id": row[_COLS.user_id],
            "created_at": datetime.fromisoformat(row[_COLS.created_at]),
            "updated_at": datetime.fromisoformat(row[_COLS.updated_at]),
        }

    def _to_row(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(fields)
        if "tags" in row:
            row["tags"] = json.dumps(row["tags"])
        if "date" in row:
            row["date"] = row["date"].isoformat()
        return row

    def _write_tags(self, conn: sqlite3.Connection, update_id: str, tags: Sequence[str]) -> None:
        conn.execute(f"DELETE FROM {_COLS.tags_table} WHERE update_id = ?", (update_id,))
        conn.executemany(
            f"INSERT INTO {_COLS.tags_table} (update_id, position, tag) VALUES (?, ?, ?)",
            [(update_id, i, tag) for i, tag in enumerate(tags)],
        )

    def _select(self, conn: sqlite3.Connection, update_id: str) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (update_id,)
        ).fetchone()

    def create(self, data: UpdatePayload) -> UpdateEntity:
        now = self._clock()
        fields = payload_fields(data, partial=False)
        if fields["date"] is None:
            fields["date"] = now.date()
        row = self._to_row(fields)
        update_id = new_id()
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.id}, {', '.join(_WRITABLE)},
                    {_COLS.created_at}, {_COLS.updated_at})
                VALUES (?, {', '.join('?' for _ in _WRITABLE)}, ?, ?)
                """,
                (update_id, *(row[c] for c in _WRITABLE), _ts(now), _ts(now)),
            )
            self._write_tags(conn, update_id, fields["tags"])
            created = self._select(conn, update_id)
            assert created is not None
            return self._row_to_entity(created)

    def get(self, update_id: str) -> Optional[UpdateEntity]:
        with self._conn() as conn:
            row = self._select(conn, update_id)
            return self._row_to_entity(row) if row else None

    def update(self, update_id: str, data: UpdatePayload) -> Optional[UpdateEntity]:
        fields = payload_fields(data, partial=True)
        row = self._to_row(fields)
        assignments = ", ".join(f"{c} = ?" for c in row)
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_COLS.table}
                SET {assignments}, {_COLS.updated_at} = ?
                WHERE {_COLS.id} = ?
                """,
                (*row.values(), _ts(self._clock()), update_id),
            )
            if cur.rowcount == 0:
                return None
            if "tags" in fields:
                self._write_tags(conn, update_id, fields["tags"])
            updated = self._select(conn, update_id)
            assert updated is not None
            return self._row_to_entity(updated)

    def delete(self, update_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ?", (update_id,))
            conn.execute(f"DELETE FROM {_COLS.tags_table} WHERE update_id = ?", (update_id,))
            return cur.rowcount > 0

    def _where(self, q: ListQuery) -> Tuple[str, List[Any]]:
        clauses = []
        params: List[Any] = []

        terms = q.search_terms
        if terms:
            ors = []
            for term in terms:
                ors.append(
                    f"(py_lower({_COLS.title}) LIKE ? ESCAPE '\\' "
                    f"OR py_lower({_COLS.description}) LIKE ? ESCAPE '\\')"
                )
                params.extend([_like(term), _like(term)])
            clauses.append(f"({' OR '.join(ors)})")

        if q.tags:
            marks = ", ".join("?" for _ in q.tags)
            clauses.append(
                f"{_COLS.id} IN (SELECT update_id FROM {_COLS.tags_table} WHERE tag IN ({marks}))"
            )
            params.extend(q.tags)

        if q.date_from:
            clauses.append(f"{_COLS.date} >= ?")
            params.append(q.date_from.isoformat())
        if q.date_to:
            clauses.append(f"{_COLS.date} <= ?")
            params.append(q.date_to.isoformat())

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where_sql, params

    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[UpdateEntity], int]:
        q = query or ListQuery()
        where_sql, params = self._where(q)

        # sort_by is restricted to known columns by ListQuery
        direction = "DESC" if q.descending else "ASC"
        order_sql = f"ORDER BY {q.sort_by} {direction}, {_COLS.created_at} {direction}"

        with self._conn() as conn:
            count_row = conn.execute(
                f"SELECT COUNT(*) as cnt FROM {_COLS.table} {where_sql}", params
            ).fetchone()
            total = int(count_row["cnt"]) if count_row else 0

            rows = conn.execute(
                f"""
                SELECT * FROM {_COLS.table}
                {where_sql}
                {order_sql}
                LIMIT ? OFFSET ?
                """,
                [*params, q.limit, q.offset],
            ).fetchall()
            return [self._row_to_entity(r) for r in rows], total

    def count(self, created_since: Optional[datetime] = None) -> int:
        sql = f"SELECT COUNT(*) as cnt FROM {_COLS.table}"
        params: List[Any] = []
        if created_since is not None:
            sql += f" WHERE {_COLS.created_at} >= ?"
            params.append(_ts(created_since))
        with self._conn() as conn:
            return int(conn.execute(sql, params).fetchone()["cnt"])

    def distinct_dates(self) -> List[date]:
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT DISTINCT {_COLS.date} FROM {_COLS.table} ORDER BY {_COLS.date}"
            ).fetchall()
            return [date.fromisoformat(r[0]) for r in rows]

    def tag_counts(self) -> List[Tuple[str, int]]:
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT tag, COUNT(*) as cnt FROM {_COLS.tags_table} GROUP BY tag"
            ).fetchall()
            return rank_tags(Counter({r["tag"]: int(r["cnt"]) for r in rows}))


class SQLiteUserRepository(_SQLiteStore, UserRepository):
    """Account store sharing the updates database file."""

    _FIELDS = ("name", "email", "hashed_password", "bio")

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    hashed_password TEXT NOT NULL,
                    bio TEXT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def _row_to_entity(self, row: sqlite3.Row) -> UserEntity:
        return {
            "id": str(row["id"]),
            "name": str(row["name"]),
            "email": str(row["email"]),
            "hashed_password": str(row["hashed_password"]),
            "bio": row["bio"],
            "created_at": datetime.fromisoformat(row["created_at"]),
            "updated_at": datetime.fromisoformat(row["updated_at"]),
        }

    def create(self, name: str, email: str, hashed_password: str) -> UserEntity:
        now = _ts(self._clock())
        user_id = new_id()
        try:
            with self._conn() as conn:
                conn.execute(
                    """
                    INSERT INTO users (id, name, email, hashed_password, bio, created_at, updated_at)
                    VALUES (?, ?, ?, ?, NULL, ?, ?)
                    """,
                    (user_id, name, email, hashed_password, now, now),
                )
                row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
                return self._row_to_entity(row)
        except sqlite3.IntegrityError as e:
            raise DuplicateEmailError(email) from e

    def get(self, user_id: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_entity(row) if row else None

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
            return self._row_to_entity(row) if row else None

    def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserEntity]:
        cols = [c for c in self._FIELDS if c in fields]
        assignments = "".join(f"{c} = ?, " for c in cols)
        try:
            with self._conn() as conn:
                cur = conn.execute(
                    f"UPDATE users SET {assignments}updated_at = ? WHERE id = ?",
                    (*(fields[c] for c in cols), _ts(self._clock()), user_id),
                )
                if cur.rowcount == 0:
                    return None
                row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
                return self._row_to_entity(row)
        except sqlite3.IntegrityError as e:
            raise DuplicateEmailError(fields.get("email")) from e
