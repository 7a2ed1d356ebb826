"""
Repository pattern for data access.

Handles database operations and data persistence logic. The pipeline only
talks to the abstract ``StoryStore`` so any storage engine can back it;
``SQLiteStore`` is the bundled implementation.
"""

import secrets
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ..core.errors import StorageReadError, StorageWriteError
from .db import DEFAULT_DB_PATH, get_connection
from .models import Child, Memory, UsagePeriod


class StoryStore(ABC):
    """Narrow storage contract used by the generation pipeline and API."""

    @abstractmethod
    def get_usage(self, user_id: str, period_start: str) -> Optional[UsagePeriod]:
        """Return the ledger row for (user, period), or None."""

    @abstractmethod
    def reserve_usage(self, user_id: str, period_start: str, quota: int) -> Tuple[bool, int]:
        """Atomically check the ledger and take one call if under quota.

        Returns:
            (allowed, calls before this request)
        """

    @abstractmethod
    def release_usage(self, user_id: str, period_start: str) -> None:
        """Give back one previously reserved call."""

    @abstractmethod
    def get_child(self, child_id: int) -> Optional[Child]:
        """Return a child by id, or None."""

    @abstractmethod
    def create_child(self, user_id: str, name: str) -> Child:
        """Create a child owned by user_id."""

    @abstractmethod
    def list_memories(self, child_id: int) -> List[Memory]:
        """Return a child's memories in chronological order."""

    @abstractmethod
    def add_memory(self, child_id: int, note: Optional[str] = None,
                   image_path: Optional[str] = None,
                   taken_at: Optional[str] = None) -> Memory:
        """Append a memory for a child."""

    @abstractmethod
    def issue_token(self, user_id: str) -> str:
        """Create a new bearer token for user_id."""

    @abstractmethod
    def resolve_token(self, token: str) -> Optional[str]:
        """Return the user id a bearer token belongs to, or None."""


class SQLiteStore(StoryStore):
    """SQLite implementation of ``StoryStore``.

    A fresh connection is opened per operation. sqlite3 errors are
    translated into ``StorageReadError``/``StorageWriteError`` so callers
    never depend on the engine's exception types.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the store with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def get_usage(self, user_id: str, period_start: str) -> Optional[UsagePeriod]:
        try:
            conn = get_connection(self.db_path)
            try:
                row = conn.execute(
                    "SELECT user_id, period_start, calls FROM usage "
                    "WHERE user_id = ? AND period_start = ? LIMIT 1",
                    (user_id, period_start),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageReadError(f"Usage read failed: {e}", details=str(e))

        if row is None:
            return None
        return UsagePeriod(user_id=row[0], period_start=row[1], calls=row[2])

    def reserve_usage(self, user_id: str, period_start: str, quota: int) -> Tuple[bool, int]:
        """Check-and-increment under a single write lock.

        ``BEGIN IMMEDIATE`` takes the database write lock before the read,
        so two concurrent requests can never both observe the same
        pre-increment count.
        """
        try:
            conn = get_connection(self.db_path)
            try:
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute(
                    "SELECT calls FROM usage WHERE user_id = ? AND period_start = ?",
                    (user_id, period_start),
                ).fetchone()
                current_calls = row[0] if row else 0

                if current_calls >= quota:
                    conn.rollback()
                    return False, current_calls

                conn.execute(
                    """
                    INSERT INTO usage (user_id, period_start, calls) VALUES (?, ?, ?)
                    ON CONFLICT (user_id, period_start) DO UPDATE SET calls = excluded.calls
                    """,
                    (user_id, period_start, current_calls + 1),
                )
                conn.commit()
                return True, current_calls
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageReadError(f"Usage reservation failed: {e}", details=str(e))

    def release_usage(self, user_id: str, period_start: str) -> None:
        try:
            conn = get_connection(self.db_path)
            try:
                conn.execute(
                    "UPDATE usage SET calls = calls - 1 "
                    "WHERE user_id = ? AND period_start = ? AND calls > 0",
                    (user_id, period_start),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageWriteError(f"Usage release failed: {e}", details=str(e))

    def get_child(self, child_id: int) -> Optional[Child]:
        try:
            conn = get_connection(self.db_path)
            try:
                row = conn.execute(
                    "SELECT id, name, user_id FROM children WHERE id = ?",
                    (child_id,),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageReadError(f"Child read failed: {e}", details=str(e))

        if row is None:
            return None
        return Child(id=row[0], name=row[1], user_id=row[2])

    def create_child(self, user_id: str, name: str) -> Child:
        try:
            conn = get_connection(self.db_path)
            try:
                cursor = conn.execute(
                    "INSERT INTO children (name, user_id) VALUES (?, ?)",
                    (name, user_id),
                )
                conn.commit()
                child_id = cursor.lastrowid
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageWriteError(f"Child insert failed: {e}", details=str(e))

        return Child(id=child_id, name=name, user_id=user_id)

    def list_memories(self, child_id: int) -> List[Memory]:
        """Memories ordered by taken_at ascending.

        Undated memories come after all dated ones; ties keep insertion order.
        """
        try:
            conn = get_connection(self.db_path)
            try:
                cursor = conn.execute(
                    """
                    SELECT id, child_id, note, image_path, taken_at
                    FROM memories
                    WHERE child_id = ?
                    ORDER BY taken_at IS NULL, taken_at ASC, id ASC
                    """,
                    (child_id,),
                )
                rows = cursor.fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageReadError(f"Memory read failed: {e}", details=str(e))

        return [
            Memory(id=row[0], child_id=row[1], note=row[2], image_path=row[3], taken_at=row[4])
            for row in rows
        ]

    def add_memory(self, child_id: int, note: Optional[str] = None,
                   image_path: Optional[str] = None,
                   taken_at: Optional[str] = None) -> Memory:
        try:
            conn = get_connection(self.db_path)
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO memories (child_id, note, image_path, taken_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (child_id, note or None, image_path or None, taken_at or None),
                )
                conn.commit()
                memory_id = cursor.lastrowid
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageWriteError(f"Memory insert failed: {e}", details=str(e))

        return Memory(
            id=memory_id,
            child_id=child_id,
            note=note or None,
            image_path=image_path or None,
            taken_at=taken_at or None,
        )

    def issue_token(self, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        try:
            conn = get_connection(self.db_path)
            try:
                conn.execute(
                    "INSERT INTO api_tokens (token, user_id, created_at) VALUES (?, ?, ?)",
                    (token, user_id, datetime.now(timezone.utc).isoformat()),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageWriteError(f"Token insert failed: {e}", details=str(e))
        return token

    def resolve_token(self, token: str) -> Optional[str]:
        try:
            conn = get_connection(self.db_path)
            try:
                row = conn.execute(
                    "SELECT user_id FROM api_tokens WHERE token = ?",
                    (token,),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageReadError(f"Token lookup failed: {e}", details=str(e))
        return row[0] if row else None


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the usage, children, memories and api_tokens tables if missing.

    The usage table is a history: rows are upserted per (user, period) and
    never deleted.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS usage (
                user_id TEXT NOT NULL,
                period_start TEXT NOT NULL,
                calls INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (user_id, period_start)
            );

            CREATE TABLE IF NOT EXISTS children (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                user_id TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS memories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                child_id INTEGER NOT NULL REFERENCES children (id),
                note TEXT,
                image_path TEXT,
                taken_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_memories_child_taken
                ON memories (child_id, taken_at);

            CREATE TABLE IF NOT EXISTS api_tokens (
                token TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                created_at TEXT NOT NULL
            );
        """)
        conn.commit()
    finally:
        conn.close()
