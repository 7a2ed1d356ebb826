"""
Unit tests for storage layer.

Tests schema creation, usage ledger rows, children, memories and tokens.
"""

import os
import sqlite3
import tempfile
from unittest.mock import patch

import pytest

from memorybook.core.errors import StorageReadError, StorageWriteError
from memorybook.storage.db import get_connection
from memorybook.storage.models import Child, Memory, UsagePeriod
from memorybook.storage.repository import SQLiteStore, initialize_schema


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify tables are created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("""
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                    ORDER BY name
                """)
                tables = [row[0] for row in cursor.fetchall()]
                assert tables == ["api_tokens", "children", "memories", "usage"]

                cursor = conn.execute("PRAGMA table_info(usage)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == ["user_id", "period_start", "calls"]
            finally:
                conn.close()

    def test_schema_creation_is_idempotent(self):
        """Running initialize twice keeps existing rows."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            store = SQLiteStore(db_path)
            store.create_child("user-1", "Ada")

            initialize_schema(db_path)

            assert store.get_child(1) == Child(id=1, name="Ada", user_id="user-1")


class TestUsageLedgerRows:
    """Test usage reads and atomic reservations."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.store = SQLiteStore(self.db_path)
        self.period = "2026-10-01T00:00:00.000Z"

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_usage_row_is_none(self):
        """Absent ledger row reads as None."""
        assert self.store.get_usage("user-1", self.period) is None

    def test_first_reservation_creates_row(self):
        """First reservation in a period upserts calls=1."""
        allowed, current = self.store.reserve_usage("user-1", self.period, quota=5)

        assert allowed is True
        assert current == 0
        assert self.store.get_usage("user-1", self.period) == UsagePeriod("user-1", self.period, 1)

    def test_reservation_denied_at_quota(self):
        """No increment once the quota is reached."""
        for _ in range(3):
            self.store.reserve_usage("user-1", self.period, quota=3)

        allowed, current = self.store.reserve_usage("user-1", self.period, quota=3)

        assert allowed is False
        assert current == 3
        assert self.store.get_usage("user-1", self.period).calls == 3

    def test_periods_and_users_are_independent(self):
        """Rows are keyed by (user, period)."""
        self.store.reserve_usage("user-1", self.period, quota=5)
        self.store.reserve_usage("user-1", "2026-11-01T00:00:00.000Z", quota=5)
        self.store.reserve_usage("user-2", self.period, quota=5)

        assert self.store.get_usage("user-1", self.period).calls == 1
        assert self.store.get_usage("user-1", "2026-11-01T00:00:00.000Z").calls == 1
        assert self.store.get_usage("user-2", self.period).calls == 1

    def test_release_decrements_but_not_below_zero(self):
        """Release gives one call back and never goes negative."""
        self.store.reserve_usage("user-1", self.period, quota=5)
        self.store.release_usage("user-1", self.period)
        self.store.release_usage("user-1", self.period)

        assert self.store.get_usage("user-1", self.period).calls == 0

    def test_read_failure_raises_storage_read_error(self):
        """sqlite errors become StorageReadError."""
        with patch("memorybook.storage.repository.get_connection",
                   side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(StorageReadError, match="disk I/O error"):
                self.store.get_usage("user-1", self.period)

            with pytest.raises(StorageReadError):
                self.store.reserve_usage("user-1", self.period, quota=5)

    def test_release_failure_raises_storage_write_error(self):
        """sqlite errors on release become StorageWriteError."""
        with patch("memorybook.storage.repository.get_connection",
                   side_effect=sqlite3.OperationalError("readonly database")):
            with pytest.raises(StorageWriteError):
                self.store.release_usage("user-1", self.period)

    def test_missing_table_fails_closed(self):
        """An uninitialized database never grants quota."""
        store = SQLiteStore(os.path.join(self.temp_dir, "empty.db"))

        with pytest.raises(StorageReadError, match="no such table"):
            store.reserve_usage("user-1", self.period, quota=5)


class TestChildrenAndMemories:
    """Test child and memory persistence."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.store = SQLiteStore(self.db_path)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_create_and_get_child(self):
        """Children round-trip through the store."""
        child = self.store.create_child("user-1", "Noah")

        assert child.id == 1
        assert self.store.get_child(child.id) == child
        assert self.store.get_child(999) is None

    def test_memories_ordered_chronologically(self):
        """Memories come back by taken_at ascending."""
        child = self.store.create_child("user-1", "Noah")
        self.store.add_memory(child.id, note="third", taken_at="2026-03-01T00:00:00Z")
        self.store.add_memory(child.id, note="first", taken_at="2026-01-01T00:00:00Z")
        self.store.add_memory(child.id, note="second", taken_at="2026-02-01T00:00:00Z")

        notes = [m.note for m in self.store.list_memories(child.id)]

        assert notes == ["first", "second", "third"]

    def test_undated_memories_sort_last_in_insertion_order(self):
        """Undated memories follow dated ones; ties keep insertion order."""
        child = self.store.create_child("user-1", "Noah")
        self.store.add_memory(child.id, note="undated-a")
        self.store.add_memory(child.id, note="dated", taken_at="2026-05-01T00:00:00Z")
        self.store.add_memory(child.id, note="undated-b")
        self.store.add_memory(child.id, note="same-time-1", taken_at="2026-04-01T00:00:00Z")
        self.store.add_memory(child.id, note="same-time-2", taken_at="2026-04-01T00:00:00Z")

        notes = [m.note for m in self.store.list_memories(child.id)]

        assert notes == ["same-time-1", "same-time-2", "dated", "undated-a", "undated-b"]

    def test_memories_filtered_by_child(self):
        """Only the requested child's memories are returned."""
        first = self.store.create_child("user-1", "Noah")
        second = self.store.create_child("user-1", "Ella")
        self.store.add_memory(first.id, note="noah")
        self.store.add_memory(second.id, note="ella")

        memories = self.store.list_memories(second.id)

        assert memories == [Memory(id=2, child_id=second.id, note="ella")]

    def test_empty_strings_stored_as_null(self):
        """Blank optional fields are stored as NULL."""
        child = self.store.create_child("user-1", "Noah")
        memory = self.store.add_memory(child.id, note="", image_path="", taken_at="")

        assert memory.note is None
        assert self.store.list_memories(child.id)[0].taken_at is None

    def test_memory_requires_existing_child(self):
        """Foreign key violations become StorageWriteError."""
        with pytest.raises(StorageWriteError):
            self.store.add_memory(42, note="orphan")


class TestTokens:
    """Test bearer token issue and lookup."""

    def test_issue_and_resolve_token(self):
        """Issued tokens resolve to their user."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            store = SQLiteStore(db_path)

            token = store.issue_token("user-1")

            assert len(token) >= 32
            assert store.resolve_token(token) == "user-1"
            assert store.resolve_token("not-a-token") is None
            assert store.issue_token("user-1") != token
