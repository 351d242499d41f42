"""Tests for DuckDB connection management."""

from __future__ import annotations

import tempfile
from pathlib import Path

from stockfolio.db.connection import (
    MEMORY_PATH,
    get_connection,
    init_memory_db,
    init_store_db,
)
from stockfolio.db.schema import ALL_TABLES


class TestGetConnection:
    """Tests for database connection factory."""

    def test_in_memory_connection(self):
        conn = get_connection(None)
        assert conn.execute("SELECT 1").fetchone() == (1,)
        conn.close()

    def test_memory_path_string(self):
        conn = get_connection(MEMORY_PATH)
        assert conn.execute("SELECT 1").fetchone() == (1,)
        conn.close()

    def test_file_connection(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "test.duckdb"
            conn = get_connection(db_path)
            conn.execute("CREATE TABLE test_tbl (id INT)")
            conn.execute("INSERT INTO test_tbl VALUES (1)")
            assert conn.execute("SELECT * FROM test_tbl").fetchone() == (1,)
            conn.close()

    def test_creates_parent_directories(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "nested" / "deep" / "test.duckdb"
            conn = get_connection(db_path)
            conn.execute("SELECT 1").fetchone()
            conn.close()
            assert db_path.parent.exists()


class TestInitDb:
    """Tests for schema initialization."""

    def test_creates_kv_store(self):
        conn = init_memory_db()
        table_names = {t[0] for t in conn.execute("SHOW TABLES").fetchall()}
        assert "kv_store" in table_names
        assert conn.execute("SELECT COUNT(*) FROM kv_store").fetchone() == (0,)
        conn.close()

    def test_idempotent_init(self):
        conn = init_memory_db()
        for ddl in ALL_TABLES:
            conn.execute(ddl)
        conn.close()

    def test_store_db_survives_reopen(self, tmp_path):
        db_path = tmp_path / "data" / "stockfolio.duckdb"
        conn = init_store_db(db_path)
        conn.execute(
            "INSERT INTO kv_store (key, value) VALUES (?, ?)", ["k", "[]"]
        )
        conn.close()

        reopened = init_store_db(db_path)
        row = reopened.execute("SELECT value FROM kv_store WHERE key = 'k'").fetchone()
        assert row == ("[]",)
        reopened.close()
