"""DuckDB connection management for Stockfolio.

Handles database initialization, schema creation, and connection
lifecycle. The default on-disk layout is::

    ~/.stockfolio/
      data/
        stockfolio.duckdb

"""

from __future__ import annotations

import logging
from pathlib import Path

import duckdb

from stockfolio.db.schema import ALL_TABLES

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

# Default data directory (can be overridden for testing)
_DEFAULT_DATA_DIR = Path.home() / ".stockfolio" / "data"


def get_connection(
    db_path: str | Path | None = None,
    read_only: bool = False,
) -> duckdb.DuckDBPyConnection:
    """Open a DuckDB connection.

    Args:
        db_path: Path to the .duckdb file. If None or ":memory:", uses an
            in-memory database.
        read_only: Open in read-only mode.

    Returns:
        Active DuckDB connection.

    """
    if db_path is None or str(db_path) == MEMORY_PATH:
        return duckdb.connect(MEMORY_PATH)

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_store_db(
    db_path: str | Path | None = None,
) -> duckdb.DuckDBPyConnection:
    """Initialize the record store database with schema.

    Args:
        db_path: Path to the .duckdb file.
            Defaults to ~/.stockfolio/data/stockfolio.duckdb.

    Returns:
        Initialized DuckDB connection.

    """
    if db_path is None:
        db_path = _DEFAULT_DATA_DIR / "stockfolio.duckdb"

    conn = get_connection(db_path)
    for ddl in ALL_TABLES:
        conn.execute(ddl)
    logger.info("Record store initialized at %s", db_path)
    return conn


def init_memory_db() -> duckdb.DuckDBPyConnection:
    """Create an in-memory database with full schema.

    Useful for testing and ephemeral sessions.

    Returns:
        In-memory DuckDB connection with all tables created.

    """
    conn = get_connection(None)
    for ddl in ALL_TABLES:
        conn.execute(ddl)
    return conn
