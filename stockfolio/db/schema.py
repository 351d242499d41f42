"""DuckDB schema definitions for Stockfolio.

Contains DDL for the key-value table backing the record store:
- kv_store: one serialized document per key

"""

from __future__ import annotations

# ── Key-Value Store ──

CREATE_KV_STORE = """
CREATE TABLE IF NOT EXISTS kv_store (
    key          VARCHAR PRIMARY KEY,
    value        VARCHAR NOT NULL,
    updated_at   TIMESTAMP DEFAULT current_timestamp
);
"""

# All DDL statements in creation order
ALL_TABLES: list[str] = [
    CREATE_KV_STORE,
]
