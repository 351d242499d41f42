"""Record store: the holdings collection in a DuckDB key-value slot.

The whole collection is serialized as one JSON array under a single
key and rewritten after every mutation. Reads are forgiving: a missing
key, a value that is not valid JSON, or a value that is not a JSON
array all load as an empty collection instead of raising.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from stockfolio.portfolio.holding import Holding, from_record, to_record

if TYPE_CHECKING:
    import duckdb

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "portfolioInvestments"


class RecordStore:
    """Durable key-value slot holding the serialized holdings list.

    Args:
        conn: DuckDB connection with the ``kv_store`` table created.
        key: Storage key for the holdings document.

    """

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        key: str = DEFAULT_STORAGE_KEY,
    ) -> None:
        self.conn = conn
        self.key = key
        # DuckDB connections are not safe for concurrent use
        self._lock = threading.Lock()

    def read_raw(self) -> str | None:
        """Return the stored document text, or None if the key is absent."""
        with self._lock:
            row = self.conn.execute(
                "SELECT value FROM kv_store WHERE key = ?",
                [self.key],
            ).fetchone()
        return None if row is None else str(row[0])

    def write_raw(self, value: str) -> None:
        """Store document text under the key, replacing any previous value."""
        now = datetime.now(tz=UTC).isoformat()
        with self._lock:
            self.conn.execute(
                """
                INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                [self.key, value, now],
            )

    def read(self) -> list[Holding]:
        """Load the holdings collection.

        Returns:
            Holdings in stored order. Empty if the slot is absent or the
            stored value is not a well-formed JSON array. Elements that
            cannot be decoded are skipped.

        """
        raw = self.read_raw()
        if raw is None:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored holdings under %r are not valid JSON", self.key)
            return []
        if not isinstance(parsed, list):
            logger.warning("Stored holdings under %r are not a list", self.key)
            return []

        holdings: list[Holding] = []
        seen: set[str] = set()
        for index, record in enumerate(parsed):
            holding = _decode(record, index)
            if holding is None:
                continue
            if holding.id in seen:
                logger.warning("Skipping duplicate holding id %s", holding.id)
                continue
            seen.add(holding.id)
            holdings.append(holding)

        logger.debug("Loaded %d holdings from %r", len(holdings), self.key)
        return holdings

    def write(self, holdings: Sequence[Holding]) -> None:
        """Persist the holdings collection, replacing the stored value."""
        payload = json.dumps([to_record(h) for h in holdings])
        self.write_raw(payload)
        logger.debug("Saved %d holdings to %r", len(holdings), self.key)


def _decode(record: Any, index: int) -> Holding | None:
    if not isinstance(record, dict):
        logger.warning("Skipping stored holding #%d: not an object", index)
        return None
    try:
        return from_record(record)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Skipping stored holding #%d: %s", index, exc)
        return None
