"""Holding book: the owned, in-memory holdings collection.

The book is the single source of truth for the session. It is created
once from the record store, every mutation goes through it, and the
full collection is written back to the store after each change.

Readers get an immutable snapshot; price updates from a refresh are
swapped in under the lock in one step, so a reader never sees a
collection where only some holdings carry the new prices.

"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import replace
from typing import TYPE_CHECKING

from stockfolio.portfolio.holding import Holding, Resolved
from stockfolio.portfolio.reconciliation import reconcile_by_id

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from stockfolio.db.record_store import RecordStore

logger = logging.getLogger(__name__)


class HoldingBook:
    """Insertion-ordered holdings keyed by id, mirrored to a record store.

    Args:
        store: Record store to load from and persist to. If None, the
            book is purely in-memory.
        holdings: Initial holdings. Ignored when ``store`` is given, in
            which case the store's contents are loaded instead.

    """

    def __init__(
        self,
        store: RecordStore | None = None,
        holdings: Sequence[Holding] | None = None,
    ) -> None:
        self.store = store
        self._lock = threading.RLock()
        if store is not None:
            initial = store.read()
        else:
            initial = list(holdings or [])
        self._holdings: tuple[Holding, ...] = ()
        for holding in initial:
            self._holdings = self._appended(holding)

    def __len__(self) -> int:
        return len(self._holdings)

    def __contains__(self, holding_id: object) -> bool:
        return any(h.id == holding_id for h in self._holdings)

    def snapshot(self) -> tuple[Holding, ...]:
        """Return the current collection as an immutable tuple."""
        return self._holdings

    def get(self, holding_id: str) -> Holding:
        """Return the holding with the given id.

        Raises:
            KeyError: If no holding has that id.

        """
        for holding in self._holdings:
            if holding.id == holding_id:
                return holding
        msg = f"No holding with id {holding_id!r}"
        raise KeyError(msg)

    def add(self, holding: Holding) -> Holding:
        """Append a holding and persist.

        Raises:
            ValueError: If a holding with the same id already exists.

        """
        with self._lock:
            self._commit(self._appended(holding))
        logger.info(
            "Added holding %s: %s x %s @ %s",
            holding.id,
            holding.quantity,
            holding.ticker,
            holding.buy_price,
        )
        return holding

    def remove(self, holding_id: str) -> bool:
        """Remove a holding by id and persist.

        Returns:
            True if a holding was removed, False if the id was unknown.

        """
        with self._lock:
            remaining = tuple(h for h in self._holdings if h.id != holding_id)
            if len(remaining) == len(self._holdings):
                return False
            self._commit(remaining)
        logger.info("Removed holding %s", holding_id)
        return True

    def set_manual_price(self, holding_id: str, price: float) -> Holding:
        """Override one holding's live price with a user-entered value.

        The next refresh replaces it with the fetched price.

        Raises:
            KeyError: If no holding has that id.
            ValueError: If price is not a finite number >= 0.

        """
        if isinstance(price, bool) or not isinstance(price, int | float):
            msg = f"price must be a number, got {price!r}"
            raise ValueError(msg)
        if not math.isfinite(price) or price < 0:
            msg = f"price must be >= 0, got {price}"
            raise ValueError(msg)

        with self._lock:
            updated = replace(self.get(holding_id), price=Resolved(float(price)))
            self._commit(
                tuple(updated if h.id == holding_id else h for h in self._holdings)
            )
        return updated

    def apply_quotes(
        self,
        fetched_ids: Iterable[str],
        quotes: Mapping[str, float] | None,
    ) -> tuple[Holding, ...]:
        """Reconcile a fetch outcome against the current holdings, then persist.

        Only holdings whose id is in ``fetched_ids`` are touched. The new
        state is derived from each holding as it is now, so edits made
        while the fetch was in flight are respected.

        Args:
            fetched_ids: Ids of the holdings the fetch was started for.
            quotes: Symbol -> price map, or None if the fetch failed.

        Returns:
            The new snapshot.

        """
        with self._lock:
            self._commit(
                tuple(reconcile_by_id(self._holdings, fetched_ids, quotes))
            )
            return self._holdings

    def _appended(self, holding: Holding) -> tuple[Holding, ...]:
        if holding.id in self:
            msg = f"Duplicate holding id {holding.id!r}"
            raise ValueError(msg)
        return (*self._holdings, holding)

    def _commit(self, holdings: tuple[Holding, ...]) -> None:
        # Store first: a failed write leaves the book unchanged
        if self.store is not None:
            self.store.write(holdings)
        self._holdings = holdings
