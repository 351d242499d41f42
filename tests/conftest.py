"""Shared pytest fixtures for Stockfolio tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

import pytest
from stockfolio.db.connection import init_memory_db
from stockfolio.db.record_store import RecordStore
from stockfolio.portfolio.holding import Holding, PriceState, Unfetched


@pytest.fixture
def db():
    """Provide an in-memory DuckDB connection with the schema created."""
    conn = init_memory_db()
    yield conn
    conn.close()


@pytest.fixture
def store(db) -> RecordStore:
    """Provide a record store backed by the in-memory database."""
    return RecordStore(db)


@pytest.fixture
def make_holding() -> Callable[..., Holding]:
    """Provide a factory for holdings with sensible defaults."""
    counter = iter(range(1, 10_000))

    def _make(
        ticker: str = "AAPL",
        quantity: float = 10.0,
        buy_price: float = 100.0,
        buy_date: date = date(2024, 1, 15),
        price: PriceState | None = None,
        holding_id: str | None = None,
        name: str | None = None,
    ) -> Holding:
        return Holding(
            id=holding_id or f"h{next(counter)}",
            name=name or f"{ticker} Inc.",
            ticker=ticker,
            quantity=quantity,
            buy_price=buy_price,
            buy_date=buy_date,
            price=price if price is not None else Unfetched(),
        )

    return _make
