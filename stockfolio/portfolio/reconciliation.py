"""Price reconciliation: merge fetched quotes into holdings.

Applies the outcome of one quote fetch to every holding independently:

- ticker quoted: the price is resolved and any error cleared;
- ticker missing from a successful fetch: the provider does not know
  it, so any cached live price is dropped along with the error tag;
- whole fetch failed: the last known live price is kept and every
  holding is tagged as a failed fetch.

The outcome is applied to the collection as it stands when the fetch
returns, matched by holding id rather than list position. Removals made while
the fetch was in flight stay removed. A failed fetch keeps whatever
live price the holding carries at that moment.

"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace

from stockfolio.portfolio.holding import (
    FETCH_FAILED,
    UNRESOLVABLE_TICKER,
    Holding,
    PriceState,
    Resolved,
    Unresolved,
)


def distinct_tickers(holdings: Sequence[Holding]) -> list[str]:
    """Return the distinct upper-cased tickers, in first-seen order.

    One fetch covers every holding that shares a ticker.
    """
    seen: dict[str, None] = {}
    for holding in holdings:
        seen.setdefault(holding.ticker.upper(), None)
    return list(seen)


def _quoted_price(quotes: Mapping[str, float], ticker: str) -> float | None:
    value = quotes.get(ticker.upper())
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return float(value)


def _next_state(holding: Holding, quotes: Mapping[str, float] | None) -> PriceState:
    if quotes is None:
        return Unresolved(FETCH_FAILED, last_price=holding.live_price)
    price = _quoted_price(quotes, holding.ticker)
    if price is None:
        return Unresolved(UNRESOLVABLE_TICKER)
    return Resolved(price)


def reconcile_prices(
    holdings: Sequence[Holding],
    quotes: Mapping[str, float] | None,
) -> list[Holding]:
    """Apply a fetch outcome to every holding.

    Args:
        holdings: Current holdings. Not modified.
        quotes: Symbol -> price map from a successful fetch, or None
            when the fetch failed as a whole.

    Returns:
        New list of holdings with updated price state, same order.

    """
    return [replace(h, price=_next_state(h, quotes)) for h in holdings]


def reconcile_by_id(
    current: Sequence[Holding],
    fetched_ids: Iterable[str],
    quotes: Mapping[str, float] | None,
) -> list[Holding]:
    """Apply a fetch outcome to the holdings it was started for.

    Holdings not in ``fetched_ids`` (added after the fetch started) keep
    their state. Ids no longer in ``current`` (removed meanwhile) are
    ignored. Only the price state changes; other fields are taken from
    ``current``.

    Returns:
        New list in the order of ``current``.

    """
    covered = set(fetched_ids)
    updated = {
        h.id: h
        for h in reconcile_prices([h for h in current if h.id in covered], quotes)
    }
    return [updated.get(h.id, h) for h in current]
