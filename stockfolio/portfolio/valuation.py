"""Valuation engine.

Derives per-holding and aggregate metrics and the two chart series
(allocation and cumulative cost basis) from a list of holdings. All
functions are pure: they read the holdings they are given and never
touch the book, the store, or the network.

A holding without a known live price is valued at its buy price, so a
missing quote never blanks out a value.

"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import numpy as np

from stockfolio.portfolio.holding import Holding

POSITIVE = "positive"
NEGATIVE = "negative"

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class HoldingValuation:
    """Derived metrics for a single holding.

    Attributes:
        holding: The valued holding.
        effective_price: Live price if known, else buy price.
        invested_amount: quantity * buy_price.
        current_value: quantity * effective_price.
        profit_loss: current_value - invested_amount.
        sign: "positive" (gain or breakeven) or "negative".

    """

    holding: Holding
    effective_price: float
    invested_amount: float
    current_value: float
    profit_loss: float
    sign: str

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a JSON-friendly dict for the presentation client."""
        h = self.holding
        return {
            "id": h.id,
            "name": h.name,
            "ticker": h.ticker,
            "quantity": h.quantity,
            "buy_price": h.buy_price,
            "buy_date": h.buy_date.isoformat(),
            "live_price": h.live_price,
            "price_error": h.price_error,
            "effective_price": self.effective_price,
            "invested_amount": self.invested_amount,
            "current_value": self.current_value,
            "profit_loss": self.profit_loss,
            "sign": self.sign,
        }


@dataclass(frozen=True)
class PortfolioSummary:
    """Aggregate metrics across all holdings."""

    total_invested: float = 0.0
    total_value: float = 0.0
    total_profit_loss: float = 0.0
    sign: str = POSITIVE
    holdings_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a JSON-friendly dict."""
        return {
            "total_invested": self.total_invested,
            "total_value": self.total_value,
            "total_profit_loss": self.total_profit_loss,
            "sign": self.sign,
            "holdings_count": self.holdings_count,
        }


def classify(profit_loss: float) -> str:
    """Classify a profit/loss figure for display.

    Breakeven counts as a gain: only strictly negative values are
    "negative".
    """
    return POSITIVE if profit_loss >= 0 else NEGATIVE


def round_cents(value: float) -> float:
    """Round to 2 decimals, halves away from zero.

    The float is converted through its shortest repr so that values
    like 1.005 round the way they read (1.01) rather than by their
    binary expansion.
    """
    quantized = Decimal(repr(float(value))).quantize(_CENT, rounding=ROUND_HALF_UP)
    return float(quantized)


def effective_price(holding: Holding) -> float:
    """Return the price used for valuation: live price, else buy price."""
    live = holding.live_price
    return holding.buy_price if live is None else live


def value_holding(holding: Holding) -> HoldingValuation:
    """Compute invested amount, current value and P/L for one holding."""
    price = effective_price(holding)
    invested = holding.quantity * holding.buy_price
    current = holding.quantity * price
    profit_loss = current - invested
    return HoldingValuation(
        holding=holding,
        effective_price=price,
        invested_amount=invested,
        current_value=current,
        profit_loss=profit_loss,
        sign=classify(profit_loss),
    )


def value_holdings(holdings: Sequence[Holding]) -> list[HoldingValuation]:
    """Value every holding, preserving collection order."""
    return [value_holding(h) for h in holdings]


def summarize(holdings: Sequence[Holding]) -> PortfolioSummary:
    """Compute aggregate totals.

    Args:
        holdings: Holdings to aggregate. May be empty.

    Returns:
        PortfolioSummary. An empty collection yields all zeros.

    """
    total_invested = 0.0
    total_value = 0.0
    for valuation in value_holdings(holdings):
        total_invested += valuation.invested_amount
        total_value += valuation.current_value

    total_profit_loss = total_value - total_invested
    return PortfolioSummary(
        total_invested=total_invested,
        total_value=total_value,
        total_profit_loss=total_profit_loss,
        sign=classify(total_profit_loss),
        holdings_count=len(holdings),
    )


def allocation_series(holdings: Sequence[Holding]) -> list[dict[str, Any]]:
    """Build the allocation (pie chart) series.

    One entry per holding, labeled by ticker, weighted by current value.
    Weights are not normalized.

    Returns:
        List of dicts with keys: id, label, value.

    """
    return [
        {
            "id": v.holding.id,
            "label": v.holding.ticker,
            "value": v.current_value,
        }
        for v in value_holdings(holdings)
    ]


def cumulative_series(holdings: Sequence[Holding]) -> list[dict[str, Any]]:
    """Build the committed-capital (cumulative cost basis) series.

    Holdings are admitted in buy-date order; ties keep insertion order.
    Each point is the running total of invested amounts, rounded to
    cents. Live prices play no part.

    Returns:
        List of dicts with keys: date (ISO string), value.

    """
    ordered = sorted(holdings, key=lambda h: h.buy_date)
    if not ordered:
        return []

    invested = np.array([h.quantity * h.buy_price for h in ordered], dtype=np.float64)
    running = np.cumsum(invested)

    return [
        {"date": h.buy_date.isoformat(), "value": round_cents(float(total))}
        for h, total in zip(ordered, running, strict=True)
    ]
