"""Holding records and their live-price state.

A holding is one recorded purchase of a security. Its market price is
tracked as a tagged state rather than two loose optional fields, so a
resolved price and a price error can never be set at the same time:

- ``Unfetched``: no successful fetch has covered the ticker yet.
- ``Resolved``: the latest market price.
- ``Unresolved``: the last attempt failed. A failed fetch keeps the
  previous live price in ``last_price``; an unknown ticker does not.

Holdings serialize to the camelCase record shape used by the browser
storage slot (``buyPrice``, ``livePrice``, ``priceError``).

"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

UNRESOLVABLE_TICKER = "unresolvable ticker"
FETCH_FAILED = "fetch failed"

_DATE_FORMAT = "%Y-%m-%d"


class InvalidHoldingError(ValueError):
    """Raised when user input cannot form a valid holding."""


@dataclass(frozen=True)
class Unfetched:
    """No price has been fetched for this holding yet."""


@dataclass(frozen=True)
class Resolved:
    """A successfully fetched (or manually entered) market price."""

    price: float


@dataclass(frozen=True)
class Unresolved:
    """The last price attempt failed.

    Attributes:
        reason: ``UNRESOLVABLE_TICKER`` or ``FETCH_FAILED``.
        last_price: Previously known live price, kept across a failed
            fetch. Always None for an unresolvable ticker.

    """

    reason: str
    last_price: float | None = None


PriceState = Unfetched | Resolved | Unresolved


@dataclass(frozen=True)
class Holding:
    """One purchased position.

    Attributes:
        id: Opaque unique identifier, assigned at creation.
        name: Free-text security name.
        ticker: Upper-cased ticker symbol.
        quantity: Number of shares (> 0).
        buy_price: Price per share at purchase (>= 0).
        buy_date: Purchase date.
        price: Current live-price state.

    """

    id: str
    name: str
    ticker: str
    quantity: float
    buy_price: float
    buy_date: date
    price: PriceState = field(default_factory=Unfetched)

    @property
    def live_price(self) -> float | None:
        """Most recent market price, or None if none is known."""
        if isinstance(self.price, Resolved):
            return self.price.price
        if isinstance(self.price, Unresolved):
            return self.price.last_price
        return None

    @property
    def price_error(self) -> str:
        """Reason tag of the last failed price attempt, or empty string."""
        if isinstance(self.price, Unresolved):
            return self.price.reason
        return ""


def new_holding_id() -> str:
    """Return a fresh, never-reused holding identifier."""
    return uuid.uuid4().hex


def _parse_number(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or value is None:
        msg = f"{field_name} must be a number, got {value!r}"
        raise InvalidHoldingError(msg)
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        msg = f"{field_name} must be a number, got {value!r}"
        raise InvalidHoldingError(msg) from exc
    if not math.isfinite(number):
        msg = f"{field_name} must be finite, got {value!r}"
        raise InvalidHoldingError(msg)
    return number


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        msg = "buy_date is required"
        raise InvalidHoldingError(msg)
    try:
        return datetime.strptime(value.strip(), _DATE_FORMAT).date()  # noqa: DTZ007
    except ValueError as exc:
        msg = f"Invalid buy_date. Expected YYYY-MM-DD: {value!r}"
        raise InvalidHoldingError(msg) from exc


def create_holding(
    name: str,
    ticker: str,
    quantity: Any,
    buy_price: Any,
    buy_date: Any,
) -> Holding:
    """Validate user input and build a new holding.

    Args:
        name: Security name. Surrounding whitespace is stripped.
        ticker: Ticker symbol. Stripped and upper-cased.
        quantity: Number of shares; must be > 0.
        buy_price: Price per share; must be >= 0.
        buy_date: Purchase date as ``date`` or ``YYYY-MM-DD`` string.

    Returns:
        A new Holding in the ``Unfetched`` price state.

    Raises:
        InvalidHoldingError: If any field is missing or out of range.
            No holding is constructed in that case.

    """
    clean_name = (name or "").strip()
    clean_ticker = (ticker or "").strip().upper()
    if not clean_name:
        msg = "name is required"
        raise InvalidHoldingError(msg)
    if not clean_ticker:
        msg = "ticker is required"
        raise InvalidHoldingError(msg)

    qty = _parse_number(quantity, "quantity")
    if qty <= 0:
        msg = f"quantity must be > 0, got {qty}"
        raise InvalidHoldingError(msg)

    price = _parse_number(buy_price, "buy_price")
    if price < 0:
        msg = f"buy_price must be >= 0, got {price}"
        raise InvalidHoldingError(msg)

    return Holding(
        id=new_holding_id(),
        name=clean_name,
        ticker=clean_ticker,
        quantity=qty,
        buy_price=price,
        buy_date=_parse_date(buy_date),
    )


def to_record(holding: Holding) -> dict[str, Any]:
    """Serialize a holding to its storage record.

    ``livePrice`` and ``priceError`` are omitted when absent.
    """
    record: dict[str, Any] = {
        "id": holding.id,
        "name": holding.name,
        "ticker": holding.ticker,
        "quantity": holding.quantity,
        "buyPrice": holding.buy_price,
        "buyDate": holding.buy_date.strftime(_DATE_FORMAT),
    }
    if holding.live_price is not None:
        record["livePrice"] = holding.live_price
    if holding.price_error:
        record["priceError"] = holding.price_error
    return record


def _state_from_record(record: dict[str, Any]) -> PriceState:
    live = record.get("livePrice")
    live_price = None
    if isinstance(live, int | float) and not isinstance(live, bool) and live >= 0:
        live_price = float(live)
    error = record.get("priceError") or ""
    if error:
        # A retained price under an error only happens after a failed fetch
        if live_price is not None:
            return Unresolved(FETCH_FAILED, last_price=live_price)
        return Unresolved(str(error))
    if live_price is not None:
        return Resolved(live_price)
    return Unfetched()


def from_record(record: dict[str, Any]) -> Holding:
    """Deserialize a storage record into a holding.

    Field values are trusted as stored; creation-time validation is not
    re-applied. Legacy browser records, which used ``stockName`` and
    ``currentPrice``, are accepted; ``currentPrice`` is ignored.

    Raises:
        KeyError: If a required field is missing.
        ValueError: If a number or date cannot be parsed.

    """
    name = record["name"] if "name" in record else record["stockName"]
    bought = datetime.strptime(str(record["buyDate"]), _DATE_FORMAT)  # noqa: DTZ007
    return Holding(
        id=str(record["id"]),
        name=str(name),
        ticker=str(record["ticker"]).upper(),
        quantity=float(record["quantity"]),
        buy_price=float(record["buyPrice"]),
        buy_date=bought.date(),
        price=_state_from_record(record),
    )
