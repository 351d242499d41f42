"""Yahoo Finance quote adapter.

Fetches the latest closing price for a batch of symbols in a single
request via the yfinance library.

Note:
    yfinance uses an unofficial Yahoo Finance API. One batched download
    per refresh keeps the request rate low.

    yfinance is an optional dependency (install with ``pip install
    stockfolio[market]``). Functions raise ``ImportError`` at call time
    if the library is not installed.

"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from typing import Any

logger = logging.getLogger(__name__)

# Look back a few sessions so weekends and holidays still yield a close
_LOOKBACK_PERIOD = "5d"


class QuoteFetchError(RuntimeError):
    """Raised when a quote request fails as a whole."""


def _require_yfinance() -> tuple[Any, Any]:
    """Lazy-import yfinance and pandas.

    Returns:
        Tuple of (yfinance module, pandas module).

    Raises:
        ImportError: If yfinance is not installed.

    """
    try:
        import pandas as pd
        import yfinance as yf
    except ImportError as exc:
        msg = (
            "yfinance is required for live quotes. "
            "Install with: pip install stockfolio[market]"
        )
        raise ImportError(msg) from exc
    return yf, pd


def _normalize_symbols(symbols: Iterable[str]) -> list[str]:
    """Upper-case, strip and de-duplicate symbols, keeping order."""
    seen: dict[str, None] = {}
    for symbol in symbols:
        clean = (symbol or "").strip().upper()
        if clean:
            seen.setdefault(clean, None)
    return list(seen)


def _close_frame(data: Any, symbols: list[str], pd: Any) -> Any:
    """Extract a DataFrame of closes with one column per symbol.

    yfinance returns either MultiIndex columns (field, ticker) or, for a
    single symbol on older releases, flat OHLCV columns.
    """
    if isinstance(data.columns, pd.MultiIndex):
        if "Close" not in data.columns.get_level_values(0):
            return None
        closes = data["Close"]
    else:
        if "Close" not in data.columns:
            return None
        closes = data["Close"]

    if isinstance(closes, pd.Series):
        closes = closes.to_frame(name=symbols[0])
    return closes


def fetch_quotes(symbols: Iterable[str]) -> dict[str, float]:
    """Fetch the latest price for each symbol in one batched request.

    Args:
        symbols: Ticker symbols (e.g., ["AAPL", "VTI"]). Case and
            duplicates are normalized.

    Returns:
        Dict mapping upper-cased symbol to its latest close. Symbols the
        provider did not recognize are absent.

    Raises:
        ValueError: If no non-empty symbol is given.
        QuoteFetchError: If the request fails or the payload is empty or
            malformed.
        ImportError: If yfinance is not installed.

    """
    tickers = _normalize_symbols(symbols)
    if not tickers:
        msg = "symbols must contain at least one non-empty ticker"
        raise ValueError(msg)

    yf, pd = _require_yfinance()

    try:
        data = yf.download(
            tickers=" ".join(tickers),
            period=_LOOKBACK_PERIOD,
            interval="1d",
            auto_adjust=False,
            progress=False,
            threads=False,
        )
    except Exception as exc:
        msg = f"Quote request failed for {', '.join(tickers)}: {exc}"
        raise QuoteFetchError(msg) from exc

    if data is None or data.empty:
        msg = f"Empty quote payload for {', '.join(tickers)}"
        raise QuoteFetchError(msg)

    closes = _close_frame(data, tickers, pd)
    if closes is None:
        msg = "Quote payload has no Close column"
        raise QuoteFetchError(msg)

    quotes: dict[str, float] = {}
    for symbol in tickers:
        if symbol not in closes.columns:
            continue
        series = closes[symbol].dropna()
        if series.empty:
            continue
        price = float(series.iloc[-1])
        if math.isfinite(price):
            quotes[symbol] = round(price, 4)

    missing = [s for s in tickers if s not in quotes]
    if missing:
        logger.warning("No quote returned for %s", ", ".join(missing))
    return quotes
