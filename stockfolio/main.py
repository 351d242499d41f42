"""Stockfolio sidecar entry point.

Communicates with the presentation client via stdin/stdout using
newline-delimited JSON messages.

Protocol:
    Request:  {"id": "uuid", "method": "string", "params": {}}
    Response: {"id": "uuid", "result": {}}
    Error:    {"id": "uuid", "error": {"message": "string"}}
"""

from __future__ import annotations

import json
import logging
import sys
import threading
import traceback
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

import numpy as np

from stockfolio import log_config
from stockfolio.config import Settings
from stockfolio.db.connection import init_store_db
from stockfolio.db.record_store import RecordStore
from stockfolio.export.csv_export import export_cumulative_csv, export_holdings_csv
from stockfolio.export.json_export import export_portfolio_json
from stockfolio.market.quotes import fetch_quotes
from stockfolio.market.refresh import PriceRefresher, QuoteFetcher, RefreshScheduler
from stockfolio.portfolio.book import HoldingBook
from stockfolio.portfolio.holding import create_holding, to_record
from stockfolio.portfolio.valuation import (
    allocation_series,
    cumulative_series,
    summarize,
    value_holdings,
)

logger = logging.getLogger(__name__)


class _NumpyEncoder(json.JSONEncoder):
    """JSON encoder that handles NumPy types and dates."""

    def default(self, o: Any) -> Any:
        """Convert NumPy types and dates to JSON-serializable Python types."""
        if isinstance(o, np.ndarray):
            return o.tolist()
        if isinstance(o, np.integer):
            return int(o)
        if isinstance(o, np.floating):
            return float(o)
        if isinstance(o, datetime | date):
            return o.isoformat()
        return super().default(o)


class Sidecar:
    """Session state and request handlers for one sidecar process.

    Args:
        book: The holdings collection for this session.
        refresher: Price refresher bound to ``book``.
        scheduler: Optional timer driving periodic refreshes.
        background_refresh: Run the refresh that follows an addition on a
            worker thread so the message loop is not blocked by the fetch.

    """

    def __init__(
        self,
        book: HoldingBook,
        refresher: PriceRefresher,
        scheduler: RefreshScheduler | None = None,
        background_refresh: bool = True,
    ) -> None:
        self.book = book
        self.refresher = refresher
        self.scheduler = scheduler
        self.background_refresh = background_refresh
        self._handlers: dict[str, Callable[..., Any]] = {
            # Holdings
            "holdings.list": self.list_holdings,
            "holdings.add": self.add_holding,
            "holdings.remove": self.remove_holding,
            "holdings.set_price": self.set_price,
            # Valuation
            "valuation.holdings": self.holding_metrics,
            "valuation.summary": self.summary,
            "valuation.allocation": self.allocation,
            "valuation.cumulative": self.cumulative,
            # Prices
            "prices.refresh": self.refresh_prices,
            "prices.status": self.refresh_status,
            # Export
            "export.holdings_csv": self.export_holdings_csv,
            "export.cumulative_csv": self.export_cumulative_csv,
            "export.portfolio_json": self.export_portfolio_json,
        }

    def dispatch(self, method: str, params: dict[str, Any]) -> Any:
        """Route a method call to the appropriate handler.

        Args:
            method: The method name (e.g., "holdings.add").
            params: The parameters for the method.

        Returns:
            The result of the method call.

        Raises:
            ValueError: If the method is not recognized.

        """
        if method not in self._handlers:
            msg = f"Unknown method: {method}"
            raise ValueError(msg)
        return self._handlers[method](**params)

    def start(self) -> None:
        """Begin price refreshes: the timer if configured, else one refresh."""
        if self.scheduler is not None:
            self.scheduler.start()
        else:
            self.trigger_refresh()

    def stop(self) -> None:
        """Stop the refresh timer, if running."""
        if self.scheduler is not None:
            self.scheduler.stop(timeout=5.0)

    # -- holdings -----------------------------------------------------------

    def list_holdings(self) -> list[dict[str, Any]]:
        """Return holdings in their storage record shape."""
        return [to_record(h) for h in self.book.snapshot()]

    def add_holding(
        self,
        name: str,
        ticker: str,
        quantity: Any,
        buy_price: Any,
        buy_date: str,
    ) -> dict[str, Any]:
        """Validate and add a holding, then trigger a price refresh.

        Returns:
            The new holding in its storage record shape, before pricing.

        """
        holding = self.book.add(
            create_holding(name, ticker, quantity, buy_price, buy_date)
        )
        self.trigger_refresh()
        return to_record(holding)

    def remove_holding(self, holding_id: str) -> dict[str, Any]:
        """Remove a holding by id."""
        return {"removed": self.book.remove(holding_id)}

    def set_price(self, holding_id: str, price: float) -> dict[str, Any]:
        """Manually override the live price of one holding."""
        return to_record(self.book.set_manual_price(holding_id, price))

    # -- valuation ----------------------------------------------------------

    def holding_metrics(self) -> list[dict[str, Any]]:
        """Per-holding invested amount, current value and P/L."""
        return [v.to_dict() for v in value_holdings(self.book.snapshot())]

    def summary(self) -> dict[str, Any]:
        """Aggregate totals across all holdings."""
        return summarize(self.book.snapshot()).to_dict()

    def allocation(self) -> list[dict[str, Any]]:
        """Allocation chart series."""
        return allocation_series(self.book.snapshot())

    def cumulative(self) -> list[dict[str, Any]]:
        """Cumulative cost-basis chart series."""
        return cumulative_series(self.book.snapshot())

    # -- prices -------------------------------------------------------------

    def refresh_prices(self) -> dict[str, Any]:
        """Refresh live prices now and return the attempt status."""
        return self.refresher.refresh().to_dict()

    def refresh_status(self) -> dict[str, Any] | None:
        """Status of the last refresh attempt, or None before the first."""
        status = self.refresher.last_status
        return None if status is None else status.to_dict()

    def _refresh_quietly(self) -> None:
        try:
            self.refresher.refresh()
        except Exception:
            logger.exception("Triggered price refresh failed")

    def trigger_refresh(self) -> None:
        """Refresh prices without blocking the caller when backgrounded."""
        if not self.background_refresh:
            self._refresh_quietly()
            return
        threading.Thread(
            target=self._refresh_quietly, name="price-refresh-trigger", daemon=True
        ).start()

    # -- export -------------------------------------------------------------

    def export_holdings_csv(self, output_path: str | None = None) -> str:
        """Export the valued holdings table as CSV."""
        holdings = self.book.snapshot()
        return export_holdings_csv(
            value_holdings(holdings), summarize(holdings), output_path=output_path
        )

    def export_cumulative_csv(self, output_path: str | None = None) -> str:
        """Export the cumulative cost-basis series as CSV."""
        return export_cumulative_csv(
            cumulative_series(self.book.snapshot()), output_path=output_path
        )

    def export_portfolio_json(self, output_path: str | None = None) -> str:
        """Export holdings, totals and chart series as JSON."""
        holdings = self.book.snapshot()
        return export_portfolio_json(
            holdings=[v.to_dict() for v in value_holdings(holdings)],
            summary=summarize(holdings).to_dict(),
            allocation=allocation_series(holdings),
            cumulative=cumulative_series(holdings),
            output_path=output_path,
        )


def build_sidecar(
    settings: Settings,
    fetcher: QuoteFetcher | None = None,
) -> Sidecar:
    """Wire the store, book, refresher and scheduler for a session.

    Args:
        settings: Resolved runtime settings.
        fetcher: Quote fetcher override. Defaults to Yahoo Finance.

    Returns:
        A ready Sidecar. The scheduler, if enabled, is not yet started.

    """
    conn = init_store_db(settings.db_path)
    book = HoldingBook(RecordStore(conn, key=settings.storage_key))
    logger.info("Loaded %d holdings", len(book))

    refresher = PriceRefresher(book, fetcher or fetch_quotes)
    scheduler = None
    if settings.auto_refresh:
        scheduler = RefreshScheduler(refresher, settings.refresh_seconds)
    return Sidecar(book, refresher, scheduler)


def _handle_line(sidecar: Sidecar, stripped: str) -> dict[str, Any]:
    request: dict[str, Any] = {}
    try:
        request = json.loads(stripped)
        request_id = request.get("id", "unknown")
        method = request["method"]
        params = request.get("params", {})
        result = sidecar.dispatch(method, params)
        response: dict[str, Any] = {"id": request_id, "result": result}
    except Exception as exc:  # noqa: BLE001 - dispatcher must catch all errors and return them as JSON
        request_id = (
            request.get("id", "unknown") if isinstance(request, dict) else "unknown"
        )
        response = {
            "id": request_id,
            "error": {
                "message": str(exc),
                "traceback": traceback.format_exc(),
            },
        }
    return response


def main(sidecar: Sidecar | None = None) -> None:
    """Run the sidecar message loop.

    Reads newline-delimited JSON from stdin, dispatches to handlers,
    and writes JSON responses to stdout. Runs until stdin is closed.

    Args:
        sidecar: Pre-built session. If None, one is built from the
            environment and logging is configured.

    """
    if sidecar is None:
        settings = Settings.from_env()
        log_config.setup(verbose=settings.verbose)
        sidecar = build_sidecar(settings)

    sidecar.start()

    try:
        for raw_line in sys.stdin:
            stripped = raw_line.strip()
            if not stripped:
                continue
            response = _handle_line(sidecar, stripped)
            sys.stdout.write(json.dumps(response, cls=_NumpyEncoder) + "\n")
            sys.stdout.flush()
    finally:
        sidecar.stop()


if __name__ == "__main__":
    main()
