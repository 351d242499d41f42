"""Price refresh orchestration.

``PriceRefresher`` runs one refresh cycle: collect the distinct tickers,
fetch quotes, reconcile, merge into the book by id, and record the
outcome. Failures of the fetch are absorbed and turned into per-holding
annotations; they never propagate to the caller.

At most one fetch is outstanding at a time. A trigger that arrives
while a refresh is running (timer tick, manual refresh, a new holding)
waits for that refresh and gets its status rather than starting a
second request.

``RefreshScheduler`` drives the recurring refresh on a daemon thread.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from stockfolio.market.quotes import fetch_quotes
from stockfolio.portfolio.book import HoldingBook
from stockfolio.portfolio.holding import Resolved
from stockfolio.portfolio.reconciliation import distinct_tickers

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0

OUTCOME_OK = "ok"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"

QuoteFetcher = Callable[[Iterable[str]], Mapping[str, float]]


@dataclass(frozen=True)
class RefreshStatus:
    """Outcome of the last refresh attempt.

    Attributes:
        attempted_at: When the attempt finished (UTC).
        outcome: "ok", "failed", or "skipped" (empty book).
        message: Human-readable detail; the error text on failure.
        resolved: Holdings that ended with a resolved price.
        unresolved: Holdings that ended with a price error.

    """

    attempted_at: datetime
    outcome: str
    message: str = ""
    resolved: int = 0
    unresolved: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a JSON-friendly dict."""
        return {
            "attempted_at": self.attempted_at.isoformat(),
            "outcome": self.outcome,
            "message": self.message,
            "resolved": self.resolved,
            "unresolved": self.unresolved,
        }


@dataclass
class _Flight:
    done: threading.Event = field(default_factory=threading.Event)
    status: RefreshStatus | None = None


class PriceRefresher:
    """Fetch, reconcile and persist live prices for a holding book.

    Args:
        book: The holding book to refresh.
        fetcher: Callable taking ticker symbols and returning a
            symbol -> price map. Defaults to the Yahoo Finance adapter.

    """

    def __init__(
        self,
        book: HoldingBook,
        fetcher: QuoteFetcher = fetch_quotes,
    ) -> None:
        self.book = book
        self.fetcher = fetcher
        self._guard = threading.Lock()
        self._flight: _Flight | None = None
        self._last_status: RefreshStatus | None = None

    @property
    def last_status(self) -> RefreshStatus | None:
        """Status of the most recent completed attempt, if any."""
        return self._last_status

    @property
    def in_flight(self) -> bool:
        """Whether a refresh is currently running."""
        return self._flight is not None

    def refresh(self) -> RefreshStatus:
        """Run a refresh, or join the one already in flight.

        Returns:
            The status of the refresh that served this call.

        """
        with self._guard:
            flight = self._flight
            leader = flight is None
            if flight is None:
                flight = self._flight = _Flight()

        if not leader:
            logger.debug("Refresh already in flight; joining it")
            flight.done.wait()
            return flight.status or self._aborted_status()

        status: RefreshStatus | None = None
        try:
            status = self._run()
            return status
        finally:
            if status is None:
                status = self._aborted_status()
            self._last_status = status
            flight.status = status
            with self._guard:
                self._flight = None
            flight.done.set()

    @staticmethod
    def _aborted_status() -> RefreshStatus:
        return RefreshStatus(
            attempted_at=datetime.now(tz=UTC),
            outcome=OUTCOME_FAILED,
            message="refresh aborted",
        )

    def _run(self) -> RefreshStatus:
        holdings = self.book.snapshot()
        if not holdings:
            return RefreshStatus(
                attempted_at=datetime.now(tz=UTC),
                outcome=OUTCOME_SKIPPED,
                message="no holdings",
            )

        tickers = distinct_tickers(holdings)
        quotes: Mapping[str, float] | None
        message = ""
        try:
            quotes = self.fetcher(tickers)
        except Exception as exc:  # noqa: BLE001 - any fetch failure becomes a per-holding annotation
            logger.warning("Price fetch failed for %d tickers: %s", len(tickers), exc)
            quotes = None
            message = str(exc) or type(exc).__name__

        updated = self.book.apply_quotes([h.id for h in holdings], quotes)
        resolved = sum(1 for h in updated if isinstance(h.price, Resolved))
        unresolved = sum(1 for h in updated if h.price_error)

        if quotes is None:
            outcome = OUTCOME_FAILED
        else:
            outcome = OUTCOME_OK
            message = f"{len(quotes)} of {len(tickers)} tickers quoted"
            logger.info("Refreshed prices: %s", message)

        return RefreshStatus(
            attempted_at=datetime.now(tz=UTC),
            outcome=outcome,
            message=message,
            resolved=resolved,
            unresolved=unresolved,
        )


class RefreshScheduler:
    """Run ``PriceRefresher.refresh`` on a fixed interval.

    Args:
        refresher: The refresher to drive.
        interval_seconds: Period between refreshes; must be > 0.
        run_immediately: Refresh once as soon as the thread starts.

    """

    def __init__(
        self,
        refresher: PriceRefresher,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        run_immediately: bool = True,
    ) -> None:
        if interval_seconds <= 0:
            msg = f"interval_seconds must be > 0, got {interval_seconds}"
            raise ValueError(msg)
        self.refresher = refresher
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        """Whether the timer thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the timer thread. Calling it twice is a no-op."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="price-refresh", daemon=True
        )
        self._thread.start()
        logger.info(
            "Price refresh scheduler started (every %.0fs)", self.interval_seconds
        )

    def stop(self, timeout: float | None = None) -> None:
        """Signal the timer thread to exit and wait for it."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _tick(self) -> None:
        try:
            self.refresher.refresh()
        except Exception:
            logger.exception("Scheduled price refresh failed")

    def _loop(self) -> None:
        if self.run_immediately:
            self._tick()
        while not self._stop.wait(self.interval_seconds):
            self._tick()
