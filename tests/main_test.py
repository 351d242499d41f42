"""Tests for the sidecar entry point (dispatch and message loop)."""

from __future__ import annotations

import json
from io import StringIO
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from stockfolio.config import Settings
from stockfolio.main import Sidecar, build_sidecar, main
from stockfolio.market.refresh import PriceRefresher, RefreshScheduler
from stockfolio.portfolio.book import HoldingBook
from stockfolio.portfolio.holding import FETCH_FAILED, UNRESOLVABLE_TICKER


def _make_sidecar(quotes=None, fetcher=None) -> Sidecar:
    book = HoldingBook()
    if fetcher is None:
        fetcher = MagicMock(return_value=quotes or {})
    return Sidecar(book, PriceRefresher(book, fetcher), background_refresh=False)


def _add(sidecar: Sidecar, ticker: str = "AAPL", **overrides) -> dict:
    params = {
        "name": f"{ticker} Inc.",
        "ticker": ticker,
        "quantity": 10,
        "buy_price": 100,
        "buy_date": "2024-01-15",
        **overrides,
    }
    return sidecar.dispatch("holdings.add", params)


def _run(sidecar: Sidecar, *requests: dict) -> list[dict]:
    stdin = StringIO("".join(json.dumps(r) + "\n" for r in requests))
    stdout = StringIO()
    with patch("sys.stdin", stdin), patch("sys.stdout", stdout):
        main(sidecar)
    return [json.loads(line) for line in stdout.getvalue().splitlines()]


class TestDispatch:
    """Tests for method routing."""

    def test_unknown_method_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown method"):
            _make_sidecar().dispatch("nonexistent.method", {})

    def test_unknown_method_includes_name(self) -> None:
        with pytest.raises(ValueError, match=r"foo\.bar"):
            _make_sidecar().dispatch("foo.bar", {})


class TestHoldingMethods:
    """Tests for adding, listing and removing holdings."""

    def test_add_triggers_refresh(self) -> None:
        sidecar = _make_sidecar({"AAPL": 150.0})
        result = _add(sidecar, ticker="aapl")

        assert result["ticker"] == "AAPL"
        assert result["buyPrice"] == pytest.approx(100.0)
        assert "livePrice" not in result
        assert sidecar.book.get(result["id"]).live_price == pytest.approx(150.0)

    def test_add_invalid_input_leaves_book_unchanged(self) -> None:
        fetcher = MagicMock()
        sidecar = _make_sidecar(fetcher=fetcher)
        with pytest.raises(ValueError, match="quantity"):
            _add(sidecar, quantity=0)
        assert len(sidecar.book) == 0
        fetcher.assert_not_called()

    def test_list_returns_records(self) -> None:
        sidecar = _make_sidecar({"AAPL": 150.0})
        _add(sidecar)
        [record] = sidecar.dispatch("holdings.list", {})
        assert record["buyPrice"] == pytest.approx(100.0)
        assert record["livePrice"] == pytest.approx(150.0)
        assert "priceError" not in record

    def test_remove(self) -> None:
        sidecar = _make_sidecar()
        holding_id = _add(sidecar)["id"]
        assert sidecar.dispatch("holdings.remove", {"holding_id": holding_id}) == {
            "removed": True
        }
        assert sidecar.dispatch("holdings.remove", {"holding_id": holding_id}) == {
            "removed": False
        }

    def test_set_price(self) -> None:
        sidecar = _make_sidecar()
        holding_id = _add(sidecar)["id"]
        result = sidecar.dispatch(
            "holdings.set_price", {"holding_id": holding_id, "price": 90}
        )
        assert result["livePrice"] == pytest.approx(90.0)
        assert "priceError" not in result

        [metrics] = sidecar.dispatch("valuation.holdings", {})
        assert metrics["profit_loss"] == pytest.approx(-100.0)
        assert metrics["sign"] == "negative"


class TestValuationMethods:
    """Tests for totals and chart series."""

    def test_summary_and_series(self) -> None:
        sidecar = _make_sidecar({"AAPL": 150.0})
        _add(sidecar)
        _add(sidecar, ticker="ZZZZ", buy_date="2023-06-01", quantity=2)

        summary = sidecar.dispatch("valuation.summary", {})
        assert summary["total_invested"] == pytest.approx(1200.0)
        assert summary["total_value"] == pytest.approx(1700.0)
        assert summary["total_profit_loss"] == pytest.approx(500.0)
        assert summary["sign"] == "positive"

        metrics = sidecar.dispatch("valuation.holdings", {})
        assert metrics[1]["price_error"] == UNRESOLVABLE_TICKER

        allocation = sidecar.dispatch("valuation.allocation", {})
        assert [p["label"] for p in allocation] == ["AAPL", "ZZZZ"]

        cumulative = sidecar.dispatch("valuation.cumulative", {})
        assert [p["date"] for p in cumulative] == ["2023-06-01", "2024-01-15"]
        assert cumulative[-1]["value"] == pytest.approx(1200.0)

    def test_empty_book(self) -> None:
        sidecar = _make_sidecar()
        summary = sidecar.dispatch("valuation.summary", {})
        assert summary["total_value"] == 0
        assert summary["sign"] == "positive"
        assert sidecar.dispatch("valuation.cumulative", {}) == []


class TestPriceMethods:
    """Tests for manual refresh and status."""

    def test_status_before_first_refresh(self) -> None:
        assert _make_sidecar().dispatch("prices.status", {}) is None

    def test_failed_refresh_reports_status(self) -> None:
        fetcher = MagicMock(return_value={"AAPL": 150.0})
        sidecar = _make_sidecar(fetcher=fetcher)
        holding_id = _add(sidecar)["id"]

        fetcher.side_effect = RuntimeError("network down")
        status = sidecar.dispatch("prices.refresh", {})
        assert status["outcome"] == "failed"
        assert sidecar.dispatch("prices.status", {}) == status

        holding = sidecar.book.get(holding_id)
        assert holding.live_price == pytest.approx(150.0)
        assert holding.price_error == FETCH_FAILED


class TestExportMethods:
    """Tests for export dispatch."""

    def test_exports_to_files(self, tmp_path: Path) -> None:
        sidecar = _make_sidecar({"AAPL": 150.0})
        _add(sidecar)
        for method, name in [
            ("export.holdings_csv", "holdings.csv"),
            ("export.cumulative_csv", "cumulative.csv"),
            ("export.portfolio_json", "portfolio.json"),
        ]:
            out_path = str(tmp_path / name)
            assert sidecar.dispatch(method, {"output_path": out_path}) == out_path
            assert Path(out_path).read_text(encoding="utf-8")

        assert "AAPL" in (tmp_path / "holdings.csv").read_text(encoding="utf-8")

    def test_portfolio_json_string(self) -> None:
        sidecar = _make_sidecar()
        _add(sidecar)
        data = json.loads(sidecar.dispatch("export.portfolio_json", {}))
        assert data["metadata"]["holdings_count"] == 1


class TestBuildSidecar:
    """Tests for wiring a session from settings."""

    def test_in_memory_without_timer(self) -> None:
        settings = Settings(
            data_dir=Path("unused"), db_path=":memory:", auto_refresh=False
        )
        sidecar = build_sidecar(settings, fetcher=MagicMock(return_value={}))
        assert sidecar.scheduler is None
        assert len(sidecar.book) == 0

    def test_holdings_persist_across_sessions(self, tmp_path: Path) -> None:
        settings = Settings(
            data_dir=tmp_path,
            db_path=str(tmp_path / "stockfolio.duckdb"),
            auto_refresh=False,
        )
        first = build_sidecar(settings, fetcher=MagicMock(return_value={}))
        first.background_refresh = False
        _add(first)
        first.book.store.conn.close()

        second = build_sidecar(settings, fetcher=MagicMock(return_value={}))
        assert [h.ticker for h in second.book.snapshot()] == ["AAPL"]
        second.book.store.conn.close()

    def test_timer_enabled(self) -> None:
        settings = Settings(
            data_dir=Path("unused"), db_path=":memory:", refresh_seconds=30
        )
        sidecar = build_sidecar(settings, fetcher=MagicMock(return_value={}))
        assert isinstance(sidecar.scheduler, RefreshScheduler)
        assert sidecar.scheduler.interval_seconds == pytest.approx(30)


class TestMain:
    """Tests for the stdin/stdout message loop."""

    def test_valid_request_returns_response(self) -> None:
        [response] = _run(
            _make_sidecar(), {"id": "1", "method": "valuation.summary", "params": {}}
        )
        assert response["id"] == "1"
        assert response["result"]["holdings_count"] == 0

    def test_params_default_to_empty(self) -> None:
        [response] = _run(_make_sidecar(), {"id": "1", "method": "holdings.list"})
        assert response["result"] == []

    def test_invalid_json_returns_error(self) -> None:
        stdin = StringIO("not valid json\n")
        stdout = StringIO()
        with patch("sys.stdin", stdin), patch("sys.stdout", stdout):
            main(_make_sidecar())

        response = json.loads(stdout.getvalue().strip())
        assert response["id"] == "unknown"
        assert "error" in response

    def test_missing_method_returns_error(self) -> None:
        [response] = _run(_make_sidecar(), {"id": "2"})
        assert response["id"] == "2"
        assert "error" in response

    def test_validation_error_is_returned(self) -> None:
        params = {
            "name": "Apple",
            "ticker": "AAPL",
            "quantity": 1,
            "buy_price": 1,
            "buy_date": "15/01/2024",
        }
        [response] = _run(
            _make_sidecar(), {"id": "3", "method": "holdings.add", "params": params}
        )
        assert "YYYY-MM-DD" in response["error"]["message"]
        assert "traceback" in response["error"]

    def test_empty_lines_are_skipped(self) -> None:
        request = json.dumps({"id": "3", "method": "holdings.list", "params": {}})
        stdin = StringIO("\n\n" + request + "\n\n")
        stdout = StringIO()
        with patch("sys.stdin", stdin), patch("sys.stdout", stdout):
            main(_make_sidecar())

        lines = [line for line in stdout.getvalue().strip().split("\n") if line]
        assert len(lines) == 1

    def test_scheduler_started_and_stopped(self) -> None:
        book = HoldingBook()
        scheduler = MagicMock()
        sidecar = Sidecar(book, PriceRefresher(book, MagicMock()), scheduler)
        _run(sidecar)
        scheduler.start.assert_called_once()
        scheduler.stop.assert_called_once()
