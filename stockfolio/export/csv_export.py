"""CSV export for the holdings table and the cost-basis series.

Generates CSV files with metadata headers including export date and
portfolio totals.

"""

from __future__ import annotations

import csv
import io
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from stockfolio.portfolio.valuation import HoldingValuation, PortfolioSummary

_MONEY_FIELDS = ("effective_price", "invested_amount", "current_value", "profit_loss")


def export_holdings_csv(
    valuations: Sequence[HoldingValuation],
    summary: PortfolioSummary | None = None,
    output_path: str | None = None,
) -> str:
    """Export the valued holdings table to CSV format.

    Args:
        valuations: Per-holding valuations, in display order.
        summary: Optional portfolio totals for the metadata header.
        output_path: File path to write. If None, returns CSV string.

    Returns:
        The CSV content as a string, or file path if output_path given.

    """
    fieldnames = [
        "name", "ticker", "quantity", "buy_price", "buy_date",
        *_MONEY_FIELDS, "price_error",
    ]
    output = io.StringIO()

    extra = ""
    if summary is not None:
        extra = (
            f"Invested: {summary.total_invested:.2f}"
            f" | Value: {summary.total_value:.2f}"
            f" | P/L: {summary.total_profit_loss:.2f}"
        )
    _write_metadata_header(output, "Holdings Export", extra=extra)

    writer = csv.DictWriter(output, fieldnames=fieldnames, extrasaction="ignore")
    writer.writeheader()
    for valuation in valuations:
        row: dict[str, Any] = valuation.to_dict()
        for key in _MONEY_FIELDS:
            row[key] = f"{row[key]:.2f}"
        writer.writerow(row)

    return _finish(output, output_path)


def export_cumulative_csv(
    series: Sequence[dict[str, Any]],
    output_path: str | None = None,
) -> str:
    """Export the cumulative cost-basis series to CSV.

    Args:
        series: Points from ``cumulative_series`` (keys: date, value).
        output_path: File path to write. If None, returns CSV string.

    Returns:
        The CSV content as a string, or file path if output_path given.

    """
    output = io.StringIO()
    _write_metadata_header(output, "Cumulative Cost Basis Export")

    writer = csv.DictWriter(output, fieldnames=["date", "value"])
    writer.writeheader()
    for point in series:
        writer.writerow({"date": point["date"], "value": f"{point['value']:.2f}"})

    return _finish(output, output_path)


def _finish(output: io.StringIO, output_path: str | None) -> str:
    content = output.getvalue()
    if output_path:
        Path(output_path).write_text(content, encoding="utf-8")
        return output_path
    return content


def _write_metadata_header(
    output: io.StringIO,
    title: str,
    extra: str = "",
) -> None:
    """Write metadata comment lines at the top of a CSV export.

    Args:
        output: StringIO buffer to write to.
        title: Export title.
        extra: Optional additional metadata line.

    """
    now = datetime.now(tz=UTC).strftime("%Y-%m-%d %H:%M:%S UTC")
    output.write(f"# {title}\n")
    output.write(f"# Generated: {now}\n")
    if extra:
        output.write(f"# {extra}\n")
