"""JSON export for portfolio data.

Produces a JSON dump of holdings, totals and chart series with
metadata.

"""

from __future__ import annotations

import json
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import numpy as np


class _PortfolioEncoder(json.JSONEncoder):
    """JSON encoder that handles NumPy types and dates."""

    def default(self, o: Any) -> Any:
        """Convert non-serializable types to JSON-safe values."""
        if isinstance(o, np.ndarray):
            return o.tolist()
        if isinstance(o, np.integer):
            return int(o)
        if isinstance(o, np.floating):
            return float(o)
        if isinstance(o, datetime | date):
            return o.isoformat()
        return super().default(o)


def export_portfolio_json(
    holdings: list[dict[str, Any]] | None = None,
    summary: dict[str, Any] | None = None,
    allocation: list[dict[str, Any]] | None = None,
    cumulative: list[dict[str, Any]] | None = None,
    output_path: str | None = None,
) -> str:
    """Export portfolio data to JSON format.

    Args:
        holdings: Per-holding valuation dicts.
        summary: Aggregate totals dict.
        allocation: Allocation chart series.
        cumulative: Cumulative cost-basis chart series.
        output_path: File path to write. If None, returns JSON string.

    Returns:
        JSON string, or file path if output_path given.

    """
    now = datetime.now(tz=UTC).isoformat()

    export_data: dict[str, Any] = {
        "metadata": {
            "export_date": now,
            "format_version": "1.0",
            "source": "Stockfolio",
        },
    }

    if holdings is not None:
        export_data["holdings"] = holdings
        export_data["metadata"]["holdings_count"] = len(holdings)

    if summary is not None:
        export_data["summary"] = summary

    if allocation is not None:
        export_data["allocation"] = allocation

    if cumulative is not None:
        export_data["cumulative"] = cumulative
        export_data["metadata"]["cumulative_points"] = len(cumulative)

    content = json.dumps(export_data, cls=_PortfolioEncoder, indent=2)

    if output_path:
        Path(output_path).write_text(content, encoding="utf-8")
        return output_path
    return content
