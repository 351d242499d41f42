"""Vulture whitelist: references that appear unused but are called dynamically.

Vulture scans for unreachable code.  Items listed here are known false
positives: entry points invoked by setuptools, pytest fixtures consumed
via dependency injection, and sidecar handlers reached through the
method table.

Usage:
    uv run vulture
"""

# ── Entry points (called by setuptools console_scripts, not imported) ──
from stockfolio.main import main  # noqa: F401

# ── Pytest fixtures (injected by pytest, never called directly) ──
from tests.conftest import db  # noqa: F401
from tests.conftest import make_holding  # noqa: F401
from tests.conftest import store  # noqa: F401

# ── Sidecar handlers (looked up by method name at dispatch time) ──
from stockfolio.main import Sidecar

Sidecar.list_holdings  # noqa: B018
Sidecar.remove_holding  # noqa: B018
Sidecar.set_price  # noqa: B018
Sidecar.holding_metrics  # noqa: B018
Sidecar.allocation  # noqa: B018
Sidecar.cumulative  # noqa: B018
Sidecar.refresh_prices  # noqa: B018
Sidecar.refresh_status  # noqa: B018
