"""Runtime settings read from the environment.

Every setting has a default, so the sidecar starts with no
configuration at all::

    STOCKFOLIO_DATA_DIR          ~/.stockfolio/data
    STOCKFOLIO_DB_PATH           <data dir>/stockfolio.duckdb (":memory:" allowed)
    STOCKFOLIO_STORAGE_KEY       portfolioInvestments
    STOCKFOLIO_REFRESH_SECONDS   60
    STOCKFOLIO_AUTO_REFRESH      1
    STOCKFOLIO_VERBOSE           0

"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from stockfolio.db.record_store import DEFAULT_STORAGE_KEY
from stockfolio.market.refresh import DEFAULT_INTERVAL_SECONDS

_FALSY = {"0", "false", "no", "off"}
_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    msg = f"{name} must be a boolean flag, got {raw!r}"
    raise ValueError(msg)


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings.

    Attributes:
        data_dir: Directory for the on-disk database.
        db_path: DuckDB file path, or ":memory:".
        storage_key: Key of the holdings document in the store.
        refresh_seconds: Period of the background price refresh.
        auto_refresh: Whether the background refresh timer runs.
        verbose: DEBUG-level logging.

    """

    data_dir: Path
    db_path: str
    storage_key: str = DEFAULT_STORAGE_KEY
    refresh_seconds: float = DEFAULT_INTERVAL_SECONDS
    auto_refresh: bool = True
    verbose: bool = False

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Args:
            env: Mapping to read from. Defaults to ``os.environ``.

        Raises:
            ValueError: If a numeric or boolean variable is malformed.

        """
        env = os.environ if env is None else env

        data_dir = Path(
            env.get("STOCKFOLIO_DATA_DIR") or Path.home() / ".stockfolio" / "data"
        ).expanduser()
        db_path = env.get("STOCKFOLIO_DB_PATH") or str(data_dir / "stockfolio.duckdb")

        raw_seconds = env.get("STOCKFOLIO_REFRESH_SECONDS", "").strip()
        refresh_seconds = DEFAULT_INTERVAL_SECONDS
        try:
            if raw_seconds:
                refresh_seconds = float(raw_seconds)
        except ValueError as exc:
            msg = f"STOCKFOLIO_REFRESH_SECONDS must be a number, got {raw_seconds!r}"
            raise ValueError(msg) from exc
        if not math.isfinite(refresh_seconds) or refresh_seconds <= 0:
            msg = f"STOCKFOLIO_REFRESH_SECONDS must be > 0, got {refresh_seconds}"
            raise ValueError(msg)

        return cls(
            data_dir=data_dir,
            db_path=db_path,
            storage_key=env.get("STOCKFOLIO_STORAGE_KEY") or DEFAULT_STORAGE_KEY,
            refresh_seconds=refresh_seconds,
            auto_refresh=_env_flag(env, "STOCKFOLIO_AUTO_REFRESH", default=True),
            verbose=_env_flag(env, "STOCKFOLIO_VERBOSE", default=False),
        )
