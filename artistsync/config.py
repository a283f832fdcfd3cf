"""
config.py — Secure Configuration Loader
=========================================
Reads secrets and runtime parameters from a ``.env`` file (via python-dotenv)
so that credentials never appear in source code.

Usage
-----
>>> from artistsync.config import load_settings
>>> load_settings().sync_interval_seconds
3600
"""

from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass
from decimal import Decimal

from dotenv import load_dotenv


# ── locate .env relative to project root ────────────────────────────────────

_PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
_ENV_PATH = _PROJECT_ROOT / ".env"

load_dotenv(dotenv_path=_ENV_PATH)


# ── typed settings object ───────────────────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    """Immutable container for all environment-sourced config."""

    # Chartmetric API
    chartmetric_refresh_token: str = ""
    chartmetric_base_url: str = "https://api.chartmetric.com"

    # Persistence (any SQLAlchemy URL; SQLite and PostgreSQL upserts supported)
    database_url: str = f"sqlite:///{_PROJECT_ROOT / 'state' / 'artistsync.db'}"

    # Sync behaviour
    sync_interval_seconds: int = 3600
    http_timeout_seconds: float = 15.0
    stat_platform: str = "spotify"
    payout_per_stream: Decimal = Decimal("0.0035")

    log_level: str = "INFO"

    # Paths
    project_root: pathlib.Path = _PROJECT_ROOT


def load_settings(*, require_secrets: bool = True) -> Settings:
    """
    Build a ``Settings`` instance from the environment.

    Parameters
    ----------
    require_secrets : bool
        If True (default), raise if the Chartmetric refresh token is missing.
        Set to False for store-only workflows (``report``, ``add-artist``).
    """
    refresh_token = os.getenv("CHARTMETRIC_REFRESH_TOKEN", "")

    if require_secrets and not refresh_token:
        raise EnvironmentError(
            "Missing CHARTMETRIC_REFRESH_TOKEN. "
            "Copy .env.example → .env and fill in your credentials."
        )

    defaults = Settings()
    return Settings(
        chartmetric_refresh_token=refresh_token,
        chartmetric_base_url=os.getenv(
            "CHARTMETRIC_BASE_URL", defaults.chartmetric_base_url,
        ).rstrip("/"),
        database_url=os.getenv("DATABASE_URL", defaults.database_url),
        sync_interval_seconds=int(
            os.getenv("SYNC_INTERVAL_SECONDS", defaults.sync_interval_seconds),
        ),
        http_timeout_seconds=float(
            os.getenv("HTTP_TIMEOUT_SECONDS", defaults.http_timeout_seconds),
        ),
        stat_platform=os.getenv("STAT_PLATFORM", defaults.stat_platform),
        payout_per_stream=Decimal(
            os.getenv("PAYOUT_PER_STREAM", str(defaults.payout_per_stream)),
        ),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )
