"""
utils.py — Shared helpers for the Artist Sync Engine
=====================================================
"""

from __future__ import annotations

import datetime
import logging
import sys


# ── structured logger ───────────────────────────────────────────────────────

def get_logger(name: str = "artistsync", level: int | str | None = None) -> logging.Logger:
    """
    Return a consistently-formatted logger.

    Format: ``[2026-02-10 08:15:23 UTC] [INFO] module — message``

    Child loggers (``artistsync.client`` …) get their own stdout handler
    and do not propagate, so each line is printed exactly once.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            fmt="[%(asctime)s UTC] [%(levelname)s] %(name)s — %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        formatter.converter = lambda *_: datetime.datetime.now(
            datetime.timezone.utc,
        ).timetuple()
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False

    if level is not None:
        logger.setLevel(level)
    elif logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    return logger


def set_log_level(level: int | str) -> None:
    """Apply ``level`` to every ``artistsync.*`` logger created so far."""
    for name in list(logging.root.manager.loggerDict):
        if name == "artistsync" or name.startswith("artistsync."):
            logging.getLogger(name).setLevel(level)


# ── time helpers ────────────────────────────────────────────────────────────

def utcnow() -> datetime.datetime:
    """Timezone-aware current UTC time."""
    return datetime.datetime.now(datetime.timezone.utc)


def hour_bucket(moment: datetime.datetime) -> datetime.datetime:
    """
    Truncate ``moment`` to the start of its UTC hour.

    Naive datetimes are assumed to already be UTC.  The result is naive
    UTC so it compares equal regardless of how the database driver
    round-trips timezone info.
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return moment.replace(minute=0, second=0, microsecond=0)


def truncate(text: str | None, limit: int = 500) -> str:
    """Clip response bodies before they go into logs or error payloads."""
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "…"
