#!/usr/bin/env python3
"""
main.py — Artist Sync Engine: Entry Point
===========================================
Pulls hourly Spotify listener counts for every active artist from the
Chartmetric API, stores one snapshot per artist per hour, and derives a
revenue estimate from it.

Modes
-----
    python main.py check                         # Verify the refresh token
    python main.py add-artist "Bad Bunny"        # Register an internal artist
    python main.py resolve 1 "Bad Bunny"         # Link artist #1 to Chartmetric
    python main.py resolve 1 4q3ewBCX7sLwd24euuV69X   # …by Spotify artist id
    python main.py sync 1                        # Snapshot one artist now
    python main.py sync-all                      # Snapshot every active artist
    python main.py report                        # Latest snapshot per artist
    python main.py serve --interval 3600 --run-now   # Hourly loop (Ctrl+C to stop)

Every operation prints a JSON outcome ``{"ok": ..., "data"|"error": ...}``.
"""

from __future__ import annotations

import argparse
import json
import sys
import traceback
from typing import Any, Dict

import pandas as pd

from artistsync.config import Settings, load_settings
from artistsync.errors import SyncError
from artistsync.service import SyncService, to_jsonable
from artistsync.store import ArtistStore
from artistsync.utils import get_logger, set_log_level

logger = get_logger("artistsync.main")


def _print_outcome(outcome: Dict[str, Any]) -> int:
    print(json.dumps(outcome, indent=2, default=str))
    return 0 if outcome.get("ok") else 1


def _store_only(settings: Settings) -> ArtistStore:
    return ArtistStore.from_url(settings.database_url)


# ═════════════════════════════════════════════════════════════════════════════
#  COMMANDS
# ═════════════════════════════════════════════════════════════════════════════

def cmd_check(args: argparse.Namespace, settings: Settings) -> int:
    service = SyncService.from_settings(settings)
    ok = service.client.check_connection()
    return _print_outcome({"ok": ok, "data": {"connected": ok}})


def cmd_add_artist(args: argparse.Namespace, settings: Settings) -> int:
    artist = _store_only(settings).add_artist(
        args.name, upstream_id=args.upstream_id, is_active=not args.inactive,
    )
    return _print_outcome({
        "ok": True,
        "data": {
            "artist_id": artist.id,
            "name": artist.name,
            "upstream_id": artist.upstream_id,
            "is_active": artist.is_active,
        },
    })


def cmd_set_active(args: argparse.Namespace, settings: Settings) -> int:
    active = args.command == "activate"
    try:
        _store_only(settings).set_active(args.artist_id, active)
    except SyncError as exc:
        return _print_outcome({"ok": False, "error": exc.to_dict()})
    return _print_outcome(
        {"ok": True, "data": {"artist_id": args.artist_id, "is_active": active}},
    )


def cmd_resolve(args: argparse.Namespace, settings: Settings) -> int:
    service = SyncService.from_settings(settings)
    return _print_outcome(service.resolve_artist(args.artist_id, args.query))


def cmd_sync(args: argparse.Namespace, settings: Settings) -> int:
    service = SyncService.from_settings(settings)
    return _print_outcome(service.sync_artist(args.artist_id))


def cmd_sync_all(args: argparse.Namespace, settings: Settings) -> int:
    service = SyncService.from_settings(settings)
    return _print_outcome(service.sync_all())


def cmd_report(args: argparse.Namespace, settings: Settings) -> int:
    store = _store_only(settings)
    summary = store.latest_summary()

    print()
    print("  LATEST HOURLY SNAPSHOTS")
    print("  " + "-" * 62)
    if summary.empty:
        print("  (no artists registered)")
    else:
        with pd.option_context("display.width", 120, "display.max_columns", 20):
            print(summary.to_string(index=False))
    print("  " + "-" * 62)
    print("  Revenue is an approximation: listeners × flat payout per stream.")
    print(json.dumps(to_jsonable(store.describe()), indent=2))
    return 0


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    service = SyncService.from_settings(settings)
    scheduler = service.scheduler(args.interval or settings.sync_interval_seconds)

    logger.info("LOOP MODE — Ctrl+C to stop")
    scheduler.start(run_immediately=args.run_now)
    try:
        scheduler.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted — shutting down scheduler")
    finally:
        scheduler.stop(timeout=30)
    return 0


# ═════════════════════════════════════════════════════════════════════════════
#  CLI
# ═════════════════════════════════════════════════════════════════════════════

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Artist Sync Engine — hourly Chartmetric listener snapshots",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Override LOG_LEVEL from .env (DEBUG, INFO, WARNING, ...).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("check", help="Verify the Chartmetric refresh token.")

    p = sub.add_parser("add-artist", help="Register an internal artist.")
    p.add_argument("name", type=str)
    p.add_argument(
        "--upstream-id",
        type=str,
        default=None,
        help="Chartmetric numeric artist ID, if already known.",
    )
    p.add_argument(
        "--inactive",
        action="store_true",
        default=False,
        help="Register without including the artist in sync-all.",
    )

    for name, text in (("activate", "Include"), ("deactivate", "Exclude")):
        p = sub.add_parser(name, help=f"{text} an artist in sync-all.")
        p.add_argument("artist_id", type=int)

    p = sub.add_parser("resolve", help="Link an internal artist to Chartmetric.")
    p.add_argument("artist_id", type=int)
    p.add_argument(
        "query",
        type=str,
        help="Artist name, or a Spotify artist ID for an exact-ID match.",
    )

    p = sub.add_parser("sync", help="Snapshot one artist for the current hour.")
    p.add_argument("artist_id", type=int)

    sub.add_parser("sync-all", help="Snapshot every active artist.")
    sub.add_parser("report", help="Print the latest snapshot per artist.")

    p = sub.add_parser("serve", help="Run sync-all on a fixed interval.")
    p.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between runs (default: SYNC_INTERVAL_SECONDS, 3600).",
    )
    p.add_argument(
        "--run-now",
        action="store_true",
        default=False,
        help="Run one sync immediately instead of waiting a full interval.",
    )

    return parser.parse_args(argv)


_COMMANDS = {
    "check": cmd_check,
    "add-artist": cmd_add_artist,
    "activate": cmd_set_active,
    "deactivate": cmd_set_active,
    "resolve": cmd_resolve,
    "sync": cmd_sync,
    "sync-all": cmd_sync_all,
    "report": cmd_report,
    "serve": cmd_serve,
}

# Commands that only touch the database and never call Chartmetric.
_STORE_ONLY = {"add-artist", "activate", "deactivate", "report"}


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    try:
        settings = load_settings(require_secrets=args.command not in _STORE_ONLY)
        set_log_level(args.log_level or settings.log_level)
        code = _COMMANDS[args.command](args, settings)
    except KeyboardInterrupt:
        raise
    except Exception as exc:
        logger.error("Command '%s' failed:\n%s", args.command, traceback.format_exc())
        code = _print_outcome({
            "ok": False,
            "error": {"type": type(exc).__name__, "message": str(exc)},
        })
    sys.exit(code)


if __name__ == "__main__":
    main()
