"""
orchestrator.py — Fan-Out Sync and the Recurring Trigger
==========================================================
``SyncOrchestrator.sync_all`` runs ``MetricsIngestor.sync_artist`` for
every active artist, one after another.  A failing artist is recorded in
its own result entry and the batch carries on.

``SyncScheduler`` repeats ``sync_all`` on a fixed interval from a daemon
thread.  It owns a ``threading.Event`` so ``stop()`` wakes the thread
immediately instead of waiting out the sleep.  On-demand calls may run
while the scheduler is mid-batch; the per-(artist, hour) upsert keeps the
stored state consistent.
"""

from __future__ import annotations

import threading
import time
import traceback
from typing import Any, Dict, List

from artistsync.errors import SyncError
from artistsync.ingestor import MetricsIngestor
from artistsync.store import ArtistStore
from artistsync.utils import get_logger

logger = get_logger("artistsync.orchestrator")


class SyncOrchestrator:

    def __init__(self, ingestor: MetricsIngestor, store: ArtistStore) -> None:
        self._ingestor = ingestor
        self._store = store

    def sync_all(self) -> Dict[str, Any]:
        """
        Sync every active artist.

        Returns ``{"attempted", "succeeded", "failed", "results"}`` where each
        result is ``{"artist_id", "ok", "data" | "error"}``.  Only a failure
        to enumerate the artists themselves escapes (as ``StoreError``).
        """
        artists = self._store.list_active_artists()
        started = time.monotonic()

        logger.info("=" * 64)
        logger.info("SYNC ALL — %d active artists", len(artists))
        logger.info("=" * 64)

        results: List[Dict[str, Any]] = []
        for artist in artists:
            try:
                data = self._ingestor.sync_artist(artist.id)
                results.append({"artist_id": artist.id, "ok": True, "data": data})
            except SyncError as exc:
                logger.warning("  Artist #%d failed: %s — %s", artist.id, exc.code, exc)
                results.append(
                    {"artist_id": artist.id, "ok": False, "error": exc.to_dict()},
                )
            except Exception as exc:
                logger.error(
                    "  Artist #%d crashed:\n%s", artist.id, traceback.format_exc(),
                )
                results.append({
                    "artist_id": artist.id,
                    "ok": False,
                    "error": {"type": "InternalError", "message": str(exc)},
                })

        succeeded = sum(1 for r in results if r["ok"])
        logger.info(
            "Sync complete: %d/%d succeeded in %.1fs",
            succeeded, len(results), time.monotonic() - started,
        )
        return {
            "attempted": len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
            "results": results,
        }


class SyncScheduler:
    """
    Fire-and-forget recurring ``sync_all``.

    Parameters
    ----------
    orchestrator : SyncOrchestrator
    interval_seconds : float
        Delay between the end of one run and the start of the next.
    """

    def __init__(self, orchestrator: SyncOrchestrator, interval_seconds: float = 3600) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._orchestrator = orchestrator
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, run_immediately: bool = False) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop,
            args=(run_immediately,),
            name="artistsync-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Scheduler started — sync every %d seconds", int(self._interval),
        )

    def stop(self, timeout: float | None = None) -> None:
        """Signal the loop to exit and wait for the current run to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Scheduler stopped after %d runs", self.runs)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until ``stop()`` is called; True if it was."""
        return self._stop.wait(timeout)

    def run_once(self) -> None:
        """One scheduled run; any failure is logged and swallowed."""
        try:
            summary = self._orchestrator.sync_all()
            logger.info(
                "Scheduled sync finished — %d ok, %d failed",
                summary["succeeded"], summary["failed"],
            )
        except Exception:
            logger.error("Scheduled sync failed:\n%s", traceback.format_exc())
        finally:
            self.runs += 1

    def _loop(self, run_immediately: bool) -> None:
        if run_immediately:
            self.run_once()
        while not self._stop.wait(self._interval):
            self.run_once()
            logger.info("Next run in %d seconds...", int(self._interval))
