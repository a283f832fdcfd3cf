"""
service.py — Result-Wrapping Boundary
=======================================
The only surface callers (CLI, scheduler, an HTTP layer) should use.
Every operation returns ``{"ok": True, "data": ...}`` or
``{"ok": False, "error": {"type", "message", ...}}``; nothing raises.
"""

from __future__ import annotations

import datetime
import functools
import traceback
from decimal import Decimal
from typing import Any, Callable, Dict

import requests

from artistsync.chartmetric_client import ChartmetricClient, TokenManager
from artistsync.config import Settings
from artistsync.errors import SyncError
from artistsync.ingestor import MetricsIngestor
from artistsync.orchestrator import SyncOrchestrator, SyncScheduler
from artistsync.resolver import ArtistResolver, split_query
from artistsync.store import ArtistStore
from artistsync.utils import get_logger, utcnow

logger = get_logger("artistsync.service")

Outcome = Dict[str, Any]


def to_jsonable(value: Any) -> Any:
    """Recursively convert Decimals and datetimes for ``json.dumps``."""
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def _boundary(operation: str) -> Callable[[Callable[..., Any]], Callable[..., Outcome]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Outcome]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Outcome:
            try:
                return {"ok": True, "data": to_jsonable(func(*args, **kwargs))}
            except SyncError as exc:
                logger.warning("%s failed: %s — %s", operation, exc.code, exc)
                return {"ok": False, "error": to_jsonable(exc.to_dict())}
            except ValueError as exc:
                return {"ok": False, "error": {"type": "ValueError", "message": str(exc)}}
            except Exception as exc:
                logger.error("%s crashed:\n%s", operation, traceback.format_exc())
                return {
                    "ok": False,
                    "error": {"type": "InternalError", "message": str(exc)},
                }
        return wrapper
    return decorator


class SyncService:
    """Wires the components together and wraps every operation."""

    def __init__(
        self,
        store: ArtistStore,
        resolver: ArtistResolver,
        ingestor: MetricsIngestor,
        orchestrator: SyncOrchestrator,
        client: ChartmetricClient | None = None,
        platform: str = "spotify",
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.ingestor = ingestor
        self.orchestrator = orchestrator
        self.client = client
        self._platform = platform

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session: requests.Session | None = None,
        store: ArtistStore | None = None,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> "SyncService":
        store = store or ArtistStore.from_url(settings.database_url)
        session = session or requests.Session()
        client = ChartmetricClient(
            settings,
            session=session,
            tokens=TokenManager(settings, session=session),
        )
        ingestor = MetricsIngestor(
            client,
            store,
            platform=settings.stat_platform,
            payout_per_stream=settings.payout_per_stream,
            clock=clock,
        )
        return cls(
            store=store,
            resolver=ArtistResolver(client, store),
            ingestor=ingestor,
            orchestrator=SyncOrchestrator(ingestor, store),
            client=client,
            platform=settings.stat_platform,
        )

    def scheduler(self, interval_seconds: float) -> SyncScheduler:
        return SyncScheduler(self.orchestrator, interval_seconds)

    # ── operations ────────────────────────────────────────────────────

    @_boundary("resolve_artist")
    def resolve_artist(self, internal_id: int, query_or_external_id: str) -> Dict[str, str]:
        query, external_id = split_query(query_or_external_id)
        return self.resolver.resolve(
            internal_id, query=query, external_id=external_id, platform=self._platform,
        )

    @_boundary("sync_artist")
    def sync_artist(self, internal_id: int) -> Dict[str, Any]:
        return self.ingestor.sync_artist(internal_id)

    @_boundary("sync_all")
    def sync_all(self) -> Dict[str, Any]:
        return self.orchestrator.sync_all()
