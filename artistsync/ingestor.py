"""
ingestor.py — Hourly Listener Snapshot for One Artist
=======================================================
Fetches the artist's platform listener series from Chartmetric, keeps the
**last** point (upstream emits ascending dates), and upserts it together
with its revenue estimate under the current UTC hour.

An empty series stores ``0`` — a freshly linked artist may have no
history yet.
"""

from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from artistsync.chartmetric_client import ChartmetricClient
from artistsync.errors import LinkageError
from artistsync.revenue import PAYOUT_PER_STREAM, estimate
from artistsync.store import ArtistStore
from artistsync.utils import get_logger, hour_bucket, utcnow

logger = get_logger("artistsync.ingestor")

# Keys that may hold the numeric value of one series point.
_VALUE_KEYS = ("value", "listeners")
_COUNTRY_KEYS = ("top_country_code", "country_code", "code2")


def _point_value(point: Any) -> float:
    if isinstance(point, (int, float)) and not isinstance(point, bool):
        return float(point)
    if isinstance(point, dict):
        for key in _VALUE_KEYS:
            value = point.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
    return 0.0


def _point_country(point: Any) -> Optional[str]:
    if not isinstance(point, dict):
        return None
    for key in _COUNTRY_KEYS:
        value = point.get(key)
        if isinstance(value, str) and value:
            return value.upper()
    return None


def reduce_series(series: List[Any]) -> tuple[int, Optional[str]]:
    """
    Current value of a listener series: its last element, or 0 when empty.

    Also returns the last point's country code when the provider sent one.
    """
    if not series:
        return 0, None
    last = series[-1]
    return int(_point_value(last)), _point_country(last)


class MetricsIngestor:
    """
    Parameters
    ----------
    client : ChartmetricClient
    store : ArtistStore
    platform : str
        Chartmetric stat source (``spotify`` by default).
    payout_per_stream : Decimal
        Passed through to ``revenue.estimate``.
    clock : callable
        Returns the current aware datetime; injectable for tests.
    """

    def __init__(
        self,
        client: ChartmetricClient,
        store: ArtistStore,
        platform: str = "spotify",
        payout_per_stream: Decimal = PAYOUT_PER_STREAM,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._client = client
        self._store = store
        self._platform = platform
        self._payout = payout_per_stream
        self._clock = clock

    def sync_artist(self, internal_id: int) -> Dict[str, Any]:
        """
        Fetch, reduce and upsert the current hour's snapshot.

        Raises ``NotFoundError`` for an unknown id, ``LinkageError`` when
        the artist has no Chartmetric id (no upstream call, no write), and
        lets ``UpstreamError`` / ``UpstreamTimeoutError`` propagate before
        anything is written.
        """
        artist = self._store.get_artist(internal_id)
        if not artist.upstream_id:
            raise LinkageError(
                f"Artist #{internal_id} is not linked to a Chartmetric id; "
                "resolve it first"
            )

        series = self._client.get_artist_stat(
            artist.upstream_id, self._platform, field="listeners",
        )
        listeners, country = reduce_series(series)
        usd = estimate(listeners, self._payout)
        bucket = hour_bucket(self._clock())

        self._store.upsert_hourly(
            artist_id=artist.id,
            hour_bucket=bucket,
            listeners_total=listeners,
            streams_total=listeners,
            top_country_code=country,
            estimated_usd=usd,
        )

        logger.info(
            "Artist #%d (CM#%s) @ %s — %s listeners → $%s",
            artist.id, artist.upstream_id, bucket.strftime("%Y-%m-%d %H:00"),
            f"{listeners:,}", usd,
        )
        return {
            "artist_id": artist.id,
            "hour_bucket": bucket,
            "listeners_total": listeners,
            "estimated_usd": usd,
        }
