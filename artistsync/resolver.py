"""
resolver.py — Link Internal Artists to Chartmetric IDs
========================================================
Searches the Chartmetric artist directory and picks one candidate.

Selection
---------
1.  If an external-platform id (e.g. a Spotify artist id) was supplied and
    a candidate reports exactly that id for the platform, it wins outright.
2.  Otherwise rank by ``verified`` (True first), then ``follower_count``
    (highest first); ties keep upstream order, so the first element wins.

The winning ``upstream_id`` is written onto the internal artist row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from artistsync.chartmetric_client import ChartmetricClient
from artistsync.errors import NotFoundError
from artistsync.store import ArtistStore
from artistsync.utils import get_logger

logger = get_logger("artistsync.resolver")

# Follower-count keys seen across Chartmetric search payloads, most specific first.
_FOLLOWER_KEYS = ("sp_followers", "follower_count", "followers")


@dataclass(frozen=True)
class ArtistCandidate:
    """One search hit, normalised from the raw Chartmetric dict."""

    upstream_id: str
    display_name: str
    verified: bool = False
    follower_count: int = 0
    external_ids: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "ArtistCandidate":
        followers = 0
        for key in _FOLLOWER_KEYS:
            value = raw.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                followers = int(value)
                break

        # Platform aliases arrive as ``spotify_artist_ids: [...]`` or
        # ``spotify_artist_id: "..."``; keep both shapes as lists keyed by platform.
        external_ids: Dict[str, List[str]] = {}
        for key, value in raw.items():
            for suffix in ("_artist_ids", "_artist_id", "_ids"):
                if key.endswith(suffix) and key != "cm_artist_id":
                    platform = key[: -len(suffix)]
                    values = value if isinstance(value, list) else [value]
                    external_ids.setdefault(platform, []).extend(
                        str(v) for v in values if v not in (None, "")
                    )
                    break

        return cls(
            upstream_id=str(raw.get("id", "")),
            display_name=str(raw.get("name", "")),
            verified=bool(raw.get("verified", False)),
            follower_count=followers,
            external_ids=external_ids,
        )

    def matches_external_id(self, platform: str, external_id: str) -> bool:
        return external_id in self.external_ids.get(platform, [])


def select_candidate(
    candidates: List[ArtistCandidate],
    external_id: str | None = None,
    platform: str = "spotify",
) -> ArtistCandidate:
    """
    Pick the winning candidate.

    Raises ``NotFoundError`` for an empty list.  ``sorted`` is stable, so
    candidates equal on (verified, followers) keep upstream order.
    """
    if not candidates:
        raise NotFoundError("No matching Chartmetric artist")

    if external_id:
        for candidate in candidates:
            if candidate.matches_external_id(platform, external_id):
                return candidate

    ranked = sorted(
        candidates,
        key=lambda c: (not c.verified, -c.follower_count),
    )
    return ranked[0]


class ArtistResolver:
    """Search → select → persist the link for one internal artist."""

    def __init__(self, client: ChartmetricClient, store: ArtistStore) -> None:
        self._client = client
        self._store = store

    def resolve(
        self,
        internal_id: int,
        query: str | None = None,
        external_id: str | None = None,
        platform: str = "spotify",
    ) -> Dict[str, str]:
        """
        Resolve ``internal_id`` and store its Chartmetric id.

        Returns ``{"upstream_id", "display_name"}``.  Either ``query`` or
        ``external_id`` must be given; with only an external id, it is also
        used as the search text.
        """
        search_text = (query or external_id or "").strip()
        if not search_text:
            raise ValueError("resolve() needs a query or an external id")

        # Unknown internal ids fail before any upstream traffic.
        artist = self._store.get_artist(internal_id)

        raw = self._client.search_artists(search_text)
        candidates = [ArtistCandidate.from_api(r) for r in raw if r.get("id") is not None]
        logger.info(
            "Search '%s' for artist #%d → %d candidates",
            search_text, internal_id, len(candidates),
        )

        winner = select_candidate(candidates, external_id=external_id, platform=platform)

        self._store.set_upstream_id(artist.id, winner.upstream_id)
        logger.info(
            "Linked artist #%d → CM#%s ('%s', verified=%s, followers=%d)",
            artist.id, winner.upstream_id, winner.display_name,
            winner.verified, winner.follower_count,
        )
        return {"upstream_id": winner.upstream_id, "display_name": winner.display_name}


def looks_like_external_id(value: str) -> bool:
    """
    Heuristic for the CLI/service: Spotify artist ids are 22-char base62
    strings with no spaces.
    """
    value = value.strip()
    return len(value) == 22 and value.isalnum()


def split_query(value: str) -> tuple[Optional[str], Optional[str]]:
    """Return ``(query, external_id)`` for a free-form resolve argument."""
    if looks_like_external_id(value):
        return None, value.strip()
    return value.strip(), None
