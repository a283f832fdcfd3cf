"""
chartmetric_client.py — Chartmetric REST API Client
=====================================================
Thin ``requests``-based access to the three Chartmetric endpoints the sync
pipeline needs: token exchange, artist search, and per-platform stats.

Authentication
--------------
Chartmetric uses a **refresh-token → access-token** flow:

1.  POST ``/api/token`` with ``{"refreshtoken": "<token>"}``
2.  Response: ``{"token": "<short-lived access token>", "expires_in": ...}``
3.  Subsequent requests use ``Authorization: Bearer <token>``
4.  Access tokens expire (~1 hour).  ``TokenManager`` caches the token
    until shortly before expiry and drops it on a 401.

Endpoints Used
--------------
- ``POST /api/token``                       — access token
- ``GET /api/search?q=...&type=artists``    — artist directory search
- ``GET /api/artist/{id}/stat/{platform}``  — fan-metric time-series

Timeouts
--------
Every call passes ``timeout=`` (15 s by default) to ``requests``.  That
bounds the connect and each socket read, not the whole call: a server
that keeps trickling bytes can hold a request past 15 s.  Expiry is
raised as ``UpstreamTimeoutError`` so callers can tell it apart from an
``UpstreamError`` returned by the API.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

import requests

from artistsync.config import Settings, load_settings
from artistsync.errors import AuthError, UpstreamError, UpstreamTimeoutError
from artistsync.utils import get_logger, truncate

logger = get_logger("artistsync.client")

# Refresh this many seconds before the provider says the token expires.
_EXPIRY_MARGIN_SECONDS = 60
_DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class Credential:
    """A short-lived bearer token."""

    token: str
    expires_at: float  # epoch seconds

    def is_fresh(self, now: float) -> bool:
        return bool(self.token) and now < self.expires_at - _EXPIRY_MARGIN_SECONDS


class TokenManager:
    """
    Exchanges the long-lived refresh token for short-lived access tokens.

    No retries happen here; a failed exchange raises straight to the caller.

    Parameters
    ----------
    settings : Settings
        Supplies the refresh token, base URL and timeout.
    session : requests.Session, optional
        Shared HTTP session (injected so tests can fake the transport).
    clock : callable, optional
        Returns epoch seconds; defaults to ``time.time``.
    """

    _TOKEN_URL = "/api/token"

    def __init__(
        self,
        settings: Settings,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._base_url = settings.chartmetric_base_url
        self._refresh_token = settings.chartmetric_refresh_token
        self._timeout = settings.http_timeout_seconds
        self._session = session or requests.Session()
        self._clock = clock
        self._lock = threading.Lock()
        self._credential: Credential | None = None

        if not self._refresh_token:
            raise AuthError(
                "Missing CHARTMETRIC_REFRESH_TOKEN in .env. "
                "Request API access at https://app.chartmetric.com."
            )

    def acquire_token(self) -> Credential:
        """Return a valid credential, exchanging the refresh token if needed."""
        with self._lock:
            if self._credential and self._credential.is_fresh(self._clock()):
                return self._credential
            self._credential = self._exchange()
            return self._credential

    def invalidate(self) -> None:
        """Forget the cached credential (e.g. after a 401)."""
        with self._lock:
            self._credential = None

    def _exchange(self) -> Credential:
        url = f"{self._base_url}{self._TOKEN_URL}"
        payload = {"refreshtoken": self._refresh_token}

        logger.info("Refreshing Chartmetric access token...")

        try:
            resp = self._session.post(url, json=payload, timeout=self._timeout)
        except requests.Timeout as exc:
            raise UpstreamTimeoutError(
                f"Token exchange timed out after {self._timeout}s: {exc}"
            ) from exc
        except requests.RequestException as exc:
            raise AuthError(f"Cannot reach Chartmetric API: {exc}") from exc

        body = truncate(resp.text)
        if not resp.ok:
            logger.error(
                "[API ERROR] Token exchange failed (%d): %s",
                resp.status_code, body,
            )
            raise AuthError(
                f"Token exchange failed ({resp.status_code})",
                status=resp.status_code,
                body=body,
            )

        try:
            data = resp.json()
        except ValueError:
            data = None

        token = data.get("token", "") if isinstance(data, dict) else ""
        if not token:
            raise AuthError(
                "Token exchange returned no token. "
                "Verify your CHARTMETRIC_REFRESH_TOKEN.",
                status=resp.status_code,
                body=body,
            )

        try:
            expires_in = int(data.get("expires_in", _DEFAULT_EXPIRES_IN))
        except (TypeError, ValueError):
            expires_in = _DEFAULT_EXPIRES_IN

        logger.info("Chartmetric token acquired (expires in %ds)", expires_in)
        return Credential(token=token, expires_at=self._clock() + expires_in)


class ChartmetricClient:
    """
    Authenticated Chartmetric calls used by the resolver and the ingestor.

    Parameters
    ----------
    settings : Settings, optional
        If not supplied, loaded from ``.env`` automatically.
    session : requests.Session, optional
        HTTP session shared with the ``TokenManager``.
    tokens : TokenManager, optional
        Built from ``settings`` and ``session`` when omitted.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        session: requests.Session | None = None,
        tokens: TokenManager | None = None,
    ) -> None:
        self._settings = settings or load_settings()
        self._base_url = self._settings.chartmetric_base_url
        self._timeout = self._settings.http_timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": "ArtistSyncEngine/1.0"})
        self.tokens = tokens or TokenManager(self._settings, session=self._session)

    # ═════════════════════════════════════════════════════════════════════
    #  HTTP
    # ═════════════════════════════════════════════════════════════════════

    def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """
        Execute an authenticated request.

        A 401 drops the cached token and the call is repeated exactly once
        with a fresh one; everything else non-2xx is an ``UpstreamError``.
        """
        url = f"{self._base_url}{path}"

        for attempt in (1, 2):
            credential = self.tokens.acquire_token()
            headers = {
                "Authorization": f"Bearer {credential.token}",
                "Accept": "application/json",
            }
            try:
                resp = self._session.request(
                    method=method,
                    url=url,
                    headers=headers,
                    params=params,
                    timeout=self._timeout,
                )
            except requests.Timeout as exc:
                logger.error(
                    "[API ERROR] Timeout after %ss on %s %s",
                    self._timeout, method, path,
                )
                raise UpstreamTimeoutError(
                    f"{method} {path} timed out after {self._timeout}s"
                ) from exc
            except requests.RequestException as exc:
                logger.error(
                    "[API ERROR] Network failure on %s %s: %s",
                    method, path, truncate(str(exc)),
                )
                raise UpstreamError(
                    f"Network failure on {method} {path}: {truncate(str(exc))}"
                ) from exc

            if resp.status_code == 401 and attempt == 1:
                logger.warning(
                    "[API ERROR] 401 Unauthorized on %s %s — "
                    "refreshing token and retrying",
                    method, path,
                )
                self.tokens.invalidate()
                continue

            body = truncate(resp.text)
            if not resp.ok:
                logger.error(
                    "[API ERROR] %d on %s %s\n  Body: %s\n  Params: %s",
                    resp.status_code, method, path, body, params,
                )
                if resp.status_code == 401:
                    self.tokens.invalidate()
                raise UpstreamError(
                    f"Chartmetric API error {resp.status_code} for {method} {path}",
                    status=resp.status_code,
                    body=body,
                )

            try:
                data = resp.json()
            except ValueError as exc:
                raise UpstreamError(
                    f"Non-JSON response for {method} {path}",
                    status=resp.status_code,
                    body=body,
                ) from exc
            if not isinstance(data, dict):
                raise UpstreamError(
                    f"Unexpected response shape for {method} {path}",
                    status=resp.status_code,
                    body=body,
                )
            return data

        # Unreachable: the second attempt either returns or raises.
        raise UpstreamError(f"Retry exhausted for {method} {path}")

    # ═════════════════════════════════════════════════════════════════════
    #  Connection Check
    # ═════════════════════════════════════════════════════════════════════

    def check_connection(self) -> bool:
        """Force a token exchange; True when the refresh token is accepted."""
        self.tokens.invalidate()
        try:
            self.tokens.acquire_token()
        except (AuthError, UpstreamTimeoutError) as exc:
            logger.warning("Chartmetric connection check failed: %s", exc)
            return False
        logger.info("Chartmetric connection verified")
        return True

    # ═════════════════════════════════════════════════════════════════════
    #  Artist Search
    # ═════════════════════════════════════════════════════════════════════

    def search_artists(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """
        ``GET /api/search`` restricted to artists.

        Returns the raw candidate dicts in upstream order (possibly empty).
        """
        data = self._request(
            "GET", "/api/search",
            params={"q": query, "type": "artists", "limit": limit},
        )
        obj = data.get("obj", data)
        if isinstance(obj, dict):
            artists = obj.get("artists", [])
        elif isinstance(obj, list):
            artists = obj
        else:
            artists = []
        return [a for a in artists if isinstance(a, dict)]

    # ═════════════════════════════════════════════════════════════════════
    #  Platform Stats
    # ═════════════════════════════════════════════════════════════════════

    def get_artist_stat(
        self,
        upstream_id: str,
        platform: str = "spotify",
        field: str = "listeners",
    ) -> List[Dict[str, Any]]:
        """
        Fetch one fan-metric time-series for an artist.

        Chartmetric wraps the payload as ``{"obj": {"listeners": [...], ...}}``;
        the list for ``field`` is returned in upstream order, or ``[]`` when
        the artist has no history yet.
        """
        path = f"/api/artist/{upstream_id}/stat/{platform}"
        data = self._request("GET", path, params={"field": field})

        obj = data.get("obj", data)
        if isinstance(obj, dict):
            series = obj.get(field, [])
        elif isinstance(obj, list):
            series = obj
        else:
            logger.warning(
                "Unexpected response format for %s/%s: %s",
                platform, field, type(obj),
            )
            series = []

        if not isinstance(series, list):
            return []
        return series
