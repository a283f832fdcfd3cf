"""
helpers.py — Fake Chartmetric transport and fixtures shared by the tests
=========================================================================
"""

from __future__ import annotations

import datetime
import json
from typing import Any, Dict, List, Tuple

from artistsync.config import Settings

BASE_URL = "https://cm.test"
FIXED_NOW = datetime.datetime(2026, 3, 14, 15, 42, 7, 123456, tzinfo=datetime.timezone.utc)
FIXED_BUCKET = datetime.datetime(2026, 3, 14, 15, 0, 0)


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "chartmetric_refresh_token": "refresh-abc",
        "chartmetric_base_url": BASE_URL,
        "database_url": "sqlite://",
    }
    values.update(overrides)
    return Settings(**values)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        if text is not None:
            self.text = text
        elif payload is not None:
            self.text = json.dumps(payload)
        else:
            self.text = ""
        self.headers: Dict[str, str] = {}

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """
    Stand-in for ``requests.Session``.

    Responses are queued per ``(METHOD, path)``; the last queued item is
    repeated once the queue is down to one.  Exceptions in the queue are
    raised instead of returned.
    """

    def __init__(self) -> None:
        self.headers: Dict[str, str] = {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self._routes: Dict[Tuple[str, str], List[Any]] = {}

    def add(self, method: str, path: str, *responses: Any) -> "FakeSession":
        self._routes.setdefault((method.upper(), path), []).extend(responses)
        return self

    def add_token(self, token: str = "access-1", expires_in: int = 3600) -> "FakeSession":
        return self.add(
            "POST", "/api/token",
            FakeResponse(200, {"token": token, "expires_in": expires_in}),
        )

    def calls_to(self, method: str, path: str) -> List[Dict[str, Any]]:
        return [kw for m, p, kw in self.calls if m == method and p == path]

    def _dispatch(self, method: str, url: str, **kwargs: Any) -> Any:
        path = url[len(BASE_URL):] if url.startswith(BASE_URL) else url
        self.calls.append((method, path, kwargs))
        queue = self._routes.get((method, path))
        if not queue:
            raise AssertionError(f"Unexpected request {method} {path}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item

    def post(self, url: str, json: Any = None, timeout: Any = None, **kwargs: Any) -> Any:
        return self._dispatch("POST", url, json=json, timeout=timeout)

    def request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str] | None = None,
        params: Dict[str, Any] | None = None,
        timeout: Any = None,
        **kwargs: Any,
    ) -> Any:
        return self._dispatch(
            method.upper(), url, headers=headers, params=params, timeout=timeout,
        )


def stat_payload(*values: Any) -> Dict[str, Any]:
    """``/stat/spotify`` body with one listener point per value, oldest first."""
    points = [
        {"value": v, "timestp": f"2026-03-{i + 1:02d}T00:00:00.000Z"}
        for i, v in enumerate(values)
    ]
    return {"obj": {"listeners": points, "followers": []}}


def search_payload(*artists: Dict[str, Any]) -> Dict[str, Any]:
    return {"obj": {"artists": list(artists)}}
