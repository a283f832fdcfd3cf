"""
test_chartmetric_client.py — Token Lifecycle and HTTP Error Mapping
====================================================================
Runs against a fake ``requests.Session``; no network access required.
"""

from __future__ import annotations

import unittest

import requests

from artistsync.chartmetric_client import ChartmetricClient, TokenManager
from artistsync.errors import AuthError, UpstreamError, UpstreamTimeoutError
from tests.helpers import FakeResponse, FakeSession, make_settings, search_payload, stat_payload


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestTokenManager(unittest.TestCase):
    """Token exchange should reject bad responses and cache good ones until near expiry."""

    def setUp(self) -> None:
        self.session = FakeSession()
        self.clock = FakeClock()
        self.tokens = TokenManager(make_settings(), session=self.session, clock=self.clock)

    def test_acquire_sends_refresh_token(self):
        self.session.add_token("access-1")
        cred = self.tokens.acquire_token()
        self.assertEqual(cred.token, "access-1")
        (call,) = self.session.calls_to("POST", "/api/token")
        self.assertEqual(call["json"], {"refreshtoken": "refresh-abc"})
        self.assertEqual(call["timeout"], 15.0)

    def test_non_success_status_raises_auth_error(self):
        self.session.add("POST", "/api/token", FakeResponse(403, {"error": "forbidden"}))
        with self.assertRaises(AuthError) as ctx:
            self.tokens.acquire_token()
        self.assertEqual(ctx.exception.status, 403)
        self.assertIn("forbidden", ctx.exception.body)

    def test_success_without_token_raises_auth_error(self):
        self.session.add("POST", "/api/token", FakeResponse(200, {"expires_in": 3600}))
        with self.assertRaises(AuthError) as ctx:
            self.tokens.acquire_token()
        self.assertEqual(ctx.exception.status, 200)

    def test_non_json_success_raises_auth_error(self):
        self.session.add("POST", "/api/token", FakeResponse(200, text="<html>ok</html>"))
        with self.assertRaises(AuthError):
            self.tokens.acquire_token()

    def test_timeout_is_distinct(self):
        self.session.add("POST", "/api/token", requests.exceptions.ReadTimeout("slow"))
        with self.assertRaises(UpstreamTimeoutError):
            self.tokens.acquire_token()

    def test_connection_failure_is_auth_error(self):
        self.session.add("POST", "/api/token", requests.exceptions.ConnectionError("refused"))
        with self.assertRaises(AuthError) as ctx:
            self.tokens.acquire_token()
        self.assertIsNone(ctx.exception.status)

    def test_token_is_cached_until_near_expiry(self):
        self.session.add(
            "POST", "/api/token",
            FakeResponse(200, {"token": "first", "expires_in": 3600}),
            FakeResponse(200, {"token": "second", "expires_in": 3600}),
        )
        self.assertEqual(self.tokens.acquire_token().token, "first")
        self.clock.now += 3000
        self.assertEqual(self.tokens.acquire_token().token, "first")
        self.clock.now += 560  # inside the 60s safety margin
        self.assertEqual(self.tokens.acquire_token().token, "second")
        self.assertEqual(len(self.session.calls_to("POST", "/api/token")), 2)

    def test_invalidate_forces_refresh(self):
        self.session.add(
            "POST", "/api/token",
            FakeResponse(200, {"token": "first"}),
            FakeResponse(200, {"token": "second"}),
        )
        self.tokens.acquire_token()
        self.tokens.invalidate()
        self.assertEqual(self.tokens.acquire_token().token, "second")

    def test_missing_refresh_token_rejected(self):
        with self.assertRaises(AuthError):
            TokenManager(make_settings(chartmetric_refresh_token=""), session=self.session)


class TestClientRequests(unittest.TestCase):
    """Authenticated calls should carry the bearer token and map failures to distinct errors."""

    def setUp(self) -> None:
        self.session = FakeSession().add_token()
        self.client = ChartmetricClient(make_settings(), session=self.session)

    def test_bearer_header_attached(self):
        self.session.add("GET", "/api/artist/123/stat/spotify", FakeResponse(200, stat_payload(1)))
        self.client.get_artist_stat("123")
        (call,) = self.session.calls_to("GET", "/api/artist/123/stat/spotify")
        self.assertEqual(call["headers"]["Authorization"], "Bearer access-1")
        self.assertEqual(call["params"], {"field": "listeners"})
        self.assertEqual(call["timeout"], 15.0)

    def test_401_refreshes_token_once(self):
        self.session.add(
            "POST", "/api/token", FakeResponse(200, {"token": "access-2"}),
        )
        self.session.add(
            "GET", "/api/artist/123/stat/spotify",
            FakeResponse(401, {"error": "expired"}),
            FakeResponse(200, stat_payload(5, 6)),
        )
        series = self.client.get_artist_stat("123")
        self.assertEqual([p["value"] for p in series], [5, 6])
        calls = self.session.calls_to("GET", "/api/artist/123/stat/spotify")
        self.assertEqual(calls[-1]["headers"]["Authorization"], "Bearer access-2")

    def test_repeated_401_is_upstream_error(self):
        self.session.add("GET", "/api/artist/123/stat/spotify", FakeResponse(401, {"error": "no"}))
        with self.assertRaises(UpstreamError) as ctx:
            self.client.get_artist_stat("123")
        self.assertEqual(ctx.exception.status, 401)
        self.assertEqual(len(self.session.calls_to("GET", "/api/artist/123/stat/spotify")), 2)

    def test_server_error_is_upstream_error(self):
        self.session.add("GET", "/api/artist/9/stat/spotify", FakeResponse(502, text="bad gateway"))
        with self.assertRaises(UpstreamError) as ctx:
            self.client.get_artist_stat("9")
        self.assertEqual(ctx.exception.status, 502)
        self.assertEqual(ctx.exception.body, "bad gateway")

    def test_timeout_is_not_upstream_error(self):
        self.session.add("GET", "/api/artist/9/stat/spotify", requests.exceptions.ConnectTimeout("slow"))
        with self.assertRaises(UpstreamTimeoutError) as ctx:
            self.client.get_artist_stat("9")
        self.assertNotIsInstance(ctx.exception, UpstreamError)
        self.assertIsInstance(ctx.exception, TimeoutError)

    def test_network_error_is_upstream_error(self):
        self.session.add("GET", "/api/artist/9/stat/spotify", requests.exceptions.ConnectionError("reset"))
        with self.assertRaises(UpstreamError) as ctx:
            self.client.get_artist_stat("9")
        self.assertIsNone(ctx.exception.status)

    def test_search_returns_candidates_in_upstream_order(self):
        self.session.add(
            "GET", "/api/search",
            FakeResponse(200, search_payload({"id": 1, "name": "A"}, {"id": 2, "name": "B"})),
        )
        artists = self.client.search_artists("drake")
        self.assertEqual([a["id"] for a in artists], [1, 2])
        (call,) = self.session.calls_to("GET", "/api/search")
        self.assertEqual(call["params"]["q"], "drake")
        self.assertEqual(call["params"]["type"], "artists")

    def test_search_with_no_artists(self):
        self.session.add("GET", "/api/search", FakeResponse(200, {"obj": {}}))
        self.assertEqual(self.client.search_artists("nobody"), [])

    def test_check_connection(self):
        self.assertTrue(self.client.check_connection())

    def test_check_connection_reports_failure(self):
        session = FakeSession().add("POST", "/api/token", FakeResponse(500, text="down"))
        client = ChartmetricClient(make_settings(), session=session)
        self.assertFalse(client.check_connection())


if __name__ == "__main__":
    unittest.main()
