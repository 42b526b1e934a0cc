"""Unit tests for the Voyager client (auth gating, HTTP errors, connection paging)."""
from __future__ import annotations

from typing import Any, Dict, List
from unittest.mock import Mock

import pytest
import requests

from harvester.config import VoyagerConfig
from harvester.voyager.client import CONNECTIONS_PAGE_SIZE, VoyagerClient
from tests.helpers.voyager_payloads import CONNECTION_TYPE, PROFILE_TYPE


def _response(payload: Any = None, status: int = 200) -> Mock:
    response = Mock()
    response.ok = 200 <= status < 400
    response.status_code = status
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def _connections_page(start: int, size: int, *, resolved: bool = True) -> Dict[str, Any]:
    included: List[Dict[str, Any]] = []
    for index in range(start, start + size):
        profile_urn = f"urn:li:fsd_profile:P{index}"
        included.append(
            {
                "$type": CONNECTION_TYPE,
                "entityUrn": f"urn:li:fsd_connection:C{index}",
                "*connectedMemberResolutionResult": profile_urn,
            }
        )
        if resolved:
            included.append(
                {
                    "$type": PROFILE_TYPE,
                    "entityUrn": profile_urn,
                    "firstName": f"First{index}",
                    "lastName": "Last",
                    "publicIdentifier": f"user-{index}",
                }
            )
    return {"data": {"paging": {"start": start, "count": CONNECTIONS_PAGE_SIZE}}, "included": included}


@pytest.fixture
def session() -> requests.Session:
    session = requests.Session()
    session.get = Mock()
    return session


@pytest.fixture
def config() -> VoyagerConfig:
    return VoyagerConfig(li_at="token", jsessionid='"ajax:123"', page_delay_ms=300)


@pytest.mark.unit
class TestAuthAndTransport:
    def test_unauthenticated_client_never_calls_network(self, session):
        client = VoyagerClient(VoyagerConfig(li_at=None, jsessionid=None), session=session)

        assert client.check_auth() == {"success": True, "isAuthenticated": False}
        assert client.fetch_api("/voyager/api/me") == {"success": False, "error": "Not authenticated"}
        session.get.assert_not_called()

    def test_cookies_and_csrf_header(self, session, config):
        session.get.return_value = _response({"ok": True})
        client = VoyagerClient(config, session=session)

        assert client.fetch_api("/voyager/api/me") == {"success": True, "data": {"ok": True}}
        assert session.cookies.get("li_at") == "token"
        url = session.get.call_args.args[0]
        headers = session.get.call_args.kwargs["headers"]
        assert url == "https://www.linkedin.com/voyager/api/me"
        assert headers["csrf-token"] == "ajax:123"
        assert session.headers["x-restli-protocol-version"] == "2.0.0"

    def test_http_error_status(self, session, config):
        session.get.return_value = _response(status=401)
        result = VoyagerClient(config, session=session).fetch_api("/voyager/api/me")
        assert result == {"success": False, "error": "HTTP 401"}

    def test_invalid_json_body(self, session, config):
        session.get.return_value = _response(ValueError("bad json"))
        result = VoyagerClient(config, session=session).fetch_api("/voyager/api/me")
        assert result == {"success": False, "error": "Invalid JSON response"}

    def test_transport_error(self, session, config):
        session.get.side_effect = requests.ConnectionError("boom")
        result = VoyagerClient(config, session=session).fetch_api("/voyager/api/me")
        assert result == {"success": False, "error": "boom"}


@pytest.mark.unit
class TestConnections:
    def test_fetch_connections_joins_profiles_and_drops_unresolved(self, session, config):
        page = _connections_page(0, 2)
        page["included"].append(
            {"$type": CONNECTION_TYPE, "entityUrn": "urn:li:fsd_connection:X", "*connectedMemberResolutionResult": "gone"}
        )
        session.get.return_value = _response(page)

        result = VoyagerClient(config, session=session).fetch_connections(0, 40)

        assert result["connectionsCount"] == 2
        assert result["rawConnectionCount"] == 3
        first = result["data"]["connections"][0]
        assert first["fullName"] == "First0 Last"
        assert first["profileUrl"] == "https://www.linkedin.com/in/user-0"
        assert "start=0" in session.get.call_args.args[0]

    def test_fetch_all_connections_pages_until_short_page(self, session, config):
        session.get.side_effect = [
            _response(_connections_page(0, 40)),
            _response(_connections_page(40, 40)),
            _response(_connections_page(80, 5)),
        ]
        sleep = Mock()

        result = VoyagerClient(config, session=session, sleep=sleep).fetch_all_connections(500)

        assert result["fetchedConnections"] == 85
        assert result["data"]["totalConnections"] == 85
        assert session.get.call_count == 3
        assert sleep.call_count == 2
        sleep.assert_called_with(0.3)

    def test_fetch_all_connections_respects_max(self, session, config):
        session.get.side_effect = [_response(_connections_page(0, 40)), _response(_connections_page(40, 40))]

        result = VoyagerClient(config, session=session, sleep=Mock()).fetch_all_connections(40)

        assert result["fetchedConnections"] == 40
        assert session.get.call_count == 1

    def test_fetch_all_connections_stops_on_error(self, session, config):
        session.get.side_effect = [_response(_connections_page(0, 40)), _response(status=500)]

        result = VoyagerClient(config, session=session, sleep=Mock()).fetch_all_connections(500)

        assert result["success"] is True
        assert result["fetchedConnections"] == 40


@pytest.mark.unit
def test_fetch_profile_combines_me_and_summary(session, config):
    me = {
        "miniProfile": {
            "firstName": "Ada",
            "lastName": "Lovelace",
            "occupation": "Analyst",
            "publicIdentifier": "ada",
            "entityUrn": "urn:li:fs_miniProfile:ada",
        },
        "premiumSubscriber": True,
    }
    summary = {"data": {"numConnections": 321, "entityUrn": "urn:li:summary"}}
    session.get.side_effect = [_response(me), _response(me), _response(summary)]

    result = VoyagerClient(config, session=session).fetch_profile()

    profile = result["data"]
    assert profile["firstName"] == "Ada"
    assert profile["headline"] == "Analyst"
    assert profile["isPremium"] is True
    assert profile["memberUrn"] == "urn:li:fs_miniProfile:ada"
    assert profile["connectionsCount"] == 321
    assert profile["rawData"] == me


@pytest.mark.unit
def test_feed_and_own_posts_are_passive(session, config):
    client = VoyagerClient(config, session=session)
    assert client.fetch_feed_posts()["data"]["posts"] == []
    assert client.fetch_my_posts()["data"]["posts"] == []
    session.get.assert_not_called()
