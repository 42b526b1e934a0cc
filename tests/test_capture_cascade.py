"""Tests for the interception cascade, its tiers, and the shared bus."""
from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest
import requests
from requests.adapters import BaseAdapter

from harvester.capture.bus import EventDispatcher, SharedEventBus
from harvester.capture.cascade import InterceptionCascade
from harvester.capture.events import (
    CAPTURE_EVENT,
    INTERCEPTOR_VERSION,
    READY_EVENT,
    TIER_FETCH,
    TIER_JSON_PARSE,
    TIER_RESPONSE_JSON,
    TIER_XHR,
    RequestDescriptor,
)
from harvester.config import CaptureSettings

FEED_URL = "https://www.linkedin.com/voyager/api/graphql?queryId=voyagerFeedDashMainFeed.abc"
PROFILE_URL = "https://www.linkedin.com/voyager/api/identity/profiles/me"
FEED_BODY = {"data": {"elements": []}, "included": [{"$type": "x.Update"}]}


class Recorder:
    def __init__(self, bus: SharedEventBus, event_name: str = CAPTURE_EVENT) -> None:
        self.events: List[Dict[str, Any]] = []
        bus.add_listener(event_name, self.events.append)


@pytest.fixture
def cascade(manual_clock):
    return InterceptionCascade(clock=manual_clock, settings=CaptureSettings())


@pytest.fixture
def recorder(cascade):
    return Recorder(cascade.bus)


class FakeResponse:
    def __init__(self, body: Any, content_type: str = "application/json", status: int = 200) -> None:
        self.headers = {"content-type": content_type}
        self.content = json.dumps(body).encode("utf-8")
        self.status_code = status


# ==============================================================================
# Tier semantics
# ==============================================================================

@pytest.mark.unit
def test_primary_tier_emits_wire_event(cascade, recorder, manual_clock):
    event = cascade.observe(
        RequestDescriptor(TIER_FETCH, FEED_URL, "GET", FEED_BODY, 200, "application/json; charset=utf-8")
    )

    assert event is not None
    assert recorder.events == [
        {
            "type": TIER_FETCH,
            "url": FEED_URL,
            "endpoint": "/voyager/api/graphql",
            "method": "GET",
            "category": "feed",
            "queryId": "voyagerFeedDashMainFeed",
            "isGraphQL": True,
            "data": FEED_BODY,
            "timestamp": manual_clock.now,
        }
    ]
    assert cascade.dispatcher.dispatched == 1


@pytest.mark.unit
@pytest.mark.parametrize(
    "descriptor",
    [
        RequestDescriptor(TIER_FETCH, FEED_URL, payload=FEED_BODY, content_type="text/html"),
        RequestDescriptor(TIER_FETCH, "https://cdn.example.com/app.json", payload=FEED_BODY, content_type="application/json"),
        RequestDescriptor(TIER_FETCH, FEED_URL, payload=None, content_type="application/json"),
        RequestDescriptor(TIER_XHR, FEED_URL, payload=FEED_BODY, status=404, content_type="application/json"),
        RequestDescriptor(TIER_XHR, FEED_URL, payload=FEED_BODY, status=None, content_type="application/json"),
    ],
)
def test_tiers_reject_non_capturable_exchanges(cascade, recorder, descriptor):
    assert cascade.observe(descriptor) is None
    assert recorder.events == []


@pytest.mark.unit
def test_body_decode_tier_reports_get(cascade, recorder):
    cascade.observe(RequestDescriptor(TIER_RESPONSE_JSON, PROFILE_URL, "POST", {"data": {}}))
    assert recorder.events[0]["method"] == "GET"
    assert recorder.events[0]["type"] == TIER_RESPONSE_JSON
    assert recorder.events[0]["category"] == "profile"


@pytest.mark.unit
def test_falsy_payloads_are_still_captured(cascade, recorder):
    cascade.observe(RequestDescriptor(TIER_RESPONSE_JSON, PROFILE_URL, payload=[]))
    assert recorder.events[0]["data"] == []


# ==============================================================================
# Tier 4: decode fallback
# ==============================================================================

def _fetch_then_decode(cascade, manual_clock, url, delay_ms, body=FEED_BODY):
    fetch = cascade.wrap_fetch(lambda method, target: FakeResponse({"x": 1}, content_type="text/plain"))
    fetch("GET", url)
    manual_clock.advance(delay_ms)
    loads = cascade.wrap_decoder(json.loads)
    return loads(json.dumps(body))


@pytest.mark.unit
def test_fallback_decode_six_seconds_later_is_not_dispatched(cascade, recorder, manual_clock):
    result = _fetch_then_decode(cascade, manual_clock, FEED_URL, 6000)

    assert result == FEED_BODY
    assert recorder.events == []


@pytest.mark.unit
def test_fallback_decode_inside_window_uses_correlated_url(cascade, recorder, manual_clock):
    _fetch_then_decode(cascade, manual_clock, FEED_URL, 1200)

    assert len(recorder.events) == 1
    event = recorder.events[0]
    assert event["type"] == TIER_JSON_PARSE
    assert event["url"] == FEED_URL
    assert event["category"] == "feed"


@pytest.mark.unit
def test_fallback_consumes_correlation_entry_once(cascade, recorder, manual_clock):
    _fetch_then_decode(cascade, manual_clock, FEED_URL, 100)
    loads = cascade.wrap_decoder(json.loads)
    loads(json.dumps(FEED_BODY))

    assert len(recorder.events) == 1
    assert len(cascade.correlation) == 0


@pytest.mark.unit
def test_fallback_ignores_decodes_without_voyager_shape(cascade, recorder, manual_clock):
    _fetch_then_decode(cascade, manual_clock, FEED_URL, 100, body={"theme": "dark"})

    assert recorder.events == []
    assert len(cascade.correlation) == 1


@pytest.mark.unit
def test_fallback_is_feed_only_by_default(cascade, recorder, manual_clock):
    _fetch_then_decode(cascade, manual_clock, PROFILE_URL, 100)

    assert recorder.events == []
    # Shape matched, so the entry was consumed even though nothing was emitted.
    assert len(cascade.correlation) == 0


@pytest.mark.unit
def test_fallback_can_emit_every_category(manual_clock):
    cascade = InterceptionCascade(clock=manual_clock, settings=CaptureSettings(fallback_feed_only=False))
    recorder = Recorder(cascade.bus)

    _fetch_then_decode(cascade, manual_clock, PROFILE_URL, 100)

    assert [event["category"] for event in recorder.events] == ["profile"]


# ==============================================================================
# Host wrapping transparency
# ==============================================================================

@pytest.mark.unit
def test_wrapped_fetch_returns_original_response_and_captures(cascade, recorder):
    response = FakeResponse(FEED_BODY)
    fetch = cascade.wrap_fetch(lambda method, url: response)

    assert fetch("GET", FEED_URL) is response
    assert recorder.events[0]["data"] == FEED_BODY


@pytest.mark.unit
def test_wrapped_fetch_propagates_errors_and_purges(cascade, manual_clock):
    def failing(method, url):
        raise requests.ConnectionError("offline")

    fetch = cascade.wrap_fetch(failing)
    with pytest.raises(requests.ConnectionError):
        fetch("GET", FEED_URL)
    assert len(cascade.correlation) == 1

    manual_clock.advance(10001)
    fetch_ok = cascade.wrap_fetch(lambda method, url: FakeResponse({}, content_type="text/plain"))
    fetch_ok("GET", "https://www.linkedin.com/feed/")
    assert len(cascade.correlation) == 0


@pytest.mark.unit
def test_capture_failures_never_reach_the_caller(cascade, recorder):
    class Broken:
        headers = {"content-type": "application/json"}
        content = b"{not json"

    fetch = cascade.wrap_fetch(lambda method, url: Broken)
    assert fetch("GET", FEED_URL) is Broken
    assert recorder.events == []


@pytest.mark.unit
def test_listener_errors_do_not_break_dispatch(cascade, recorder):
    def explode(detail):
        raise RuntimeError("listener bug")

    cascade.bus.add_listener(CAPTURE_EVENT, explode)
    cascade.observe(RequestDescriptor(TIER_RESPONSE_JSON, FEED_URL, payload=FEED_BODY))
    assert len(recorder.events) == 1


class FakeLegacyRequest:
    def __init__(self, status: int, body: str, content_type: str = "application/json") -> None:
        self.status = status
        self.response_text = body
        self._content_type = content_type
        self._listeners: Dict[str, list] = {}
        self.opened = None

    def open(self, method, url):
        self.opened = (method, url)

    def send(self, body=None):
        for callback in self._listeners.get("load", []):
            callback()
        return "sent"

    def add_event_listener(self, name, callback):
        self._listeners.setdefault(name, []).append(callback)

    def get_response_header(self, name):
        return self._content_type if name == "content-type" else None


@pytest.mark.unit
def test_legacy_request_tier_captures_on_load(cascade, recorder):
    req = cascade.instrument_legacy_request(FakeLegacyRequest(200, json.dumps(FEED_BODY)))
    req.open("post", FEED_URL)

    assert req.send() == "sent"
    assert req.opened == ("post", FEED_URL)
    assert recorder.events[0]["type"] == TIER_XHR
    assert recorder.events[0]["method"] == "POST"


@pytest.mark.unit
def test_legacy_request_tier_skips_failed_loads(cascade, recorder):
    req = cascade.instrument_legacy_request(FakeLegacyRequest(500, json.dumps(FEED_BODY)))
    req.open("GET", FEED_URL)
    req.send()
    assert recorder.events == []


class StubAdapter(BaseAdapter):
    def __init__(self, body: Any, content_type: str = "application/json") -> None:
        super().__init__()
        self.body = body
        self.content_type = content_type

    def send(self, request, **kwargs):
        response = requests.Response()
        response.status_code = 200
        response.headers["content-type"] = self.content_type
        response._content = json.dumps(self.body).encode("utf-8")
        response.url = request.url
        response.request = request
        return response

    def close(self):
        pass


@pytest.mark.integration
def test_instrumented_session_feeds_tiers_one_and_three(cascade):
    ready = Recorder(cascade.bus, READY_EVENT)
    recorder = Recorder(cascade.bus)
    session = requests.Session()
    session.mount("https://", StubAdapter(FEED_BODY))
    cascade.instrument_session(session)

    response = session.get(FEED_URL)
    assert [event["type"] for event in recorder.events] == [TIER_FETCH]

    assert response.json() == FEED_BODY
    assert [event["type"] for event in recorder.events] == [TIER_FETCH, TIER_RESPONSE_JSON]
    assert ready.events == [{"version": INTERCEPTOR_VERSION}]


@pytest.mark.unit
def test_ready_is_announced_once(cascade):
    ready = Recorder(cascade.bus, READY_EVENT)
    cascade.announce_ready()
    cascade.announce_ready()
    assert ready.events == [{"version": INTERCEPTOR_VERSION}]


# ==============================================================================
# Shared bus
# ==============================================================================

@pytest.mark.unit
def test_bus_delivers_independent_copies():
    bus = SharedEventBus()
    first: List[Dict[str, Any]] = []
    second: List[Dict[str, Any]] = []
    bus.add_listener("evt", first.append)
    bus.add_listener("evt", second.append)

    detail = {"data": {"n": 1}}
    assert bus.publish("evt", detail) is True

    first[0]["data"]["n"] = 99
    assert second[0]["data"]["n"] == 1
    assert detail["data"]["n"] == 1


@pytest.mark.unit
def test_bus_rejects_unserializable_detail_and_empty_audience():
    bus = SharedEventBus()
    assert bus.publish("evt", {"x": 1}) is False

    received: List[Dict[str, Any]] = []
    bus.add_listener("evt", received.append)
    assert bus.publish("evt", {"x": object()}) is False
    assert received == []

    bus.remove_listener("evt", received.append)
    bus.remove_listener("evt", received.append)
    assert bus.listener_count("evt") == 0


@pytest.mark.unit
def test_dispatcher_counts_only_delivered_events(cascade):
    dispatcher = EventDispatcher(SharedEventBus())
    event = cascade.tiers[TIER_RESPONSE_JSON].intercept(
        RequestDescriptor(TIER_RESPONSE_JSON, FEED_URL, payload=FEED_BODY)
    )
    dispatcher.dispatch(event)
    assert dispatcher.dispatched == 0
