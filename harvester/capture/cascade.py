"""Interception cascade: four hook points feeding one dispatcher.

The cascade owns all mutable capture state (the correlation table) and takes
its clock from the constructor. Hooks are installed per object, never on
module globals:

* ``wrap_fetch`` wraps a request callable (``requests.Session.request`` or
  ``Session.send``) as tier 1 and feeds the correlation table.
* ``instrument_legacy_request`` wraps ``open``/``send`` on one request object.
* ``wrap_body_decode`` wraps one response's ``json`` method.
* ``wrap_decoder`` wraps a ``json.loads``-compatible decoder.

``instrument_session`` installs tiers 1 and 3 on a ``requests.Session``.
Whatever happens inside capture, the wrapped call returns or raises exactly as
it would have without the cascade.
"""
from __future__ import annotations

import functools
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import requests

from harvester.capture import classifier
from harvester.capture.bus import EventDispatcher, SharedEventBus
from harvester.capture.correlation import CorrelationTable
from harvester.capture.events import (
    INTERCEPTOR_VERSION,
    READY_EVENT,
    TIER_FETCH,
    TIER_JSON_PARSE,
    TIER_RESPONSE_JSON,
    TIER_XHR,
    CapturedEvent,
    RequestDescriptor,
)
from harvester.capture.tiers import (
    BodyDecodeInterceptor,
    DecodeFallbackInterceptor,
    Interceptor,
    LegacyRequestInterceptor,
    PrimaryCallInterceptor,
)
from harvester.config import CaptureSettings

logger = logging.getLogger(__name__)

LEGACY_STATE_ATTR = "_intercept_data"


def now_millis() -> int:
    return int(time.time() * 1000)


def _request_target(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Tuple[str, str]:
    """Pull (method, url) out of request(method, url, ...) or send(prepared) calls."""
    if args and hasattr(args[0], "url") and hasattr(args[0], "method"):
        request = args[0]
        return str(request.method or "GET").upper(), str(request.url or "")
    method = kwargs.get("method", args[0] if args else "GET")
    url = kwargs.get("url", args[1] if len(args) > 1 else "")
    return str(method or "GET").upper(), str(url)


class InterceptionCascade:
    """Composes the capture tiers in a fixed pipeline around host primitives."""

    def __init__(
        self,
        bus: Optional[SharedEventBus] = None,
        *,
        clock: Callable[[], int] = now_millis,
        settings: Optional[CaptureSettings] = None,
        decoder: Callable[..., Any] = json.loads,
    ) -> None:
        settings = settings or CaptureSettings()
        self.bus = bus or SharedEventBus()
        self.dispatcher = EventDispatcher(self.bus)
        self.correlation = CorrelationTable(clock, ttl_ms=settings.pending_ttl_ms)
        self._clock = clock
        self._decoder = decoder
        self._announced = False
        self.tiers: Dict[str, Interceptor] = {
            TIER_FETCH: PrimaryCallInterceptor(clock),
            TIER_XHR: LegacyRequestInterceptor(clock),
            TIER_RESPONSE_JSON: BodyDecodeInterceptor(clock),
            TIER_JSON_PARSE: DecodeFallbackInterceptor(
                clock,
                self.correlation,
                recency_window_ms=settings.recency_window_ms,
                feed_only=settings.fallback_feed_only,
            ),
        }

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    def observe(self, descriptor: RequestDescriptor) -> Optional[CapturedEvent]:
        """Run one descriptor through its tier and dispatch the result, if any."""
        try:
            event = self.tiers[descriptor.tier].intercept(descriptor)
            if event is not None:
                self.dispatcher.dispatch(event)
            return event
        except Exception as exc:
            logger.debug("capture failed in %s tier for %s: %s", descriptor.tier, descriptor.url, exc)
            return None

    def announce_ready(self) -> None:
        if self._announced:
            return
        self._announced = True
        self.bus.publish(READY_EVENT, {"version": INTERCEPTOR_VERSION})

    def reset(self) -> None:
        self.correlation.clear()

    # ------------------------------------------------------------------
    # Tier 1: primary request call
    # ------------------------------------------------------------------
    def wrap_fetch(self, fetch: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fetch)
        def capturing_fetch(*args: Any, **kwargs: Any) -> Any:
            method, url = "GET", ""
            capturable = False
            try:
                method, url = _request_target(args, kwargs)
                capturable = classifier.should_capture(url)
                if capturable:
                    self.correlation.register(url)
            except Exception as exc:
                logger.debug("could not inspect request arguments: %s", exc)

            try:
                response = fetch(*args, **kwargs)
            finally:
                self.correlation.purge()

            if capturable and not kwargs.get("stream"):
                self._capture_fetch_response(url, method, response)
            return response

        return capturing_fetch

    def _capture_fetch_response(self, url: str, method: str, response: Any) -> None:
        try:
            content_type = response.headers.get("content-type", "") or ""
            if "application/json" not in content_type:
                return
            # response.content is cached, so decoding here leaves the body intact for the caller.
            payload = self._decoder(response.content)
        except Exception as exc:
            logger.debug("fetch capture decode failed for %s: %s", url, exc)
            return
        self.observe(
            RequestDescriptor(
                tier=TIER_FETCH,
                url=url,
                method=method,
                payload=payload,
                status=getattr(response, "status_code", None),
                content_type=content_type,
            )
        )

    # ------------------------------------------------------------------
    # Tier 2: legacy open/send request objects
    # ------------------------------------------------------------------
    def instrument_legacy_request(self, request: Any) -> Any:
        """Wrap ``open``/``send`` on one request object.

        The object must provide ``open(method, url, ...)``, ``send(body=None)``,
        ``add_event_listener(name, callback)``, ``status``,
        ``get_response_header(name)`` and ``response_text``.
        """
        original_open = request.open
        original_send = request.send

        @functools.wraps(original_open)
        def open_(method: str, url: str, *rest: Any, **kwargs: Any) -> Any:
            setattr(request, LEGACY_STATE_ATTR, {"method": method, "url": url})
            return original_open(method, url, *rest, **kwargs)

        @functools.wraps(original_send)
        def send(*args: Any, **kwargs: Any) -> Any:
            state = getattr(request, LEGACY_STATE_ATTR, None)
            if state and classifier.should_capture(state["url"]):
                try:
                    request.add_event_listener("load", lambda *_: self._capture_legacy_load(request, state))
                except Exception as exc:
                    logger.debug("could not attach load listener: %s", exc)
            return original_send(*args, **kwargs)

        request.open = open_
        request.send = send
        return request

    def _capture_legacy_load(self, request: Any, state: Dict[str, str]) -> None:
        try:
            status = int(request.status)
            content_type = request.get_response_header("content-type") or ""
            payload = None
            if 200 <= status < 300 and "application/json" in content_type:
                payload = self._decoder(request.response_text)
        except Exception as exc:
            logger.debug("xhr capture failed for %s: %s", state.get("url"), exc)
            return
        self.observe(
            RequestDescriptor(
                tier=TIER_XHR,
                url=str(state["url"]),
                method=str(state.get("method") or "GET").upper(),
                payload=payload,
                status=status,
                content_type=content_type,
            )
        )

    # ------------------------------------------------------------------
    # Tier 3: the response's own decode method
    # ------------------------------------------------------------------
    def wrap_body_decode(self, decode: Callable[..., Any], url: str) -> Callable[..., Any]:
        @functools.wraps(decode)
        def capturing_decode(*args: Any, **kwargs: Any) -> Any:
            result = decode(*args, **kwargs)
            self.observe(RequestDescriptor(tier=TIER_RESPONSE_JSON, url=url or "", method="GET", payload=result))
            return result

        return capturing_decode

    def _instrument_response_hook(self, response: requests.Response, *args: Any, **kwargs: Any) -> None:
        try:
            response.json = self.wrap_body_decode(response.json, response.url)
        except Exception as exc:
            logger.debug("could not wrap response decode: %s", exc)

    # ------------------------------------------------------------------
    # Tier 4: generic decoder
    # ------------------------------------------------------------------
    def wrap_decoder(self, decode: Callable[..., Any] = json.loads) -> Callable[..., Any]:
        @functools.wraps(decode)
        def capturing_loads(*args: Any, **kwargs: Any) -> Any:
            result = decode(*args, **kwargs)
            self.observe(RequestDescriptor(tier=TIER_JSON_PARSE, url="", payload=result))
            return result

        return capturing_loads

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------
    def instrument_session(self, session: requests.Session) -> requests.Session:
        """Install tiers 1 and 3 on one session instance and announce readiness."""
        session.request = self.wrap_fetch(session.request)
        session.hooks.setdefault("response", []).append(self._instrument_response_hook)
        logger.debug("cascade installed on session %s", id(session))
        self.announce_ready()
        return session
