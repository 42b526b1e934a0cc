"""The four capture tiers, each an interceptor over a request descriptor.

Every tier answers the same question: given what a hook saw, is this a
capturable Voyager response, and if so what event does it become? Tiers never
touch the wrapped call; the cascade feeds them descriptors after the host
primitive has already produced its result.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from harvester.capture import classifier
from harvester.capture.correlation import CorrelationTable
from harvester.capture.events import (
    TIER_FETCH,
    TIER_JSON_PARSE,
    TIER_RESPONSE_JSON,
    TIER_XHR,
    CapturedEvent,
    RequestDescriptor,
)

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
RESPONSE_SHAPE_FIELDS = ("included", "data", "elements")


def build_event(descriptor: RequestDescriptor, observed_at_millis: int, *, url: Optional[str] = None) -> CapturedEvent:
    target = descriptor.url if url is None else url
    return CapturedEvent(
        source_tier=descriptor.tier,
        url=target,
        pathname=classifier.get_pathname(target),
        method=descriptor.method,
        category=classifier.classify(target),
        query_identifier=classifier.extract_query_id(target),
        is_graph_like=classifier.is_graph_like(target),
        payload=descriptor.payload,
        observed_at_millis=observed_at_millis,
    )


def looks_like_voyager_response(value: object) -> bool:
    if not isinstance(value, dict):
        return False
    return any(value.get(field) is not None for field in RESPONSE_SHAPE_FIELDS)


class Interceptor:
    """Base tier: URL filter plus a decoded payload."""

    name = ""

    def __init__(self, clock: Callable[[], int]) -> None:
        self._clock = clock

    def intercept(self, descriptor: RequestDescriptor) -> Optional[CapturedEvent]:
        if not classifier.should_capture(descriptor.url) or descriptor.payload is None:
            return None
        return build_event(descriptor, self._clock())


class PrimaryCallInterceptor(Interceptor):
    """Tier 1: the primary request call, decoded only for JSON responses."""

    name = TIER_FETCH

    def intercept(self, descriptor: RequestDescriptor) -> Optional[CapturedEvent]:
        if JSON_CONTENT_TYPE not in (descriptor.content_type or ""):
            return None
        return super().intercept(descriptor)


class LegacyRequestInterceptor(Interceptor):
    """Tier 2: open/send request objects, successful JSON loads only."""

    name = TIER_XHR

    def intercept(self, descriptor: RequestDescriptor) -> Optional[CapturedEvent]:
        status = descriptor.status or 0
        if not 200 <= status < 300:
            return None
        if JSON_CONTENT_TYPE not in (descriptor.content_type or ""):
            return None
        return super().intercept(descriptor)


class BodyDecodeInterceptor(Interceptor):
    """Tier 3: the response's own JSON decode method.

    A response does not carry its request method, so events are reported as GET.
    """

    name = TIER_RESPONSE_JSON

    def intercept(self, descriptor: RequestDescriptor) -> Optional[CapturedEvent]:
        if descriptor.method != "GET":
            descriptor = RequestDescriptor(
                tier=descriptor.tier,
                url=descriptor.url,
                method="GET",
                payload=descriptor.payload,
                status=descriptor.status,
                content_type=descriptor.content_type,
            )
        return super().intercept(descriptor)


class DecodeFallbackInterceptor(Interceptor):
    """Tier 4: generic JSON decodes, correlated to a recent primary call.

    The decoder is shared with unrelated code, so a decode only counts when a
    tracked request is younger than the recency window and the decoded value
    has a Voyager response shape. A shape match consumes the correlation entry
    whether or not the event is emitted.
    """

    name = TIER_JSON_PARSE

    def __init__(
        self,
        clock: Callable[[], int],
        correlation: CorrelationTable,
        *,
        recency_window_ms: int = 5000,
        feed_only: bool = True,
    ) -> None:
        super().__init__(clock)
        self.correlation = correlation
        self.recency_window_ms = recency_window_ms
        self.feed_only = feed_only

    def intercept(self, descriptor: RequestDescriptor) -> Optional[CapturedEvent]:
        pending = self.correlation.peek_recent(self.recency_window_ms)
        if pending is None:
            return None
        if not looks_like_voyager_response(descriptor.payload):
            return None
        self.correlation.discard(pending.token)

        url = pending.url
        if not classifier.should_capture(url):
            return None
        if self.feed_only and classifier.classify(url) != classifier.FEED and "Feed" not in url:
            logger.debug("fallback decode matched non-feed request %s; not emitted", url)
            return None
        return build_event(descriptor, self._clock(), url=url)
