"""Captured event model shared by the capture tiers and the dispatcher."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

CAPTURE_EVENT = "linkedin-api-captured"
READY_EVENT = "linkedin-main-interceptor-ready"
INTERCEPTOR_VERSION = "2.3.0"

# Source tiers, in cascade order.
TIER_FETCH = "fetch"
TIER_XHR = "xhr"
TIER_RESPONSE_JSON = "response-json"
TIER_JSON_PARSE = "json-parse"

SOURCE_TIERS = (TIER_FETCH, TIER_XHR, TIER_RESPONSE_JSON, TIER_JSON_PARSE)


@dataclass(frozen=True)
class RequestDescriptor:
    """What a tier saw of one network exchange, before classification."""

    tier: str
    url: str
    method: str = "GET"
    payload: Any = None
    status: Optional[int] = None
    content_type: str = ""


@dataclass(frozen=True)
class CapturedEvent:
    """A categorized capture, alive only until the dispatcher hands it off."""

    source_tier: str
    url: str
    pathname: str
    method: str
    category: str
    query_identifier: Optional[str]
    is_graph_like: bool
    payload: Any
    observed_at_millis: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.source_tier,
            "url": self.url,
            "endpoint": self.pathname,
            "method": self.method,
            "category": self.category,
            "queryId": self.query_identifier,
            "isGraphQL": self.is_graph_like,
            "data": self.payload,
            "timestamp": self.observed_at_millis,
        }
