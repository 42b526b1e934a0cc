"""Thin LinkedIn Voyager client for on-demand profile/analytics/connections fetches."""
from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from harvester.config import VoyagerConfig

LOGGER = logging.getLogger(__name__)

ACCEPT_NORMALIZED = "application/vnd.linkedin.normalized+json+2.1"
CONNECTIONS_DECORATION = "com.linkedin.voyager.dash.deco.web.mynetwork.ConnectionList-16"
CONNECTION_TYPE = "com.linkedin.voyager.dash.relationships.Connection"
PROFILE_TYPE = "com.linkedin.voyager.dash.identity.profile.Profile"
CONNECTIONS_PAGE_SIZE = 40
PASSIVE_FEED_MESSAGE = "Feed posts captured passively when browsing LinkedIn feed"
PASSIVE_POSTS_MESSAGE = "Posts data extracted from page interactions"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _unwrap(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Voyager nests some bodies under ``data``; fall back to the body itself."""
    inner = payload.get("data")
    return inner if isinstance(inner, dict) else payload


def _included(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    items = payload.get("included")
    return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []


class VoyagerClient:
    """Minimal wrapper around the Voyager endpoints the harvester reads directly."""

    def __init__(
        self,
        config: VoyagerConfig,
        *,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 30.0,
    ) -> None:
        self._config = config
        self._sleep = sleep
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "accept": ACCEPT_NORMALIZED,
                "accept-language": "en-US,en;q=0.9",
                "x-li-lang": "en_US",
                "x-restli-protocol-version": "2.0.0",
            }
        )
        for name, value in config.cookies.items():
            self._session.cookies.set(name, value)

    @property
    def is_authenticated(self) -> bool:
        return self._config.is_authenticated

    def check_auth(self) -> Dict[str, Any]:
        return {"success": True, "isAuthenticated": self.is_authenticated}

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------
    def _headers(self) -> Dict[str, str]:
        return {
            "csrf-token": self._config.csrf_token,
            "x-li-page-instance": f"urn:li:page:d_flagship3_profile_view_base;{uuid.uuid4()}",
            "x-li-track": json.dumps(
                {"clientVersion": "1.13.8960", "osName": "web", "deviceFormFactor": "DESKTOP", "mpName": "voyager-web"}
            ),
        }

    def fetch_api(self, endpoint: str) -> Dict[str, Any]:
        """GET ``endpoint`` (a path beginning with ``/voyager/api``)."""
        if not self.is_authenticated:
            return {"success": False, "error": "Not authenticated"}

        url = f"{self._config.base_url}{endpoint}"
        try:
            response = self._session.get(url, headers=self._headers(), timeout=self._timeout)
        except requests.RequestException as exc:
            LOGGER.error("Voyager request failed for %s: %s", endpoint, exc)
            return {"success": False, "error": str(exc)}

        if not response.ok:
            LOGGER.error("Voyager returned %s for %s", response.status_code, endpoint)
            return {"success": False, "error": f"HTTP {response.status_code}"}

        try:
            data = response.json()
        except ValueError as exc:
            LOGGER.error("Voyager returned a non-JSON body for %s: %s", endpoint, exc)
            return {"success": False, "error": "Invalid JSON response"}
        return {"success": True, "data": data}

    # ------------------------------------------------------------------
    # Public lookups
    # ------------------------------------------------------------------
    def fetch_member_urn(self) -> Dict[str, Any]:
        result = self.fetch_api("/voyager/api/me")
        if not result["success"] or not isinstance(result.get("data"), dict):
            return {"success": False, "error": "Could not get member URN"}

        data = result["data"]
        member_urn = None
        public_identifier = None
        mini = data.get("miniProfile")
        if isinstance(mini, dict):
            member_urn = mini.get("entityUrn")
            public_identifier = mini.get("publicIdentifier")
        for item in _included(data):
            if "MiniProfile" in str(item.get("$type") or "") and item.get("entityUrn"):
                member_urn = member_urn or item.get("entityUrn")
                public_identifier = public_identifier or item.get("publicIdentifier")
        if not member_urn and data.get("plainId"):
            member_urn = f"urn:li:fsd_profile:{data['plainId']}"
        return {"success": True, "memberUrn": member_urn, "publicIdentifier": public_identifier}

    def fetch_connections_summary(self) -> Dict[str, Any]:
        result = self.fetch_api("/voyager/api/relationships/connectionsSummary")
        if not result["success"] or not isinstance(result.get("data"), dict):
            return result
        summary = _unwrap(result["data"])
        return {
            "success": True,
            "data": {
                "numConnections": summary.get("numConnections") or 0,
                "entityUrn": summary.get("entityUrn"),
            },
        }

    def fetch_profile(self) -> Dict[str, Any]:
        result = self.fetch_api("/voyager/api/me")
        if not result["success"]:
            return result
        data = result["data"] if isinstance(result.get("data"), dict) else {}

        profile: Dict[str, Any] = {"extractedAt": _now_iso(), "source": "direct_api"}
        mini = data.get("miniProfile")
        candidates = [mini] if isinstance(mini, dict) else []
        candidates += [item for item in _included(data) if "MiniProfile" in str(item.get("$type") or "")]
        if candidates:
            first = candidates[0]
            profile.update(
                {
                    "firstName": first.get("firstName"),
                    "lastName": first.get("lastName"),
                    "headline": first.get("occupation"),
                    "publicIdentifier": first.get("publicIdentifier"),
                    "entityUrn": first.get("entityUrn"),
                }
            )
        if "premiumSubscriber" in data:
            profile["isPremium"] = data["premiumSubscriber"]

        member = self.fetch_member_urn()
        if member["success"]:
            profile["memberUrn"] = member.get("memberUrn")
            profile["publicIdentifier"] = profile.get("publicIdentifier") or member.get("publicIdentifier")

        summary = self.fetch_connections_summary()
        if summary["success"]:
            profile["connectionsCount"] = summary["data"]["numConnections"]
            profile["numConnections"] = summary["data"]["numConnections"]

        profile["rawData"] = data
        LOGGER.info("Profile fetched: %s %s", profile.get("firstName"), profile.get("lastName"))
        return {"success": True, "data": profile}

    def fetch_analytics(self) -> Dict[str, Any]:
        analytics: Dict[str, Any] = {"extractedAt": _now_iso(), "source": "direct_api"}

        result = self.fetch_api("/voyager/api/identity/wvmpCards")
        if result["success"] and isinstance(result.get("data"), dict):
            cards = _unwrap(result["data"])
            for element in cards.get("elements") or []:
                if not isinstance(element, dict):
                    continue
                if element.get("numViews") is not None:
                    analytics["profileViews"] = element["numViews"]
                for card in element.get("insightCards") or []:
                    if isinstance(card, dict) and card.get("numViews") is not None:
                        analytics["profileViews"] = card["numViews"]

            viewers = []
            for item in _included(result["data"]):
                if "Profile" in str(item.get("$type") or "") and item.get("firstName"):
                    viewers.append(
                        {
                            "firstName": item.get("firstName"),
                            "lastName": item.get("lastName"),
                            "headline": item.get("occupation") or item.get("headline"),
                            "publicIdentifier": item.get("publicIdentifier"),
                        }
                    )
            analytics["recentViewers"] = viewers

        summary = self.fetch_connections_summary()
        if summary["success"]:
            analytics["connectionsCount"] = summary["data"]["numConnections"]

        LOGGER.info(
            "Analytics fetched: %s views, %s connections",
            analytics.get("profileViews"),
            analytics.get("connectionsCount"),
        )
        return {"success": True, "data": analytics}

    def fetch_connections(self, start: int = 0, count: int = CONNECTIONS_PAGE_SIZE) -> Dict[str, Any]:
        endpoint = (
            "/voyager/api/relationships/dash/connections"
            f"?decorationId={CONNECTIONS_DECORATION}&count={count}&q=search"
            f"&sortType=RECENTLY_ADDED&start={start}"
        )
        result = self.fetch_api(endpoint)
        if not result["success"] or not isinstance(result.get("data"), dict):
            return result

        payload = result["data"]
        included = _included(payload)
        raw_connections = [item for item in included if item.get("$type") == CONNECTION_TYPE]
        profiles = {
            item["entityUrn"]: item
            for item in included
            if item.get("$type") == PROFILE_TYPE and item.get("entityUrn")
        }

        connections = []
        for raw in raw_connections:
            profile = profiles.get(raw.get("*connectedMemberResolutionResult") or raw.get("connectedMember"))
            connection: Dict[str, Any] = {
                "connectionUrn": raw.get("entityUrn"),
                "connectedMember": raw.get("connectedMember"),
            }
            if profile is not None:
                public_id = profile.get("publicIdentifier")
                connection.update(
                    {
                        "firstName": profile.get("firstName"),
                        "lastName": profile.get("lastName"),
                        "fullName": f"{profile.get('firstName') or ''} {profile.get('lastName') or ''}".strip(),
                        "headline": profile.get("headline"),
                        "publicIdentifier": public_id,
                        "entityUrn": profile.get("entityUrn"),
                        "profileUrl": f"https://www.linkedin.com/in/{public_id}" if public_id else None,
                        "memorialized": bool(profile.get("memorialized")),
                    }
                )
            # Connections whose profile was not included carry nothing useful.
            if connection.get("firstName") or connection.get("publicIdentifier"):
                connections.append(connection)

        paging = _unwrap(payload).get("paging") or payload.get("paging") or {"start": start, "count": count}
        return {
            "success": True,
            "data": {
                "extractedAt": _now_iso(),
                "source": "direct_api",
                "connections": connections,
                "paging": paging,
            },
            "connectionsCount": len(connections),
            "rawConnectionCount": len(raw_connections),
            "requestedCount": count,
        }

    def fetch_all_connections(self, max_connections: int = 500) -> Dict[str, Any]:
        """Page through connections until a short raw page or ``max_connections``."""
        collected: List[Dict[str, Any]] = []
        seen = set()
        start = 0
        has_more = True

        while has_more and len(collected) < max_connections:
            result = self.fetch_connections(start, CONNECTIONS_PAGE_SIZE)
            if not result.get("success"):
                LOGGER.error("Failed to fetch connections page at start=%s: %s", start, result.get("error"))
                break

            batch = result["data"]["connections"]
            for connection in batch:
                identity = (
                    connection.get("publicIdentifier") or connection.get("entityUrn") or connection.get("connectionUrn")
                )
                if identity and identity not in seen:
                    seen.add(identity)
                    collected.append(connection)

            # Paginate on the raw count; unresolved profiles still occupy a slot.
            if result.get("rawConnectionCount", len(batch)) < CONNECTIONS_PAGE_SIZE:
                has_more = False

            start += CONNECTIONS_PAGE_SIZE
            if has_more:
                self._sleep(self._config.page_delay_ms / 1000.0)

        LOGGER.info("Finished fetching %d connections", len(collected))
        data = {
            "extractedAt": _now_iso(),
            "source": "direct_api",
            "totalConnections": len(collected),
            "fetchedConnections": len(collected),
            "connections": collected,
        }
        return {
            "success": True,
            "data": data,
            "totalConnections": len(collected),
            "fetchedConnections": len(collected),
        }

    def fetch_my_posts(self, count: int = 20) -> Dict[str, Any]:
        # Own activity is only reachable through passive capture.
        return {
            "success": True,
            "data": {
                "extractedAt": _now_iso(),
                "source": "direct_api",
                "posts": [],
                "message": PASSIVE_POSTS_MESSAGE,
            },
        }

    def fetch_feed_posts(self, count: int = 50) -> Dict[str, Any]:
        return {"success": True, "data": {"posts": [], "topHits": [], "message": PASSIVE_FEED_MESSAGE}}
