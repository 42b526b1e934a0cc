"""One-message-one-operation dispatch onto the consolidation store."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from harvester.data import export
from harvester.data.collections import ANALYTICS_DATA, CONNECTIONS_DATA, POSTS_DATA, PROFILE_DATA
from harvester.data.consolidation import ConsolidationStore
from harvester.voyager.client import VoyagerClient

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Dict[str, Any]]


def _require_key(message: Dict[str, Any], *names: str) -> str:
    for name in names:
        value = message.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    raise ValueError(f"{names[0]} is required")


class MessageRouter:
    """Route protocol messages (``{"type": ..., ...}``) to store and client calls.

    Every response is ``{"success": bool, ...}``. Malformed envelopes raise
    ``ValueError``; operation-level failures come back as ``success: False``.
    """

    def __init__(
        self,
        store: ConsolidationStore,
        voyager_client: Optional[VoyagerClient] = None,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.voyager_client = voyager_client
        self._clock = clock
        self._handlers: Dict[str, Handler] = {
            "SAVE_DATA": self._save_data,
            "GET_DATA": self._get_data,
            "GET_ALL_DATA": lambda message: self.store.get_all(),
            "CLEAR_DATA": lambda message: self.store.clear(),
            "APPEND_DATA": self._append_data,
            "API_CAPTURED": self._api_captured,
            "PROFILE_CAPTURED": lambda message: self.store.save_profile(message.get("data")),
            "ANALYTICS_CAPTURED": lambda message: self.store.save_analytics(message.get("data")),
            "POST_ANALYTICS_CAPTURED": lambda message: self.store.save_post_analytics(message.get("data")),
            "AUDIENCE_DATA_CAPTURED": lambda message: self.store.save_audience(message.get("data")),
            "SAVE_FEED_POSTS": lambda message: self.store.save_feed_posts(message.get("posts")),
            "SAVE_COMMENTS": lambda message: self.store.save_comments(message.get("comments")),
            "SAVE_MY_POSTS": lambda message: self.store.save_my_posts(message.get("posts")),
            "SAVE_FOLLOWERS": lambda message: self.store.save_followers(message.get("data")),
            "SAVE_TRENDING": lambda message: self.store.save_trending(message.get("topics")),
            "EXPORT_JSON": self._export_json,
            "EXPORT_CSV": self._export_csv,
            "GET_STATS": lambda message: self.store.stats(),
            "CHECK_AUTH": self._check_auth,
            "FETCH_PROFILE": lambda message: self._fetch_profile(),
            "FETCH_ANALYTICS": lambda message: self._fetch_analytics(),
            "FETCH_CONNECTIONS": self._fetch_connections,
            "FETCH_CONNECTIONS_SUMMARY": lambda message: self._client_call("fetch_connections_summary"),
            "FETCH_ALL_CONNECTIONS": self._fetch_all_connections,
            "FETCH_POSTS": self._fetch_posts,
            "FETCH_FEED_POSTS": lambda message: self._client_call("fetch_feed_posts"),
            "FETCH_ALL_DATA": lambda message: self._fetch_all_data(),
        }

    @property
    def message_types(self) -> list[str]:
        return sorted(self._handlers)

    def handle(self, message: Any) -> Dict[str, Any]:
        if not isinstance(message, dict):
            raise ValueError("message must be a JSON object")
        message_type = message.get("type")
        if not isinstance(message_type, str) or not message_type:
            raise ValueError("message type is required")

        handler = self._handlers.get(message_type)
        if handler is None:
            logger.debug("Unknown message type: %s", message_type)
            return {"success": False, "error": "Unknown message type"}
        logger.debug("Handling %s", message_type)
        return handler(message)

    # ------------------------------------------------------------------
    # Store messages
    # ------------------------------------------------------------------
    def _save_data(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return self.store.save(_require_key(message, "key"), message.get("data"))

    def _get_data(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return self.store.get(_require_key(message, "key"))

    def _append_data(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return self.store.append(_require_key(message, "key"), message.get("data"))

    def _api_captured(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return self.store.log_capture(
            message.get("endpoint"), message.get("method"), message.get("url"), message.get("data")
        )

    def _export_json(self, message: Dict[str, Any]) -> Dict[str, Any]:
        namespace = self.store.get_all()
        if not namespace.get("success"):
            return namespace
        return export.export_json(namespace.get("data") or {}, clock=self._clock)

    def _export_csv(self, message: Dict[str, Any]) -> Dict[str, Any]:
        key = _require_key(message, "dataKey", "key")
        result = self.store.get(key)
        if not result.get("success") or not result.get("data"):
            return {"success": False, "error": "No data to export"}
        return export.export_csv(key, result["data"], clock=self._clock)

    # ------------------------------------------------------------------
    # Direct Voyager calls
    # ------------------------------------------------------------------
    def _check_auth(self, message: Dict[str, Any]) -> Dict[str, Any]:
        if self.voyager_client is None:
            return {"success": True, "isAuthenticated": False}
        return self.voyager_client.check_auth()

    def _client_call(self, method: str, *args: Any) -> Dict[str, Any]:
        if self.voyager_client is None:
            return {"success": False, "error": "Voyager client is not configured"}
        return getattr(self.voyager_client, method)(*args)

    def _persist(self, key: str, result: Dict[str, Any]) -> Dict[str, Any]:
        if result.get("success") and result.get("data") is not None:
            saved = self.store.save(key, result["data"])
            if not saved.get("success"):
                return saved
        return result

    def _fetch_profile(self) -> Dict[str, Any]:
        return self._persist(PROFILE_DATA, self._client_call("fetch_profile"))

    def _fetch_analytics(self) -> Dict[str, Any]:
        return self._persist(ANALYTICS_DATA, self._client_call("fetch_analytics"))

    def _fetch_connections(self, message: Dict[str, Any]) -> Dict[str, Any]:
        start = int(message.get("start") or 0)
        count = int(message.get("count") or 100)
        return self._client_call("fetch_connections", start, count)

    def _fetch_all_connections(self, message: Dict[str, Any]) -> Dict[str, Any]:
        max_connections = int(message.get("maxConnections") or 500)
        return self._persist(CONNECTIONS_DATA, self._client_call("fetch_all_connections", max_connections))

    def _fetch_posts(self, message: Dict[str, Any]) -> Dict[str, Any]:
        count = int(message.get("count") or 20)
        return self._persist(POSTS_DATA, self._client_call("fetch_my_posts", count))

    def _fetch_all_data(self) -> Dict[str, Any]:
        profile = self._fetch_profile()
        analytics = self._fetch_analytics()
        connections = self._persist(CONNECTIONS_DATA, self._client_call("fetch_all_connections", 500))
        logger.info("Fetched all data: %s connections", connections.get("fetchedConnections"))
        return {
            "success": True,
            "profile": profile,
            "analytics": analytics,
            "connections": connections,
            "posts": {"success": True, "data": {"posts": [], "topHits": []}},
        }
