"""Consolidation store: deduplicating, ranked, bounded collections over a backend.

Every write is a read-modify-write of one logical key. The store holds one
``threading.Lock`` per key so concurrent requests against the same collection
are applied one after another; different keys never block each other.

All public operations return ``{"success": bool, ...}`` and never raise.
"""
from __future__ import annotations

import functools
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from harvester.data.backend import KeyValueBackend
from harvester.data.collections import (
    ANALYTICS_DATA,
    AUDIENCE_DATA,
    CAPTURED_APIS,
    COLLECTION_SPECS,
    CONNECTIONS_DATA,
    DEFAULT_SETTINGS,
    FOLLOWER_HISTORY_LIMIT,
    PROFILE_DATA,
    SETTINGS,
    SPECS_BY_KEY,
    CollectionKind,
    CollectionSpec,
    MergePolicy,
    identity_of,
)
from harvester.data.summaries import as_number

logger = logging.getLogger(__name__)

DEFAULT_APPEND_CAPACITY = 1000

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _store_operation(name: str):
    """Catch any failure at the store boundary and report it as a result."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except Exception as exc:
                logger.exception("%s failed", name)
                return {"success": False, "error": str(exc)}

        return wrapper

    return decorator


class ConsolidationStore:
    def __init__(self, backend: KeyValueBackend, *, clock: Clock = utc_now) -> None:
        self.backend = backend
        self._clock = clock
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _now(self) -> str:
        return self._clock().isoformat()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    # ------------------------------------------------------------------
    # Plain key operations
    # ------------------------------------------------------------------

    @_store_operation("save")
    def save(self, key: str, value: Any) -> Dict[str, Any]:
        with self._lock_for(key):
            self.backend.set(key, value)
        return {"success": True}

    @_store_operation("get")
    def get(self, key: str) -> Dict[str, Any]:
        return {"success": True, "data": self.backend.get(key)}

    @_store_operation("get_all")
    def get_all(self) -> Dict[str, Any]:
        return {"success": True, "data": self.backend.get_all()}

    @_store_operation("clear")
    def clear(self) -> Dict[str, Any]:
        self.backend.clear()
        return {"success": True}

    @_store_operation("append")
    def append(self, key: str, item: Any) -> Dict[str, Any]:
        spec = SPECS_BY_KEY.get(key)
        capacity = spec.capacity if spec is not None else DEFAULT_APPEND_CAPACITY
        stamp = spec.stamp_field if spec is not None and spec.stamp_field else "capturedAt"
        with self._lock_for(key):
            existing = self.backend.get(key)
            items = list(existing) if isinstance(existing, list) else []
            entry = {**item, stamp: self._now()} if isinstance(item, dict) else item
            items.append(entry)
            items = items[-capacity:]
            self.backend.set(key, items)
        return {"success": True, "count": len(items)}

    def log_capture(
        self, endpoint: Optional[str], method: Optional[str], url: Optional[str], data: Any
    ) -> Dict[str, Any]:
        """Append one intercepted response to the generic capture log."""
        return self.append(
            CAPTURED_APIS,
            {"endpoint": endpoint, "method": method, "url": url, "responseData": data},
        )

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def save_profile(self, data: Any) -> Dict[str, Any]:
        return self.save(PROFILE_DATA, data)

    def save_analytics(self, data: Any) -> Dict[str, Any]:
        return self.save(ANALYTICS_DATA, data)

    @_store_operation("save_audience")
    def save_audience(self, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict) or not data:
            return {"success": False, "error": "No audience data provided"}
        snapshot = {**data, "lastUpdated": self._now()}
        with self._lock_for(AUDIENCE_DATA):
            self.backend.set(AUDIENCE_DATA, snapshot)
        logger.info("audience saved: totalFollowers=%s", data.get("totalFollowers"))
        return {"success": True, "totalFollowers": data.get("totalFollowers")}

    # ------------------------------------------------------------------
    # Identity-merged collections
    # ------------------------------------------------------------------

    def _merge_items(
        self,
        spec: CollectionSpec,
        existing: Iterable[Any],
        incoming: Iterable[Any],
        now: str,
    ) -> Tuple[List[Dict[str, Any]], int, int]:
        """Merge ``incoming`` into ``existing`` by identity.

        Returns ``(items, new_count, accepted)`` where ``items`` is in insertion
        order (dict order), before ranking and truncation.
        """
        index: Dict[str, Dict[str, Any]] = {}
        for record in existing:
            key = identity_of(spec, record)
            if key is not None:
                index[key] = record

        new_count = 0
        accepted = 0
        for record in incoming:
            key = identity_of(spec, record)
            if key is None:
                continue
            accepted += 1
            current = index.get(key)
            if current is None:
                new_count += 1

            if spec.merge is MergePolicy.SHALLOW:
                first = (current or {}).get("firstCaptured") or record.get("firstCaptured") or now
                index[key] = {**(current or {}), **record, "firstCaptured": first, "lastUpdated": now}
            else:
                replacement = dict(record)
                if spec.stamp_field:
                    replacement[spec.stamp_field] = now
                if spec.keep_most_recent:
                    index.pop(key, None)
                index[key] = replacement

        return list(index.values()), new_count, accepted

    def _rank_and_truncate(self, spec: CollectionSpec, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if spec.rank_key is not None:
            items = sorted(items, key=spec.rank_key, reverse=True)
        if spec.keep_most_recent:
            return items[-spec.capacity:] if len(items) > spec.capacity else items
        return items[: spec.capacity]

    def _existing_items(self, spec: CollectionSpec, document: Any) -> List[Any]:
        if not isinstance(document, dict):
            return []
        items = document.get(spec.items_field)
        return items if isinstance(items, list) else []

    def merge_collection(self, kind: CollectionKind, incoming: List[Any]) -> Dict[str, Any]:
        """Merge a batch into one collection and persist it with its summary.

        Raises on storage failure; callers wrap this at the store boundary.
        """
        spec = COLLECTION_SPECS[kind]
        now = self._now()
        with self._lock_for(spec.storage_key):
            document = self.backend.get(spec.storage_key)
            merged, new_count, accepted = self._merge_items(
                spec, self._existing_items(spec, document), incoming, now
            )
            items = self._rank_and_truncate(spec, merged)
            summary = spec.summarize(items)
            self.backend.set(
                spec.storage_key,
                {spec.items_field: items, **summary, "totalCount": len(items), "lastUpdated": now},
            )
        return {
            "newCount": new_count,
            "totalCount": len(items),
            "accepted": accepted,
            "summary": summary,
        }

    @_store_operation("save_feed_posts")
    def save_feed_posts(self, posts: Any) -> Dict[str, Any]:
        if not isinstance(posts, list) or not posts:
            return {"success": True, "count": 0, "message": "No posts to save"}
        result = self.merge_collection(CollectionKind.FEED_POSTS, posts)
        top_hits = len(result["summary"].get("topHits") or [])
        logger.info(
            "feed posts saved: %d new, %d total, %d top hits",
            result["newCount"],
            result["totalCount"],
            top_hits,
        )
        return {
            "success": True,
            "newCount": result["newCount"],
            "totalCount": result["totalCount"],
            "topHitsCount": top_hits,
        }

    @_store_operation("save_comments")
    def save_comments(self, comments: Any) -> Dict[str, Any]:
        if not isinstance(comments, list) or not comments:
            return {"success": True, "count": 0}
        result = self.merge_collection(CollectionKind.COMMENTS, comments)
        logger.info("comments saved: %d new, %d total", result["newCount"], result["totalCount"])
        return {"success": True, "newCount": result["newCount"], "totalCount": result["totalCount"]}

    @_store_operation("save_my_posts")
    def save_my_posts(self, posts: Any) -> Dict[str, Any]:
        if not isinstance(posts, list) or not posts:
            return {"success": True, "count": 0}
        result = self.merge_collection(CollectionKind.MY_POSTS, posts)
        logger.info("my posts saved: %d new, %d total", result["newCount"], result["totalCount"])
        return {"success": True, "newCount": result["newCount"], "totalCount": result["totalCount"]}

    @_store_operation("save_post_analytics")
    def save_post_analytics(self, data: Any) -> Dict[str, Any]:
        records = data if isinstance(data, list) else [data]
        spec = COLLECTION_SPECS[CollectionKind.POST_ANALYTICS]
        if not any(identity_of(spec, record) is not None for record in records):
            return {"success": False, "error": "No activity URN provided"}
        result = self.merge_collection(CollectionKind.POST_ANALYTICS, records)
        is_update = result["newCount"] < result["accepted"]
        logger.info(
            "post analytics saved: %d records, %d total", result["accepted"], result["totalCount"]
        )
        return {"success": True, "totalCount": result["totalCount"], "isUpdate": is_update}

    @_store_operation("save_trending")
    def save_trending(self, topics: Any) -> Dict[str, Any]:
        if not isinstance(topics, list) or not topics:
            return {"success": True, "count": 0}
        result = self.merge_collection(CollectionKind.TRENDING, topics)
        logger.info("trending saved: %d topics", result["totalCount"])
        return {"success": True, "count": result["totalCount"]}

    @_store_operation("save_followers")
    def save_followers(self, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict) or not data:
            return {"success": True, "count": 0}

        spec = COLLECTION_SPECS[CollectionKind.FOLLOWERS]
        now = self._now()
        with self._lock_for(spec.storage_key):
            document = self.backend.get(spec.storage_key)
            if not isinstance(document, dict):
                document = {"followers": [], "followerCount": 0, "history": []}

            count = data.get("followerCount")
            if as_number(count) > 0:
                history = list(document.get("history") or [])
                history.append({"count": count, "timestamp": now})
                document["history"] = history[-FOLLOWER_HISTORY_LIMIT:]
                document["followerCount"] = count

            incoming = data.get("followers")
            if isinstance(incoming, list) and incoming:
                merged, _, _ = self._merge_items(
                    spec, self._existing_items(spec, document), incoming, now
                )
                document["followers"] = self._rank_and_truncate(spec, merged)

            document["lastUpdated"] = now
            self.backend.set(spec.storage_key, document)

        followers = document.get("followers") or []
        logger.info(
            "followers saved: %d profiles, followerCount=%s", len(followers), document.get("followerCount")
        )
        return {"success": True, "count": len(followers), "followerCount": document.get("followerCount")}

    # ------------------------------------------------------------------
    # Read-side helpers
    # ------------------------------------------------------------------

    @_store_operation("stats")
    def stats(self) -> Dict[str, Any]:
        data = self.backend.get_all()
        captured = data.get(CAPTURED_APIS)
        captured = captured if isinstance(captured, list) else []
        connections = data.get(CONNECTIONS_DATA)
        connections = connections if isinstance(connections, dict) else {}
        connection_list = connections.get("connections")

        collections: Dict[str, int] = {}
        for spec in COLLECTION_SPECS.values():
            if spec.items_field is None:
                continue
            document = data.get(spec.storage_key)
            if isinstance(document, dict):
                collections[spec.storage_key] = len(self._existing_items(spec, document))

        last = captured[-1] if captured else None
        return {
            "success": True,
            "stats": {
                "apisCaptured": len(captured),
                "hasProfile": bool(data.get(PROFILE_DATA)),
                "hasAnalytics": bool(data.get(ANALYTICS_DATA)),
                "hasConnections": bool(connections),
                "connectionsCount": (len(connection_list) if isinstance(connection_list, list) else 0)
                or connections.get("fetchedConnections")
                or 0,
                "totalConnections": connections.get("totalConnections") or 0,
                "lastCapture": last.get("capturedAt") if isinstance(last, dict) else None,
                "collections": collections,
            },
        }

    @_store_operation("ensure_default_settings")
    def ensure_default_settings(self) -> Dict[str, Any]:
        with self._lock_for(SETTINGS):
            current = self.backend.get(SETTINGS)
            if current is None:
                self.backend.set(SETTINGS, dict(DEFAULT_SETTINGS))
                logger.info("default settings saved: %s", sorted(DEFAULT_SETTINGS))
                return {"success": True, "created": True}
        return {"success": True, "created": False}
