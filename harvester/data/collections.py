"""Storage keys and the per-collection merge strategy table.

Every record type shares one envelope (identity field + ``firstCaptured`` /
``lastUpdated`` stamps); what differs per type is captured in a
``CollectionSpec`` looked up by ``CollectionKind``.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from harvester.data import summaries
from harvester.data.summaries import as_number, nested

# Persistence namespace (logical key -> one JSON document).
PROFILE_DATA = "linkedin_profile"
ANALYTICS_DATA = "linkedin_analytics"
POST_ANALYTICS_DATA = "linkedin_post_analytics"
AUDIENCE_DATA = "linkedin_audience"
CONNECTIONS_DATA = "linkedin_connections"
POSTS_DATA = "linkedin_posts"
FEED_POSTS = "linkedin_feed_posts"
MY_POSTS = "linkedin_my_posts"
COMMENTS = "linkedin_comments"
FOLLOWERS = "linkedin_followers"
TRENDING = "linkedin_trending"
CAPTURED_APIS = "captured_apis"
SETTINGS = "extension_settings"

FOLLOWER_HISTORY_LIMIT = 100

DEFAULT_SETTINGS: Dict[str, Any] = {
    "autoCapture": True,
    "captureProfiles": True,
    "captureAnalytics": True,
    "captureConnections": True,
    "maxStoredApis": 1000,
}


class CollectionKind(Enum):
    FEED_POSTS = "feed_posts"
    COMMENTS = "comments"
    MY_POSTS = "my_posts"
    POST_ANALYTICS = "post_analytics"
    TRENDING = "trending"
    FOLLOWERS = "followers"
    CAPTURED_APIS = "captured_apis"


class MergePolicy(Enum):
    SHALLOW = "shallow"  # incoming fields win, existing-only fields survive
    REPLACE = "replace"  # incoming record replaces the existing one wholly
    APPEND = "append"  # no identity; every item is appended


RankKey = Callable[[Dict[str, Any]], float]
Summarizer = Callable[[List[Dict[str, Any]]], Dict[str, Any]]


@dataclass(frozen=True)
class CollectionSpec:
    kind: CollectionKind
    storage_key: str
    items_field: Optional[str]  # None: the document is the bare list
    identity_field: Optional[str]
    capacity: int
    merge: MergePolicy
    rank_key: Optional[RankKey] = None
    summarize: Summarizer = summaries.summarize_nothing
    stamp_field: Optional[str] = None  # REPLACE merges stamp this instead of the envelope
    keep_most_recent: bool = False  # truncate from the front instead of the back


def my_post_rank(record: Dict[str, Any]) -> float:
    return nested(record, "engagement", "likes") + 3 * nested(record, "engagement", "comments")


COLLECTION_SPECS: Dict[CollectionKind, CollectionSpec] = {
    CollectionKind.FEED_POSTS: CollectionSpec(
        kind=CollectionKind.FEED_POSTS,
        storage_key=FEED_POSTS,
        items_field="posts",
        identity_field="urn",
        capacity=500,
        merge=MergePolicy.SHALLOW,
        rank_key=lambda record: as_number(record.get("engagementScore")),
        summarize=summaries.summarize_feed_posts,
    ),
    CollectionKind.COMMENTS: CollectionSpec(
        kind=CollectionKind.COMMENTS,
        storage_key=COMMENTS,
        items_field="comments",
        identity_field="urn",
        capacity=1000,
        merge=MergePolicy.SHALLOW,
        rank_key=lambda record: as_number(record.get("likes")),
        summarize=summaries.summarize_comments,
    ),
    CollectionKind.MY_POSTS: CollectionSpec(
        kind=CollectionKind.MY_POSTS,
        storage_key=MY_POSTS,
        items_field="posts",
        identity_field="urn",
        capacity=200,
        merge=MergePolicy.SHALLOW,
        rank_key=my_post_rank,
        summarize=summaries.summarize_my_posts,
    ),
    CollectionKind.POST_ANALYTICS: CollectionSpec(
        kind=CollectionKind.POST_ANALYTICS,
        storage_key=POST_ANALYTICS_DATA,
        items_field="posts",
        identity_field="activityUrn",
        capacity=100,
        merge=MergePolicy.SHALLOW,
        rank_key=lambda record: as_number(record.get("impressions")),
        summarize=summaries.summarize_post_analytics,
    ),
    CollectionKind.TRENDING: CollectionSpec(
        kind=CollectionKind.TRENDING,
        storage_key=TRENDING,
        items_field="topics",
        identity_field="topic",
        capacity=200,
        merge=MergePolicy.REPLACE,
        stamp_field="lastSeen",
        keep_most_recent=True,
    ),
    CollectionKind.FOLLOWERS: CollectionSpec(
        kind=CollectionKind.FOLLOWERS,
        storage_key=FOLLOWERS,
        items_field="followers",
        identity_field="entityUrn",
        capacity=500,
        merge=MergePolicy.REPLACE,
    ),
    CollectionKind.CAPTURED_APIS: CollectionSpec(
        kind=CollectionKind.CAPTURED_APIS,
        storage_key=CAPTURED_APIS,
        items_field=None,
        identity_field=None,
        capacity=1000,
        merge=MergePolicy.APPEND,
        stamp_field="capturedAt",
        keep_most_recent=True,
    ),
}

SPECS_BY_KEY: Dict[str, CollectionSpec] = {spec.storage_key: spec for spec in COLLECTION_SPECS.values()}


def identity_of(spec: CollectionSpec, record: Any) -> Optional[str]:
    if not isinstance(record, dict) or not spec.identity_field:
        return None
    value = record.get(spec.identity_field)
    if value is None or value == "":
        return None
    return str(value)
