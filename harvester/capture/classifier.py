"""URL filtering and category classification for captured Voyager traffic.

Both rule tables are ordered: the first category whose patterns match wins,
so table order is the tie-break. Matching is case-insensitive substring
containment. Everything here is a pure function of its inputs.
"""
from __future__ import annotations

import re
from typing import Optional, Tuple
from urllib.parse import urlsplit

CAPTURE_PATTERNS: Tuple[str, ...] = ("/voyager/api/", "/voyagerMessagingGraphQL/", "/li/track")

FEED = "feed"
MY_POSTS = "myPosts"
COMMENTS = "comments"
REACTIONS = "reactions"
MESSAGING = "messaging"
PROFILE = "profile"
NETWORK = "network"
ANALYTICS = "analytics"
OTHER = "other"

QUERY_ID_CATEGORIES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (FEED, ("voyagerFeedDashMainFeed", "voyagerFeedDashFeedUpdate", "voyagerFeedDashRecommendedFeed")),
    (MY_POSTS, ("voyagerFeedDashProfileUpdates", "voyagerFeedDashMemberActivityFeed")),
    (COMMENTS, ("voyagerSocialDashComments", "voyagerSocialDashReplies")),
    (REACTIONS, ("voyagerSocialDashReactions", "voyagerSocialDashReactors")),
    (MESSAGING, ("messengerMailboxCounts", "messengerConversations", "messengerMessages")),
    (PROFILE, ("voyagerIdentityDashProfiles", "voyagerIdentityDashProfileCards")),
    (NETWORK, ("voyagerRelationshipsDashConnections", "voyagerRelationshipsDashFollowers")),
    (ANALYTICS, ("voyagerCreatorDashAnalytics", "voyagerContentDashAnalytics", "voyagerIdentityDashWvmp")),
)

URL_CATEGORIES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (FEED, ("feed",)),
    (MESSAGING, ("messaging",)),
    (PROFILE, ("identity", "profile")),
    (NETWORK, ("relationship", "connection")),
    (ANALYTICS, ("analytics", "wvmp")),
)

_QUERY_ID_RE = re.compile(r"queryId=([a-zA-Z]+)")


def should_capture(url: object) -> bool:
    text = str(url)
    return any(pattern in text for pattern in CAPTURE_PATTERNS)


def extract_query_id(url: object) -> Optional[str]:
    match = _QUERY_ID_RE.search(str(url))
    return match.group(1) if match else None


def _first_match(text: str, table: Tuple[Tuple[str, Tuple[str, ...]], ...]) -> Optional[str]:
    lowered = text.lower()
    for category, patterns in table:
        if any(pattern.lower() in lowered for pattern in patterns):
            return category
    return None


def classify(url: object) -> str:
    """Return the semantic category of a Voyager URL (default ``other``)."""
    query_id = extract_query_id(url)
    if query_id:
        category = _first_match(query_id, QUERY_ID_CATEGORIES)
        if category:
            return category
    return _first_match(str(url), URL_CATEGORIES) or OTHER


def is_graph_like(url: object) -> bool:
    return "/graphql" in str(url)


def get_pathname(url: object) -> str:
    """Path component of ``url``; relative URLs resolve against the site root."""
    text = str(url)
    try:
        path = urlsplit(text).path
    except ValueError:
        return text
    if not path:
        return "/"
    return path if path.startswith("/") else "/" + path
