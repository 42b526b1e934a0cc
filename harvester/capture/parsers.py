"""Best-effort extraction of store records from normalized Voyager payloads.

Normalized responses put their entities in a flat ``included`` array and link
them by URN. Nothing here raises on odd input: an entity that does not have
the expected shape is skipped.
"""
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

_ACTIVITY_URN_RE = re.compile(r"urn:li:(?:activity|ugcPost|share):\d+")
_HASHTAG_RE = re.compile(r"#(\w+)")

CONTENT_TYPES = (
    ("imageComponent", "image"),
    ("linkedInVideoComponent", "video"),
    ("articleComponent", "article"),
    ("documentComponent", "document"),
)


def iter_entities(payload: Any) -> Iterable[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    included = payload.get("included")
    if not isinstance(included, list):
        return []
    return [item for item in included if isinstance(item, dict)]


def entity_type(entity: Dict[str, Any]) -> str:
    return str(entity.get("$type") or "")


def activity_urn(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if not candidate:
            continue
        match = _ACTIVITY_URN_RE.search(str(candidate))
        if match:
            return match.group(0)
    return None


def _text(value: Any) -> str:
    """Voyager wraps most strings as {"text": ...}, sometimes twice."""
    while isinstance(value, dict):
        value = value.get("text")
    return str(value) if value is not None else ""


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _social_counts(entities: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, int]]:
    counts: Dict[str, Dict[str, int]] = {}
    for entity in entities:
        if "SocialActivityCounts" not in entity_type(entity):
            continue
        key = activity_urn(entity.get("urn"), entity.get("entityUrn")) or entity.get("urn")
        if not key:
            continue
        counts[str(key)] = {
            "likes": _int(entity.get("numLikes")),
            "comments": _int(entity.get("numComments")),
            "shares": _int(entity.get("numShares")),
        }
    return counts


def engagement_score(likes: int, comments: int, shares: int) -> int:
    return likes + 2 * comments + 3 * shares


def _post_type(content: Any) -> str:
    if isinstance(content, dict):
        for component, label in CONTENT_TYPES:
            if content.get(component):
                return label
    return "text"


def extract_posts(payload: Any) -> List[Dict[str, Any]]:
    """Feed/activity ``Update`` entities joined with their social counts."""
    entities = list(iter_entities(payload))
    counts = _social_counts(entities)
    posts: List[Dict[str, Any]] = []
    seen: set[str] = set()
    for entity in entities:
        if not entity_type(entity).endswith(".Update"):
            continue
        metadata = entity.get("metadata") if isinstance(entity.get("metadata"), dict) else {}
        urn = activity_urn(metadata.get("backendUrn"), entity.get("entityUrn"), entity.get("urn"))
        if not urn or urn in seen:
            continue
        seen.add(urn)
        actor = entity.get("actor") if isinstance(entity.get("actor"), dict) else {}
        text = _text(entity.get("commentary"))
        engagement = counts.get(urn, {"likes": 0, "comments": 0, "shares": 0})
        posts.append(
            {
                "urn": urn,
                "author": {
                    "name": _text(actor.get("name")) or None,
                    "headline": _text(actor.get("description")) or None,
                },
                "text": text,
                "hashtags": _HASHTAG_RE.findall(text),
                "type": _post_type(entity.get("content")),
                "url": f"https://www.linkedin.com/feed/update/{urn}/",
                "engagement": dict(engagement),
                "engagementScore": engagement_score(
                    engagement["likes"], engagement["comments"], engagement["shares"]
                ),
            }
        )
    return posts


def extract_comments(payload: Any) -> List[Dict[str, Any]]:
    entities = list(iter_entities(payload))
    counts: Dict[str, int] = {}
    for entity in entities:
        if "SocialActivityCounts" in entity_type(entity) and entity.get("urn"):
            counts[str(entity["urn"])] = _int(entity.get("numLikes"))

    comments: List[Dict[str, Any]] = []
    for entity in entities:
        if not entity_type(entity).endswith(".Comment"):
            continue
        urn = entity.get("urn") or entity.get("entityUrn")
        if not urn:
            continue
        commenter = entity.get("commenter") if isinstance(entity.get("commenter"), dict) else {}
        comments.append(
            {
                "urn": str(urn),
                "activityUrn": activity_urn(entity.get("entityUrn"), urn),
                "text": _text(entity.get("commentary")),
                "author": _text(commenter.get("title")) or None,
                "likes": counts.get(str(urn), 0),
            }
        )
    return comments


def _find_follower_count(value: Any, depth: int = 0) -> Optional[int]:
    if depth > 6:
        return None
    if isinstance(value, dict):
        for key in ("followerCount", "followersCount"):
            count = value.get(key)
            if isinstance(count, int) and not isinstance(count, bool) and count > 0:
                return count
        children: Iterable[Any] = value.values()
    elif isinstance(value, list):
        children = value
    else:
        return None
    for child in children:
        found = _find_follower_count(child, depth + 1)
        if found is not None:
            return found
    return None


def extract_followers(payload: Any, query_id: Optional[str] = None) -> Dict[str, Any]:
    """Follower count anywhere in the payload, plus profiles from follower queries."""
    result: Dict[str, Any] = {}
    count = _find_follower_count(payload)
    if count is not None:
        result["followerCount"] = count
    if query_id and "followers" in query_id.lower():
        followers = []
        for entity in iter_entities(payload):
            if entity_type(entity).endswith(".Profile") and entity.get("entityUrn"):
                followers.append(
                    {
                        "entityUrn": entity["entityUrn"],
                        "firstName": entity.get("firstName"),
                        "lastName": entity.get("lastName"),
                        "headline": _text(entity.get("headline")) or None,
                        "publicIdentifier": entity.get("publicIdentifier"),
                    }
                )
        if followers:
            result["followers"] = followers
    return result
