"""Derived summaries recomputed from a collection on every write.

Each function takes the already-ranked, already-truncated record list and
returns the top-level fields that sit next to it in the persisted document.
Averages are rounded half-up to whole numbers; engagement rates keep two
decimals.
"""
from __future__ import annotations

import math
from collections import Counter
from typing import Any, Dict, List, Optional

FEED_TOP_HIT_THRESHOLD = 50
FEED_TOP_HITS_LIMIT = 20
FEED_TOP_HASHTAGS_LIMIT = 20
TOP_COMMENT_MIN_LIKES = 5
TOP_COMMENTS_LIMIT = 50


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def as_number(value: Any) -> float:
    """Numeric view of a field; strings like "4.2" parse, anything else is 0.

    Non-finite values (NaN, Infinity, "inf") also read as 0.
    """
    if isinstance(value, bool):
        return 0.0
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        else:
            number = float(str(value).strip().rstrip("%"))
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def nested(record: Dict[str, Any], group: str, name: str) -> float:
    """Read ``record[group][name]``, falling back to a top-level ``record[name]``."""
    bucket = record.get(group)
    if isinstance(bucket, dict) and bucket.get(name) is not None:
        return as_number(bucket.get(name))
    return as_number(record.get(name))


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _average(values: List[float]) -> int:
    return round_half_up(_mean(values)) if values else 0


def _rate(values: List[float]) -> float:
    return round(_mean(values), 2) if values else 0.0


def summarize_feed_posts(posts: List[Dict[str, Any]]) -> Dict[str, Any]:
    top_hits = [p for p in posts if as_number(p.get("engagementScore")) > FEED_TOP_HIT_THRESHOLD]
    return {"topHits": top_hits[:FEED_TOP_HITS_LIMIT], "stats": feed_stats(posts)}


def feed_stats(posts: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not posts:
        return {"avgEngagement": 0, "avgLikes": 0, "avgComments": 0, "topHashtags": [], "postTypes": {}}

    hashtags: Counter = Counter()
    post_types: Dict[str, int] = {}
    for post in posts:
        tags = post.get("hashtags") or []
        if isinstance(tags, list):
            hashtags.update(str(tag) for tag in tags)
        post_type = post.get("type") or "text"
        post_types[post_type] = post_types.get(post_type, 0) + 1

    return {
        "avgEngagement": _average([as_number(p.get("engagementScore")) for p in posts]),
        "avgLikes": _average([nested(p, "engagement", "likes") for p in posts]),
        "avgComments": _average([nested(p, "engagement", "comments") for p in posts]),
        # Counter.most_common keeps first-seen order among equal counts.
        "topHashtags": [
            {"tag": tag, "count": count} for tag, count in hashtags.most_common(FEED_TOP_HASHTAGS_LIMIT)
        ],
        "postTypes": post_types,
    }


def summarize_comments(comments: List[Dict[str, Any]]) -> Dict[str, Any]:
    top = [c for c in comments if as_number(c.get("likes")) >= TOP_COMMENT_MIN_LIKES][:TOP_COMMENTS_LIMIT]
    return {
        "topComments": top,
        "stats": {
            "avgLength": _average([float(len(str(c.get("text") or ""))) for c in comments]),
            "avgLikes": _average([as_number(c.get("likes")) for c in comments]),
            "topCommentsCount": len(top),
        },
    }


def summarize_my_posts(posts: List[Dict[str, Any]]) -> Dict[str, Any]:
    impressions = [nested(p, "analytics", "impressions") for p in posts]
    likes = [nested(p, "engagement", "likes") for p in posts]
    comments = [nested(p, "engagement", "comments") for p in posts]
    best: Optional[Dict[str, Any]] = posts[0] if posts else None
    return {
        "bestPost": best,
        "stats": {
            "totalImpressions": round_half_up(sum(impressions)),
            "totalLikes": round_half_up(sum(likes)),
            "totalComments": round_half_up(sum(comments)),
            "avgImpressions": _average(impressions),
            "avgLikes": _average(likes),
            "avgComments": _average(comments),
            "avgEngagementRate": _rate([nested(p, "analytics", "engagementRate") for p in posts]),
        },
    }


def summarize_post_analytics(posts: List[Dict[str, Any]]) -> Dict[str, Any]:
    impressions = [as_number(p.get("impressions")) for p in posts]
    reactions = [nested(p, "engagement", "reactions") for p in posts]
    comments = [nested(p, "engagement", "comments") for p in posts]
    return {
        "stats": {
            "totalImpressions": round_half_up(sum(impressions)),
            "totalReactions": round_half_up(sum(reactions)),
            "totalComments": round_half_up(sum(comments)),
            "avgImpressions": _average(impressions),
            "avgReactions": _average(reactions),
            "avgEngagementRate": _rate([as_number(p.get("engagementRate")) for p in posts]),
        }
    }


def summarize_nothing(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {}
