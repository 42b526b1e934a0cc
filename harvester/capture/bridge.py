"""Privileged-side listener that turns capture events into store messages."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from harvester.capture import classifier, parsers
from harvester.capture.bus import SharedEventBus
from harvester.capture.events import CAPTURE_EVENT, READY_EVENT

logger = logging.getLogger(__name__)

SendMessage = Callable[[Dict[str, Any]], Dict[str, Any]]


class CaptureBridge:
    """Subscribe to the shared bus and forward each capture as protocol messages.

    Every event is logged to the generic capture log; feed, own-activity,
    comment and network captures are additionally parsed into records for
    their consolidated collections.
    """

    def __init__(self, bus: SharedEventBus, send_message: SendMessage) -> None:
        self.bus = bus
        self.send_message = send_message
        self.interceptor_version: Optional[str] = None
        self.forwarded = 0

    def attach(self) -> "CaptureBridge":
        self.bus.add_listener(CAPTURE_EVENT, self.on_capture)
        self.bus.add_listener(READY_EVENT, self.on_ready)
        return self

    def detach(self) -> None:
        self.bus.remove_listener(CAPTURE_EVENT, self.on_capture)
        self.bus.remove_listener(READY_EVENT, self.on_ready)

    def on_ready(self, detail: Dict[str, Any]) -> None:
        self.interceptor_version = detail.get("version")
        logger.info("interceptor ready: version=%s", self.interceptor_version)

    def on_capture(self, detail: Dict[str, Any]) -> None:
        for message in self.messages_for(detail):
            response = self.send_message(message)
            self.forwarded += 1
            if not response.get("success"):
                logger.warning("%s rejected: %s", message["type"], response.get("error"))

    def messages_for(self, detail: Dict[str, Any]) -> List[Dict[str, Any]]:
        payload = detail.get("data")
        category = detail.get("category")
        messages: List[Dict[str, Any]] = [
            {
                "type": "API_CAPTURED",
                "endpoint": detail.get("endpoint"),
                "method": detail.get("method"),
                "url": detail.get("url"),
                "data": payload,
            }
        ]

        if category == classifier.FEED:
            posts = parsers.extract_posts(payload)
            if posts:
                messages.append({"type": "SAVE_FEED_POSTS", "posts": posts})
        elif category == classifier.MY_POSTS:
            posts = parsers.extract_posts(payload)
            if posts:
                messages.append({"type": "SAVE_MY_POSTS", "posts": posts})
        elif category == classifier.COMMENTS:
            comments = parsers.extract_comments(payload)
            if comments:
                messages.append({"type": "SAVE_COMMENTS", "comments": comments})
        elif category == classifier.NETWORK:
            followers = parsers.extract_followers(payload, detail.get("queryId"))
            if followers:
                messages.append({"type": "SAVE_FOLLOWERS", "data": followers})
        return messages
