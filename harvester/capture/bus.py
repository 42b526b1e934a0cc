"""Shared event bus that carries capture events across the context boundary.

The page side publishes; the privileged side listens. Both hold a reference to
the same bus instance. Payloads are serialized to JSON on publish and each
listener receives its own decoded copy, so nothing published can alias state
owned by the publisher.
"""
from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, Dict, List

from harvester.capture.events import CAPTURE_EVENT, CapturedEvent

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]

# The decoder is captured at import time so a wrapped json.loads never sees
# the bus's own traffic.
_decode = json.loads


class SharedEventBus:
    """Named-event publish/subscribe medium visible to both contexts."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)

    def add_listener(self, event_name: str, listener: Listener) -> None:
        self._listeners[event_name].append(listener)

    def remove_listener(self, event_name: str, listener: Listener) -> None:
        try:
            self._listeners[event_name].remove(listener)
        except ValueError:
            pass

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, ()))

    def publish(self, event_name: str, detail: Dict[str, Any]) -> bool:
        """Deliver ``detail`` to every listener; return False if nothing was delivered.

        Serialization failures and listener exceptions stop at this boundary.
        """
        try:
            wire = json.dumps(detail, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            logger.debug("dropping %s: payload not serializable: %s", event_name, exc)
            return False

        delivered = False
        for listener in list(self._listeners.get(event_name, ())):
            try:
                listener(_decode(wire))
                delivered = True
            except Exception as exc:
                logger.debug("listener for %s raised: %s", event_name, exc, exc_info=True)
        return delivered


class EventDispatcher:
    """Publishes captured events on the shared bus, whichever tier produced them."""

    def __init__(self, bus: SharedEventBus, event_name: str = CAPTURE_EVENT) -> None:
        self.bus = bus
        self.event_name = event_name
        self.dispatched = 0

    def dispatch(self, event: CapturedEvent) -> None:
        try:
            detail = event.as_dict()
            if self.bus.publish(self.event_name, detail):
                self.dispatched += 1
            logger.debug(
                "dispatched %s %s via %s",
                event.category,
                event.query_identifier or event.pathname[:40],
                event.source_tier,
            )
        except Exception as exc:
            logger.debug("dispatch failed for %s: %s", event.url, exc)
