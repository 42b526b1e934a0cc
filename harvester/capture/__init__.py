"""Network capture subsystem (four-tier interception cascade + bridge)."""

from __future__ import annotations

from .bridge import CaptureBridge
from .bus import EventDispatcher, SharedEventBus
from .cascade import InterceptionCascade
from .classifier import classify
from .events import CAPTURE_EVENT, READY_EVENT, CapturedEvent, RequestDescriptor

__all__ = [
    "CAPTURE_EVENT",
    "READY_EVENT",
    "CaptureBridge",
    "CapturedEvent",
    "EventDispatcher",
    "InterceptionCascade",
    "RequestDescriptor",
    "SharedEventBus",
    "classify",
]
