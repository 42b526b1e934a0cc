"""Shared runtime dependencies for extension routes."""
from __future__ import annotations

from typing import Optional

from harvester.api.services.message_router import MessageRouter
from harvester.capture.bridge import CaptureBridge
from harvester.capture.bus import SharedEventBus
from harvester.capture.cascade import InterceptionCascade
from harvester.config import get_capture_settings, get_storage_settings, get_voyager_config
from harvester.data.backend import KeyValueBackend, MemoryBackend, SqliteBackend
from harvester.data.consolidation import ConsolidationStore
from harvester.voyager.client import VoyagerClient

_backend: Optional[KeyValueBackend] = None
_store: Optional[ConsolidationStore] = None
_voyager_client: Optional[VoyagerClient] = None
_router: Optional[MessageRouter] = None
_bus: Optional[SharedEventBus] = None
_bridge: Optional[CaptureBridge] = None
_cascade: Optional[InterceptionCascade] = None


def get_backend() -> KeyValueBackend:
    global _backend
    if _backend is None:
        settings = get_storage_settings()
        if settings.backend == "memory":
            _backend = MemoryBackend()
        else:
            _backend = SqliteBackend(settings.path)
    return _backend


def get_store() -> ConsolidationStore:
    global _store
    if _store is None:
        _store = ConsolidationStore(get_backend())
        _store.ensure_default_settings()
    return _store


def get_voyager_client() -> VoyagerClient:
    global _voyager_client
    if _voyager_client is None:
        _voyager_client = VoyagerClient(get_voyager_config())
    return _voyager_client


def get_router() -> MessageRouter:
    global _router
    if _router is None:
        _router = MessageRouter(get_store(), get_voyager_client())
    return _router


def get_bus() -> SharedEventBus:
    """Shared bus with the capture bridge attached, forwarding into the router."""
    global _bus, _bridge
    if _bus is None:
        _bus = SharedEventBus()
        _bridge = CaptureBridge(_bus, get_router().handle).attach()
    return _bus


def get_bridge() -> CaptureBridge:
    get_bus()
    assert _bridge is not None
    return _bridge


def get_cascade() -> InterceptionCascade:
    global _cascade
    if _cascade is None:
        _cascade = InterceptionCascade(get_bus(), settings=get_capture_settings())
        _cascade.announce_ready()
    return _cascade


def reset_extension_runtime() -> None:
    """Test helper: clear singletons so each fixture gets fresh state."""
    global _backend, _store, _voyager_client, _router, _bus, _bridge, _cascade
    if _bridge is not None:
        _bridge.detach()
    _backend = None
    _store = None
    _voyager_client = None
    _router = None
    _bus = None
    _bridge = None
    _cascade = None
