"""Direct-call Voyager client (cookie-authenticated, read-only)."""

from __future__ import annotations

from .client import VoyagerClient

__all__ = ["VoyagerClient"]
