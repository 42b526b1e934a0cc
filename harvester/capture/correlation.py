"""Token-keyed table of recent capturable requests for the decode-fallback tier."""
from __future__ import annotations

import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class PendingRequest:
    token: str
    url: str
    registered_at_ms: int


class CorrelationTable:
    """Bounded-TTL index of requests seen by the primary call tier.

    Entries are kept in registration order. ``purge`` drops anything older than
    the TTL; ``peek_recent`` shows the fallback tier the newest entry inside the
    recency window, which the tier discards once it has matched a decode.
    """

    def __init__(
        self,
        clock: Callable[[], int],
        *,
        ttl_ms: int = 10000,
        token_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._clock = clock
        self._ttl_ms = ttl_ms
        self._token_factory = token_factory
        self._entries: "OrderedDict[str, PendingRequest]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, url: str) -> str:
        token = self._token_factory()
        self._entries[token] = PendingRequest(token=token, url=url, registered_at_ms=self._clock())
        return token

    def purge(self) -> int:
        now = self._clock()
        stale = [token for token, entry in self._entries.items() if now - entry.registered_at_ms > self._ttl_ms]
        for token in stale:
            del self._entries[token]
        return len(stale)

    def peek_recent(self, window_ms: int) -> Optional[PendingRequest]:
        if not self._entries:
            return None
        newest = next(reversed(self._entries.values()))
        if self._clock() - newest.registered_at_ms < window_ms:
            return newest
        return None

    def discard(self, token: str) -> None:
        self._entries.pop(token, None)

    def clear(self) -> None:
        self._entries.clear()
