"""In-memory store.

Enough for GitLab-only deployments: todos are marked done as soon as they
are dispatched, so a restart does not rediscover them and the markers only
need to live as long as the process. Jira has no such signal and needs a
durable backend.
"""

from __future__ import annotations

from mentionbot_store.base import BaseStore
from mentionbot_store.models import StoreStats


class MemoryStore(BaseStore):
    """Process-lifetime marker set; nothing survives a restart."""

    def __init__(self, max_age_ms: int | None = None, clock=None):
        super().__init__(max_age_ms=max_age_ms, clock=clock)
        self._markers: dict[str, int] = {}

    def is_processed(self, message_id: str) -> bool:
        ts = self._markers.get(message_id)
        if ts is None:
            return False
        return self.now_ms() - ts <= self.max_age_ms

    def mark_processed(self, message_id: str) -> None:
        self._markers[message_id] = self.now_ms()

    def sweep(self, max_age_ms: int | None = None) -> int:
        threshold = self.max_age_ms if max_age_ms is None else max_age_ms
        now = self.now_ms()
        expired = [k for k, ts in self._markers.items() if now - ts > threshold]
        for key in expired:
            del self._markers[key]
        return len(expired)

    def stats(self) -> StoreStats:
        now = self.now_ms()
        unexpired = sum(1 for ts in self._markers.values() if now - ts <= self.max_age_ms)
        return StoreStats(total=len(self._markers), unexpired=unexpired)
