"""Dedup store data models.

Decoupled from mentionbot_core so the store layer can be used (and tested)
without pulling in the platform clients or the agent session machinery.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ProcessedMarker:
    """One inbound message that has already triggered a workflow."""

    message_id: str
    timestamp_ms: int  # epoch milliseconds, refreshed on re-mark

    def is_expired(self, now_ms: int, max_age_ms: int) -> bool:
        return now_ms - self.timestamp_ms > max_age_ms


@dataclass
class StoreStats:
    total: int
    unexpired: int
