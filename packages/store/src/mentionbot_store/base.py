"""Abstract dedup store interface.

The watcher depends on BaseStore, not on a concrete backend, so the
in-memory, JSON file and SQLite backends are swappable without touching the
orchestration code.

Every backend marks a message *before* its workflow starts, so the duplicate
window is bounded by one poll tick rather than by the workflow duration.
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Callable

from mentionbot_store.models import StoreStats

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
DEFAULT_MAX_AGE_DAYS = 7
MAX_AGE_ENV_VAR = "MENTIONBOT_STATE_MAX_AGE_DAYS"


def default_max_age_ms() -> int:
    """Return the marker TTL, honouring MENTIONBOT_STATE_MAX_AGE_DAYS when it parses."""
    raw = os.environ.get(MAX_AGE_ENV_VAR)
    if raw:
        try:
            return int(raw) * DAY_MS
        except ValueError:
            logger.warning("Ignoring non-numeric %s=%r", MAX_AGE_ENV_VAR, raw)
    return DEFAULT_MAX_AGE_DAYS * DAY_MS


def _now_ms() -> int:
    return int(time.time() * 1000)


class BaseStore(ABC):
    """Pluggable persistence for processed-message markers.

    ``clock`` returns epoch milliseconds; tests inject a fixed clock to
    exercise expiry without sleeping.
    """

    def __init__(self, max_age_ms: int | None = None, clock: Callable[[], int] | None = None):
        self.max_age_ms = max_age_ms if max_age_ms is not None else default_max_age_ms()
        self._clock = clock or _now_ms

    def now_ms(self) -> int:
        return self._clock()

    @abstractmethod
    def is_processed(self, message_id: str) -> bool:
        """Return True while a live (unexpired) marker exists for message_id."""

    @abstractmethod
    def mark_processed(self, message_id: str) -> None:
        """Record message_id as dispatched now. Re-marking refreshes the timestamp."""

    @abstractmethod
    def sweep(self, max_age_ms: int | None = None) -> int:
        """Drop markers older than max_age_ms (default: the store's TTL) and return how many."""

    @abstractmethod
    def stats(self) -> StoreStats:
        """Return total and unexpired marker counts."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional; subclasses that need cleanup should override this.
        """
