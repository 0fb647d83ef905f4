"""Per-resource mutual exclusion for in-flight workflows.

Process-local only: two instances of the service polling the same account
can still work on the same merge request concurrently. Running more than one
instance needs a shared lease (e.g. in the dedup store), which this guard
does not attempt to provide.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Iterator

logger = logging.getLogger(__name__)


class ResourceGuard:
    def __init__(self):
        self._busy: set[str] = set()

    def is_busy(self, resource_id: str) -> bool:
        return resource_id in self._busy

    def try_acquire(self, resource_id: str) -> bool:
        """Claim resource_id; False when it is already being processed.

        Check and insert happen without an await in between, so on a single
        event loop no other task can interleave.
        """
        if resource_id in self._busy:
            return False
        self._busy.add(resource_id)
        return True

    def release(self, resource_id: str) -> None:
        self._busy.discard(resource_id)

    @contextlib.contextmanager
    def hold(self, resource_id: str) -> Iterator[None]:
        """Release on every exit path; the caller must have acquired already."""
        try:
            yield
        finally:
            self.release(resource_id)

    def __len__(self) -> int:
        return len(self._busy)

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._busy
