"""Poll loop and dispatcher.

Per tick: scan every source, drop items whose message was already handled,
drop items whose resource is busy, then run the rest concurrently. A busy
item is *not* marked, so it is picked up again on a later tick once the
resource is free.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from mentionbot_core.guard import ResourceGuard
from mentionbot_core.models import WorkItem
from mentionbot_core.scanner import MentionScanner

logger = logging.getLogger(__name__)


class Tracker(Protocol):
    def is_processed(self, message_id: str) -> bool: ...

    def mark_processed(self, message_id: str) -> None: ...


@dataclass
class WatchContext:
    """State shared by every watcher of one process."""

    tracker: Tracker
    guard: ResourceGuard


ItemHandler = Callable[[WorkItem], Awaitable[object]]


class Watcher:
    def __init__(
        self,
        name: str,
        scanner: MentionScanner,
        context: WatchContext,
        handler: ItemHandler,
        interval: float,
    ):
        self.name = name
        self.scanner = scanner
        self.context = context
        self._handler = handler
        self.interval = interval

    async def dispatch(self, items: list[WorkItem]) -> int:
        """Start a workflow for every eligible item and wait for all of them.

        Returns the number of items dispatched.
        """
        tracker, guard = self.context.tracker, self.context.guard
        started: list[WorkItem] = []
        for item in items:
            if tracker.is_processed(item.message_id):
                logger.debug("Skipping %s: already processed", item.message_id)
                continue
            if not guard.try_acquire(item.resource_id):
                logger.info("Skipping %s: %s is busy, will retry", item.message_id, item.resource_id)
                continue
            # Marked before the workflow starts so a crash mid-run is never redone.
            try:
                tracker.mark_processed(item.message_id)
            except Exception:
                guard.release(item.resource_id)
                logger.exception("Could not mark %s as processed; will retry", item.message_id)
                continue
            started.append(item)

        if not started:
            return 0
        results = await asyncio.gather(*(self._run(item) for item in started), return_exceptions=True)
        for item, result in zip(started, results):
            if isinstance(result, BaseException):
                logger.error("Workflow for %s failed: %r", item.message_id, result)
        return len(started)

    async def _run(self, item: WorkItem) -> None:
        with self.context.guard.hold(item.resource_id):
            await self._handler(item)

    async def tick(self) -> int:
        items = await self.scanner.scan()
        return await self.dispatch(items)

    async def _safe_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("%s poll failed", self.name)

    async def run_forever(self) -> None:
        """Start a tick every interval without waiting for the previous one.

        Long workflows must not delay detection on other resources; overlapping
        ticks are kept apart by the tracker and the guard.
        """
        logger.info("%s watcher started (every %gs)", self.name, self.interval)
        pending: set[asyncio.Task] = set()
        try:
            while True:
                task = asyncio.create_task(self._safe_tick())
                pending.add(task)
                task.add_done_callback(pending.discard)
                await asyncio.sleep(self.interval)
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)


async def run_watchers(watchers: list[Watcher]) -> None:
    """Run every watcher until cancelled."""
    await asyncio.gather(*(w.run_forever() for w in watchers))
