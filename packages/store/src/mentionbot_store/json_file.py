"""JsonFileStore: durable dedup markers that survive a process restart.

Used for Jira comments: Jira has no "mark as read" equivalent of GitLab todos,
so without a durable record every restart would re-answer every mention in
the search window.

Data format: a single JSON file (default ``.state/processed-comments.json``)
holding an array of ``{"id": str, "timestampMillis": int}`` objects.

Expiry is lazy: every read filters expired entries and, if anything expired,
rewrites the file with only the live ones.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from mentionbot_store.base import BaseStore
from mentionbot_store.models import ProcessedMarker, StoreStats

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = ".state/processed-comments.json"


class JsonFileStore(BaseStore):
    """Stores processed markers in a JSON array on local disk.

    The whole document is read and rewritten per operation, fine for the
    hundreds to low thousands of markers a 7-day window holds. For larger
    volumes switch to SQLiteStore.
    """

    def __init__(self, path: str = DEFAULT_STATE_PATH, max_age_ms: int | None = None, clock=None):
        super().__init__(max_age_ms=max_age_ms, clock=clock)
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def is_processed(self, message_id: str) -> bool:
        return message_id in self._live_ids()

    def mark_processed(self, message_id: str) -> None:
        markers = self._read_markers()
        now = self.now_ms()
        for marker in markers:
            if marker.message_id == message_id:
                marker.timestamp_ms = now
                break
        else:
            markers.append(ProcessedMarker(message_id=message_id, timestamp_ms=now))
        self._write_markers(markers)
        logger.debug("Marked %s as processed", message_id)

    def sweep(self, max_age_ms: int | None = None) -> int:
        threshold = self.max_age_ms if max_age_ms is None else max_age_ms
        markers = self._read_markers()
        now = self.now_ms()
        kept = [m for m in markers if not m.is_expired(now, threshold)]
        removed = len(markers) - len(kept)
        if removed > 0:
            self._write_markers(kept)
            logger.info("Swept %d expired marker(s) from %s", removed, self._path)
        return removed

    def stats(self) -> StoreStats:
        markers = self._read_markers()
        now = self.now_ms()
        unexpired = sum(1 for m in markers if not m.is_expired(now, self.max_age_ms))
        return StoreStats(total=len(markers), unexpired=unexpired)

    def _live_ids(self) -> set[str]:
        """Return unexpired ids, compacting the file when anything has expired."""
        markers = self._read_markers()
        now = self.now_ms()
        live = [m for m in markers if not m.is_expired(now, self.max_age_ms)]
        if len(live) != len(markers):
            logger.debug("Dropped %d expired marker(s), %d remain", len(markers) - len(live), len(live))
            self._write_markers(live)
        return {m.message_id for m in live}

    def _read_markers(self) -> list[ProcessedMarker]:
        """Read the current JSON array from disk, or return [] when missing or unreadable."""
        if not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8")) or []
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not read %s, starting fresh: %s", self._path, e)
            return []
        return [self._from_dict(d) for d in raw if isinstance(d, dict) and d.get("id")]

    def _write_markers(self, markers: list[ProcessedMarker]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps([self._to_dict(m) for m in markers], indent=2), encoding="utf-8")
        except OSError as e:
            logger.error("Could not write %s: %s", self._path, e)

    @staticmethod
    def _to_dict(marker: ProcessedMarker) -> dict:
        return {"id": marker.message_id, "timestampMillis": marker.timestamp_ms}

    @staticmethod
    def _from_dict(d: dict) -> ProcessedMarker:
        return ProcessedMarker(message_id=str(d["id"]), timestamp_ms=int(d.get("timestampMillis", 0)))
