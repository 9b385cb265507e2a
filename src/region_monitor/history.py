"""Bounded, newest-first history of accepted text changes."""

from __future__ import annotations

import logging
import os
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime

from region_monitor.models import ChangeEvent

logger = logging.getLogger(__name__)


DEFAULT_MAX_HISTORY = 100


@dataclass(frozen=True)
class HistoryEntry:
    timestamp: datetime
    region_name: str
    text: str
    was_read: bool

    @property
    def formatted_time(self) -> str:
        return self.timestamp.strftime("%H:%M:%S")


class ChangeHistory:
    def __init__(self, max_size: int = DEFAULT_MAX_HISTORY) -> None:
        # appendleft keeps newest first; maxlen drops the oldest
        self._entries: deque[HistoryEntry] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def record(self, event: ChangeEvent, was_read: bool = False) -> HistoryEntry:
        entry = HistoryEntry(
            timestamp=datetime.fromtimestamp(event.timestamp),
            region_name=event.region_name,
            text=event.new_text,
            was_read=was_read,
        )
        with self._lock:
            self._entries.appendleft(entry)
        return entry

    def entries(self) -> list[HistoryEntry]:
        """Snapshot of the history, newest first."""
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def export_text(self, path: str) -> int:
        """Write the history oldest-first as ``[HH:MM:SS] region: text`` lines.

        Returns the number of entries written.
        """
        entries = self.entries()
        entries.reverse()

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            for entry in entries:
                text = " ".join(entry.text.split())
                f.write(f"[{entry.formatted_time}] {entry.region_name}: {text}\n")

        logger.info("Exported %d history entries to %s", len(entries), path)
        return len(entries)
