"""Per-region polling loop: recognize, compare, report.

One RegionWatcher runs as one asyncio task for as long as its region is
being monitored. Each tick it obtains text through the RecognitionCache,
normalizes it and compares it with the last accepted text. Only a non-empty
text that is not similar to the previous one is reported, which filters
both OCR jitter and regions that briefly go blank.

States::

    IDLE -> POLLING -> {POLLING, BACKOFF} -> STOPPED

Capture/recognition failures never end the loop: they are reported as
ErrorEvents and followed by a fixed backoff. Only stop() or task
cancellation ends it.
"""

from __future__ import annotations

import asyncio
import enum
import logging

from region_monitor.models import (
    CaptureFn,
    ChangeCallback,
    ChangeEvent,
    ErrorCallback,
    ErrorEvent,
    Geometry,
    MonitoredRegion,
    RecognizeFn,
    RegionSnapshot,
    Speaker,
)
from region_monitor.recognition_cache import RecognitionCache
from region_monitor.similarity import is_similar, normalize

logger = logging.getLogger(__name__)


DEFAULT_BACKOFF_SECONDS = 1.0


class WatcherState(enum.Enum):
    IDLE = "idle"
    POLLING = "polling"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class RegionWatcher:
    def __init__(
        self,
        region: MonitoredRegion,
        cache: RecognitionCache,
        capture_fn: CaptureFn,
        recognize_fn: RecognizeFn,
        on_change: ChangeCallback,
        on_error: ErrorCallback,
        speaker: Speaker | None = None,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
    ) -> None:
        self._region = region
        self._cache = cache
        self._capture_fn = capture_fn
        self._recognize_fn = recognize_fn
        self._on_change = on_change
        self._on_error = on_error
        self._speaker = speaker
        self._backoff_seconds = backoff_seconds

        self._state = WatcherState.IDLE
        self._last_accepted: str = ""
        self._last_geometry: Geometry | None = None
        self._stop_event = asyncio.Event()
        self._tick_count = 0

    @property
    def region(self) -> MonitoredRegion:
        return self._region

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def last_accepted(self) -> str:
        return self._last_accepted

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Request a cooperative stop; any pending sleep returns at once."""
        self._stop_event.set()

    async def run(self) -> None:
        """Main loop: poll -> compare -> publish, until stopped or cancelled."""
        self._last_accepted = ""
        self._last_geometry = None
        self._state = WatcherState.POLLING
        logger.info("Watcher started: %s", self._region.name)

        try:
            while not self._stop_event.is_set():
                snap = self._region.snapshot()
                interval = snap.interval_ms / 1000

                if not snap.is_active:
                    await self._sleep(interval)
                    continue

                self._tick_count += 1
                try:
                    text = await self._recognize(snap)
                except Exception as e:
                    await self._backoff(snap, e)
                    continue

                self._accept(text, snap)
                await self._sleep(interval)
        finally:
            self._state = WatcherState.STOPPED
            self._region.is_monitoring = False
            logger.info(
                "Watcher stopped: %s after %d ticks", self._region.name, self._tick_count,
            )

    async def _recognize(self, snap: RegionSnapshot) -> str:
        geometry = snap.geometry
        if self._last_geometry is not None and geometry != self._last_geometry:
            # New area: forget the old text so the first read counts as a change.
            logger.info(
                "Region %s moved %s -> %s, resetting change detection",
                snap.name, self._last_geometry.as_key(), geometry.as_key(),
            )
            self._cache.invalidate(self._last_geometry.as_key())
            self._last_accepted = ""
        self._last_geometry = geometry

        return await self._cache.get_or_recognize(
            geometry.as_key(),
            lambda: self._capture_fn(geometry),
            self._recognize_fn,
        )

    def _accept(self, text: str, snap: RegionSnapshot) -> None:
        """Publish text if it differs meaningfully from the last accepted one."""
        normalized = normalize(text)
        if not normalized or is_similar(normalized, self._last_accepted):
            return
        if self._stop_event.is_set():
            return

        self._last_accepted = normalized
        self._region.publish_text(text)
        logger.debug("Region %s changed: %r", snap.name, normalized[:80])

        try:
            self._on_change(ChangeEvent(
                region_id=snap.id,
                new_text=text,
                region_name=snap.name,
            ))
        except Exception:
            logger.exception("Change callback failed for region %s", snap.name)

        if snap.auto_read and self._speaker is not None:
            try:
                self._speaker.speak(text, snap.reading_speed)
            except Exception:
                logger.exception("Speech request failed for region %s", snap.name)

    async def _backoff(self, snap: RegionSnapshot, error: Exception) -> None:
        self._state = WatcherState.BACKOFF
        logger.warning("Region %s tick failed: %s", snap.name, error)
        if not self._stop_event.is_set():
            try:
                self._on_error(ErrorEvent(
                    region_id=snap.id,
                    error=error,
                    region_name=snap.name,
                ))
            except Exception:
                logger.exception("Error callback failed for region %s", snap.name)
        await self._sleep(self._backoff_seconds)
        self._state = WatcherState.POLLING

    async def _sleep(self, seconds: float) -> None:
        """Sleep that returns early when stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
