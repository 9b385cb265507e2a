"""Owns the set of running RegionWatchers and fans out their events.

Subscribers are plain callables kept in observer lists and called
synchronously from the watcher task, so tests can observe events
deterministically. The Qt host subscribes with queued signals, so delivery
to the GUI thread costs the watcher only a signal emit.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable

from region_monitor.models import (
    CaptureFn,
    ChangeCallback,
    ChangeEvent,
    ErrorCallback,
    ErrorEvent,
    MonitoredRegion,
    RecognizeFn,
    Speaker,
)
from region_monitor.recognition_cache import RecognitionCache
from region_monitor.region_watcher import DEFAULT_BACKOFF_SECONDS, RegionWatcher

logger = logging.getLogger(__name__)


@dataclass
class WatchSession:
    region: MonitoredRegion
    watcher: RegionWatcher
    task: asyncio.Task
    number: int


class MonitorCoordinator:
    def __init__(
        self,
        cache: RecognitionCache,
        capture_fn: CaptureFn,
        recognize_fn: RecognizeFn,
        speaker: Speaker | None = None,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
    ) -> None:
        self._cache = cache
        self._capture_fn = capture_fn
        self._recognize_fn = recognize_fn
        self._speaker = speaker
        self._backoff_seconds = backoff_seconds

        self._sessions: dict[str, WatchSession] = {}
        self._sessions_lock = threading.Lock()
        self._start_lock = asyncio.Lock()
        self._session_numbers = itertools.count(1)

        self._change_subscribers: list[ChangeCallback] = []
        self._error_subscribers: list[ErrorCallback] = []
        self._subscribers_lock = threading.Lock()

    async def __aenter__(self) -> MonitorCoordinator:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop_all()

    @property
    def cache(self) -> RecognitionCache:
        return self._cache

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe_changes(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        return self._subscribe(self._change_subscribers, callback)

    def subscribe_errors(self, callback: ErrorCallback) -> Callable[[], None]:
        return self._subscribe(self._error_subscribers, callback)

    def _subscribe(self, subscribers: list, callback) -> Callable[[], None]:
        with self._subscribers_lock:
            subscribers.append(callback)

        def unsubscribe() -> None:
            with self._subscribers_lock:
                if callback in subscribers:
                    subscribers.remove(callback)

        return unsubscribe

    def _dispatch(self, subscribers: list, event) -> None:
        with self._subscribers_lock:
            callbacks = list(subscribers)
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber %r failed on %r", callback, event)

    def _is_current(self, session_number: int, region_id: str) -> bool:
        with self._sessions_lock:
            session = self._sessions.get(region_id)
            return session is not None and session.number == session_number

    def _make_publishers(self, session_number: int):
        """Build callbacks that drop events from sessions no longer registered."""

        def publish_change(event: ChangeEvent) -> None:
            if self._is_current(session_number, event.region_id):
                self._dispatch(self._change_subscribers, event)

        def publish_error(event: ErrorEvent) -> None:
            if self._is_current(session_number, event.region_id):
                self._dispatch(self._error_subscribers, event)

        return publish_change, publish_error

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    async def start(self, region: MonitoredRegion) -> None:
        """Start watching ``region``, replacing any running session for its id."""
        async with self._start_lock:
            await self._stop_session(region.id)

            number = next(self._session_numbers)
            on_change, on_error = self._make_publishers(number)
            watcher = RegionWatcher(
                region=region,
                cache=self._cache,
                capture_fn=self._capture_fn,
                recognize_fn=self._recognize_fn,
                on_change=on_change,
                on_error=on_error,
                speaker=self._speaker,
                backoff_seconds=self._backoff_seconds,
            )
            region.is_monitoring = True
            task = asyncio.create_task(watcher.run(), name=f"watch-{region.id}")
            with self._sessions_lock:
                self._sessions[region.id] = WatchSession(
                    region=region, watcher=watcher, task=task, number=number,
                )
            logger.info("Monitoring started: %s (session %d)", region.name, number)

    async def stop(self, region: MonitoredRegion) -> None:
        """Stop watching ``region``; no-op if it is not watched.

        No event for the region is delivered once this returns.
        """
        # Serialized with start(): a restart in flight must not register its
        # session after this returns.
        async with self._start_lock:
            stopped = await self._stop_session(region.id)
            region.is_monitoring = False
        if stopped:
            logger.info("Monitoring stopped: %s", region.name)

    async def stop_all(self) -> None:
        """Stop every session; start() calls wait until the drain finishes."""
        async with self._start_lock:
            with self._sessions_lock:
                region_ids = list(self._sessions)
            for region_id in region_ids:
                await self._stop_session(region_id)
            if region_ids:
                logger.info("All monitoring stopped (%d sessions)", len(region_ids))

    async def _stop_session(self, region_id: str) -> bool:
        with self._sessions_lock:
            session = self._sessions.pop(region_id, None)
            if session is None:
                return False
            session.watcher.stop()
            session.task.cancel()

        try:
            await session.task
        except asyncio.CancelledError:
            # The watcher task was cancelled; re-raise only if we were too.
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        session.region.is_monitoring = False
        return True

    def is_watched(self, region: MonitoredRegion) -> bool:
        with self._sessions_lock:
            return region.id in self._sessions

    def watched_ids(self) -> list[str]:
        with self._sessions_lock:
            return list(self._sessions)
