"""Hosts the monitor's asyncio loop on a QThread for a Qt application.

Watchers run as tasks on a private event loop owned by MonitorThread.
Control calls from the GUI thread are forwarded with
``asyncio.run_coroutine_threadsafe``; change and error events come back as
Qt signals, which Qt queues onto the receiver's thread.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Coroutine

from PyQt6.QtCore import QThread, pyqtSignal

from region_monitor.coordinator import MonitorCoordinator
from region_monitor.models import MonitoredRegion

logger = logging.getLogger(__name__)


class MonitorThread(QThread):
    """
    Signals:
    - text_changed(ChangeEvent): a region's text changed
    - error_occurred(ErrorEvent): a tick failed for a region
    """
    text_changed = pyqtSignal(object)
    error_occurred = pyqtSignal(object)

    def __init__(self, coordinator: MonitorCoordinator) -> None:
        super().__init__()
        self._coordinator = coordinator
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ready = threading.Event()

        self._unsubscribe = [
            coordinator.subscribe_changes(self.text_changed.emit),
            coordinator.subscribe_errors(self.error_occurred.emit),
        ]

    @property
    def coordinator(self) -> MonitorCoordinator:
        return self._coordinator

    def run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        logger.info("Monitor loop started")

        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(self._coordinator.stop_all())
            loop.close()
            self._loop = None
            self._ready.clear()
            logger.info("Monitor loop stopped")

    def submit(self, coro: Coroutine) -> concurrent.futures.Future:
        """Schedule ``coro`` on the monitor loop from any thread."""
        if not self._ready.wait(timeout=5):
            coro.close()
            raise RuntimeError("Monitor loop is not running")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def start_region(self, region: MonitoredRegion) -> concurrent.futures.Future:
        return self.submit(self._coordinator.start(region))

    def stop_region(self, region: MonitoredRegion) -> concurrent.futures.Future:
        return self.submit(self._coordinator.stop(region))

    def stop_all(self) -> concurrent.futures.Future:
        return self.submit(self._coordinator.stop_all())

    def is_watched(self, region: MonitoredRegion) -> bool:
        return self._coordinator.is_watched(region)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop every watcher, stop the loop and wait for the thread."""
        loop = self._loop
        if loop is not None and self._ready.is_set():
            try:
                self.stop_all().result(timeout=timeout)
            except concurrent.futures.TimeoutError:
                logger.warning("Timed out stopping watchers")
            loop.call_soon_threadsafe(loop.stop)
        self.wait(int(timeout * 1000))

        for unsubscribe in self._unsubscribe:
            unsubscribe()
