from __future__ import annotations

import argparse
import concurrent.futures
import functools
import logging
import os
import signal
import sys

from PyQt6.QtCore import QCoreApplication, QTimer

from region_monitor.coordinator import MonitorCoordinator
from region_monitor.history import ChangeHistory
from region_monitor.models import ChangeEvent, ErrorEvent, Geometry, MonitoredRegion
from region_monitor.ocr_engine import TesseractRecognizer
from region_monitor.qt_bridge import MonitorThread
from region_monitor.recognition_cache import RecognitionCache
from region_monitor.screen_capture import ScreenCapturer
from region_monitor.settings import MonitorSettings, RegionSettings
from region_monitor.tts_worker import TtsWorker

logger = logging.getLogger(__name__)


def is_debug_enabled() -> bool:
    return os.environ.get("RM_DEBUG", "0") == "1"


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if is_debug_enabled() else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def log_failed_start(region: MonitoredRegion, future: concurrent.futures.Future) -> None:
    """Done-callback for start_region futures: report a start that failed."""
    if future.cancelled():
        logger.warning("Start of %s was cancelled", region.name)
        return
    error = future.exception()
    if error is not None:
        logger.error("Could not start monitoring %s: %s", region.name, error)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="region-monitor",
        description="Watch screen regions and read out their text when it changes.",
    )
    parser.add_argument(
        "--region", nargs=4, type=int, action="append", default=[],
        metavar=("X", "Y", "W", "H"),
        help="Region to watch in addition to saved ones (repeatable)",
    )
    parser.add_argument("--interval", type=int, default=None, help="Poll interval in ms for --region")
    parser.add_argument("--speed", type=float, default=None, help="Reading speed multiplier for --region")
    parser.add_argument("--no-auto-read", action="store_true", help="Do not speak changes for --region")
    parser.add_argument("--language", default=None, help="Tesseract language, e.g. eng or eng+rus")
    parser.add_argument("--history", default=None, help="Export change history to this file on exit")
    parser.add_argument("--save", action="store_true", help="Persist regions and settings on exit")
    return parser.parse_args(argv)


class App:
    def __init__(self, args: argparse.Namespace) -> None:
        self._qt_app = QCoreApplication(sys.argv)
        self._qt_app.setApplicationName("RegionMonitor")
        self._qt_app.setOrganizationName("RegionMonitor")

        self._args = args
        self._settings = MonitorSettings.load()
        if args.language:
            self._settings.language = args.language

        self._regions = self._build_regions()
        self._history = ChangeHistory()

        # Collaborators
        self._recognizer = TesseractRecognizer(self._settings.language)
        self._tts_worker = TtsWorker()
        self._tts_worker.set_voice(self._settings.tts_voice or None)
        self._tts_worker.set_volume(self._settings.volume)

        cache = RecognitionCache(
            capacity=self._settings.cache_capacity,
            ttl_seconds=self._settings.cache_ttl_seconds,
        )
        coordinator = MonitorCoordinator(
            cache=cache,
            capture_fn=ScreenCapturer(),
            recognize_fn=self._recognizer,
            speaker=self._tts_worker,
            backoff_seconds=self._settings.backoff_seconds,
        )
        self._monitor = MonitorThread(coordinator)

        self._connect_signals()

    def _build_regions(self) -> list[MonitoredRegion]:
        regions = [r.to_region() for r in self._settings.regions]
        args = self._args
        for x, y, w, h in args.region:
            region = MonitoredRegion(
                geometry=Geometry(x, y, w, h),
                name=f"Region {len(regions) + 1}",
                auto_read=not args.no_auto_read,
            )
            if args.interval is not None:
                region.interval_ms = args.interval
            if args.speed is not None:
                region.reading_speed = args.speed
            regions.append(region)
        return regions

    def _connect_signals(self) -> None:
        self._monitor.text_changed.connect(self._on_text_changed)
        self._monitor.error_occurred.connect(self._on_error)
        self._tts_worker.error_occurred.connect(
            lambda msg: logger.warning("Speech error: %s", msg)
        )

    # ------------------------------------------------------------------
    # Event handlers (GUI thread)
    # ------------------------------------------------------------------

    def _region_by_id(self, region_id: str) -> MonitoredRegion | None:
        for region in self._regions:
            if region.id == region_id:
                return region
        return None

    def _on_text_changed(self, event: ChangeEvent) -> None:
        region = self._region_by_id(event.region_id)
        was_read = region is not None and region.auto_read
        self._history.record(event, was_read=was_read)
        logger.info("[%s] %s", event.region_name, " ".join(event.new_text.split()))

    def _on_error(self, event: ErrorEvent) -> None:
        logger.warning("[%s] recognition error: %s", event.region_name, event.detail)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        if not self._regions:
            logger.error("No regions configured. Pass --region X Y W H.")
            return 2

        # Let Ctrl+C reach Python while Qt's loop is running.
        signal.signal(signal.SIGINT, lambda *_: self._qt_app.quit())
        timer = QTimer()
        timer.timeout.connect(lambda: None)
        timer.start(250)

        self._tts_worker.start()
        self._monitor.start()
        for region in self._regions:
            future = self._monitor.start_region(region)
            future.add_done_callback(functools.partial(log_failed_start, region))
        logger.info("Watching %d region(s), Ctrl+C to stop", len(self._regions))

        exit_code = self._qt_app.exec()

        # Cleanup
        timer.stop()
        self._monitor.shutdown()
        self._tts_worker.shutdown()

        if self._args.history:
            self._history.export_text(self._args.history)
        if self._args.save:
            self._settings.regions = [RegionSettings.from_region(r) for r in self._regions]
            self._settings.save()

        return exit_code


def main() -> None:
    configure_logging()
    app = App(parse_args())
    sys.exit(app.run())


if __name__ == "__main__":
    main()
