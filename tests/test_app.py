import concurrent.futures
import logging

import pytest

pytest.importorskip("PyQt6.QtCore")

from region_monitor.app import is_debug_enabled, log_failed_start, parse_args  # noqa: E402
from region_monitor.models import Geometry, MonitoredRegion  # noqa: E402


def test_parse_repeated_regions():
    args = parse_args([
        "--region", "10", "20", "300", "60",
        "--region", "0", "900", "1920", "120",
        "--interval", "250", "--speed", "1.2", "--no-auto-read",
    ])
    assert args.region == [[10, 20, 300, 60], [0, 900, 1920, 120]]
    assert args.interval == 250
    assert args.speed == 1.2
    assert args.no_auto_read
    assert not args.save


def test_parse_defaults():
    args = parse_args([])
    assert args.region == []
    assert args.interval is None
    assert args.language is None
    assert args.history is None


def test_debug_switch(monkeypatch):
    monkeypatch.delenv("RM_DEBUG", raising=False)
    assert not is_debug_enabled()
    monkeypatch.setenv("RM_DEBUG", "1")
    assert is_debug_enabled()


def test_failed_start_is_logged(caplog):
    region = MonitoredRegion(Geometry(0, 0, 100, 40), name="Subtitles")
    future = concurrent.futures.Future()
    future.set_exception(RuntimeError("loop is gone"))

    with caplog.at_level(logging.ERROR, logger="region_monitor.app"):
        log_failed_start(region, future)

    assert "Could not start monitoring Subtitles: loop is gone" in caplog.text


def test_successful_start_logs_nothing(caplog):
    region = MonitoredRegion(Geometry(0, 0, 100, 40), name="Subtitles")
    future = concurrent.futures.Future()
    future.set_result(None)

    with caplog.at_level(logging.DEBUG, logger="region_monitor.app"):
        log_failed_start(region, future)

    assert caplog.records == []
