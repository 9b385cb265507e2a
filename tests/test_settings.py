import pytest

QtCore = pytest.importorskip("PyQt6.QtCore")

from region_monitor.models import Geometry, MonitoredRegion  # noqa: E402
from region_monitor.settings import MonitorSettings, RegionSettings  # noqa: E402


def _ini(tmp_path):
    return QtCore.QSettings(str(tmp_path / "settings.ini"), QtCore.QSettings.Format.IniFormat)


def test_defaults_when_nothing_saved(tmp_path):
    loaded = MonitorSettings.load(_ini(tmp_path))
    assert loaded == MonitorSettings()


def test_round_trip(tmp_path):
    settings = MonitorSettings(
        language="rus+eng",
        tts_voice="en-GB-RyanNeural",
        volume=0.7,
        cache_capacity=20,
        cache_ttl_seconds=12.5,
        backoff_seconds=2.0,
        regions=[
            RegionSettings(id="a", name="Subtitles", region=(10, 900, 1200, 80)),
            RegionSettings(
                id="b", name="Chat", region=(0, 0, 300, 400),
                interval_ms=500, is_active=False, auto_read=False, reading_speed=1.0,
            ),
        ],
    )
    settings.save(_ini(tmp_path))

    assert MonitorSettings.load(_ini(tmp_path)) == settings


def test_region_conversion():
    region = MonitoredRegion(
        Geometry(1, 2, 300, 40), name="Top", region_id="r1",
        interval_ms=350, auto_read=False, reading_speed=1.2,
    )
    saved = RegionSettings.from_region(region)
    assert saved.region == (1, 2, 300, 40)

    restored = saved.to_region()
    assert restored.id == "r1"
    assert restored.snapshot() == region.snapshot()


def test_loaded_values_are_clamped_on_conversion():
    saved = RegionSettings(id="x", name="x", region=(0, 0, 10, 10), interval_ms=5, reading_speed=9.0)
    region = saved.to_region()
    assert region.interval_ms == 100
    assert region.reading_speed == 2.0
