from __future__ import annotations

from dataclasses import dataclass, field

from PyQt6.QtCore import QSettings

from region_monitor.models import (
    DEFAULT_INTERVAL_MS,
    DEFAULT_READING_SPEED,
    Geometry,
    MonitoredRegion,
)
from region_monitor.recognition_cache import DEFAULT_CAPACITY, DEFAULT_TTL_SECONDS
from region_monitor.region_watcher import DEFAULT_BACKOFF_SECONDS

ORGANIZATION = "RegionMonitor"
APPLICATION = "RegionMonitor"


def _to_bool(value) -> bool:
    return str(value).lower() in ("true", "1", "yes")


@dataclass
class RegionSettings:
    id: str
    name: str
    region: tuple[int, int, int, int]  # (left, top, width, height)
    interval_ms: int = DEFAULT_INTERVAL_MS
    is_active: bool = True
    auto_read: bool = True
    reading_speed: float = DEFAULT_READING_SPEED

    def to_region(self) -> MonitoredRegion:
        return MonitoredRegion(
            geometry=Geometry(*self.region),
            name=self.name,
            region_id=self.id,
            is_active=self.is_active,
            interval_ms=self.interval_ms,
            auto_read=self.auto_read,
            reading_speed=self.reading_speed,
        )

    @classmethod
    def from_region(cls, region: MonitoredRegion) -> RegionSettings:
        snap = region.snapshot()
        return cls(
            id=snap.id,
            name=snap.name,
            region=snap.geometry.as_key(),
            interval_ms=snap.interval_ms,
            is_active=snap.is_active,
            auto_read=snap.auto_read,
            reading_speed=snap.reading_speed,
        )


@dataclass
class MonitorSettings:
    language: str = "eng"
    tts_voice: str = ""  # empty = pick by detected language
    volume: float = 1.0
    cache_capacity: int = DEFAULT_CAPACITY
    cache_ttl_seconds: float = DEFAULT_TTL_SECONDS
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    regions: list[RegionSettings] = field(default_factory=list)

    def save(self, settings: QSettings | None = None) -> None:
        s = settings or QSettings(ORGANIZATION, APPLICATION)
        s.setValue("language", self.language)
        s.setValue("tts_voice", self.tts_voice)
        s.setValue("volume", self.volume)
        s.setValue("cache/capacity", self.cache_capacity)
        s.setValue("cache/ttl_seconds", self.cache_ttl_seconds)
        s.setValue("backoff_seconds", self.backoff_seconds)

        s.beginWriteArray("regions", len(self.regions))
        for i, region in enumerate(self.regions):
            s.setArrayIndex(i)
            s.setValue("id", region.id)
            s.setValue("name", region.name)
            s.setValue("region_left", region.region[0])
            s.setValue("region_top", region.region[1])
            s.setValue("region_width", region.region[2])
            s.setValue("region_height", region.region[3])
            s.setValue("interval_ms", region.interval_ms)
            s.setValue("is_active", region.is_active)
            s.setValue("auto_read", region.auto_read)
            s.setValue("reading_speed", region.reading_speed)
        s.endArray()
        s.sync()

    @classmethod
    def load(cls, settings: QSettings | None = None) -> MonitorSettings:
        s = settings or QSettings(ORGANIZATION, APPLICATION)

        regions: list[RegionSettings] = []
        count = s.beginReadArray("regions")
        for i in range(count):
            s.setArrayIndex(i)
            if not s.contains("id"):
                continue
            regions.append(RegionSettings(
                id=str(s.value("id")),
                name=str(s.value("name", f"Region {i + 1}")),
                region=(
                    int(s.value("region_left", 0)),
                    int(s.value("region_top", 0)),
                    int(s.value("region_width", 100)),
                    int(s.value("region_height", 100)),
                ),
                interval_ms=int(s.value("interval_ms", DEFAULT_INTERVAL_MS)),
                is_active=_to_bool(s.value("is_active", "true")),
                auto_read=_to_bool(s.value("auto_read", "true")),
                reading_speed=float(s.value("reading_speed", DEFAULT_READING_SPEED)),
            ))
        s.endArray()

        return cls(
            language=str(s.value("language", "eng")),
            tts_voice=str(s.value("tts_voice", "")),
            volume=float(s.value("volume", 1.0)),
            cache_capacity=int(s.value("cache/capacity", DEFAULT_CAPACITY)),
            cache_ttl_seconds=float(s.value("cache/ttl_seconds", DEFAULT_TTL_SECONDS)),
            backoff_seconds=float(s.value("backoff_seconds", DEFAULT_BACKOFF_SECONDS)),
            regions=regions,
        )
