"""Shared data model: regions, events, collaborator contracts and errors."""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol


# Poll interval floor. Lower values are raised to this, never rejected.
MIN_INTERVAL_MS = 100
DEFAULT_INTERVAL_MS = 200

MIN_READING_SPEED = 0.5
MAX_READING_SPEED = 2.0
DEFAULT_READING_SPEED = 1.8


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class MonitorError(Exception):
    """Base class for failures raised by monitoring collaborators."""


class CaptureError(MonitorError):
    """The capture collaborator could not produce an image."""


class RecognitionError(MonitorError):
    """The recognition collaborator failed or is unavailable."""


# ---------------------------------------------------------------------------
# Geometry and regions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Geometry:
    x: int
    y: int
    width: int
    height: int

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_key(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class RegionSnapshot:
    """Consistent read-only view of a region's fields at one instant."""
    id: str
    name: str
    geometry: Geometry
    is_active: bool
    interval_ms: int
    auto_read: bool
    reading_speed: float
    text: str
    last_recognized_text: str
    is_monitoring: bool


def _clamp_interval(interval_ms: int) -> int:
    return max(MIN_INTERVAL_MS, int(interval_ms))


def _clamp_speed(speed: float) -> float:
    return min(MAX_READING_SPEED, max(MIN_READING_SPEED, float(speed)))


class MonitoredRegion:
    """A screen rectangle whose text is tracked over time.

    Owned by the application layer. A watcher task writes ``text``,
    ``last_recognized_text`` and ``is_monitoring`` while the UI thread reads
    them, so every field goes through one lock.
    """

    def __init__(
        self,
        geometry: Geometry,
        name: str = "New region",
        region_id: str | None = None,
        is_active: bool = True,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        auto_read: bool = True,
        reading_speed: float = DEFAULT_READING_SPEED,
    ) -> None:
        self._lock = threading.Lock()
        self._id = region_id or uuid.uuid4().hex
        self._name = name
        self._geometry = geometry
        self._is_active = is_active
        self._interval_ms = _clamp_interval(interval_ms)
        self._auto_read = auto_read
        self._reading_speed = _clamp_speed(reading_speed)
        self._text = ""
        self._last_recognized_text = ""
        self._is_monitoring = False

    def __repr__(self) -> str:
        return f"MonitoredRegion(id={self._id!r}, name={self._name!r}, geometry={self._geometry!r})"

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        with self._lock:
            return self._name

    @name.setter
    def name(self, value: str) -> None:
        with self._lock:
            self._name = value

    @property
    def geometry(self) -> Geometry:
        with self._lock:
            return self._geometry

    @geometry.setter
    def geometry(self, value: Geometry) -> None:
        with self._lock:
            self._geometry = value

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._is_active

    @is_active.setter
    def is_active(self, value: bool) -> None:
        with self._lock:
            self._is_active = value

    @property
    def interval_ms(self) -> int:
        with self._lock:
            return self._interval_ms

    @interval_ms.setter
    def interval_ms(self, value: int) -> None:
        with self._lock:
            self._interval_ms = _clamp_interval(value)

    @property
    def auto_read(self) -> bool:
        with self._lock:
            return self._auto_read

    @auto_read.setter
    def auto_read(self, value: bool) -> None:
        with self._lock:
            self._auto_read = value

    @property
    def reading_speed(self) -> float:
        with self._lock:
            return self._reading_speed

    @reading_speed.setter
    def reading_speed(self, value: float) -> None:
        with self._lock:
            self._reading_speed = _clamp_speed(value)

    @property
    def text(self) -> str:
        with self._lock:
            return self._text

    @property
    def last_recognized_text(self) -> str:
        with self._lock:
            return self._last_recognized_text

    @property
    def is_monitoring(self) -> bool:
        with self._lock:
            return self._is_monitoring

    @is_monitoring.setter
    def is_monitoring(self, value: bool) -> None:
        with self._lock:
            self._is_monitoring = value

    def publish_text(self, text: str) -> None:
        """Set ``text`` and ``last_recognized_text`` in one step."""
        with self._lock:
            self._text = text
            self._last_recognized_text = text

    def snapshot(self) -> RegionSnapshot:
        with self._lock:
            return RegionSnapshot(
                id=self._id,
                name=self._name,
                geometry=self._geometry,
                is_active=self._is_active,
                interval_ms=self._interval_ms,
                auto_read=self._auto_read,
                reading_speed=self._reading_speed,
                text=self._text,
                last_recognized_text=self._last_recognized_text,
                is_monitoring=self._is_monitoring,
            )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChangeEvent:
    region_id: str
    new_text: str
    region_name: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ErrorEvent:
    region_id: str
    error: BaseException
    region_name: str = ""
    timestamp: float = field(default_factory=time.time)

    @property
    def detail(self) -> str:
        return str(self.error) or type(self.error).__name__


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------

CaptureFn = Callable[[Geometry], Awaitable[Any]]
RecognizeFn = Callable[[Any], Awaitable[str]]
ChangeCallback = Callable[[ChangeEvent], None]
ErrorCallback = Callable[[ErrorEvent], None]


class Speaker(Protocol):
    """Fire-and-forget playback of recognized text."""

    def speak(self, text: str, speed: float = 1.0) -> None:
        ...
