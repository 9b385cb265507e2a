"""Recognition result cache keyed by region geometry and an image fingerprint.

Running OCR costs tens to hundreds of milliseconds per frame, while a region
that shows the same subtitle for several seconds produces near-identical
captures every tick. The cache stores the last recognized text per region
key together with a cheap fingerprint of the image it came from; when the
next capture has the same fingerprint and the entry is younger than the TTL,
the recognizer is skipped entirely.

The fingerprint is deliberately approximate: 64 luminance samples on a fixed
8x8 grid (~0.1 ms). A collision can only return text that is at most
``ttl_seconds`` old, after which recognition runs again regardless.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable

import numpy as np
from PIL import Image

from region_monitor.models import CaptureError

logger = logging.getLogger(__name__)


DEFAULT_CAPACITY = 50
DEFAULT_TTL_SECONDS = 30.0

# Fingerprint grid: FINGERPRINT_GRID x FINGERPRINT_GRID samples, one byte each.
FINGERPRINT_GRID = 8
FINGERPRINT_SIZE = FINGERPRINT_GRID * FINGERPRINT_GRID

# ITU-R BT.601 luma weights
_LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


def _to_luminance(image: Any) -> np.ndarray:
    """Return a 2-D float32 luminance array for a PIL image or numpy array."""
    if isinstance(image, Image.Image):
        image = image.convert("RGB")
    arr = np.asarray(image)

    if arr.ndim == 2:
        return arr.astype(np.float32)
    if arr.ndim == 3 and arr.shape[2] >= 3:
        # RGB or RGBA; alpha is ignored
        return arr[:, :, :3].astype(np.float32) @ _LUMA_WEIGHTS
    if arr.ndim == 3 and arr.shape[2] == 1:
        return arr[:, :, 0].astype(np.float32)
    raise CaptureError(f"Unsupported image shape for fingerprint: {arr.shape}")


def compute_fingerprint(image: Any) -> bytes:
    """Sample luminance on a fixed grid and return FINGERPRINT_SIZE bytes."""
    lum = _to_luminance(image)
    h, w = lum.shape
    if h == 0 or w == 0:
        raise CaptureError("Cannot fingerprint an empty image")

    rows = np.linspace(0, h - 1, FINGERPRINT_GRID).round().astype(np.intp)
    cols = np.linspace(0, w - 1, FINGERPRINT_GRID).round().astype(np.intp)
    samples = lum[np.ix_(rows, cols)]
    return np.clip(np.rint(samples), 0, 255).astype(np.uint8).tobytes()


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: bytes
    text: str
    created_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0


class RecognitionCache:
    """Memoizes recognized text per region key.

    Safe to share between watcher tasks and threads: every map operation
    happens under an internal lock, and the lock is never held while waiting
    on the capture or recognition collaborators.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self._capacity = capacity
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()
        self.stats = CacheStats()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, region_key: Hashable) -> bool:
        with self._lock:
            return region_key in self._entries

    def get_entry(self, region_key: Hashable) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(region_key)

    async def get_or_recognize(
        self,
        region_key: Hashable,
        capture_fn: Callable[[], Awaitable[Any]],
        recognize_fn: Callable[[Any], Awaitable[str]],
    ) -> str:
        """Return text for the region, recognizing only when needed.

        Capture and recognition errors propagate to the caller; a failed
        recognition leaves the previous entry in place.
        """
        image = await capture_fn()
        fingerprint = compute_fingerprint(image)

        with self._lock:
            entry = self._entries.get(region_key)
            now = self._clock()
            if (
                entry is not None
                and entry.fingerprint == fingerprint
                and now - entry.created_at < self._ttl
            ):
                self.stats.hits += 1
                logger.debug(
                    "Cache hit for %s (age %.1fs)", region_key, now - entry.created_at,
                )
                return entry.text
            self.stats.misses += 1

        t0 = time.monotonic()
        text = await recognize_fn(image)
        text = text or ""
        logger.debug(
            "Cache miss for %s, recognized in %dms: %r",
            region_key, int((time.monotonic() - t0) * 1000), text[:80],
        )

        with self._lock:
            self._entries[region_key] = CacheEntry(
                fingerprint=fingerprint,
                text=text,
                created_at=self._clock(),
            )
            if len(self._entries) > self._capacity:
                self._evict_locked()
        return text

    def _evict_locked(self) -> None:
        """Drop expired entries, then the oldest ones until within capacity."""
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items()
            if now - entry.created_at >= self._ttl
        ]
        for key in expired:
            del self._entries[key]

        overflow = len(self._entries) - self._capacity
        if overflow > 0:
            oldest = sorted(self._entries, key=lambda k: self._entries[k].created_at)
            for key in oldest[:overflow]:
                del self._entries[key]
        else:
            overflow = 0

        removed = len(expired) + overflow
        self.stats.evictions += removed
        logger.debug(
            "Cache cleanup removed %d entries (%d expired), %d remain",
            removed, len(expired), len(self._entries),
        )

    def invalidate(self, region_key: Hashable) -> None:
        with self._lock:
            self._entries.pop(region_key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
