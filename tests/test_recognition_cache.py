"""Test the fingerprint + TTL recognition cache."""

import asyncio

import numpy as np
import pytest
from PIL import Image

from fakes import FakeClock, ScriptedRecognizer
from region_monitor.models import CaptureError, RecognitionError
from region_monitor.recognition_cache import (
    FINGERPRINT_SIZE,
    RecognitionCache,
    compute_fingerprint,
)


def _frame(value: int, shape=(30, 60, 3)) -> np.ndarray:
    return np.full(shape, value, dtype=np.uint8)


def _capture(image):
    async def capture():
        return image
    return capture


def _lookup(cache, key, image, recognizer):
    return asyncio.run(cache.get_or_recognize(key, _capture(image), recognizer))


# ---------------------------------------------------------------------------
# Fingerprint
# ---------------------------------------------------------------------------

def test_fingerprint_has_fixed_size():
    for shape in [(10, 10), (30, 60, 3), (1080, 1920, 4), (1, 1, 3)]:
        arr = np.zeros(shape, dtype=np.uint8)
        assert len(compute_fingerprint(arr)) == FINGERPRINT_SIZE


def test_fingerprint_matches_for_pil_and_numpy():
    arr = np.random.default_rng(0).integers(0, 256, (40, 80, 3), dtype=np.uint8)
    assert compute_fingerprint(arr) == compute_fingerprint(Image.fromarray(arr))


def test_fingerprint_detects_brightness_change():
    assert compute_fingerprint(_frame(10)) != compute_fingerprint(_frame(200))


def test_fingerprint_uses_luminance():
    white = compute_fingerprint(_frame(255))
    assert white == bytes([255]) * FINGERPRINT_SIZE


def test_fingerprint_of_empty_image_fails():
    with pytest.raises(CaptureError):
        compute_fingerprint(np.zeros((0, 10, 3), dtype=np.uint8))


# ---------------------------------------------------------------------------
# Hits and misses
# ---------------------------------------------------------------------------

def test_unchanged_image_within_ttl_recognizes_once():
    clock = FakeClock()
    cache = RecognitionCache(clock=clock)
    recognizer = ScriptedRecognizer(["Hello"])

    assert _lookup(cache, "r1", _frame(50), recognizer) == "Hello"
    clock.advance(5)
    assert _lookup(cache, "r1", _frame(50), recognizer) == "Hello"

    assert recognizer.calls == 1
    assert cache.stats.hits == 1
    assert cache.stats.misses == 1


def test_expired_entry_recognizes_again_with_same_fingerprint():
    clock = FakeClock()
    cache = RecognitionCache(ttl_seconds=30.0, clock=clock)
    recognizer = ScriptedRecognizer(["first", "second"])

    assert _lookup(cache, "r1", _frame(50), recognizer) == "first"
    clock.advance(30.5)
    assert _lookup(cache, "r1", _frame(50), recognizer) == "second"
    assert recognizer.calls == 2


def test_changed_image_recognizes_again():
    cache = RecognitionCache(clock=FakeClock())
    recognizer = ScriptedRecognizer(["before", "after"])

    assert _lookup(cache, "r1", _frame(50), recognizer) == "before"
    assert _lookup(cache, "r1", _frame(180), recognizer) == "after"
    assert recognizer.calls == 2


def test_keys_are_independent():
    cache = RecognitionCache(clock=FakeClock())
    recognizer = ScriptedRecognizer(["one", "two"])

    assert _lookup(cache, (0, 0, 10, 10), _frame(50), recognizer) == "one"
    assert _lookup(cache, (5, 5, 10, 10), _frame(50), recognizer) == "two"
    assert len(cache) == 2


def test_none_from_recognizer_is_stored_as_empty_text():
    cache = RecognitionCache(clock=FakeClock())
    recognizer = ScriptedRecognizer([None])
    assert _lookup(cache, "r1", _frame(0), recognizer) == ""
    assert cache.get_entry("r1").text == ""


def test_recognizer_failure_keeps_previous_entry():
    clock = FakeClock()
    cache = RecognitionCache(clock=clock)
    recognizer = ScriptedRecognizer(["kept", RecognitionError("engine down")])

    _lookup(cache, "r1", _frame(50), recognizer)
    entry = cache.get_entry("r1")

    with pytest.raises(RecognitionError):
        _lookup(cache, "r1", _frame(99), recognizer)
    assert cache.get_entry("r1") is entry


def test_capture_failure_propagates_without_recognizing():
    cache = RecognitionCache(clock=FakeClock())
    recognizer = ScriptedRecognizer(["never"])

    async def failing_capture():
        raise CaptureError("zero area")

    with pytest.raises(CaptureError):
        asyncio.run(cache.get_or_recognize("r1", failing_capture, recognizer))
    assert recognizer.calls == 0
    assert len(cache) == 0


# ---------------------------------------------------------------------------
# Eviction
# ---------------------------------------------------------------------------

def test_expired_entries_are_evicted_when_over_capacity():
    clock = FakeClock()
    cache = RecognitionCache(capacity=3, ttl_seconds=30.0, clock=clock)
    recognizer = ScriptedRecognizer(["text"])

    for key in range(3):
        _lookup(cache, key, _frame(key), recognizer)
    assert len(cache) == 3

    clock.advance(31)
    _lookup(cache, "fresh", _frame(1), recognizer)

    assert len(cache) == 1
    assert "fresh" in cache
    assert cache.stats.evictions == 3


def test_count_settles_at_capacity_without_expired_entries():
    clock = FakeClock()
    cache = RecognitionCache(capacity=3, clock=clock)
    recognizer = ScriptedRecognizer(["text"])

    for key in range(6):
        _lookup(cache, key, _frame(key), recognizer)
        clock.advance(1)
        assert len(cache) <= 3

    # Oldest keys went first
    assert 0 not in cache
    assert 5 in cache


def test_no_eviction_below_capacity():
    clock = FakeClock()
    cache = RecognitionCache(capacity=5, ttl_seconds=1.0, clock=clock)
    recognizer = ScriptedRecognizer(["text"])

    _lookup(cache, "a", _frame(1), recognizer)
    clock.advance(10)
    _lookup(cache, "b", _frame(2), recognizer)

    # "a" is expired but eviction is only triggered above capacity
    assert len(cache) == 2


def test_invalidate_and_clear():
    cache = RecognitionCache(clock=FakeClock())
    recognizer = ScriptedRecognizer(["text"])
    _lookup(cache, "a", _frame(1), recognizer)
    _lookup(cache, "b", _frame(2), recognizer)

    cache.invalidate("a")
    cache.invalidate("missing")
    assert "a" not in cache
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_invalid_configuration_is_rejected():
    with pytest.raises(ValueError):
        RecognitionCache(capacity=0)
    with pytest.raises(ValueError):
        RecognitionCache(ttl_seconds=0)


def test_concurrent_lookups_for_distinct_keys():
    cache = RecognitionCache(capacity=50)
    recognizer = ScriptedRecognizer(["text"], delay=0.01)

    async def run_all():
        return await asyncio.gather(*(
            cache.get_or_recognize(key, _capture(_frame(key)), recognizer)
            for key in range(20)
        ))

    results = asyncio.run(run_all())
    assert results == ["text"] * 20
    assert len(cache) == 20
    assert recognizer.calls == 20
