"""Speech collaborator: edge-tts synthesis and ffplay playback on a QThread.

``speak()`` only stores the request and returns, so watcher tasks never wait
on audio. The worker keeps at most one pending request. A newer one replaces
it and stops whatever is playing: a region that changed again makes the
previous text obsolete.
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import tempfile
import threading
import time
from dataclasses import dataclass
from typing import Callable

from PyQt6.QtCore import QThread, pyqtSignal

logger = logging.getLogger(__name__)


VOICE_EN = "en-US-AndrewNeural"
VOICE_RU = "ru-RU-DmitryNeural"

_FFPLAY_CMD = ["ffplay", "-nodisp", "-autoexit", "-loglevel", "error"]


def is_mostly_cyrillic(text: str) -> bool:
    letters = [c for c in text if c.isalpha()]
    if not letters:
        return False
    cyrillic = sum(1 for c in letters if "\u0400" <= c <= "\u04FF")
    return cyrillic * 2 > len(letters)


def voice_for(text: str) -> str:
    return VOICE_RU if is_mostly_cyrillic(text) else VOICE_EN


def percent(multiplier: float) -> str:
    """Format a multiplier (1.0 = unchanged) as an edge-tts percentage, e.g. "+80%"."""
    return f"{round((multiplier - 1.0) * 100):+d}%"


@dataclass(frozen=True)
class SpeechRequest:
    text: str
    speed: float
    generation: int


class EdgeSynthesizer:
    """Microsoft Edge neural voices via edge-tts. Needs internet, writes MP3.

    ``voice=None`` picks the voice per text from its script.
    """

    suffix = ".mp3"

    def __init__(self, voice: str | None = None, volume: float = 1.0) -> None:
        self.voice = voice
        self.volume = volume
        self._loop: asyncio.AbstractEventLoop | None = None

    def synthesize(self, text: str, speed: float, path: str) -> None:
        import edge_tts

        # edge-tts is async-only; the worker thread keeps one private loop.
        if self._loop is None:
            self._loop = asyncio.new_event_loop()
        communicate = edge_tts.Communicate(
            text,
            self.voice or voice_for(text),
            rate=percent(speed),
            volume=percent(self.volume),
        )
        self._loop.run_until_complete(communicate.save(path))

    def close(self) -> None:
        if self._loop is not None:
            self._loop.close()
            self._loop = None


class FfplayPlayer:
    """Blocking audio playback through an ffplay subprocess; stop() from any thread."""

    def __init__(self) -> None:
        self._process: subprocess.Popen | None = None
        self._lock = threading.Lock()

    def play(self, path: str, wanted: Callable[[], bool] = lambda: True) -> None:
        """Play ``path`` to the end. ``wanted`` is checked under the stop lock first."""
        with self._lock:
            if not wanted():
                return
            process = subprocess.Popen(
                [*_FFPLAY_CMD, path],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            self._process = process
        try:
            process.wait()
        finally:
            with self._lock:
                self._process = None

    def stop(self) -> None:
        with self._lock:
            if self._process is not None and self._process.poll() is None:
                self._process.terminate()


class TtsWorker(QThread):
    """
    Signals:
    - speech_started(str): playback of a text began
    - speech_finished(str): playback ended or was interrupted
    - error_occurred(str): synthesis or playback failed
    """
    speech_started = pyqtSignal(str)
    speech_finished = pyqtSignal(str)
    error_occurred = pyqtSignal(str)

    def __init__(self, synthesizer: EdgeSynthesizer | None = None, player: FfplayPlayer | None = None) -> None:
        super().__init__()
        self._synthesizer = synthesizer or EdgeSynthesizer()
        self._player = player or FfplayPlayer()
        self._cond = threading.Condition()
        self._pending: SpeechRequest | None = None
        self._generation = 0
        self._closing = False

    def set_voice(self, voice: str | None) -> None:
        self._synthesizer.voice = voice

    def set_volume(self, volume: float) -> None:
        self._synthesizer.volume = volume

    def speak(self, text: str, speed: float = 1.0) -> None:
        """Replace any pending or playing speech with ``text``. Never blocks on audio."""
        with self._cond:
            self._generation += 1
            self._pending = SpeechRequest(text, speed, self._generation)
            self._cond.notify()
        self._player.stop()

    def cancel(self) -> None:
        with self._cond:
            self._generation += 1
            self._pending = None
        self._player.stop()

    def _is_current(self, request: SpeechRequest) -> bool:
        with self._cond:
            return not self._closing and request.generation == self._generation

    def _next_request(self) -> SpeechRequest | None:
        """Block until a request arrives; None once shutting down."""
        with self._cond:
            while self._pending is None and not self._closing:
                self._cond.wait()
            request, self._pending = self._pending, None
            return request

    def run(self) -> None:
        while True:
            request = self._next_request()
            if request is None:
                break
            try:
                self._say(request)
            except Exception as e:
                logger.error("Speech failed: %s", e)
                self.error_occurred.emit(str(e))

    def _say(self, request: SpeechRequest) -> None:
        fd, path = tempfile.mkstemp(suffix=self._synthesizer.suffix)
        os.close(fd)
        try:
            t0 = time.monotonic()
            self._synthesizer.synthesize(request.text, request.speed, path)
            logger.debug(
                "Synthesized %r at x%.1f in %dms",
                request.text[:60], request.speed, int((time.monotonic() - t0) * 1000),
            )
            if not self._is_current(request):
                logger.debug("Dropping superseded speech: %r", request.text[:60])
                return

            self.speech_started.emit(request.text)
            self._player.play(path, lambda: self._is_current(request))
            self.speech_finished.emit(request.text)
        finally:
            try:
                os.unlink(path)
            except OSError:
                pass

    def shutdown(self, timeout_ms: int = 5000) -> None:
        with self._cond:
            self._closing = True
            self._pending = None
            self._cond.notify()
        self._player.stop()
        self.wait(timeout_ms)
        self._synthesizer.close()
