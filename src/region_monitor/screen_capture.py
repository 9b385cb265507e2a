"""Screen capture collaborator backed by mss."""

from __future__ import annotations

import asyncio
import logging

import numpy as np
from mss import mss
from mss.exception import ScreenShotError

from region_monitor.models import CaptureError, Geometry

logger = logging.getLogger(__name__)


def grab_region(geometry: Geometry) -> np.ndarray:
    """Capture ``geometry`` and return an HxWx3 RGB uint8 array.

    A fresh mss handle is opened per call: handles are bound to the thread
    that created them and captures run on worker threads.
    """
    if geometry.is_empty:
        raise CaptureError(f"Region has zero area: {geometry.as_key()}")

    monitor = {
        "left": geometry.x,
        "top": geometry.y,
        "width": geometry.width,
        "height": geometry.height,
    }
    try:
        with mss() as sct:
            screenshot = sct.grab(monitor)
    except ScreenShotError as e:
        raise CaptureError(f"Screen capture failed for {geometry.as_key()}: {e}") from e

    img_array = np.array(screenshot, dtype=np.uint8)
    # BGRA -> RGB
    return img_array[:, :, :3][:, :, ::-1].copy()


class ScreenCapturer:
    """Async capture function for the monitor: ``await capturer(geometry)``."""

    async def __call__(self, geometry: Geometry) -> np.ndarray:
        return await asyncio.to_thread(grab_region, geometry)
