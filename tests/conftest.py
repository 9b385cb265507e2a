import pytest

from fakes import EventRecorder
from region_monitor.models import Geometry, MonitoredRegion


@pytest.fixture
def region() -> MonitoredRegion:
    return MonitoredRegion(
        geometry=Geometry(10, 20, 300, 60),
        name="Subtitles",
        interval_ms=100,
        auto_read=False,
    )


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()
