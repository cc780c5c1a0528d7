import pytest

from sheetvoice.server.job_manager import JobTracker
from sheetvoice.server.library import ArchiveStore

from .helpers import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    return JobTracker(retention_seconds=3600, clock=clock)


@pytest.fixture
def archive(tmp_path):
    return ArchiveStore(tmp_path / "storage")
