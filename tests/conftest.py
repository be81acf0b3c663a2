"""Shared fakes for the CleanSpace tests."""

from datetime import datetime, timedelta, timezone

import pytest

from cleanspace.schemas import Location


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 10, 4, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def new_york() -> Location:
    return Location(latitude=40.7128, longitude=-74.006, city="New York", country="USA")


@pytest.fixture(autouse=True)
def _quiet_colors(monkeypatch):
    monkeypatch.setenv("CLEANSPACE_NO_COLOR", "1")
