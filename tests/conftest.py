"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from spscjobs.models import Alert
from spscjobs.reporting.alerts import AlertDispatcher
from spscjobs.settings import AppSettings
from spscjobs.storage.sqlite_store import SQLiteDocumentStore


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSink:
    def __init__(self) -> None:
        self.alerts: list[Alert] = []

    def deliver(self, alert: Alert) -> None:
        self.alerts.append(alert)

    @property
    def titles(self) -> list[str]:
        return [a.title for a in self.alerts]


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture()
def tmp_settings_yaml(tmp_path):
    """Write a minimal settings.yaml and return its path."""
    content = """\
mode: "dev"
base_url: "https://spsc.example.org/"
headless: true
politeness_delay: 0.5
lock_ttl_minutes: 15
refresh_incomplete: true
state_dir: "{state}"
""".format(state=str(tmp_path / ".state"))
    p = tmp_path / "settings.yaml"
    p.write_text(content)
    return p


@pytest.fixture()
def settings(tmp_path):
    return AppSettings(
        base_url="https://spsc.example.org",
        state_dir=str(tmp_path / ".state"),
        politeness_delay=0.0,
    )


@pytest.fixture()
def store(tmp_path):
    s = SQLiteDocumentStore(tmp_path / "store.db")
    yield s
    s.close()


@pytest.fixture()
def clock():
    return FakeClock(datetime(2025, 12, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def sink():
    return RecordingSink()


@pytest.fixture()
def alerts(sink):
    return AlertDispatcher([sink], enabled=True)


@pytest.fixture()
def sleep():
    return RecordingSleep()
