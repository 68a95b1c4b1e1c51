import asyncio
from typing import Optional

import pytest

from studysync.config import Settings
from studysync.models import Event


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATA_DIR=tmp_path,
        SCHEDULER_ENABLED=False,
        REFRESH_QUIESCENCE_SECONDS=0.05,
        ICAL_TOKEN=None,
        ALMA_USER=None,
        ALMA_PASS=None,
        MOODLE_TOKEN=None,
        SMTP_HOST=None,
        MAIL_FROM=None,
        MAIL_TO=None,
    )


def make_event(title="Anatomie Vorlesung", day="2026-04-20", time_from="08:15", time_to="09:45", **kwargs) -> Event:
    return Event(title=title, date=day, time_from=time_from, time_to=time_to, **kwargs)


class FakeSource:
    """In-memory stand-in for a source adapter."""

    def __init__(self, name: str, records=None, error: Optional[Exception] = None, gate: Optional[asyncio.Event] = None):
        self.name = name
        self.records = list(records or [])
        self.error = error
        self.gate = gate
        self.calls = 0

    async def scrape(self) -> list:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.records)


class RecordingNotifier:
    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls = []

    async def __call__(self, diff) -> bool:
        self.calls.append(diff)
        if self.error is not None:
            raise self.error
        return self.result
