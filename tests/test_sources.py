from datetime import date, datetime
from zoneinfo import ZoneInfo

import httpx
import pytest

from studysync.sources import SourceRegistry, discover
from studysync.sources.alma import AlmaTimetableSource
from studysync.sources.base import BaseSource
from studysync.sources.moodle import MoodleCalendarSource, MoodleMaterialsSource

PLAN_HTML = """
<html><body>
<table class="tb">
  <tr><th>Titel</th><th>Zeit</th><th>Raum</th><th>Dozent</th><th>Tag</th></tr>
  <tr><td>Anatomie Vorlesung</td><td>08:15 - 09:45</td><td>Hörsaal 1</td><td>Prof. A</td><td>Mo</td></tr>
  <tr><td>Biochemie Praktikum</td><td>14:00-17:00</td><td>Labor</td><td>Dr. B</td><td>Fr</td></tr>
  <tr><td>Abc</td><td>10:00 - 11:00</td><td>X</td><td>Y</td><td>Di</td></tr>
  <tr><td>Too few cells</td><td>10:00</td></tr>
</table>
</body></html>
"""


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_registry_has_all_sources():
    discover()
    assert {"alma", "moodle", "moodle-materials"} <= set(SourceRegistry.all())
    assert {s.name for s in SourceRegistry.for_family("materials")} == {"moodle-materials"}


def test_configured(settings):
    assert not AlmaTimetableSource.configured(settings)
    assert not MoodleCalendarSource.configured(settings)
    configured = settings.model_copy(update={"ALMA_USER": "u", "ALMA_PASS": "p", "MOODLE_TOKEN": "t"})
    assert AlmaTimetableSource.configured(configured)
    assert MoodleMaterialsSource.configured(configured)


def test_helpers():
    assert BaseSource.parse_time_range("Mo 8:15 - 9:45") == ("08:15", "09:45")
    assert BaseSource.parse_time_range("ganztägig") == (None, None)
    assert BaseSource.guess_subject("Biochemie Seminar") == "Biochemie"
    assert BaseSource.guess_subject("Terminologie") == "General"
    assert BaseSource.is_mandatory("Histologie Testat")
    # Monday 2026-10-19
    today = date(2026, 10, 19)
    assert BaseSource.next_weekday_date("Mo 08:15", today) == today
    assert BaseSource.next_weekday_date("Fr 14:00", today) == date(2026, 10, 23)
    assert BaseSource.next_weekday_date("So", today) == date(2026, 10, 25)
    assert BaseSource.next_weekday_date("", today) == today


@pytest.mark.asyncio
async def test_alma_parse_plan(settings):
    source = AlmaTimetableSource(settings, client=_client(lambda r: httpx.Response(404)))
    events = source.parse_plan(PLAN_HTML)
    await source.close()

    assert [e.title for e in events] == ["Anatomie Vorlesung", "Biochemie Praktikum"]
    anatomy, practical = events
    assert (anatomy.time_from, anatomy.time_to) == ("08:15", "09:45")
    assert anatomy.location == "Hörsaal 1"
    assert anatomy.lecturer == "Prof. A"
    assert anatomy.subject == "Anatomie"
    assert not anatomy.mandatory
    assert date.fromisoformat(anatomy.date).weekday() == 0
    assert practical.mandatory
    assert date.fromisoformat(practical.date).weekday() == 4
    assert practical.platform == "ALMA"


@pytest.mark.asyncio
async def test_alma_login_flow(settings):
    settings = settings.model_copy(update={"ALMA_USER": "student", "ALMA_PASS": "secret"})
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.method == "POST":
            assert b"username=student" in request.content
            return httpx.Response(200, text="ok")
        if "wplan" in str(request.url):
            return httpx.Response(200, text=PLAN_HTML)
        return httpx.Response(200, text='<form action="/qisserver/rds?state=user&type=1"></form>')

    source = AlmaTimetableSource(settings, client=_client(handler))
    events = await source.scrape()

    assert len(events) == 2
    assert [m for m, _ in seen] == ["GET", "POST", "GET"]


@pytest.mark.asyncio
async def test_scrape_swallows_failures(settings):
    settings = settings.model_copy(update={"MOODLE_TOKEN": "t"})
    source = MoodleCalendarSource(settings, client=_client(lambda r: httpx.Response(500)))
    assert await source.scrape() == []


@pytest.mark.asyncio
async def test_moodle_calendar(settings):
    settings = settings.model_copy(update={"MOODLE_TOKEN": "t"})
    start = int(datetime(2026, 4, 21, 10, 15, tzinfo=ZoneInfo("Europe/Berlin")).timestamp())
    payload = {
        "events": [
            {"name": "Physiologie Seminar", "timestart": start, "timeduration": 5400, "location": "Raum 2"},
            {"name": "Abgabe Protokoll", "timestart": start, "modulename": "assign"},
            {"name": "", "timestart": start},
        ]
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["wsfunction"] == "core_calendar_get_calendar_upcoming_view"
        assert request.url.params["wstoken"] == "t"
        return httpx.Response(200, json=payload)

    source = MoodleCalendarSource(settings, client=_client(handler))
    (event,) = await source.scrape()

    assert event.title == "Physiologie Seminar"
    assert event.date == "2026-04-21"
    assert (event.time_from, event.time_to) == ("10:15", "11:45")
    assert event.location == "Raum 2"
    assert event.platform == "MOODLE"


@pytest.mark.asyncio
async def test_moodle_error_payload(settings):
    settings = settings.model_copy(update={"MOODLE_TOKEN": "bad"})
    payload = {"exception": "moodle_exception", "message": "Invalid token"}
    source = MoodleCalendarSource(settings, client=_client(lambda r: httpx.Response(200, json=payload)))
    assert await source.scrape() == []


@pytest.mark.asyncio
async def test_moodle_materials(settings):
    settings = settings.model_copy(update={"MOODLE_TOKEN": "t"})
    modified = int(datetime(2026, 4, 22, 12, 0, tzinfo=ZoneInfo("Europe/Berlin")).timestamp())
    contents = [
        {
            "name": "Woche 1: Zellphysiologie",
            "modules": [
                {"modname": "resource", "name": "Membranpotential", "url": "https://m/1",
                 "contents": [{"filename": "vl1.pdf", "timemodified": modified}]},
                {"modname": "resource", "name": "Notizen", "contents": [{"filename": "notes.txt"}]},
                {"modname": "forum", "name": "Forum"},
            ],
        },
        {"name": "Leer", "modules": []},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        fn = request.url.params["wsfunction"]
        if fn == "core_course_get_enrolled_courses_by_timeline_classification":
            return httpx.Response(200, json={"courses": [{"id": 7, "fullname": "Physiologie"}]})
        if fn == "core_course_get_contents":
            assert request.url.params["courseid"] == "7"
            return httpx.Response(200, json=contents)
        return httpx.Response(404)

    source = MoodleMaterialsSource(settings, client=_client(handler))
    (material,) = await source.scrape()

    assert material.course_title == "Physiologie"
    assert material.title == "Woche 1: Zellphysiologie"
    assert material.topics == ["Membranpotential"]
    assert material.date == "2026-04-22"
    assert material.url == "https://m/1"
