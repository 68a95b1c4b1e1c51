from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from studysync.models import Exam, ExamBlock, LearnBlock
from studysync.projector import (
    calendar_week_window,
    ical_escape,
    ical_feed,
    ical_uid,
    ical_utc,
    next_week_events,
    semester_start,
    semester_week_events,
    semester_week_window,
    study_calendar_events,
)

from conftest import make_event

SS26 = date(2026, 4, 20)
BERLIN = ZoneInfo("Europe/Berlin")


def _exam(exam_id="e1", status="upcoming", show=True, block_dates=("2026-05-27", "2026-05-28"), exam_date="2026-06-01"):
    return Exam(
        id=exam_id,
        subject="Biochemie",
        exam_date=exam_date,
        selected_topics=["Glykolyse", "Citratcyclus"],
        status=status,
        show_in_calendar=show,
        learn_blocks=[
            LearnBlock(
                id=f"{exam_id}-b{i}",
                exam_id=exam_id,
                subject="Biochemie",
                title="Biochemie - study block",
                topics=["Glykolyse"],
                date=d,
                time_from="09:00",
                time_to="10:30",
                duration_min=90,
            )
            for i, d in enumerate(block_dates, start=1)
        ],
        exam_block=ExamBlock(id=f"{exam_id}-exam", exam_id=exam_id, subject="Biochemie", title="Exam: Biochemie", date=exam_date),
    )


# ----------------------------------------------------------------------
# Windows
# ----------------------------------------------------------------------

def test_semester_week_window():
    # Wednesday of the third semester week
    today = date(2026, 5, 6)
    assert semester_week_window(0, SS26, today) == (date(2026, 5, 4), date(2026, 5, 11))
    assert semester_week_window(-2, SS26, today) == (date(2026, 4, 20), date(2026, 4, 27))
    assert semester_week_window(1, SS26, today) == (date(2026, 5, 11), date(2026, 5, 18))


def test_semester_week_before_semester_start():
    today = date(2026, 4, 15)
    assert semester_week_window(0, SS26, today) == (date(2026, 4, 13), date(2026, 4, 20))
    assert semester_week_window(1, SS26, today)[0] == SS26


def test_semester_week_events_sorted_and_windowed():
    events = [
        make_event(title="Late", day="2026-05-08", time_from="14:00"),
        make_event(title="Early", day="2026-05-04", time_from="08:15"),
        make_event(title="Outside", day="2026-05-11"),
        make_event(title="Same day, earlier", day="2026-05-08", time_from="08:00"),
    ]

    week = semester_week_events(events, 0, SS26, today=date(2026, 5, 6))

    assert [e.title for e in week] == ["Early", "Same day, earlier", "Late"]


def test_winter_semester_anchor_is_not_monday():
    # ws2627 starts on a Thursday; weeks run Thursday to Wednesday
    start = date(2026, 10, 15)
    assert semester_week_window(0, start, date(2026, 10, 19)) == (date(2026, 10, 15), date(2026, 10, 22))


def test_calendar_week_window():
    # Wednesday
    assert calendar_week_window(0, date(2026, 5, 6)) == (date(2026, 5, 4), date(2026, 5, 11))
    # Sunday still belongs to the week that started Monday
    assert calendar_week_window(0, date(2026, 5, 10)) == (date(2026, 5, 4), date(2026, 5, 11))
    assert calendar_week_window(-1, date(2026, 5, 6)) == (date(2026, 4, 27), date(2026, 5, 4))


def test_semester_start_lookup(settings):
    assert semester_start("ws2627", settings) == date(2026, 10, 15)
    assert semester_start("ws2728", settings) == date(2027, 10, 14)
    assert semester_start("unknown", settings) == SS26
    assert semester_start(None, settings) == SS26


def test_next_week_events():
    events = [make_event(title="This week", day="2026-05-06"), make_event(title="Next", day="2026-05-11")]
    assert [e.title for e in next_week_events(events, today=date(2026, 5, 10))] == ["Next"]


def test_study_calendar_events():
    visible = _exam("e1")
    hidden = _exam("e2", show=False)
    done = _exam("e3", status="done")

    entries = study_calendar_events([visible, hidden, done], 0, today=date(2026, 5, 27))

    assert [e["id"] for e in entries] == ["e1-b1", "e1-b2"]
    assert all(e["exam_subject"] == "Biochemie" for e in entries)

    exam_week = study_calendar_events([visible], 1, today=date(2026, 5, 27))
    assert [e["type"] for e in exam_week] == ["exam"]


# ----------------------------------------------------------------------
# iCalendar
# ----------------------------------------------------------------------

def test_escape_exact():
    assert ical_escape("A;B,C\n") == "A\\;B\\,C\\n"
    assert ical_escape("back\\slash") == "back\\\\slash"
    assert ical_escape("line\r\nbreak") == "line\\nbreak"


def test_utc_conversion_follows_dst():
    assert ical_utc("2026-04-20", "08:15", BERLIN) == "20260420T061500Z"
    assert ical_utc("2026-12-01", "08:15", BERLIN) == "20261201T071500Z"
    assert ical_utc("2026-04-20", None, BERLIN) == "20260419T220000Z"


def test_uid_is_alphanumeric():
    assert ical_uid("e1-b2", "2026-05-27") == "e1b220260527@studysync"


def test_feed_structure():
    now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    event = make_event(title="A;B,C\nD", location="Hörsaal 1", lecturer="Dr. X", mandatory=True, time_to=None)

    feed = ical_feed([event], [], now=now)

    assert feed.startswith("BEGIN:VCALENDAR\r\nVERSION:2.0\r\n")
    assert feed.endswith("END:VCALENDAR\r\n")
    assert "METHOD:PUBLISH" in feed
    assert "X-WR-TIMEZONE:Europe/Berlin" in feed
    assert "SUMMARY:A\\;B\\,C\\nD\r\n" in feed
    # no end time: DTEND equals DTSTART
    assert "DTSTART:20260420T061500Z\r\nDTEND:20260420T061500Z" in feed
    assert "DTSTAMP:20260501T120000Z" in feed
    assert "CATEGORIES:Mandatory" in feed
    assert "DESCRIPTION:Location: Hörsaal 1 | Lecturer: Dr. X | Mandatory" in feed
    assert "\n" not in feed.replace("\r\n", "")


def test_feed_includes_every_upcoming_exam_with_blocks():
    upcoming = _exam("e1")
    cancelled = _exam("e2", status="cancelled")
    # calendar visibility only affects the week view, not the feed
    hidden = _exam("e3", show=False)

    feed = ical_feed([], [upcoming, cancelled, hidden])

    assert feed.count("BEGIN:VEVENT") == 6
    assert "SUMMARY:Exam: Biochemie" in feed
    assert "UID:e120260601@studysync" in feed
    assert "UID:e1b120260527@studysync" in feed
    assert "UID:e320260601@studysync" in feed
    assert "UID:e2" not in feed
    assert "DESCRIPTION:Mandatory | Topics: Glykolyse\\, Citratcyclus" in feed
    assert "DTSTART:20260601T060000Z\r\nDTEND:20260601T100000Z" in feed


def test_feed_skips_study_block_with_unusable_date():
    exam = _exam("e1", block_dates=("2026-05-27", "not-a-date"))

    feed = ical_feed([], [exam])

    assert feed.count("BEGIN:VEVENT") == 2
    assert "UID:e1b120260527@studysync" in feed
    assert "UID:e120260601@studysync" in feed
    assert feed.count("BEGIN:VEVENT") == feed.count("END:VEVENT")
