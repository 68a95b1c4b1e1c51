"""
Week views and the iCalendar (.ics) feed.

Two week schemes exist side by side and are kept as separate functions:

- semester-relative (``semester_week_events``): week 0 is the semester week
  containing *today*, counted from the semester's start date. Used for raw
  timetable events.
- calendar-relative (``calendar_week_window`` / ``study_calendar_events``):
  week 0 is the Monday-to-Sunday span containing *today*. Used for study and
  exam blocks.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

from studysync.config import Settings
from studysync.models import Event, Exam, parse_day

logger = logging.getLogger(__name__)

PRODID = "-//studysync//Student Calendar//EN"
CALENDAR_NAME = "studysync - Timetable"
UID_DOMAIN = "studysync"

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


# ----------------------------------------------------------------------
# Week windows
# ----------------------------------------------------------------------

def semester_start(key: Optional[str], settings: Settings) -> date:
    """Start date of semester *key*; unknown keys fall back to the default semester."""
    starts = settings.SEMESTER_STARTS
    if key and key in starts:
        return parse_day(starts[key])
    if key:
        logger.debug("Unknown semester %r, using %s", key, settings.DEFAULT_SEMESTER)
    return parse_day(starts[settings.DEFAULT_SEMESTER])


def semester_week_window(week_offset: int, start: date, today: Optional[date] = None) -> tuple[date, date]:
    """[first day, first day of next week) of the semester week *week_offset* away from today's."""
    today = today or date.today()
    current = (today - start).days // 7
    week_start = start + timedelta(days=7 * (current + week_offset))
    return week_start, week_start + timedelta(days=7)


def calendar_week_window(week_offset: int = 0, today: Optional[date] = None) -> tuple[date, date]:
    """[Monday, next Monday) of the calendar week *week_offset* away from today's."""
    today = today or date.today()
    monday = today - timedelta(days=today.weekday()) + timedelta(weeks=week_offset)
    return monday, monday + timedelta(days=7)


def _in_window(day: Any, window: tuple[date, date]) -> bool:
    try:
        d = parse_day(day)
    except (TypeError, ValueError):
        return False
    return window[0] <= d < window[1]


def semester_week_events(
    events: Iterable[Event],
    week_offset: int,
    start: date,
    today: Optional[date] = None,
) -> list[Event]:
    window = semester_week_window(week_offset, start, today)
    return sorted((e for e in events if e.date and _in_window(e.date, window)), key=lambda e: e.sort_key)


def next_week_events(events: Iterable[Event], today: Optional[date] = None) -> list[Event]:
    """Timetable events of next calendar week (weekly overview mail)."""
    window = calendar_week_window(1, today)
    return sorted((e for e in events if e.date and _in_window(e.date, window)), key=lambda e: e.sort_key)


def study_calendar_events(exams: Iterable[Exam], week_offset: int = 0, today: Optional[date] = None) -> list[dict]:
    """Learn and exam blocks of visible upcoming exams within one calendar week.

    Each entry is the block's dict plus ``exam_subject``.
    """
    window = calendar_week_window(week_offset, today)
    entries: list[dict] = []
    for exam in exams:
        if exam.status != "upcoming" or not exam.show_in_calendar:
            continue
        blocks: list[Any] = list(exam.learn_blocks)
        if exam.exam_block:
            blocks.append(exam.exam_block)
        for block in blocks:
            if _in_window(block.date, window):
                entries.append({**block.to_dict(), "exam_subject": exam.subject})
    entries.sort(key=lambda e: (e["date"], e.get("time_from") or ""))
    return entries


# ----------------------------------------------------------------------
# iCalendar
# ----------------------------------------------------------------------

def ical_escape(text: str) -> str:
    """Escape a TEXT value (RFC 5545 3.3.11)."""
    return (
        str(text)
        .replace("\\", "\\\\")
        .replace("\r\n", "\n")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def ical_utc(day: str, hhmm: Optional[str], tz: ZoneInfo) -> str:
    """Local wall-clock *day* + *hhmm* as a UTC stamp 'YYYYMMDDTHHMM00Z'."""
    clock = time(0, 0)
    if hhmm and re.fullmatch(r"\d{1,2}:\d{2}", hhmm):
        hour, minute = (int(p) for p in hhmm.split(":"))
        clock = time(hour, minute)
    local = datetime.combine(parse_day(day), clock, tzinfo=tz)
    return local.astimezone(timezone.utc).strftime("%Y%m%dT%H%M00Z")


def ical_uid(record_id: str, day: str) -> str:
    return _NON_ALNUM.sub("", f"{record_id}{day}") + f"@{UID_DOMAIN}"


def _vevent(
    lines: list[str],
    *,
    uid: str,
    day: str,
    time_from: Optional[str],
    time_to: Optional[str],
    title: str,
    tz: ZoneInfo,
    stamp: str,
    location: str = "",
    lecturer: str = "",
    mandatory: bool = False,
    description: str = "",
) -> None:
    dtstart = ical_utc(day, time_from, tz)
    dtend = ical_utc(day, time_to, tz) if time_to else dtstart
    desc = " | ".join(
        part
        for part in (
            f"Location: {location}" if location else "",
            f"Lecturer: {lecturer}" if lecturer else "",
            "Mandatory" if mandatory else "",
            description,
        )
        if part
    )

    lines.append("BEGIN:VEVENT")
    lines.append(f"UID:{ical_uid(uid, day)}")
    lines.append(f"DTSTAMP:{stamp}")
    lines.append(f"DTSTART:{dtstart}")
    lines.append(f"DTEND:{dtend}")
    lines.append(f"SUMMARY:{ical_escape(title)}")
    if location:
        lines.append(f"LOCATION:{ical_escape(location)}")
    if desc:
        lines.append(f"DESCRIPTION:{ical_escape(desc)}")
    if mandatory:
        lines.append("CATEGORIES:Mandatory")
    lines.append("END:VEVENT")


def ical_feed(
    events: Iterable[Event],
    exams: Iterable[Exam] = (),
    tz: str = "Europe/Berlin",
    now: Optional[datetime] = None,
) -> str:
    """Render timetable events and upcoming exams (with their learn blocks) as one .ics document."""
    zone = ZoneInfo(tz)
    stamp = (now or datetime.now(timezone.utc)).astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        f"X-WR-CALNAME:{CALENDAR_NAME}",
        f"X-WR-TIMEZONE:{tz}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]

    count = 0
    for event in events:
        try:
            _vevent(
                lines,
                uid=event.id,
                day=event.date,
                time_from=event.time_from,
                time_to=event.time_to,
                title=event.title,
                tz=zone,
                stamp=stamp,
                location=event.location,
                lecturer=event.lecturer,
                mandatory=event.mandatory,
            )
            count += 1
        except (TypeError, ValueError):
            logger.warning("Skipping event with unusable date: %r", event)

    for exam in exams:
        if exam.status != "upcoming":
            continue
        block = exam.exam_block
        try:
            _vevent(
                lines,
                uid=exam.id,
                day=exam.exam_date,
                time_from=block.time_from if block else "08:00",
                time_to=block.time_to if block else "12:00",
                title=f"Exam: {exam.subject}",
                tz=zone,
                stamp=stamp,
                mandatory=True,
                description=f"Topics: {', '.join(exam.selected_topics)}",
            )
            count += 1
        except (TypeError, ValueError):
            logger.warning("Skipping exam %s with unusable date %r", exam.id, exam.exam_date)
            continue
        for learn in exam.learn_blocks:
            try:
                _vevent(
                    lines,
                    uid=learn.id,
                    day=learn.date,
                    time_from=learn.time_from,
                    time_to=learn.time_to,
                    title=learn.title,
                    tz=zone,
                    stamp=stamp,
                    description=", ".join(learn.topics),
                )
                count += 1
            except (TypeError, ValueError):
                logger.warning("Skipping study block %s with unusable date %r", learn.id, learn.date)

    lines.append("END:VCALENDAR")
    logger.debug("iCal feed with %d entries", count)
    return "\r\n".join(lines) + "\r\n"
