"""Moodle web-service (REST) sources: calendar events and course materials."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from studysync.config import Settings
from studysync.models import Event, Material
from studysync.sources.base import BaseSource, SourceRegistry

logger = logging.getLogger(__name__)

REST_PATH = "/webservice/rest/server.php"
DOCUMENT_EXTENSIONS = re.compile(r"\.(pdf|pptx?)$", re.IGNORECASE)


class MoodleRestSource(BaseSource):
    """Shared token-authenticated REST call for the Moodle sources."""

    platform = "MOODLE"

    @classmethod
    def configured(cls, settings: Settings) -> bool:
        return bool(settings.MOODLE_TOKEN and settings.MOODLE_TOKEN.strip())

    async def call(self, wsfunction: str, **params: Any) -> Any:
        """Invoke *wsfunction*; None on transport or web-service errors."""
        resp = await self.fetch(
            f"{self.settings.MOODLE_URL.rstrip('/')}{REST_PATH}",
            method="POST",
            params={
                "wstoken": self.settings.MOODLE_TOKEN,
                "moodlewsrestformat": "json",
                "wsfunction": wsfunction,
                **params,
            },
        )
        if resp is None:
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.error("%s: %s returned invalid JSON", self.name, wsfunction)
            return None
        if isinstance(data, dict) and data.get("exception"):
            logger.warning("%s: %s failed: %s", self.name, wsfunction, data.get("message"))
            return None
        return data

    def _local(self, timestamp: int) -> datetime:
        return datetime.fromtimestamp(timestamp, ZoneInfo(self.settings.TIMEZONE))


@SourceRegistry.register
class MoodleCalendarSource(MoodleRestSource):
    """Upcoming calendar entries; assignment deadlines are not timetable events."""

    name = "moodle"
    family = "timetable"

    async def _scrape_impl(self) -> list[Event]:
        data = await self.call("core_calendar_get_calendar_upcoming_view")
        if not isinstance(data, dict):
            return []

        events: list[Event] = []
        for item in data.get("events", []):
            event = self._parse_item(item)
            if event:
                events.append(event)
        logger.info("MOODLE: %d calendar event(s)", len(events))
        return events

    def _parse_item(self, item: dict) -> Optional[Event]:
        if item.get("modulename") == "assign":
            return None
        title = (item.get("name") or "").strip()
        start = item.get("timestart")
        if not title or not start:
            return None

        begin = self._local(int(start))
        duration = int(item.get("timeduration") or 0)
        time_to = self._local(int(start) + duration).strftime("%H:%M") if duration else None

        return Event(
            title=title,
            date=begin.date().isoformat(),
            time_from=begin.strftime("%H:%M"),
            time_to=time_to,
            location=(item.get("location") or "").strip(),
            subject=self.guess_subject(title),
            mandatory=self.is_mandatory(title),
            platform=self.platform,
        )


@SourceRegistry.register
class MoodleMaterialsSource(MoodleRestSource):
    """One material entry per course section; its topics are the section's documents."""

    name = "moodle-materials"
    family = "materials"

    async def _scrape_impl(self) -> list[Material]:
        courses = await self.call(
            "core_course_get_enrolled_courses_by_timeline_classification",
            classification="inprogress",
            limit=50,
        )
        if courses is None:
            courses = await self.call("core_enrol_get_users_courses", userid=0)
        if isinstance(courses, dict):
            courses = courses.get("courses", [])
        if not courses:
            return []

        materials: list[Material] = []
        for course in courses:
            contents = await self.call("core_course_get_contents", courseid=course.get("id"))
            if not isinstance(contents, list):
                logger.warning("MOODLE: no contents for course %s", course.get("fullname"))
                continue
            materials.extend(self._parse_sections(course.get("fullname") or "Course", contents))

        logger.info("MOODLE: %d material section(s) across %d course(s)", len(materials), len(courses))
        return materials

    def _parse_sections(self, course_title: str, sections: list[dict]) -> list[Material]:
        materials: list[Material] = []
        for section in sections:
            topics: list[str] = []
            modified = 0
            url = None
            for module in section.get("modules", []):
                if module.get("modname") != "resource":
                    continue
                files = [f for f in module.get("contents") or [] if DOCUMENT_EXTENSIONS.search(f.get("filename", ""))]
                if not files:
                    continue
                topics.append(module.get("name", "").strip())
                modified = max([modified] + [int(f.get("timemodified") or 0) for f in files])
                url = url or module.get("url")
            if not topics:
                continue
            materials.append(
                Material(
                    course_title=course_title,
                    title=(section.get("name") or course_title).strip(),
                    topics=topics,
                    date=self._local(modified).date().isoformat() if modified else None,
                    text=" ".join(topics),
                    platform=self.platform,
                    url=url,
                )
            )
        return materials
