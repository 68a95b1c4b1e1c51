"""ALMA (HIS/LSF) personal timetable."""

from __future__ import annotations

import logging
from typing import Optional

from bs4 import BeautifulSoup, Tag

from studysync.config import Settings
from studysync.models import Event
from studysync.sources.base import BaseSource, SourceRegistry

logger = logging.getLogger(__name__)


@SourceRegistry.register
class AlmaTimetableSource(BaseSource):
    """Logs in with the configured account and parses the weekly plan table.

    HIS renders the personal plan as ``table.tb`` rows of
    title | time | room | lecturer | weekday.
    """

    name = "alma"
    family = "timetable"
    platform = "ALMA"

    @classmethod
    def configured(cls, settings: Settings) -> bool:
        return bool(settings.ALMA_USER and settings.ALMA_PASS)

    async def _scrape_impl(self) -> list[Event]:
        base = self.settings.ALMA_URL.rstrip("/")

        login_page = await self.fetch(f"{base}/")
        if login_page is None:
            return []
        form = BeautifulSoup(login_page.text, "html.parser").find("form")
        action = (form.get("action") if isinstance(form, Tag) else None) or "/"
        login_url = action if action.startswith("http") else f"{base}/{action.lstrip('/')}"

        await self.fetch(
            login_url,
            method="POST",
            data={"username": self.settings.ALMA_USER, "password": self.settings.ALMA_PASS, "submit": "Anmelden"},
        )

        plan = await self.fetch(f"{base}{self.settings.ALMA_TIMETABLE_PATH}")
        if plan is None:
            return []

        events = self.parse_plan(plan.text)
        logger.info("ALMA: %d timetable event(s)", len(events))
        return events

    def parse_plan(self, html: str) -> list[Event]:
        soup = BeautifulSoup(html, "html.parser")
        events: list[Event] = []
        for row in soup.select("table.tb tr"):
            event = self._parse_row(row)
            if event:
                events.append(event)
        return events

    def _parse_row(self, row: Tag) -> Optional[Event]:
        cells = row.find_all("td")
        if len(cells) < 4:
            return None

        title = cells[0].get_text(strip=True)
        if len(title) <= 3:
            return None
        time_str = cells[1].get_text(" ", strip=True)
        location = cells[2].get_text(strip=True)
        lecturer = cells[3].get_text(strip=True)
        day_str = (cells[4] if len(cells) > 4 else cells[0]).get_text(strip=True)

        time_from, time_to = self.parse_time_range(time_str)
        day = self.next_weekday_date(f"{day_str} {time_str}")

        return Event(
            title=title,
            date=day.isoformat(),
            time_from=time_from,
            time_to=time_to,
            location=location,
            lecturer=lecturer,
            subject=self.guess_subject(title),
            mandatory=self.is_mandatory(title),
            platform=self.platform,
        )
