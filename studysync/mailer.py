"""Change and weekly-overview mails (Jinja2 templates, sent over SMTP)."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from collections import OrderedDict
from datetime import date, datetime
from email.message import EmailMessage
from pathlib import Path
from typing import Iterable, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from studysync.config import Settings
from studysync.exceptions import NotificationError
from studysync.models import Diff, Event, parse_day
from studysync.projector import calendar_week_window, next_week_events

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
CHANGE_TEMPLATE = "change_mail.html"
WEEKLY_TEMPLATE = "weekly_overview.html"

DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
SUBJECT_COLORS = {
    "Anatomie": "#ef4444",
    "Physiologie": "#3b82f6",
    "Biochemie": "#22c55e",
    "Histologie": "#f97316",
    "Biologie": "#06b6d4",
    "Physik": "#a855f7",
    "Chemie": "#6366f1",
    "SIMED": "#ec4899",
    "Klinik": "#f59e0b",
}
DEFAULT_COLOR = "#64748b"


def subject_color(subject: Optional[str]) -> str:
    return SUBJECT_COLORS.get(subject or "", DEFAULT_COLOR)


def describe(event: Event) -> str:
    """One-line summary used in the change mail: 'Mon 20.04. 08:15-09:45 Title (Room)'."""
    parts = []
    try:
        day = parse_day(event.date)
        parts.append(f"{DAY_NAMES[day.weekday()]} {day:%d.%m.}")
    except (TypeError, ValueError):
        pass
    if event.time_from:
        parts.append(f"{event.time_from}-{event.time_to}" if event.time_to else event.time_from)
    parts.append(event.title)
    if event.location:
        parts.append(f"({event.location})")
    return " ".join(parts)


class Mailer:
    """Notification hook for the timetable refresh.

    Calling the instance with a :class:`Diff` sends the change mail and
    returns whether it was delivered; it never raises.
    """

    def __init__(self, settings: Settings, template_dir: Path = TEMPLATE_DIR) -> None:
        self.settings = settings
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self.env.globals["subject_color"] = subject_color
        self.env.filters["describe"] = describe

    async def __call__(self, diff: Diff) -> bool:
        return await self.send_change_mail(diff)

    @property
    def configured(self) -> bool:
        return self.settings.mail_configured

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_change_mail(self, diff: Diff, now: Optional[datetime] = None) -> tuple[str, str]:
        now = now or datetime.now()
        subject = f"Timetable changes - {now:%d.%m.%Y}"
        html = self.env.get_template(CHANGE_TEMPLATE).render(diff=diff, generated_at=now)
        return subject, html

    def render_weekly_overview(self, events: Iterable[Event], today: Optional[date] = None) -> tuple[str, str]:
        week_events = next_week_events(events, today)
        monday, _ = calendar_week_window(1, today)

        days: OrderedDict[str, list[Event]] = OrderedDict()
        for event in week_events:
            day = parse_day(event.date)
            days.setdefault(f"{DAY_NAMES[day.weekday()]} {day:%d.%m.}", []).append(event)

        subject = f"Week ahead - from {monday:%d.%m.%Y}"
        html = self.env.get_template(WEEKLY_TEMPLATE).render(days=days, monday=monday, count=len(week_events))
        return subject, html

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_change_mail(self, diff: Diff) -> bool:
        if not self.configured:
            logger.warning("Mail not configured, skipping change mail.")
            return False
        if diff is None or diff.is_empty:
            return False
        try:
            subject, html = self.render_change_mail(diff)
            await asyncio.to_thread(self._send, subject, html)
        except Exception:
            logger.exception("Change mail failed")
            return False
        logger.info("Change mail sent to %s (%d change(s))", self.settings.MAIL_TO, diff.total)
        return True

    async def send_weekly_overview(self, events: Iterable[Event], today: Optional[date] = None) -> bool:
        if not self.configured:
            logger.warning("Mail not configured, skipping weekly overview.")
            return False
        try:
            subject, html = self.render_weekly_overview(events, today)
            await asyncio.to_thread(self._send, subject, html)
        except Exception:
            logger.exception("Weekly overview mail failed")
            return False
        logger.info("Weekly overview sent to %s", self.settings.MAIL_TO)
        return True

    async def send_test_mail(self) -> None:
        """Send a fixed test mail; raises NotificationError on any failure."""
        if not self.configured:
            raise NotificationError("Mail is not configured (SMTP_HOST, MAIL_FROM, MAIL_TO).")
        html = "<p>studysync test mail: the mail settings work.</p>"
        await asyncio.to_thread(self._send, "studysync test mail", html)
        logger.info("Test mail sent to %s", self.settings.MAIL_TO)

    def _send(self, subject: str, html: str) -> None:
        s = self.settings
        msg = EmailMessage()
        msg["From"] = f"studysync <{s.MAIL_FROM}>"
        msg["To"] = s.MAIL_TO
        msg["Subject"] = subject
        msg.set_content("This message needs an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")

        context = ssl.create_default_context()
        try:
            if s.SMTP_PORT == 465:
                with smtplib.SMTP_SSL(s.SMTP_HOST, s.SMTP_PORT, context=context, timeout=30) as smtp:
                    self._deliver(smtp, msg)
            else:
                with smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=30) as smtp:
                    smtp.starttls(context=context)
                    self._deliver(smtp, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP delivery to {s.MAIL_TO} failed: {e}", e) from e

    def _deliver(self, smtp: smtplib.SMTP, msg: EmailMessage) -> None:
        if self.settings.SMTP_USER:
            smtp.login(self.settings.SMTP_USER, self.settings.SMTP_PASSWORD or "")
        smtp.send_message(msg)
