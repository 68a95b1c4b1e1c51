"""
Cron-style job scheduler running on the asyncio event loop.

Each job has its own loop that sleeps until the next firing time and then
starts the job as an independent task, so a slow job never delays another
entry. Entries are not mutually exclusive: two entries firing at the same
minute (07:00 refreshes both families) both run, and the refresh
coordinators' single-flight guard decides what actually executes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional
from zoneinfo import ZoneInfo

if TYPE_CHECKING:
    from studysync.services import Services

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[object]]

# (name, lowest, highest)
_FIELDS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day", 1, 31),
    ("month", 1, 12),
    ("weekday", 0, 7),
)
MAX_SEARCH_DAYS = 366 * 5


def _parse_field(text: str, low: int, high: int) -> frozenset[int]:
    values: set[int] = set()
    for part in text.split(","):
        step = 1
        if "/" in part:
            part, step_text = part.split("/", 1)
            step = int(step_text)
            if step < 1:
                raise ValueError(f"invalid step in {text!r}")
        if part == "*":
            start, end = low, high
        elif "-" in part:
            a, b = part.split("-", 1)
            start, end = int(a), int(b)
        else:
            start = int(part)
            end = high if step > 1 else start
        if start < low or end > high or start > end:
            raise ValueError(f"{text!r} out of range {low}-{high}")
        values.update(range(start, end + 1, step))
    return frozenset(values)


@dataclass(frozen=True)
class CronSchedule:
    """A parsed five-field cron expression (minute hour day month weekday)."""

    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]  # 0 = Sunday
    day_restricted: bool
    weekday_restricted: bool

    @classmethod
    def parse(cls, expression: str) -> CronSchedule:
        parts = expression.split()
        if len(parts) != 5:
            raise ValueError(f"cron expression needs 5 fields, got {len(parts)}: {expression!r}")
        try:
            parsed = [_parse_field(p, low, high) for p, (_name, low, high) in zip(parts, _FIELDS)]
        except ValueError as exc:
            raise ValueError(f"invalid cron expression {expression!r}: {exc}") from exc
        minutes, hours, days, months, weekdays = parsed
        weekdays = frozenset(0 if d == 7 else d for d in weekdays)
        return cls(
            expression=expression,
            minutes=minutes,
            hours=hours,
            days=days,
            months=months,
            weekdays=weekdays,
            day_restricted=parts[2] != "*",
            weekday_restricted=parts[4] != "*",
        )

    def _day_matches(self, dt: datetime) -> bool:
        if dt.month not in self.months:
            return False
        in_days = dt.day in self.days
        in_weekdays = (dt.isoweekday() % 7) in self.weekdays
        # classic cron: when both are restricted either one may match
        if self.day_restricted and self.weekday_restricted:
            return in_days or in_weekdays
        return in_days and in_weekdays

    def matches(self, dt: datetime) -> bool:
        return self._day_matches(dt) and dt.hour in self.hours and dt.minute in self.minutes

    def next_after(self, dt: datetime) -> datetime:
        """First matching minute strictly after *dt* (same tzinfo as *dt*)."""
        candidate = dt.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = candidate + timedelta(days=MAX_SEARCH_DAYS)
        while candidate < limit:
            if not self._day_matches(candidate):
                candidate = candidate.replace(hour=0, minute=0) + timedelta(days=1)
            elif candidate.hour not in self.hours:
                candidate = candidate.replace(minute=0) + timedelta(hours=1)
            elif candidate.minute not in self.minutes:
                candidate += timedelta(minutes=1)
            else:
                return candidate
        raise ValueError(f"{self.expression!r} never fires")


@dataclass
class Job:
    name: str
    schedule: CronSchedule
    func: JobFunc


class JobScheduler:
    """Runs registered jobs at their cron times in the *tz* wall clock."""

    def __init__(self, tz: str = "Europe/Berlin") -> None:
        self.tz = ZoneInfo(tz)
        self.jobs: list[Job] = []
        self._loops: list[asyncio.Task] = []
        self._running: set[asyncio.Task] = set()

    def add(self, name: str, expression: str, func: JobFunc) -> Job:
        job = Job(name=name, schedule=CronSchedule.parse(expression), func=func)
        self.jobs.append(job)
        logger.debug("Job registered: %s (%s)", name, expression)
        return job

    @property
    def started(self) -> bool:
        return bool(self._loops)

    def start(self) -> None:
        if self._loops:
            logger.warning("Scheduler already started")
            return
        for job in self.jobs:
            self._loops.append(asyncio.create_task(self._loop(job), name=f"schedule-{job.name}"))
        logger.info("Scheduler started with %d job(s)", len(self.jobs))
        for job in self.jobs:
            logger.info("  %-20s %s", job.name, job.schedule.expression)

    async def stop(self) -> None:
        tasks = self._loops + list(self._running)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loops.clear()
        self._running.clear()
        logger.info("Scheduler stopped")

    def now(self) -> datetime:
        return datetime.now(self.tz)

    async def _loop(self, job: Job) -> None:
        last_due: Optional[datetime] = None
        while True:
            now = self.now()
            due = job.schedule.next_after(max(now, last_due) if last_due else now)
            delay = (due.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds()
            logger.debug("%s: next run %s (in %.0fs)", job.name, due.isoformat(), delay)
            await asyncio.sleep(max(delay, 0))
            last_due = due
            self.run_now(job)

    def run_now(self, job: Job) -> asyncio.Task:
        """Start *job* as its own task; failures are logged and never reach the loop."""
        logger.info("Running job %s", job.name)
        task = asyncio.create_task(self._guarded(job), name=f"job-{job.name}")
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task

    async def _guarded(self, job: Job) -> None:
        try:
            await job.func()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Job %s failed", job.name)


def default_jobs(scheduler: JobScheduler, services: Services) -> JobScheduler:
    """Register the standard refresh and mail jobs on *scheduler*."""

    async def refresh_materials() -> None:
        await services.materials.refresh()

    async def refresh_timetable() -> None:
        await services.timetable.refresh(notify_on_change=False)

    async def check_changes() -> None:
        result = await services.timetable.refresh(notify_on_change=True)
        if result is not None and result.diff.is_empty:
            logger.info("Change check: no changes, no mail")

    async def weekly_overview() -> None:
        events = services.timetable_store.load() or []
        await services.mailer.send_weekly_overview(events)

    scheduler.add("materials", "0 7 * * *", refresh_materials)
    for hour in (7, 13, 19):
        scheduler.add(f"timetable-{hour:02d}", f"0 {hour} * * *", refresh_timetable)
    for hour in (6, 21):
        scheduler.add(f"change-check-{hour:02d}", f"0 {hour} * * *", check_changes)
    scheduler.add("weekly-overview", "0 16 * * 0", weekly_overview)
    return scheduler
