"""Study-plan allocation: turn an exam declaration into study blocks.

Rules:
    - 45 minutes of study per topic.
    - One learning day per two topics, at least 3 and at most 30 days before
      the exam.
    - Three fixed daily slots (09:00, 14:00, 18:00), 90 minutes each.
    - Days with a mandatory event get at most one slot.
    - Nothing is scheduled on the exam day itself; topics that do not fit
      are appended to the last block.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from studysync.models import Event, Exam, ExamBlock, LearnBlock, parse_day

logger = logging.getLogger(__name__)

MINUTES_PER_TOPIC = 45
MIN_LEARN_DAYS = 3
MAX_LEARN_DAYS = 30
BUSY_DAY_MAX_SLOTS = 1
EXAM_TIME_FROM = "08:00"
EXAM_TIME_TO = "12:00"


@dataclass(frozen=True)
class Slot:
    time_from: str
    duration_min: int

    @property
    def time_to(self) -> str:
        start = datetime.strptime(self.time_from, "%H:%M")
        return (start + timedelta(minutes=self.duration_min)).strftime("%H:%M")


DAILY_SLOTS = (Slot("09:00", 90), Slot("14:00", 90), Slot("18:00", 90))


@dataclass
class StudyPlan:
    blocks: list[LearnBlock] = field(default_factory=list)
    hours_needed: int = 0
    learn_days_needed: int = MIN_LEARN_DAYS
    start_date: Optional[str] = None
    exam_block: Optional[ExamBlock] = None


def hours_needed(topic_count: int) -> int:
    if topic_count <= 0:
        return 0
    return math.ceil(topic_count * MINUTES_PER_TOPIC / 60)


def learn_days_needed(topic_count: int) -> int:
    return max(MIN_LEARN_DAYS, min(MAX_LEARN_DAYS, math.ceil(max(topic_count, 0) / 2)))


def busy_days(events: Optional[Iterable[Event]]) -> set[date]:
    """Days carrying at least one mandatory event."""
    days: set[date] = set()
    for event in events or []:
        if event.mandatory and event.date:
            try:
                days.add(parse_day(event.date))
            except ValueError:
                logger.debug("Skipping event with unparseable date: %r", event)
    return days


def block_title(subject: str) -> str:
    return f"{subject} - study block"


def exam_block_for(exam: Exam) -> ExamBlock:
    return ExamBlock(
        id=f"{exam.id}-exam",
        exam_id=exam.id,
        subject=exam.subject,
        title=f"Exam: {exam.subject}",
        date=parse_day(exam.exam_date).isoformat(),
        time_from=EXAM_TIME_FROM,
        time_to=EXAM_TIME_TO,
    )


def allocate(exam: Exam, current_events: Optional[Iterable[Event]] = None) -> StudyPlan:
    """Compute the study blocks for *exam*.

    *current_events* is only used to find busy days. The caller must make
    sure ``exam.exam_date`` is set; this function has no error path of its
    own.
    """
    exam_day = parse_day(exam.exam_date)
    topics = list(exam.selected_topics or [])
    n = len(topics)

    days_needed = learn_days_needed(n)
    start = exam_day - timedelta(days=days_needed)
    plan = StudyPlan(
        hours_needed=hours_needed(n),
        learn_days_needed=days_needed,
        start_date=start.isoformat(),
        exam_block=exam_block_for(exam),
    )
    if n == 0:
        return plan

    busy = busy_days(current_events)
    topics_per_day = max(1, math.ceil(n / days_needed))
    topic_index = 0
    current = start

    while current < exam_day and topic_index < n:
        max_slots = BUSY_DAY_MAX_SLOTS if current in busy else len(DAILY_SLOTS)
        for slot in DAILY_SLOTS[:max_slots]:
            if topic_index >= n:
                break
            chunk = topics[topic_index:topic_index + topics_per_day]
            plan.blocks.append(
                LearnBlock(
                    id=f"{exam.id}-b{len(plan.blocks) + 1}",
                    exam_id=exam.id,
                    subject=exam.subject,
                    title=block_title(exam.subject),
                    topics=chunk,
                    date=current.isoformat(),
                    time_from=slot.time_from,
                    time_to=slot.time_to,
                    duration_min=slot.duration_min,
                )
            )
            topic_index += len(chunk)
        current += timedelta(days=1)

    # Leftovers go onto the last block; the exam day stays free.
    if topic_index < n and plan.blocks:
        remaining = topics[topic_index:]
        last = plan.blocks[-1]
        last.topics = last.topics + remaining
        last.title += f" (+{len(remaining)} more)"

    logger.debug(
        "Allocated %d block(s) for %s: %d topic(s), %d day(s) from %s",
        len(plan.blocks), exam.subject, n, days_needed, plan.start_date,
    )
    return plan
