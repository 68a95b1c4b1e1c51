"""Exam declarations: create, update, delete, restore."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Optional

from studysync.exceptions import ExamNotFoundError, InvalidExamError
from studysync.models import EXAM_STATUSES, Event, Exam, parse_day
from studysync.planner import allocate
from studysync.store import ExamStore

logger = logging.getLogger(__name__)


def _unique(topics: Iterable[str]) -> list[str]:
    """Strip topics and drop blanks and repeats, keeping first occurrences."""
    seen: set[str] = set()
    result: list[str] = []
    for topic in topics:
        topic = str(topic).strip()
        if topic and topic not in seen:
            seen.add(topic)
            result.append(topic)
    return result


class ExamService:
    """CRUD over the exam document.

    Derived fields (study blocks, hours, start date) are computed once in
    ``create`` and never touched again.
    """

    def __init__(self, store: ExamStore) -> None:
        self.store = store

    def all(self) -> list[Exam]:
        return self.store.load()

    def get(self, exam_id: str) -> Exam:
        for exam in self.store.load():
            if exam.id == exam_id:
                return exam
        raise ExamNotFoundError(exam_id)

    def create(
        self,
        subject: str,
        exam_date: str,
        selected_topics: Optional[Iterable[str]] = None,
        notes: str = "",
        timetable_events: Optional[list[Event]] = None,
    ) -> Exam:
        subject = (subject or "").strip()
        if not subject:
            raise InvalidExamError("An exam needs a subject.")
        if not exam_date:
            raise InvalidExamError("An exam needs a date.")
        try:
            day = parse_day(exam_date)
        except ValueError as exc:
            raise InvalidExamError(f"Invalid exam date {exam_date!r}.") from exc

        exam = Exam(
            id=uuid.uuid4().hex[:12],
            subject=subject,
            exam_date=day.isoformat(),
            selected_topics=_unique(selected_topics or []),
            notes=notes or "",
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        plan = allocate(exam, timetable_events or [])
        exam.learn_blocks = plan.blocks
        exam.exam_block = plan.exam_block
        exam.hours_needed = plan.hours_needed
        exam.learn_days_needed = plan.learn_days_needed
        exam.learn_start_date = plan.start_date

        exams = self.store.load()
        exams.append(exam)
        self.store.save(exams)
        logger.info(
            "Exam created: %s on %s | topics: %d | blocks: %d",
            exam.subject, exam.exam_date, len(exam.selected_topics), len(exam.learn_blocks),
        )
        return exam

    def update_status(self, exam_id: str, status: str) -> Exam:
        if status not in EXAM_STATUSES:
            raise InvalidExamError(f"Unknown exam status {status!r}; expected one of {', '.join(EXAM_STATUSES)}.")

        def apply(exam: Exam) -> None:
            exam.status = status
            if status in ("done", "cancelled"):
                exam.show_in_calendar = False

        return self._modify(exam_id, apply)

    def set_visibility(self, exam_id: str, show: bool) -> Exam:
        def apply(exam: Exam) -> None:
            exam.show_in_calendar = bool(show)

        return self._modify(exam_id, apply)

    def delete(self, exam_id: str) -> bool:
        exams = self.store.load()
        remaining = [e for e in exams if e.id != exam_id]
        if len(remaining) == len(exams):
            return False
        self.store.save(remaining)
        logger.info("Exam %s deleted", exam_id)
        return True

    def import_exams(self, records: list[dict]) -> int:
        """Restore a client-side backup into an empty store.

        Returns the number of exams restored; 0 when the store already has
        data (nothing is overwritten).
        """
        if not records:
            return 0
        if self.store.load():
            logger.info("Exam import skipped: store already holds data")
            return 0
        try:
            exams = [Exam.from_dict(r) for r in records]
        except (TypeError, ValueError, AttributeError) as exc:
            raise InvalidExamError(f"Malformed exam backup: {exc}") from exc
        self.store.save(exams)
        logger.info("Restored %d exam(s) from backup", len(exams))
        return len(exams)

    def _modify(self, exam_id: str, apply) -> Exam:
        exams = self.store.load()
        for exam in exams:
            if exam.id == exam_id:
                apply(exam)
                self.store.save(exams)
                return exam
        raise ExamNotFoundError(exam_id)
