"""Record types shared by the sources, the stores and the refresh pipeline."""

from __future__ import annotations

import hashlib
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from typing import Any, ClassVar, Optional

EXAM_STATUSES = ("upcoming", "done", "cancelled")
REFRESH_STATUSES = ("idle", "running", "done", "error")


def _short_hash(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def parse_day(value: str | date | datetime) -> date:
    """Return the calendar day of an ISO date/datetime string or object."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


@dataclass
class Event:
    """A single timetabled occurrence (lecture, practical, exam)."""

    title: str
    date: str  # ISO 8601 date: "2026-04-20"
    time_from: Optional[str] = None  # "08:15"
    time_to: Optional[str] = None
    location: str = ""
    lecturer: str = ""
    subject: str = "General"
    mandatory: bool = False
    platform: str = ""
    id: str = ""

    diff_fields: ClassVar[tuple[str, ...]] = ("title", "time_from", "time_to", "location")

    def __post_init__(self) -> None:
        if not self.id:
            self.id = self.make_id(self.title, self.date, self.time_from, self.time_to, self.location)

    @staticmethod
    def make_id(
        title: str,
        day: str,
        time_from: Optional[str],
        time_to: Optional[str],
        location: str = "",
    ) -> str:
        """Derive the identity from title, time and location.

        Any edit to those fields yields a different id, so an edited event
        shows up as one removal plus one addition. Sources that know a
        stable key should pass ``id`` explicitly instead.
        """
        when = f"{day}T{time_from or ''}-{time_to or ''}"
        return _short_hash(f"{title.strip()}|{when}|{(location or '').strip()}")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> Event:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @property
    def sort_key(self) -> tuple:
        return (self.date, self.time_from or "00:00", self.title.lower())

    def __repr__(self) -> str:
        time_str = f" {self.time_from}" if self.time_from else ""
        return f"<Event '{self.title}' on {self.date}{time_str} @ {self.location or '?'}>"


@dataclass
class Material:
    """One scraped course-material entry (a lecture and its topics)."""

    course_title: str
    title: str
    topics: list[str] = field(default_factory=list)
    week: Optional[int] = None
    date: Optional[str] = None
    text: str = ""
    platform: str = ""
    url: Optional[str] = None
    id: str = ""

    diff_fields: ClassVar[tuple[str, ...]] = ("title", "topics", "date")

    def __post_init__(self) -> None:
        if not self.id:
            self.id = _short_hash(f"{self.platform}|{self.course_title.strip()}|{self.title.strip()}")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> Material:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class LearnBlock:
    id: str
    exam_id: str
    subject: str
    title: str
    topics: list[str]
    date: str
    time_from: str
    time_to: str
    duration_min: int
    type: str = "learn_block"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> LearnBlock:
        return cls(**data)


@dataclass
class ExamBlock:
    id: str
    exam_id: str
    subject: str
    title: str
    date: str
    time_from: str = "08:00"
    time_to: str = "12:00"
    type: str = "exam"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> ExamBlock:
        return cls(**data)


@dataclass
class Exam:
    """A self-declared exam plus the study plan computed when it was created."""

    id: str
    subject: str
    exam_date: str
    selected_topics: list[str] = field(default_factory=list)
    notes: str = ""
    status: str = "upcoming"
    show_in_calendar: bool = True
    learn_blocks: list[LearnBlock] = field(default_factory=list)
    exam_block: Optional[ExamBlock] = None
    hours_needed: int = 0
    learn_days_needed: int = 0
    learn_start_date: Optional[str] = None
    created_at: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["learn_blocks"] = [b.to_dict() for b in self.learn_blocks]
        data["exam_block"] = self.exam_block.to_dict() if self.exam_block else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Exam:
        data = dict(data)
        blocks = [LearnBlock.from_dict(b) for b in data.pop("learn_blocks", None) or []]
        raw_exam_block = data.pop("exam_block", None)
        known = {f.name for f in fields(cls)}
        exam = cls(**{k: v for k, v in data.items() if k in known})
        exam.learn_blocks = blocks
        exam.exam_block = ExamBlock.from_dict(raw_exam_block) if raw_exam_block else None
        return exam


@dataclass
class Change:
    """A record whose identity survived but whose content differs."""

    before: Any
    after: Any

    def to_dict(self) -> dict:
        return {"before": self.before.to_dict(), "after": self.after.to_dict()}


@dataclass
class Diff:
    added: list = field(default_factory=list)
    removed: list = field(default_factory=list)
    changed: list[Change] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.added) + len(self.removed) + len(self.changed)

    @property
    def is_empty(self) -> bool:
        return self.total == 0

    def to_dict(self) -> dict:
        return {
            "added": [r.to_dict() for r in self.added],
            "removed": [r.to_dict() for r in self.removed],
            "changed": [c.to_dict() for c in self.changed],
        }

    def __repr__(self) -> str:
        return f"<Diff +{len(self.added)} ~{len(self.changed)} -{len(self.removed)}>"


@dataclass
class RefreshState:
    """Observable progress of one refresh family."""

    status: str = "idle"
    message: str = ""
    progress: int = 0
    last_updated: Optional[str] = None
    diff: Optional[Diff] = None
    has_changes: bool = False

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "message": self.message,
            "progress": self.progress,
            "last_updated": self.last_updated,
            "has_changes": self.has_changes,
            "diff": self.diff.to_dict() if self.diff else None,
        }


@dataclass
class RefreshResult:
    events: list
    diff: Diff
