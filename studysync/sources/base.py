"""Base source adapter and registry."""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Any, ClassVar, Optional

import httpx

from studysync.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.5  # seconds between requests
DEFAULT_TIMEOUT = 30.0
MAX_BACKOFF_MULTIPLIER = 4
MAX_CONSECUTIVE_ERRORS = 3

FAMILIES = ("timetable", "materials")

SUBJECTS = ["Anatomie", "Physiologie", "Biochemie", "Histologie", "Biologie", "Physik", "Chemie", "SIMED", "Klinik", "Medizin"]
MANDATORY_KEYWORDS = ["pflicht", "praktikum", "prak", "testat", "schein", "klausur", "dissek", "sezier"]
WEEKDAYS = {"Mo": 0, "Di": 1, "Mi": 2, "Do": 3, "Fr": 4, "Sa": 5, "So": 6}

_TIME_RANGE = re.compile(r"(\d{1,2}:\d{2})\s*[-–]\s*(\d{1,2}:\d{2})")
_WEEKDAY = re.compile(r"\b(Mo|Di|Mi|Do|Fr|Sa|So)\b")


class SourceRegistry:
    """Central registry of all available source adapters."""

    _sources: ClassVar[dict[str, type[BaseSource]]] = {}

    @classmethod
    def register(cls, source_cls: type[BaseSource]) -> type[BaseSource]:
        """Register a source class. Used as a decorator."""
        if not source_cls.name:
            raise ValueError(f"{source_cls.__name__} must define a 'name' attribute.")
        if source_cls.family not in FAMILIES:
            raise ValueError(f"{source_cls.__name__} has unknown family {source_cls.family!r}.")
        cls._sources[source_cls.name] = source_cls
        logger.debug("Registered source: %s (%s)", source_cls.name, source_cls.family)
        return source_cls

    @classmethod
    def get(cls, name: str) -> type[BaseSource] | None:
        return cls._sources.get(name)

    @classmethod
    def all(cls) -> dict[str, type[BaseSource]]:
        return dict(cls._sources)

    @classmethod
    def for_family(cls, family: str) -> list[type[BaseSource]]:
        return [s for s in cls._sources.values() if s.family == family]

    @classmethod
    def clear(cls) -> None:
        """Remove all registrations (useful for testing)."""
        cls._sources.clear()


class BaseSource(ABC):
    """Abstract base class for one upstream platform.

    ``scrape()`` never raises: errors are logged and an empty list comes
    back, so one broken portal cannot take the others down. The HTTP helper
    ``fetch()`` waits ``request_delay`` between requests, doubles the delay
    after a failed request and gives up after ``MAX_CONSECUTIVE_ERRORS``
    failures in a row. Latency is bounded by the client timeout.

    Subclasses set ``name``, ``family`` and ``base_url``, implement
    ``configured()`` and ``_scrape_impl()``, and register themselves with
    ``@SourceRegistry.register``.
    """

    name: ClassVar[str] = ""
    family: ClassVar[str] = "timetable"
    platform: ClassVar[str] = ""
    request_delay: ClassVar[float] = DEFAULT_DELAY

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        self.settings = settings
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, follow_redirects=True)
        self._current_delay = self.request_delay
        self._consecutive_errors = 0
        self._request_count = 0
        self._aborted = False

    @classmethod
    @abstractmethod
    def configured(cls, settings: Settings) -> bool:
        """Whether credentials for this platform are present."""

    # ------------------------------------------------------------------
    # Shared utilities
    # ------------------------------------------------------------------

    @staticmethod
    def guess_subject(title: str) -> str:
        lowered = title.lower()
        for subject in SUBJECTS:
            if subject.lower() in lowered:
                return subject
        return "General"

    @staticmethod
    def is_mandatory(title: str) -> bool:
        lowered = title.lower()
        return any(k in lowered for k in MANDATORY_KEYWORDS)

    @staticmethod
    def parse_time_range(text: str) -> tuple[Optional[str], Optional[str]]:
        """Extract ('08:15', '09:45') from 'Mo 08:15 - 09:45'."""
        match = _TIME_RANGE.search(text or "")
        if not match:
            return None, None
        return tuple(t.zfill(5) for t in match.groups())  # type: ignore[return-value]

    @staticmethod
    def next_weekday_date(text: str, today: Optional[date] = None) -> date:
        """Date of the next occurrence of the German weekday named in *text*.

        Falls back to *today* when no weekday abbreviation is present.
        """
        today = today or date.today()
        match = _WEEKDAY.search(text or "")
        if not match:
            return today
        ahead = (WEEKDAYS[match.group(1)] - today.weekday()) % 7
        return today + timedelta(days=ahead)

    # ------------------------------------------------------------------
    # HTTP helper
    # ------------------------------------------------------------------

    async def fetch(self, url: str, *, method: str = "GET", **kwargs: Any) -> httpx.Response | None:
        """Request a URL with polite delay and automatic backoff.

        Returns:
            The ``httpx.Response`` on success, or ``None`` if the request
            failed and should be skipped.
        """
        if self._aborted:
            return None

        if self._request_count > 0:
            await asyncio.sleep(self._current_delay)
        self._request_count += 1

        try:
            logger.debug("%s: %s %s (delay=%.2fs)", self.name, method, url, self._current_delay)
            resp = await self._client.request(method, url, **kwargs)

            if resp.status_code >= 400:
                self._handle_error(url, status=resp.status_code)
                return None

            self._current_delay = self.request_delay
            self._consecutive_errors = 0
            return resp

        except httpx.HTTPError as exc:
            self._handle_error(url, exc=exc)
            return None

    def _handle_error(self, url: str, *, status: int | None = None, exc: Exception | None = None) -> None:
        self._consecutive_errors += 1

        reason = f"HTTP {status}" if status else str(exc)
        logger.warning(
            "%s: request failed for %s (%s) [%d/%d consecutive errors]",
            self.name, url, reason, self._consecutive_errors, MAX_CONSECUTIVE_ERRORS,
        )

        if self._consecutive_errors >= MAX_CONSECUTIVE_ERRORS:
            logger.error("%s: %d consecutive errors, aborting remaining requests.", self.name, self._consecutive_errors)
            self._aborted = True
            return

        self._current_delay = min(self._current_delay * 2, self.request_delay * MAX_BACKOFF_MULTIPLIER)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        await self._client.aclose()

    @property
    def aborted(self) -> bool:
        return self._aborted

    async def scrape(self) -> list:
        """Fetch records from this platform; an empty list on any failure."""
        try:
            records = await self._scrape_impl()
        except Exception:
            logger.exception("%s: scrape failed", self.name)
            return []
        finally:
            await self.close()
        for record in records:
            record.platform = record.platform or self.platform
        return records

    @abstractmethod
    async def _scrape_impl(self) -> list:
        """Subclass hook: fetch and parse records."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} family={self.family!r}>"
