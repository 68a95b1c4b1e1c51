"""Duplicate removal across sources."""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable
from typing import TypeVar

from studysync.models import Event

logger = logging.getLogger(__name__)

T = TypeVar("T")


def timetable_key(event: Event) -> tuple:
    """Two sources listing the same slot agree on title, start time and day."""
    return (event.title.strip(), event.time_from or "", event.date)


def identity_key(record) -> str:
    return record.id


def deduplicate(records: Iterable[T], key: Callable[[T], Hashable]) -> tuple[list[T], int]:
    """Keep the first record seen for every key, preserving input order.

    Returns:
        (deduplicated_records, number_of_duplicates_removed)
    """
    seen: set[Hashable] = set()
    kept: list[T] = []
    removed = 0

    for record in records:
        k = key(record)
        if k in seen:
            removed += 1
            logger.debug("Duplicate dropped: %r", record)
            continue
        seen.add(k)
        kept.append(record)

    if removed:
        logger.info("Deduplication removed %d record(s).", removed)
    return kept, removed
