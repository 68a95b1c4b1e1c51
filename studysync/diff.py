"""Classify the delta between two snapshots of the same family."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

from studysync.models import Change, Diff


def _content(record) -> tuple:
    return tuple(getattr(record, name, None) for name in type(record).diff_fields)


def diff(old: Optional[Sequence], new: Sequence) -> Diff:
    """Compare *old* and *new* by record id.

    ``added`` keeps the order of *new*, ``removed`` the order of *old*, and
    ``changed`` lists records whose id is in both but whose comparable
    fields (``diff_fields`` of the record type) differ. ``old=None`` means
    the snapshot was never populated.
    """
    old = list(old or [])
    new = list(new or [])
    old_by_id = {r.id: r for r in old}
    new_by_id = {r.id: r for r in new}

    result = Diff()
    for record in new:
        before = old_by_id.get(record.id)
        if before is None:
            result.added.append(record)
        elif _content(before) != _content(record):
            result.changed.append(Change(before=before, after=record))

    result.removed = [r for r in old if r.id not in new_by_id]
    return result
