"""JSON-backed snapshot and exam stores."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generic, Optional, Protocol, TypeVar

from studysync.exceptions import SnapshotError
from studysync.models import Exam

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path("data")
TIMETABLE_FILE = "timetable.json"
MATERIALS_FILE = "materials.json"
EXAMS_FILE = "exams.json"


class _Record(Protocol):
    def to_dict(self) -> dict: ...


R = TypeVar("R", bound=_Record)


class SnapshotStore(Generic[R]):
    """Whole-document store for the last known record list of one family.

    File layout (``timetable`` family shown):
        data/
            timetable.json       - the record list
            timetable_meta.json  - {"last_updated": ..., "count": ...}

    There are no partial updates: ``save`` replaces the document atomically.
    """

    def __init__(self, path: Path, record_type: type[R]) -> None:
        self.path = Path(path)
        self.record_type = record_type
        self.meta_path = self.path.with_name(f"{self.path.stem}_meta.json")

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load(self) -> Optional[list[R]]:
        """Load the snapshot, or None if it was never populated."""
        raw = _read_json(self.path)
        if raw is None:
            return None
        try:
            return [self.record_type.from_dict(item) for item in raw]  # type: ignore[attr-defined]
        except (TypeError, ValueError, AttributeError) as exc:
            raise SnapshotError(f"Malformed snapshot {self.path}: {exc}", original_exception=exc) from exc

    def meta(self) -> dict:
        raw = _read_json(self.meta_path)
        if not isinstance(raw, dict):
            return {"last_updated": None, "count": 0}
        return raw

    def last_updated(self) -> Optional[str]:
        return self.meta().get("last_updated")

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save(self, records: list[R]) -> None:
        """Replace the snapshot with *records* and stamp the meta file.

        Once the record document is swapped in the save has happened; a
        failing meta write only leaves a stale stamp and is logged.
        """
        _write_json(self.path, [r.to_dict() for r in records])
        logger.debug("Saved %d record(s) to %s", len(records), self.path)
        try:
            _write_json(
                self.meta_path,
                {"last_updated": datetime.now(timezone.utc).isoformat(), "count": len(records)},
            )
        except SnapshotError as exc:
            logger.warning("Snapshot %s saved but meta not updated: %s", self.path, exc.message)

    def clear(self) -> None:
        for path in (self.path, self.meta_path):
            if path.exists():
                path.unlink()
        logger.info("Cleared snapshot %s", self.path)


class ExamStore:
    """Persists the user's exam declarations as one JSON document."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> list[Exam]:
        raw = _read_json(self.path)
        if raw is None:
            return []
        try:
            return [Exam.from_dict(item) for item in raw]
        except (TypeError, ValueError, AttributeError) as exc:
            raise SnapshotError(f"Malformed exam store {self.path}: {exc}", original_exception=exc) from exc

    def save(self, exams: list[Exam]) -> None:
        _write_json(self.path, [e.to_dict() for e in exams])


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------

def _read_json(path: Path) -> Any:
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SnapshotError(f"Could not read {path}: {exc}", original_exception=exc) from exc


def _write_json(path: Path, payload: Any) -> None:
    """Write *payload* to a temp file next to *path*, then swap it in."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except (OSError, TypeError, ValueError) as exc:
        raise SnapshotError(f"Could not write {path}: {exc}", original_exception=exc) from exc
