"""Refresh coordination: single-flight runs, progress, diff and notification."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Optional

from studysync.aggregator import Aggregator
from studysync.diff import diff
from studysync.exceptions import SnapshotError
from studysync.models import Diff, RefreshResult, RefreshState
from studysync.store import SnapshotStore

logger = logging.getLogger(__name__)

Notifier = Callable[[Diff], Awaitable[bool]]

PROGRESS_FETCH = 10
PROGRESS_SOURCES_DONE = 70
PROGRESS_DIFF = 75
PROGRESS_PERSIST = 95
DEFAULT_QUIESCENCE_SECONDS = 30.0


class RefreshCoordinator:
    """Owns the refresh state of one family (timetable or materials).

    State machine::

        idle -> running -> done  -> idle (after the quiescence window)
                        -> error (until the next run)

    At most one run is in flight: a ``refresh()`` that finds the lock taken
    returns None at once and leaves the state alone. The lock is checked and
    taken with no suspension point in between.
    """

    def __init__(
        self,
        family: str,
        aggregator: Aggregator,
        store: SnapshotStore,
        notifier: Optional[Notifier] = None,
        quiescence_seconds: float = DEFAULT_QUIESCENCE_SECONDS,
    ) -> None:
        self.family = family
        self.aggregator = aggregator
        self.store = store
        self.notifier = notifier
        self.quiescence_seconds = quiescence_seconds
        self.state = RefreshState(message="Ready", last_updated=self._stored_last_updated())
        self._lock = asyncio.Lock()
        self._run_id = 0
        self._reset_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def refresh(self, notify_on_change: bool = False) -> Optional[RefreshResult]:
        """Run one refresh, or return None if one is already in flight."""
        if self._lock.locked():
            logger.info("%s refresh already running, request ignored", self.family)
            return None
        async with self._lock:
            return await self._run(notify_on_change)

    def trigger(self, notify_on_change: bool = False) -> bool:
        """Start a refresh in the background without waiting for it.

        Returns False when a run is already in flight.
        """
        if self.running:
            return False
        task = asyncio.create_task(self.refresh(notify_on_change), name=f"refresh-{self.family}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def join(self) -> None:
        """Wait for background runs started by ``trigger``."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # The run
    # ------------------------------------------------------------------

    async def _run(self, notify_on_change: bool) -> Optional[RefreshResult]:
        self._run_id += 1
        run_id = self._run_id
        self._cancel_reset()
        self.state = RefreshState(
            status="running",
            message=f"Loading {self.family} sources...",
            progress=PROGRESS_FETCH,
            last_updated=self.state.last_updated,
        )
        try:
            return await self._stages(run_id, notify_on_change)
        except asyncio.CancelledError:
            logger.warning("%s refresh cancelled", self.family)
            if self.state.status == "running":
                self.state = RefreshState(
                    status="error",
                    message="Refresh cancelled",
                    progress=0,
                    last_updated=self.state.last_updated,
                )
            raise

    async def _stages(self, run_id: int, notify_on_change: bool) -> Optional[RefreshResult]:
        try:
            previous = self.store.load()
            records = await self.aggregator.run(on_source_done=self._source_done)

            self._progress(PROGRESS_DIFF, "Comparing with the last snapshot...")
            delta = diff(previous, records)

            self._progress(PROGRESS_PERSIST, "Saving results...")
            self.store.save(records)
        except Exception as exc:
            logger.exception("%s refresh failed", self.family)
            self.state = RefreshState(
                status="error",
                message=str(exc) or exc.__class__.__name__,
                progress=0,
                last_updated=self.state.last_updated,
            )
            return None

        if not delta.is_empty:
            logger.info(
                "%s changes: +%d new, ~%d changed, -%d removed",
                self.family, len(delta.added), len(delta.changed), len(delta.removed),
            )
            if notify_on_change and self.notifier is not None:
                await self._notify(delta)

        self.state = RefreshState(
            status="done",
            message=f"{len(records)} {self.family} record(s) loaded",
            progress=100,
            last_updated=datetime.now(timezone.utc).isoformat(),
            diff=delta,
            has_changes=not delta.is_empty,
        )
        self._schedule_reset(run_id)
        return RefreshResult(events=records, diff=delta)

    async def _notify(self, delta: Diff) -> None:
        try:
            delivered = await self.notifier(delta)  # type: ignore[misc]
        except Exception:
            logger.exception("%s: change notification failed", self.family)
            return
        if delivered:
            logger.info("%s: change notification sent (%d change(s))", self.family, delta.total)
        else:
            logger.warning("%s: change notification was not delivered", self.family)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _progress(self, progress: int, message: str) -> None:
        self.state.progress = max(self.state.progress, progress)
        self.state.message = message

    def _source_done(self, name: str, finished: int, total: int) -> None:
        span = PROGRESS_SOURCES_DONE - PROGRESS_FETCH
        self._progress(PROGRESS_FETCH + span * finished // total, f"{name} loaded ({finished}/{total})")

    def _schedule_reset(self, run_id: int) -> None:
        loop = asyncio.get_running_loop()
        self._reset_handle = loop.call_later(self.quiescence_seconds, self._reset_to_idle, run_id)

    def _cancel_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

    def _reset_to_idle(self, run_id: int) -> None:
        if run_id == self._run_id and self.state.status == "done":
            self.state.status = "idle"

    def _stored_last_updated(self) -> Optional[str]:
        try:
            return self.store.last_updated()
        except SnapshotError:
            logger.warning("%s: unreadable snapshot meta, last update unknown", self.family)
            return None
