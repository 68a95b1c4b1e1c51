"""Wires stores, sources, coordinators, mailer and scheduler together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from studysync.aggregator import Aggregator
from studysync.config import Settings, get_settings
from studysync.dedup import identity_key, timetable_key
from studysync.demo import demo_materials, demo_timetable
from studysync.exams import ExamService
from studysync.mailer import Mailer
from studysync.models import Event, Material
from studysync.refresh import RefreshCoordinator
from studysync.scheduler import JobScheduler, default_jobs
from studysync.sources import BaseSource, SourceRegistry, discover
from studysync.store import EXAMS_FILE, MATERIALS_FILE, TIMETABLE_FILE, ExamStore, SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    timetable_store: SnapshotStore[Event]
    materials_store: SnapshotStore[Material]
    exam_store: ExamStore
    exams: ExamService
    timetable: RefreshCoordinator
    materials: RefreshCoordinator
    mailer: Mailer
    scheduler: JobScheduler


def configured_sources(family: str, settings: Settings) -> list[BaseSource]:
    """Fresh instances of every registered *family* source that has credentials."""
    discover()
    sources = []
    for source_cls in SourceRegistry.for_family(family):
        if source_cls.configured(settings):
            sources.append(source_cls(settings))
        else:
            logger.debug("%s: not configured, skipped", source_cls.name)
    return sources


def build_services(settings: Optional[Settings] = None) -> Services:
    settings = settings or get_settings()
    data_dir = settings.DATA_DIR

    timetable_store = SnapshotStore(data_dir / TIMETABLE_FILE, Event)
    materials_store = SnapshotStore(data_dir / MATERIALS_FILE, Material)
    exam_store = ExamStore(data_dir / EXAMS_FILE)
    mailer = Mailer(settings)

    timetable = RefreshCoordinator(
        "timetable",
        Aggregator(lambda: configured_sources("timetable", settings), demo_timetable, timetable_key),
        timetable_store,
        notifier=mailer,
        quiescence_seconds=settings.REFRESH_QUIESCENCE_SECONDS,
    )
    materials = RefreshCoordinator(
        "materials",
        Aggregator(lambda: configured_sources("materials", settings), demo_materials, identity_key),
        materials_store,
        quiescence_seconds=settings.REFRESH_QUIESCENCE_SECONDS,
    )

    services = Services(
        settings=settings,
        timetable_store=timetable_store,
        materials_store=materials_store,
        exam_store=exam_store,
        exams=ExamService(exam_store),
        timetable=timetable,
        materials=materials,
        mailer=mailer,
        scheduler=JobScheduler(settings.TIMEZONE),
    )
    default_jobs(services.scheduler, services)
    return services
