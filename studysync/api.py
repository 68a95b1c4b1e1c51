"""HTTP surface (FastAPI)."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from studysync import __version__
from studysync.config import Settings, get_settings
from studysync.demo import demo_timetable
from studysync.exceptions import ExamNotFoundError, InvalidExamError, NotificationError, SnapshotError
from studysync.projector import ical_feed, semester_start, semester_week_events, study_calendar_events
from studysync.services import Services, build_services

logger = logging.getLogger(__name__)


class ExamIn(BaseModel):
    subject: str
    exam_date: str
    selected_topics: list[str] = Field(default_factory=list)
    notes: str = ""


class ExamPatch(BaseModel):
    status: Optional[str] = None
    show_in_calendar: Optional[bool] = None


class ExamImport(BaseModel):
    exams: list[dict[str, Any]] = Field(default_factory=list)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or get_settings()
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.SCHEDULER_ENABLED:
            services.scheduler.start()
        logger.info("studysync API ready (environment %s, data dir %s)", settings.ENVIRONMENT, settings.DATA_DIR)
        yield
        if services.scheduler.started:
            await services.scheduler.stop()
        logger.info("studysync API shutdown")

    app = FastAPI(title="studysync API", version=__version__, lifespan=lifespan)
    app.state.services = services

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @app.exception_handler(ExamNotFoundError)
    async def exam_not_found(request: Request, exc: ExamNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc.message)

    @app.exception_handler(InvalidExamError)
    async def invalid_exam(request: Request, exc: InvalidExamError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc.message)

    @app.exception_handler(SnapshotError)
    async def snapshot_error(request: Request, exc: SnapshotError) -> JSONResponse:
        logger.error("Storage error on %s: %s", request.url.path, exc.message)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)

    router = APIRouter(prefix="/api")

    # ------------------------------------------------------------------
    # Timetable
    # ------------------------------------------------------------------

    @router.get("/timetable", tags=["timetable"])
    async def timetable_week(week: int = 0, semester: Optional[str] = None):
        events = services.timetable_store.load()
        if not events:
            events = demo_timetable()
            # a running refresh owns the snapshot
            if not services.timetable.running:
                services.timetable_store.save(events)
        start = semester_start(semester, settings)
        week_events = semester_week_events(events, week, start)
        return {
            "events": [e.to_dict() for e in week_events],
            "total": len(events),
            "week_offset": week,
            "semester_start": start.isoformat(),
            "last_updated": services.timetable_store.last_updated(),
        }

    @router.get("/timetable/all", tags=["timetable"])
    async def timetable_all():
        events = services.timetable_store.load() or demo_timetable()
        return {"events": [e.to_dict() for e in events], "last_updated": services.timetable_store.last_updated()}

    @router.get("/timetable/status", tags=["timetable"])
    async def timetable_status():
        return services.timetable.state.to_dict()

    @router.post("/timetable/refresh", tags=["timetable"], status_code=status.HTTP_202_ACCEPTED)
    async def timetable_refresh():
        started = services.timetable.trigger(notify_on_change=False)
        message = "Timetable refresh started" if started else "Timetable refresh already running"
        return {"message": message, "status": "running", "started": started}

    @router.post("/timetable/test-mail", tags=["timetable"])
    async def timetable_test_mail():
        try:
            await services.mailer.send_test_mail()
        except NotificationError as exc:
            logger.error("Test mail failed: %s", exc.message)
            return JSONResponse(status_code=500, content={"success": False, "error": exc.message})
        return {"success": True, "message": "Test mail sent"}

    # ------------------------------------------------------------------
    # Course materials
    # ------------------------------------------------------------------

    @router.get("/subjects", tags=["materials"])
    async def subjects():
        materials = services.materials_store.load() or []
        grouped: dict[str, dict] = {}
        for item in materials:
            key = item.course_title or "General"
            group = grouped.setdefault(
                key, {"name": key, "platform": item.platform or "Unknown", "lectures": [], "total_topics": 0}
            )
            group["lectures"].append(item.to_dict())
            group["total_topics"] += len(item.topics)
        return {
            "subjects": list(grouped.values()),
            "last_updated": services.materials_store.last_updated(),
            "total_materials": len(materials),
        }

    @router.get("/refresh/status", tags=["materials"])
    async def materials_status():
        return services.materials.state.to_dict()

    @router.post("/refresh", tags=["materials"], status_code=status.HTTP_202_ACCEPTED)
    async def materials_refresh():
        started = services.materials.trigger()
        message = "Refresh started" if started else "Refresh already running"
        return {"message": message, "status": "running", "started": started}

    @router.post("/cache/clear", tags=["materials"])
    async def cache_clear():
        services.materials_store.clear()
        return {"success": True}

    # ------------------------------------------------------------------
    # Exams and study plan
    # ------------------------------------------------------------------

    @router.get("/exams", tags=["exams"])
    async def list_exams():
        return [e.to_dict() for e in services.exams.all()]

    @router.post("/exams", tags=["exams"], status_code=status.HTTP_201_CREATED)
    async def create_exam(body: ExamIn):
        exam = services.exams.create(
            subject=body.subject,
            exam_date=body.exam_date,
            selected_topics=body.selected_topics,
            notes=body.notes,
            timetable_events=services.timetable_store.load() or [],
        )
        return exam.to_dict()

    @router.post("/exams/import", tags=["exams"])
    async def import_exams(body: ExamImport):
        if not body.exams:
            return {"restored": 0, "skipped": False}
        restored = services.exams.import_exams(body.exams)
        return {"restored": restored, "skipped": restored == 0}

    @router.get("/exams/calendar", tags=["exams"])
    async def exams_calendar(week: int = 0):
        return {"events": study_calendar_events(services.exams.all(), week), "week_offset": week}

    @router.patch("/exams/{exam_id}", tags=["exams"])
    async def update_exam(exam_id: str, body: ExamPatch):
        if body.status is None and body.show_in_calendar is None:
            raise InvalidExamError("Nothing to update: send 'status' and/or 'show_in_calendar'.")
        exam = None
        if body.status is not None:
            exam = services.exams.update_status(exam_id, body.status)
        if body.show_in_calendar is not None:
            exam = services.exams.set_visibility(exam_id, body.show_in_calendar)
        return exam.to_dict()

    @router.delete("/exams/{exam_id}", tags=["exams"])
    async def delete_exam(exam_id: str):
        if not services.exams.delete(exam_id):
            raise ExamNotFoundError(exam_id)
        return {"success": True}

    # ------------------------------------------------------------------
    # Feed and misc
    # ------------------------------------------------------------------

    @router.get("/calendar/ical", tags=["calendar"])
    async def calendar_ical(token: Optional[str] = Query(None)):
        if settings.ICAL_TOKEN and token != settings.ICAL_TOKEN:
            return _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized: pass the feed token as ?token=")
        body = ical_feed(services.timetable_store.load() or [], services.exams.all(), tz=settings.TIMEZONE)
        logger.info("iCal feed served")
        return Response(
            content=body,
            media_type="text/calendar; charset=utf-8",
            headers={
                "Content-Disposition": 'attachment; filename="studysync.ics"',
                "Cache-Control": "no-cache, max-age=0",
            },
        )

    @router.get("/version", tags=["meta"])
    async def version():
        return {"version": __version__, "today": date.today().isoformat()}

    app.include_router(router)
    return app
