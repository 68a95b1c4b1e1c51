"""Command-line interface for studysync."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click
import uvicorn

from studysync.api import create_app
from studysync.config import get_settings
from studysync.exceptions import StudySyncError
from studysync.projector import ical_feed, semester_start, semester_week_events
from studysync.services import Services, build_services
from studysync.sources import SourceRegistry, discover

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def _setup_logging(verbose: bool, level: str = "INFO") -> None:
    logging.basicConfig(format=LOG_FORMAT, level=logging.DEBUG if verbose else level.upper())


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option(
    "--data-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Directory for JSON snapshots (default: DATA_DIR or ./data).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, data_dir: Path | None) -> None:
    """studysync - timetable, course materials and study plans in one calendar."""
    settings = get_settings()
    if data_dir is not None:
        settings = settings.model_copy(update={"DATA_DIR": data_dir})
    _setup_logging(verbose, settings.LOG_LEVEL)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["services"] = build_services(settings)


@cli.command()
@click.argument("family", type=click.Choice(["timetable", "materials"]), default="timetable")
@click.option("--notify", is_flag=True, help="Mail the changes if there are any.")
@click.pass_context
def refresh(ctx: click.Context, family: str, notify: bool) -> None:
    """Fetch every configured source of FAMILY and update the snapshot."""
    services: Services = ctx.obj["services"]
    coordinator = services.timetable if family == "timetable" else services.materials

    result = asyncio.run(coordinator.refresh(notify_on_change=notify))
    if result is None:
        raise click.ClickException(coordinator.state.message or "Refresh failed.")

    d = result.diff
    click.echo(f"{len(result.events)} {family} record(s).")
    click.echo(f"Changes: +{len(d.added)} new, ~{len(d.changed)} changed, -{len(d.removed)} removed.")


@cli.command()
@click.option("--offset", default=0, show_default=True, help="Weeks relative to the current semester week.")
@click.option("--semester", default=None, help="Semester key, e.g. ss26 or ws2627.")
@click.pass_context
def week(ctx: click.Context, offset: int, semester: str | None) -> None:
    """Print the timetable of one semester week."""
    services: Services = ctx.obj["services"]
    events = services.timetable_store.load() or []
    start = semester_start(semester, ctx.obj["settings"])
    week_events = semester_week_events(events, offset, start)

    if not week_events:
        click.echo("No events this week.")
        return
    current_day = None
    for e in week_events:
        if e.date != current_day:
            current_day = e.date
            click.echo(f"\n{current_day}")
        when = f"{e.time_from or '':>5}-{e.time_to or '':<5}"
        flag = " [mandatory]" if e.mandatory else ""
        click.echo(f"  {when} {e.title}{flag}  {e.location}")


# ---------------------------------------------------------------------------
# Exams
# ---------------------------------------------------------------------------

@cli.group()
def exams() -> None:
    """Manage exams and their study plans."""


@exams.command("list")
@click.pass_context
def exams_list(ctx: click.Context) -> None:
    services: Services = ctx.obj["services"]
    all_exams = services.exams.all()
    if not all_exams:
        click.echo("No exams.")
        return
    click.echo(f"{'ID':<14} {'Date':<11} {'Status':<10} {'Blocks':>6}  Subject")
    for exam in sorted(all_exams, key=lambda e: e.exam_date):
        click.echo(f"{exam.id:<14} {exam.exam_date:<11} {exam.status:<10} {len(exam.learn_blocks):>6}  {exam.subject}")


@exams.command("add")
@click.argument("subject")
@click.argument("exam_date")
@click.option("-t", "--topic", "topics", multiple=True, help="Topic to study (repeatable).")
@click.option("--notes", default="", help="Free-text notes.")
@click.pass_context
def exams_add(ctx: click.Context, subject: str, exam_date: str, topics: tuple[str, ...], notes: str) -> None:
    """Declare an exam on EXAM_DATE (YYYY-MM-DD) and plan study blocks."""
    services: Services = ctx.obj["services"]
    try:
        exam = services.exams.create(
            subject, exam_date, list(topics), notes, timetable_events=services.timetable_store.load() or []
        )
    except StudySyncError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(f"Exam {exam.id} created: {exam.subject} on {exam.exam_date}")
    click.echo(f"{exam.hours_needed} h in {len(exam.learn_blocks)} block(s), starting {exam.learn_start_date}")
    for block in exam.learn_blocks:
        click.echo(f"  {block.date} {block.time_from}-{block.time_to}  {', '.join(block.topics)}")


@exams.command("status")
@click.argument("exam_id")
@click.argument("status", type=click.Choice(["upcoming", "done", "cancelled"]))
@click.pass_context
def exams_status(ctx: click.Context, exam_id: str, status: str) -> None:
    services: Services = ctx.obj["services"]
    try:
        exam = services.exams.update_status(exam_id, status)
    except StudySyncError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(f"Exam {exam.id} is now {exam.status}.")


@exams.command("delete")
@click.argument("exam_id")
@click.pass_context
def exams_delete(ctx: click.Context, exam_id: str) -> None:
    services: Services = ctx.obj["services"]
    if not services.exams.delete(exam_id):
        raise click.ClickException(f"Exam {exam_id} not found.")
    click.echo(f"Exam {exam_id} deleted.")


# ---------------------------------------------------------------------------
# Export and info
# ---------------------------------------------------------------------------

@cli.command()
@click.option("-o", "--output", type=click.Path(path_type=Path), default=None, help="Write to a file instead of stdout.")
@click.pass_context
def ical(ctx: click.Context, output: Path | None) -> None:
    """Export timetable, exams and study blocks as an .ics feed."""
    services: Services = ctx.obj["services"]
    body = ical_feed(
        services.timetable_store.load() or [],
        services.exams.all(),
        tz=ctx.obj["settings"].TIMEZONE,
    )
    if output is None:
        click.echo(body, nl=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(body, encoding="utf-8", newline="")
    click.echo(f"Written: {output}")


@cli.command("list-sources")
@click.pass_context
def list_sources(ctx: click.Context) -> None:
    """Show all registered sources and whether they are configured."""
    discover()
    settings = ctx.obj["settings"]
    all_sources = SourceRegistry.all()
    if not all_sources:
        click.echo("No sources registered.")
        return

    click.echo(f"{'Name':<20} {'Family':<10} {'Configured'}")
    click.echo(f"{'-' * 20} {'-' * 10} {'-' * 10}")
    for name, cls in sorted(all_sources.items()):
        click.echo(f"{name:<20} {cls.family:<10} {'yes' if cls.configured(settings) else 'no'}")


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show snapshot statistics."""
    services: Services = ctx.obj["services"]
    for label, store in (("Timetable", services.timetable_store), ("Materials", services.materials_store)):
        meta = store.meta()
        click.echo(f"{label + ':':<11} {meta.get('count', 0)} record(s), last updated {meta.get('last_updated') or 'never'}")
    all_exams = services.exams.all()
    upcoming = sum(1 for e in all_exams if e.status == "upcoming")
    click.echo(f"{'Exams:':<11} {len(all_exams)} ({upcoming} upcoming)")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Run the HTTP API (and the job scheduler) with uvicorn."""
    app = create_app(ctx.obj["settings"], ctx.obj["services"])
    uvicorn.run(app, host=host, port=port, log_config=None)
