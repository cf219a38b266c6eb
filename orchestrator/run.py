# -*- coding: utf-8 -*-
"""``studyplan``: extract syllabi and plan study sessions from the command line."""
import json
import logging
import os
import typing as t
from datetime import datetime
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from academic_planner.scheduler import generate_study_sessions
from orchestrator.utils import expand_pdf_paths
from productivity_server.ics import encode_ics
from productivity_server.mapping import build_calendar_events
from services.shared.config import Settings
from services.shared.errors import StudyPlanError
from services.shared.utils import format_date, truncate_text
from syllabus_server.extractor import SyllabusExtractor
from syllabus_server.models import events_from_dicts
from syllabus_server.oracle import OpenAIOracle
from syllabus_server.pdf_utils import load_pdf_bytes

console = Console()
logger = logging.getLogger("studyplan")

DATE_FORMATS = ["%Y-%m-%d"]


def configure_cli_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def format_datetime_human(value) -> str:
    """MM/DD HH:MM, for tables."""
    return value.strftime("%m/%d %H:%M")


def create_events_table(title: str, events: list) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Type", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Due", style="yellow")
    for event in events:
        table.add_row(event.event_type, truncate_text(event.title, 45), format_date(event.due_date))
    return table


def create_sessions_table(drafts: list) -> Table:
    table = Table(title="Study Sessions", show_header=True, header_style="bold magenta")
    table.add_column("#", style="cyan", width=4)
    table.add_column("Title", style="white")
    table.add_column("Date/Time", style="yellow")
    for idx, draft in enumerate(drafts, 1):
        table.add_row(
            str(idx),
            truncate_text(draft.title, 45),
            f"{format_datetime_human(draft.start_time)} → {format_datetime_human(draft.end_time)}",
        )
    return table


def _load_events_file(path: str) -> tuple[list[dict[str, t.Any]], t.Optional[str]]:
    """Events and course code from ``studyplan extract`` output (one result or a list of them)."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    results = data if isinstance(data, list) else [data]
    events: list[dict[str, t.Any]] = []
    course_code = None
    for result in results:
        if not isinstance(result, dict):
            continue
        events.extend(e for e in result.get("events") or [] if isinstance(e, dict))
        course_code = course_code or result.get("course_code")
    return events, course_code


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Syllabus study planner."""
    ctx.ensure_object(dict)
    settings = ctx.obj.get("settings")
    if settings is None:
        try:
            settings = Settings.from_env()
        except ValidationError as e:
            raise click.ClickException(f"Invalid configuration: {e}")
    ctx.obj["settings"] = settings
    configure_cli_logging("DEBUG" if verbose else settings.log_level)


@cli.command()
@click.argument("paths", nargs=-1, required=True)
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True),
              help="Write the extraction results to this JSON file.")
@click.pass_context
def extract(ctx: click.Context, paths: tuple[str, ...], output: t.Optional[str]) -> None:
    """Extract course events from syllabus PDFs.

    PATHS: PDF files, directories of PDFs or http(s) URLs.
    """
    pdf_paths = expand_pdf_paths(paths)
    extractor = ctx.obj.get("extractor")
    if extractor is None:
        settings = ctx.obj["settings"]
        try:
            oracle = OpenAIOracle.from_settings(settings)
        except RuntimeError as e:
            raise click.ClickException(str(e))
        extractor = SyllabusExtractor(oracle, fallback_threshold=settings.pdf_fallback_threshold)

    console.print(
        Panel.fit(
            f"[bold blue]Syllabus Study Planner[/bold blue]\n"
            f"Extracting [bold]{len(pdf_paths)}[/bold] syllabus PDF(s)",
            border_style="blue",
        )
    )

    results = []
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Extracting syllabi...", total=len(pdf_paths))
        for pdf_path in pdf_paths:
            name = os.path.basename(pdf_path)
            progress.update(task, description=f"Extracting {name}...")
            try:
                content = load_pdf_bytes(pdf_path)
            except (OSError, ValueError) as e:
                logger.error("Could not read %s: %s", pdf_path, e)
                progress.update(task, advance=1)
                continue
            result = extractor.extract_from_pdf(content, filename=name)
            results.append((pdf_path, result))
            progress.update(task, advance=1)

    for pdf_path, result in results:
        name = os.path.basename(pdf_path)
        if result.is_empty:
            console.print(f"   [yellow]![/yellow] {name}: no events found, try again or enter them manually")
            continue
        label = result.course_code or name
        console.print(f"   ✓ {name}")
        console.print(create_events_table(f"{label}: {len(result.events)} event(s)", result.events))

    if output:
        payload = [dict(r.to_dict(), source=p) for p, r in results]
        Path(output).write_text(json.dumps(payload, indent=2), encoding="utf-8")
        console.print(f"\n[bold green]Saved results to {output}[/bold green]")


@cli.command()
@click.argument("events_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--start", required=True, type=click.DateTime(formats=DATE_FORMATS), help="First day of the plan.")
@click.option("--end", required=True, type=click.DateTime(formats=DATE_FORMATS), help="Last day of the plan.")
@click.option("--sessions-per-week", default=3, show_default=True, type=click.IntRange(1, 7))
@click.option("--hours-per-session", default=2.0, show_default=True, type=click.FloatRange(1, 8))
@click.option("--course-code", help="Overrides the course code found in EVENTS_JSON.")
@click.option("--ics", "ics_path", type=click.Path(dir_okay=False, writable=True),
              help="Write course events and sessions to this .ics file.")
def plan(events_json: str, start: datetime, end: datetime, sessions_per_week: int, hours_per_session: float,
         course_code: t.Optional[str], ics_path: t.Optional[str]) -> None:
    """Plan study sessions around the events in EVENTS_JSON.

    EVENTS_JSON: Output of ``studyplan extract --output``.
    """
    raw_events, found_code = _load_events_file(events_json)
    course_code = course_code or found_code
    events = events_from_dicts(raw_events)

    try:
        drafts = generate_study_sessions(
            start,
            end,
            sessions_per_week,
            hours_per_session,
            events=events,
            course_code=course_code,
        )
    except StudyPlanError as e:
        raise click.ClickException(str(e))

    if not drafts:
        console.print("[yellow]The date range is too short for any study session.[/yellow]")
    else:
        console.print(create_sessions_table(drafts))

    if ics_path:
        try:
            document = encode_ics(build_calendar_events(events, drafts, course_code=course_code))
        except StudyPlanError as e:
            raise click.ClickException(str(e))
        Path(ics_path).write_text(document, encoding="utf-8", newline="")
        console.print(f"\n[bold green]Wrote {len(events) + len(drafts)} event(s) to {ics_path}[/bold green]")


if __name__ == "__main__":
    cli()
