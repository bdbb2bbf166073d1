"""ClarityCall CLI commands for running and inspecting the service."""

from __future__ import annotations

import asyncio
import datetime as dt
import json
from pathlib import Path
from typing import Optional

import pydantic
import typer
from rich.console import Console
from rich.table import Table

# Create Typer app
app = typer.Typer(help="ClarityCall voice planning assistant CLI", no_args_is_help=True)
console = Console()


def _async_run(coro):
    """Run an async coroutine."""
    return asyncio.run(coro)


def _load_json(path: Path):
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        console.print(f"[red]Cannot read {path}: {exc}[/red]")
        raise typer.Exit(1) from exc


def _clock(value: dt.datetime, zone) -> str:
    return value.astimezone(zone).strftime("%Y-%m-%d %H:%M")


@app.command()
def serve() -> None:
    """Start the API server with the scheduler and due-call poller."""
    from claritycall.main import main

    main()


@app.command("init-db")
def init_db() -> None:
    """Create all database tables."""
    from claritycall.config import get_settings
    from claritycall.database import close_db
    from claritycall.database import init_db as _init_db
    from claritycall.main import _ensure_sqlite_dir

    async def _init():
        _ensure_sqlite_dir(get_settings().database_url)
        await _init_db()
        await close_db()

    _async_run(_init())
    console.print("[green]✓ Database initialized[/green]")


@app.command()
def availability(
    events_file: Path = typer.Argument(..., help="JSON file with a list of calendar events (or {'items': [...]})"),
    start: dt.datetime = typer.Option(..., "--start", "-s", help="Window start (ISO 8601)"),
    end: dt.datetime = typer.Option(..., "--end", "-e", help="Window end (ISO 8601)"),
    timezone: Optional[str] = typer.Option(None, "--tz", help="IANA timezone for naive times and all-day events"),
    business_hours: bool = typer.Option(False, "--business-hours", "-b", help="Trim free slots to working hours"),
) -> None:
    """Compute busy periods and free slots from an events file, offline."""
    from claritycall.errors import ClarityError
    from claritycall.modules.availability import AvailabilityComputer, AvailabilityService
    from claritycall.modules.calendar import CalendarEvent

    raw = _load_json(events_file)
    items = raw.get("items", []) if isinstance(raw, dict) else raw
    try:
        events = [CalendarEvent.from_provider(item) for item in items]
    except pydantic.ValidationError as exc:
        console.print(f"[red]Invalid event data: {exc.error_count()} error(s)[/red]")
        raise typer.Exit(1) from exc

    computer = AvailabilityComputer()
    try:
        zone = computer.zone(timezone)
        result = computer.compute(
            events,
            start,
            end,
            business_hours=AvailabilityService.business_hours(timezone) if business_hours else None,
            tz=timezone,
        )
    except ClarityError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(1) from exc

    busy = Table(title="Busy periods")
    busy.add_column("Start", style="cyan")
    busy.add_column("End", style="cyan")
    busy.add_column("Event", style="white")
    for period in result.busy_periods:
        busy.add_row(_clock(period.start, zone), _clock(period.end, zone), period.title)
    console.print(busy)

    free = Table(title="Free slots")
    free.add_column("Start", style="green")
    free.add_column("End", style="green")
    free.add_column("Minutes", style="yellow", justify="right")
    for slot in result.free_slots:
        free.add_row(_clock(slot.start, zone), _clock(slot.end, zone), str(int(slot.duration_minutes)))
    console.print(free)

    console.print(
        f"\nEvents: {result.stats.total_events}  Busy: {result.stats.total_busy_periods}  "
        f"Free: {result.stats.total_free_slots}  Longest: {int(result.stats.longest_free_slot)} min"
    )


@app.command()
def extract(
    transcript_file: Path = typer.Argument(..., help="Transcript JSON (list of turns or provider envelope)"),
    timezone: Optional[str] = typer.Option(None, "--tz", help="Timezone for requests that omit one"),
) -> None:
    """List the task requests a transcript contains."""
    from claritycall.config import get_settings
    from claritycall.modules.transcripts import extract_task_requests

    requests = extract_task_requests(
        _load_json(transcript_file), timezone or get_settings().clarity_default_timezone,
    )
    if not requests:
        console.print("[yellow]No task requests found.[/yellow]")
        return

    table = Table(title="Task requests")
    table.add_column("Title", style="green")
    table.add_column("Due", style="cyan")
    table.add_column("Timezone", style="yellow")
    for request in requests:
        table.add_row(request.title, request.due, request.timezone or "")
    console.print(table)


@app.command()
def poll() -> None:
    """Run one due-call sweep against the database and exit."""
    from claritycall.database import close_db
    from claritycall.database import init_db as _init_db
    from claritycall.orchestrator import Orchestrator

    async def _poll():
        await _init_db()
        try:
            return await Orchestrator().poller.poll()
        finally:
            await close_db()

    report = _async_run(_poll())

    table = Table(title="Poll results")
    table.add_column("Outcome", style="cyan")
    table.add_column("Count", style="green", justify="right")
    table.add_row("Fired", str(len(report.fired)))
    table.add_row("Failed", str(len(report.failed)))
    table.add_row("Already claimed", str(len(report.already_claimed)))
    table.add_row("Skipped users", str(len(report.skipped_users)))
    console.print(table)


@app.command()
def doctor() -> None:
    """Check configuration for the pieces a call needs."""
    from claritycall.config import get_settings

    console.print("\n[bold cyan]🩺 ClarityCall Doctor[/bold cyan]\n")
    issues = 0
    warnings = 0

    def ok(msg: str) -> None:
        console.print(f"  [green]✓[/green] {msg}")

    def warn(msg: str) -> None:
        nonlocal warnings
        warnings += 1
        console.print(f"  [yellow]⚠[/yellow] {msg}")

    def fail(msg: str) -> None:
        nonlocal issues
        issues += 1
        console.print(f"  [red]✗[/red] {msg}")

    settings = get_settings()
    ok(f"Config loaded (env={settings.clarity_env}, tz={settings.clarity_default_timezone})")

    if settings.google_client_id and settings.google_client_secret:
        ok("Google OAuth client configured")
    else:
        fail("Google OAuth client missing; tokens cannot be refreshed")

    for purpose in ("planning", "reminder"):
        if settings.has_voice_agent(purpose):
            ok(f"Voice agent for {purpose} calls configured")
        else:
            fail(f"Voice agent for {purpose} calls not configured")

    if settings.elevenlabs_webhook_secret:
        ok("Webhook signing secret configured")
    else:
        warn("Webhook signing secret not set; post-call webhooks are not verified")

    if settings.clarity_encryption_key:
        ok("Encryption key configured")
    else:
        warn("Encryption key not set; an ephemeral key is used and stored tokens will not survive a restart")

    console.print()
    if issues == 0 and warnings == 0:
        console.print("[bold green]All checks passed![/bold green]")
    elif issues == 0:
        console.print(f"[bold yellow]{warnings} warning(s), no critical issues.[/bold yellow]")
    else:
        console.print(f"[bold red]{issues} issue(s), {warnings} warning(s).[/bold red]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show ClarityCall version."""
    from claritycall import __version__

    console.print(f"[bold cyan]ClarityCall[/bold cyan] version [green]{__version__}[/green]")
