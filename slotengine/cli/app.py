"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
import yaml
from pendulum import DateTime
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.calendar_adapter import CalendarConnection, CalendarCredentials
from ..adapters.google_calendar import GoogleCalendarAdapter
from ..adapters.graph_authenticator import GraphAuthenticator
from ..adapters.json_store import JsonFileStore
from ..adapters.microsoft_calendar import MicrosoftCalendarAdapter
from ..adapters.mock_calendar import MockCalendarAdapter
from ..config import AppConfig
from ..domain.exceptions import BookingConflictError, ConfigurationError, SlotEngineError
from ..domain.models import ConflictResult, TimeRange, day_of_week
from ..services.booking_service import BookingService
from ..services.calendar_sync import CalendarSyncService
from ..services.scheduling import SchedulingService

app = typer.Typer(
    name="slotengine",
    help="Provider availability, bookable slots and conflict checks",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")
]
CalendarOption = Annotated[
    Optional[List[str]],
    typer.Option("--calendar", "-C", help="Connected calendar to consult: mock, microsoft or google")
]

WEEKDAYS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
):
    """
    Manage provider availability and validate bookings.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    try:
        return AppConfig.load_or_default(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _parse_instant(value: str, tz: str) -> DateTime:
    """Parse 'YYYY-MM-DD HH:mm' (or any ISO 8601 string) in the configured timezone."""
    try:
        return pendulum.parse(value, tz=tz)
    except Exception as e:
        console.print(f"[red]Could not parse date/time '{value}': {e}[/red]")
        raise typer.Exit(1)


def _parse_range(start: Optional[str], end: Optional[str], days: int, tz: str) -> TimeRange:
    range_start = _parse_instant(start, tz).start_of("day") if start else pendulum.now(tz).start_of("day")
    range_end = _parse_instant(end, tz).end_of("day") if end else range_start.add(days=days).end_of("day")
    if range_end <= range_start:
        console.print("[red]End must be after start.[/red]")
        raise typer.Exit(1)
    return TimeRange(start=range_start, end=range_end)


def _interval(begin: DateTime, duration: int) -> TimeRange:
    try:
        return TimeRange(start=begin, end=begin.add(minutes=duration))
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _build_connections(config: AppConfig, calendars: Optional[List[str]]) -> List[CalendarConnection]:
    connections: List[CalendarConnection] = []

    for name in calendars or []:
        if name == "mock":
            connections.append(CalendarConnection(
                adapter=MockCalendarAdapter(config.mock_calendar_file),
                credentials=CalendarCredentials(access_token="mock_token")
            ))
        elif name == "microsoft":
            if config.microsoft is None:
                console.print("[red]No 'microsoft' section in the config file.[/red]")
                raise typer.Exit(1)
            authenticator = GraphAuthenticator(
                client_id=config.microsoft.client_id,
                tenant_id=config.microsoft.tenant_id,
                authority_url=config.microsoft.get_authority_url()
            )
            try:
                credentials = authenticator.get_credentials()
            except SlotEngineError as e:
                console.print(f"[bold red]Microsoft sign-in failed:[/bold red] {e}")
                raise typer.Exit(1)
            connections.append(CalendarConnection(
                adapter=MicrosoftCalendarAdapter(timeout=config.adapter_timeout_seconds),
                credentials=credentials
            ))
        elif name == "google":
            if config.google is None:
                console.print("[red]No 'google' section in the config file.[/red]")
                raise typer.Exit(1)
            connections.append(CalendarConnection(
                adapter=GoogleCalendarAdapter(timeout=config.adapter_timeout_seconds),
                credentials=CalendarCredentials(
                    access_token=config.google.access_token,
                    calendar_id=config.google.calendar_id
                )
            ))
        else:
            console.print(f"[red]Unknown calendar '{name}'. Use mock, microsoft or google.[/red]")
            raise typer.Exit(1)

    return connections


def _build_service(
    config: AppConfig,
    provider: str,
    calendars: Optional[List[str]] = None
) -> SchedulingService:
    return SchedulingService.build(
        JsonFileStore(config.store_path),
        {provider: _build_connections(config, calendars)},
        adapter_timeout=config.adapter_timeout_seconds,
        store_timeout=config.store_timeout_seconds,
    )


def _print_conflicts(result: ConflictResult, tz: str) -> None:
    table = Table(title="Conflicts", show_header=True, header_style="bold cyan")
    table.add_column("Source", style="bold yellow")
    table.add_column("Title")
    table.add_column("Time", style="dim")
    table.add_column("Details", style="dim")

    for source in result.sources:
        table.add_row(
            source.source,
            source.title or "",
            f"{source.start.in_timezone(tz).format('YYYY-MM-DD HH:mm')} - "
            f"{source.end.in_timezone(tz).format('HH:mm')}",
            source.description or ""
        )
    console.print(table)

    if result.alternatives:
        console.print("\n[bold]Alternatives:[/bold]")
        for alternative in result.alternatives:
            console.print(
                f"  {alternative.start.in_timezone(tz).format('ddd YYYY-MM-DD HH:mm')} - "
                f"{alternative.end.in_timezone(tz).format('HH:mm')} "
                f"[dim]({alternative.confidence.value})[/dim]"
            )


def _print_failed_sources(result: ConflictResult) -> None:
    if result.failed_sources:
        console.print(
            f"[yellow]⚠ Skipped unavailable source(s): {', '.join(result.failed_sources)}[/yellow]"
        )


@app.command()
def slots(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD)")] = None,
    days: Annotated[int, typer.Option("--days", help="Days to show when --end is not given")] = 7,
    show_busy: Annotated[bool, typer.Option("--all", help="Also list busy slots")] = False,
    calendars: CalendarOption = None,
    config_file: ConfigOption = None,
):
    """
    Show bookable slots for a provider.

    Examples:

        slotengine slots studio-1 --start 2030-01-07 --days 5

        slotengine slots studio-1 --calendar mock --all
    """
    config = _load_config(config_file)
    tz = config.timezone
    period = _parse_range(start, end, days, tz)
    service = _build_service(config, provider, calendars)

    try:
        report = asyncio.run(service.get_availability(provider, period.start, period.end))
    except SlotEngineError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    table = Table(
        title=f"Slots for {provider}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Day", style="bold")
    table.add_column("Time")
    table.add_column("Status")

    listed = sorted(
        report.available_slots + (report.busy_slots if show_busy else []),
        key=lambda slot: slot.start
    )
    for slot in listed:
        local_start = slot.start.in_timezone(tz)
        status = "[green]available[/green]" if slot in report.available_slots else "[red]busy[/red]"
        table.add_row(
            local_start.format("ddd YYYY-MM-DD"),
            f"{local_start.format('HH:mm')} - {slot.end.in_timezone(tz).format('HH:mm')}",
            status
        )

    console.print()
    if not listed:
        console.print("[yellow]⚠ No slots in this period.[/yellow]")
    else:
        console.print(table)

    summary = report.summary
    console.print(
        f"\n[bold]{summary.available_slots}[/bold] of {summary.total_slots} slot(s) available"
    )
    if summary.sources:
        reasons = ", ".join(f"{name}: {count}" for name, count in sorted(summary.sources.items()))
        console.print(f"[dim]Busy by source: {reasons}[/dim]")
    console.print()


@app.command()
def check(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    start: Annotated[str, typer.Argument(help="Start, e.g. '2030-01-07 10:00'")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Length in minutes")] = 60,
    calendars: CalendarOption = None,
    config_file: ConfigOption = None,
):
    """
    Check whether an interval can be booked.
    """
    config = _load_config(config_file)
    begin = _parse_instant(start, config.timezone)
    candidate = _interval(begin, duration)
    service = _build_service(config, provider, calendars)

    try:
        result = asyncio.run(service.validate_booking(provider, candidate))
    except SlotEngineError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print()
    if result.has_conflict:
        console.print(f"[bold red]✗ {candidate} is not available[/bold red]\n")
        _print_conflicts(result, config.timezone)
    else:
        console.print(f"[bold green]✓ {candidate} is available[/bold green]")
    _print_failed_sources(result)
    console.print()


@app.command("set-config")
def set_config(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    availability_file: Annotated[Path, typer.Argument(help="YAML or JSON availability document")],
    config_file: ConfigOption = None,
):
    """
    Replace a provider's availability configuration.
    """
    config = _load_config(config_file)

    try:
        with open(availability_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    service = _build_service(config, provider)
    try:
        stored = service.store.set_config(provider, data)
    except ConfigurationError as e:
        console.print(f"[bold red]✗ {e}[/bold red]")
        for error in e.errors:
            console.print(f"  - {error}")
        raise typer.Exit(1)

    console.print(
        f"\n[green]✓ Saved {len(stored.weekly_windows)} window(s) and "
        f"{len(stored.blackout_dates)} blackout date(s) for {provider}.[/green]\n"
    )


@app.command("show-config")
def show_config(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    config_file: ConfigOption = None,
):
    """
    Show a provider's availability configuration.
    """
    config = _load_config(config_file)
    availability = _build_service(config, provider).store.get_config(provider)

    table = Table(title=f"Weekly windows ({availability.timezone})", show_header=True, header_style="bold cyan")
    table.add_column("Day", style="bold yellow")
    table.add_column("Hours")
    table.add_column("Timezone", style="dim")
    for window in sorted(availability.weekly_windows, key=lambda w: (w.day_of_week, w.start_time)):
        table.add_row(
            WEEKDAYS[window.day_of_week],
            f"{window.start_time:%H:%M} - {window.end_time:%H:%M}",
            window.timezone or ""
        )

    console.print()
    console.print(table)
    console.print(Panel.fit(
        f"[bold]Slot:[/bold] {availability.slot_duration_minutes} min\n"
        f"[bold]Buffer:[/bold] {availability.buffer_minutes} min\n"
        f"[bold]Notice:[/bold] {availability.min_advance_hours} h\n"
        f"[bold]Bookable ahead:[/bold] {availability.max_advance_days} days\n"
        f"[bold]Auto accept:[/bold] {'yes' if availability.auto_accept else 'no'}",
        title=provider
    ))

    for blackout in availability.blackout_dates:
        span = blackout.date.isoformat()
        if blackout.end_date:
            span += f" - {blackout.end_date.isoformat()}"
        if blackout.recurring:
            span += f" (every {WEEKDAYS[day_of_week(blackout.date)]})"
        console.print(f"  [red]blackout[/red] {span} {blackout.reason or ''}")
    console.print()


@app.command()
def block(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    start: Annotated[str, typer.Argument(help="Start, e.g. '2030-01-07 10:00'")],
    end: Annotated[str, typer.Argument(help="End, e.g. '2030-01-07 12:00'")],
    reason: Annotated[Optional[str], typer.Option("--reason", "-r", help="Shown as the conflict description")] = None,
    config_file: ConfigOption = None,
):
    """
    Block time manually.
    """
    config = _load_config(config_file)
    try:
        interval = TimeRange(
            start=_parse_instant(start, config.timezone),
            end=_parse_instant(end, config.timezone)
        )
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    bookings = BookingService(_build_service(config, provider))

    commitment = asyncio.run(bookings.block_time(provider, interval, reason))
    console.print(f"\n[green]✓ Blocked {interval} ({commitment.id})[/green]\n")


@app.command()
def book(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    start: Annotated[str, typer.Argument(help="Start, e.g. '2030-01-07 10:00'")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Length in minutes")] = 60,
    title: Annotated[str, typer.Option("--title", "-t", help="Booking title")] = "Booking",
    calendars: CalendarOption = None,
    config_file: ConfigOption = None,
):
    """
    Validate and record a booking.
    """
    config = _load_config(config_file)
    begin = _parse_instant(start, config.timezone)
    interval = _interval(begin, duration)
    bookings = BookingService(_build_service(config, provider, calendars))

    try:
        booking = asyncio.run(bookings.create_booking(provider, interval, title=title))
    except BookingConflictError as e:
        console.print(f"\n[bold red]✗ {e}[/bold red]\n")
        _print_conflicts(e.result, config.timezone)
        raise typer.Exit(1)
    except SlotEngineError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"\n[green]✓ Booking {booking.id} recorded ({booking.status})[/green]\n")


@app.command()
def cancel(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    commitment_id: Annotated[str, typer.Argument(help="Booking or block id")],
    config_file: ConfigOption = None,
):
    """
    Remove a booking or manual block.
    """
    config = _load_config(config_file)
    bookings = BookingService(_build_service(config, provider))

    try:
        removed = asyncio.run(bookings.cancel_booking(provider, commitment_id))
    except SlotEngineError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"\n[green]✓ Removed {removed.id} ({removed.time_range})[/green]\n")


@app.command("export-ics")
def export_ics_command(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    output: Annotated[Path, typer.Option("--output", "-o", help="Target .ics file")] = Path("calendar.ics"),
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD)")] = None,
    days: Annotated[int, typer.Option("--days", help="Days to export when --end is not given")] = 90,
    config_file: ConfigOption = None,
):
    """
    Write bookings and blocks to an iCalendar file.
    """
    config = _load_config(config_file)
    period = _parse_range(start, end, days, config.timezone)
    sync = CalendarSyncService(_build_service(config, provider).store)

    text = sync.export_ics(provider, period.start, period.end)
    output.write_bytes(text.encode("utf-8"))
    console.print(f"\n[green]✓ Wrote {text.count('BEGIN:VEVENT')} event(s) to {output}[/green]\n")


@app.command("import-ics")
def import_ics_command(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    ics_file: Annotated[Path, typer.Argument(help=".ics file to import")],
    config_file: ConfigOption = None,
):
    """
    Import busy times from an iCalendar file.
    """
    config = _load_config(config_file)
    sync = CalendarSyncService(_build_service(config, provider).store)

    try:
        result = sync.import_ics(provider, ics_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"\n[green]✓ Imported {result.imported} event(s)[/green]")
    for error in result.errors:
        console.print(f"  [yellow]skipped:[/yellow] {error}")
    console.print()


@app.command()
def sync(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    calendars: CalendarOption = None,
    days: Annotated[int, typer.Option("--days", help="Days ahead to synchronise")] = 30,
    export: Annotated[bool, typer.Option("--export/--no-export", help="Also push confirmed bookings")] = True,
    config_file: ConfigOption = None,
):
    """
    Import busy events from connected calendars and export confirmed bookings.
    """
    config = _load_config(config_file)
    connections = _build_connections(config, calendars)
    if not connections:
        console.print("[yellow]No calendar given. Use --calendar mock|microsoft|google.[/yellow]")
        raise typer.Exit(1)

    service = _build_service(config, provider)
    sync_service = CalendarSyncService(service.store)
    window_start = pendulum.now(config.timezone).start_of("day")
    window_end = window_start.add(days=days)

    async def run():
        for connection in connections:
            imported = await sync_service.import_events(provider, connection, window_start, window_end)
            console.print(f"[green]✓ {connection.name}: imported {imported.imported} event(s)[/green]")
            if export:
                exported = await sync_service.export_bookings(provider, connection, window_start, window_end)
                console.print(f"[green]✓ {connection.name}: exported {exported.exported} booking(s)[/green]")
                imported.errors.extend(exported.errors)
            for error in imported.errors:
                console.print(f"  [yellow]{error}[/yellow]")

    console.print()
    asyncio.run(run())
    console.print()


@app.command()
def test_auth(
    config_file: ConfigOption = None,
    force: bool = typer.Option(
        False,
        "--force",
        help="Force re-authentication"
    )
):
    """
    Test Microsoft Graph authentication.
    """
    config = _load_config(config_file)
    if config.microsoft is None:
        console.print("[red]No 'microsoft' section in the config file.[/red]")
        raise typer.Exit(1)

    try:
        console.print("\n[bold]Testing Microsoft Graph authentication...[/bold]\n")

        authenticator = GraphAuthenticator(
            client_id=config.microsoft.client_id,
            tenant_id=config.microsoft.tenant_id,
            authority_url=config.microsoft.get_authority_url()
        )
        credentials = authenticator.get_credentials(force_refresh=force)
        user_info = MicrosoftCalendarAdapter().test_connection(credentials)

        console.print(Panel.fit(
            f"[bold green]✓ Authentication successful![/bold green]\n\n"
            f"[bold]User:[/bold] {user_info.get('displayName', 'N/A')}\n"
            f"[bold]Email:[/bold] {user_info.get('mail') or user_info.get('userPrincipalName', 'N/A')}",
            title="✓ Connection test"
        ))
        console.print()

    except SlotEngineError as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}\n")
        raise typer.Exit(1)


@app.command()
def clear_cache(
    config_file: ConfigOption = None,
):
    """
    Clear the authentication token cache.
    """
    config = _load_config(config_file)
    if config.microsoft is None:
        console.print("[red]No 'microsoft' section in the config file.[/red]")
        raise typer.Exit(1)

    authenticator = GraphAuthenticator(
        client_id=config.microsoft.client_id,
        tenant_id=config.microsoft.tenant_id,
        authority_url=config.microsoft.get_authority_url()
    )
    authenticator.clear_cache()
    console.print("\n[green]✓ Token cache cleared.[/green]")
    console.print("You will be asked to sign in again on the next call.\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotengine[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
