"""
Main CLI application using Typer.
"""

import asyncio
import logging
from datetime import date
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..adapters.graph_authenticator import GraphAccessProvider, GraphAuthenticator
from ..adapters.graph_client import GraphCalendarProvider, GraphClient
from ..adapters.mock_calendar import MockAccessProvider, MockCalendarProvider
from ..config import AppConfig, load_config
from ..domain.exceptions import FreeTimeError
from ..domain.free_time import filter_min_duration, merge_busy, total_minutes
from ..domain.models import WorkWindow
from ..services.schedule_session import ScheduleSession, SessionSnapshot

app = typer.Typer(
    name="freetime",
    help="Find the free time in your working day",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
DateOption = Annotated[Optional[str], typer.Option("--date", help="Day to analyse (YYYY-MM-DD). Defaults to today.")]
StartOption = Annotated[Optional[int], typer.Option("--start-hour", min=0, max=23, help="Workday start hour (0-23)")]
EndOption = Annotated[Optional[int], typer.Option("--end-hour", min=1, max=24, help="Workday end hour (1-24)")]
CalendarOption = Annotated[Optional[str], typer.Option("--calendar", help="Only use this calendar ID (default: all)")]
MockOption = Annotated[bool, typer.Option("--mock", help="Use mock data and skip authentication.")]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """
    Free time analyzer.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    try:
        return load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _parse_date(value: Optional[str], tz: str) -> date:
    if not value:
        return pendulum.today(tz).date()

    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).date()
    except ValueError as e:
        console.print(f"[red]Could not parse date '{value}': {e}[/red]")
        raise typer.Exit(1)


def _build_session(
    config: AppConfig,
    *,
    mock: bool,
    selected_date: date,
    start_hour: Optional[int] = None,
    end_hour: Optional[int] = None,
    calendar_id: Optional[str] = None,
) -> ScheduleSession:
    """Wire a session to either the mock provider or Microsoft Graph."""
    if mock:
        provider = MockCalendarProvider(data_file=config.mock_data_file, timezone=config.timezone)
        access_provider = MockAccessProvider()
    else:
        if not config.has_graph_credentials:
            console.print(
                "[bold red]Error:[/bold red] No client_id configured. "
                "Add your Azure app registration to config.yaml or use --mock."
            )
            raise typer.Exit(1)

        authenticator = GraphAuthenticator(
            client_id=config.client_id,
            tenant_id=config.tenant_id,
            authority_url=config.get_authority_url()
        )
        access_provider = GraphAccessProvider(authenticator)
        provider = GraphCalendarProvider(
            GraphClient(token_provider=access_provider.access_token, timezone=config.timezone)
        )

    return ScheduleSession(
        provider,
        access_provider,
        provider,
        timezone=config.timezone,
        selected_date=selected_date,
        work_start_hour=config.workday.start_hour if start_hour is None else start_hour,
        work_end_hour=config.workday.end_hour if end_hour is None else end_hour,
        calendar_id=config.calendar_id if calendar_id is None else calendar_id,
    )


def _render_snapshot(snapshot: SessionSnapshot, min_duration: int = 0) -> None:
    """Print free slots and events of a session snapshot."""
    day = snapshot.selected_date
    console.print(
        f"\n[bold cyan]🗓️  {pendulum.date(day.year, day.month, day.day).format('dddd, DD.MM.YYYY')}[/bold cyan]"
        f"  [dim]{snapshot.work_start_hour}:00 - {snapshot.work_end_hour}:00[/dim]"
    )

    if snapshot.simulated:
        console.print("[yellow]⚠  Simulation: showing a synthetic event only[/yellow]")

    if not snapshot.access_granted and not snapshot.simulated:
        console.print(f"[bold red]✗ {snapshot.access_error or 'Calendar access not granted.'}[/bold red]")
        return

    if snapshot.sync_error:
        console.print(f"[yellow]⚠ Sync failed: {snapshot.sync_error}[/yellow]")

    if snapshot.window is None:
        console.print("[yellow]⚠ The working window cannot be resolved for this day.[/yellow]")

    slots = filter_min_duration(snapshot.free_slots, min_duration)
    if slots:
        lines = [f"  {slot.format_time_range()}  [dim]({slot.duration_minutes()} min)[/dim]" for slot in slots]
        lines.append(f"\n[bold]Total:[/bold] {total_minutes(slots)} min free")
        console.print(Panel("\n".join(lines), title="Free Time Slots", border_style="green", expand=False))
    else:
        console.print("[yellow]No free slots available.[/yellow]")

    if not snapshot.events:
        console.print("[dim]No events for this day.[/dim]\n")
        return

    table = Table(title="Events", show_header=True, header_style="bold cyan")
    table.add_column("Time", style="bold")
    table.add_column("Title")
    table.add_column("Calendar", style="dim")

    for event in snapshot.events:
        table.add_row(
            event.interval.format_time_range(),
            event.display_title(),
            event.calendar_title or "",
        )

    console.print(table)

    busy = merge_busy(snapshot.window, [event.interval for event in snapshot.events])
    console.print(f"[dim]Busy: {total_minutes(busy)} min in {len(busy)} block(s)[/dim]\n")


@app.command()
def free(
    date_option: DateOption = None,
    start_hour: StartOption = None,
    end_hour: EndOption = None,
    calendar: CalendarOption = None,
    min_duration: Annotated[Optional[int], typer.Option("--min-duration", "-d", min=0, help="Hide free slots shorter than this (minutes)")] = None,
    mock: MockOption = False,
    config_file: ConfigOption = None,
):
    """
    Show the free time slots of a day.

    Examples:

        freetime free
        freetime free --date 2024-11-25 --start-hour 8 --end-hour 18
        freetime free --calendar <id> --min-duration 30
        freetime free --mock
    """
    config = _load_config(config_file)
    selected_date = _parse_date(date_option, config.timezone)

    async def run() -> SessionSnapshot:
        async with session:
            await session.refresh()
            return session.snapshot()

    try:
        session = _build_session(
            config,
            mock=mock,
            selected_date=selected_date,
            start_hour=start_hour,
            end_hour=end_hour,
            calendar_id=calendar,
        )
        snapshot = asyncio.run(run())
    except FreeTimeError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    _render_snapshot(snapshot, config.min_duration_minutes if min_duration is None else min_duration)


@app.command()
def calendars(
    mock: MockOption = False,
    config_file: ConfigOption = None,
):
    """
    List the available calendars, grouped by account.
    """
    config = _load_config(config_file)

    async def run() -> SessionSnapshot:
        async with session:
            await session.load_calendars()
            return session.snapshot()

    try:
        session = _build_session(config, mock=mock, selected_date=pendulum.today(config.timezone).date())
        snapshot = asyncio.run(run())
    except FreeTimeError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not snapshot.access_granted:
        console.print(f"[bold red]✗ {snapshot.access_error or 'Calendar access not granted.'}[/bold red]")
        raise typer.Exit(1)

    if snapshot.sync_error:
        console.print(f"[bold red]Error:[/bold red] {snapshot.sync_error}")
        raise typer.Exit(1)

    if not snapshot.calendars:
        console.print("[yellow]No calendars found.[/yellow]")
        return

    table = Table(title="Calendars", show_header=True, header_style="bold cyan")
    table.add_column("Calendar", style="bold yellow")
    table.add_column("Account")
    table.add_column("Color", style="dim")
    table.add_column("ID", style="dim")

    for cal in snapshot.calendars:
        table.add_row(cal.title, cal.source_title, str(cal.color_hint or ""), cal.id)

    console.print()
    console.print(table)
    console.print()


@app.command()
def events(
    date_option: DateOption = None,
    start_hour: StartOption = None,
    end_hour: EndOption = None,
    calendar: CalendarOption = None,
    mock: MockOption = False,
    config_file: ConfigOption = None,
):
    """
    List the raw events of the working window with their calendar.
    """
    config = _load_config(config_file)
    selected_date = _parse_date(date_option, config.timezone)

    async def run() -> SessionSnapshot:
        async with session:
            await session.refresh()
            return session.snapshot()

    try:
        session = _build_session(
            config,
            mock=mock,
            selected_date=selected_date,
            start_hour=start_hour,
            end_hour=end_hour,
            calendar_id=calendar,
        )
        snapshot = asyncio.run(run())
    except FreeTimeError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not snapshot.access_granted:
        console.print(f"[bold red]✗ {snapshot.access_error or 'Calendar access not granted.'}[/bold red]")
        raise typer.Exit(1)

    if snapshot.sync_error:
        console.print(f"[bold red]Error:[/bold red] Sync failed: {snapshot.sync_error}")
        raise typer.Exit(1)

    if snapshot.window is None:
        console.print("[red]Invalid start/end for this day.[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]{len(snapshot.events)} event(s) between {snapshot.window}[/bold]")
    for event in snapshot.events:
        console.print(
            f"  [dim]{event.calendar_title or '(unknown calendar)'} ({event.calendar_id or 'no id'})[/dim] "
            f"→ '{event.display_title()}' {event.start.to_datetime_string()} - {event.end.to_datetime_string()}"
        )
    console.print()


@app.command()
def simulate(
    from_hour: Annotated[int, typer.Option("--from", min=0, max=23, help="Start hour of the simulated event")] = 14,
    to_hour: Annotated[int, typer.Option("--to", min=1, max=24, help="End hour of the simulated event")] = 15,
    label: Annotated[str, typer.Option("--label", help="Title of the simulated event")] = "Simulated Event",
    date_option: DateOption = None,
    config_file: ConfigOption = None,
):
    """
    Preview a what-if event without touching any calendar.
    """
    config = _load_config(config_file)
    selected_date = _parse_date(date_option, config.timezone)

    interval = WorkWindow.for_day(selected_date, from_hour, to_hour, config.timezone)
    if interval is None:
        console.print(f"[red]Cannot simulate an event from {from_hour}:00 to {to_hour}:00.[/red]")
        raise typer.Exit(1)

    # Nothing is fetched, so no calendar backend is needed
    session = ScheduleSession(
        MockCalendarProvider(data={}, timezone=config.timezone),
        MockAccessProvider(),
        timezone=config.timezone,
        selected_date=selected_date,
        work_start_hour=config.workday.start_hour,
        work_end_hour=config.workday.end_hour,
    )

    async def run() -> SessionSnapshot:
        async with session:
            await session.simulate(interval, label)
            return session.snapshot()

    _render_snapshot(asyncio.run(run()))


@app.command()
def watch(
    interval: Annotated[Optional[int], typer.Option("--interval", "-i", min=1, help="Minutes between syncs (default: sync.auto_sync_minutes or 5)")] = None,
    start_hour: StartOption = None,
    end_hour: EndOption = None,
    calendar: CalendarOption = None,
    mock: MockOption = False,
    config_file: ConfigOption = None,
):
    """
    Keep today's free time up to date, re-syncing periodically until Ctrl+C.
    """
    config = _load_config(config_file)
    minutes = interval or config.sync.auto_sync_minutes or 5
    try:
        session = _build_session(
            config,
            mock=mock,
            selected_date=pendulum.today(config.timezone).date(),
            start_hour=start_hour,
            end_hour=end_hour,
            calendar_id=calendar,
        )
    except FreeTimeError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    async def run() -> None:
        async with session:
            await session.load_calendars()
            await session.set_auto_sync(minutes)

            last_seen = None
            while True:
                await asyncio.sleep(1)
                snapshot = session.snapshot()
                marker = (snapshot.last_sync_time, snapshot.sync_error, snapshot.access_status)
                if marker != last_seen:
                    last_seen = marker
                    _render_snapshot(snapshot, config.min_duration_minutes)
                    if snapshot.last_sync_time:
                        console.print(f"[dim]Last sync: {snapshot.last_sync_time.format('HH:mm:ss')}[/dim]")

    console.print(f"[dim]Syncing every {minutes} min. Press Ctrl+C to stop.[/dim]")
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


@app.command()
def test_auth(
    config_file: ConfigOption = None,
    force: Annotated[bool, typer.Option("--force", help="Force re-authentication")] = False,
):
    """
    Test Microsoft Graph authentication.
    """
    try:
        config = load_config(config_file)

        console.print("\n[bold]Testing Microsoft Graph authentication...[/bold]\n")

        authenticator = GraphAuthenticator(
            client_id=config.client_id,
            tenant_id=config.tenant_id,
            authority_url=config.get_authority_url()
        )
        access_token = authenticator.get_access_token(force_refresh=force)

        client = GraphClient(token_provider=lambda: access_token, timezone=config.timezone)
        user_info = client.test_connection()

        console.print(Panel.fit(
            f"[bold green]✓ Authentication successful![/bold green]\n\n"
            f"[bold]User:[/bold] {user_info.get('displayName', 'N/A')}\n"
            f"[bold]E-Mail:[/bold] {user_info.get('mail') or user_info.get('userPrincipalName', 'N/A')}",
            title="✓ Connection test"
        ))
        console.print()

    except (FileNotFoundError, ValueError, FreeTimeError) as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}\n")
        raise typer.Exit(1)


@app.command()
def clear_cache(
    config_file: ConfigOption = None,
):
    """
    Clear the authentication token cache.
    """
    try:
        config = load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    authenticator = GraphAuthenticator(
        client_id=config.client_id,
        tenant_id=config.tenant_id
    )
    authenticator.clear_cache()
    console.print("You will need to re-authenticate on the next call.\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]freetime[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
