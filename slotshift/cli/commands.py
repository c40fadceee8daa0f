"""CLI commands for SlotShift.

Every command works on a JSON export of schedules (a list, or a
``{"data": [...]}`` envelope as returned by the schedule service) and only
previews the result; nothing is sent to the service.
"""

import json
from datetime import date, time
from pathlib import Path
from typing import NoReturn, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from slotshift import __version__
from slotshift.config import get_settings
from slotshift.scheduling import (
    DateRange,
    DeletionRequest,
    DeletionScope,
    Schedule,
    ScheduleDeletionPlan,
    SchedulingError,
    ShiftMode,
    ShiftRequest,
    TimeWindow,
    apply_shift,
    apply_transfer,
    decode_drag_key,
    group_by_date,
    plan_deletion,
    plan_shift,
    plan_transfer,
    slots_on_date,
    total_available,
    total_occupied,
)
from slotshift.service import ServiceError, parse_schedules

app = typer.Typer(
    name="slotshift",
    help="Appointment slot transfer and schedule shift planner",
    add_completion=False,
)
console = Console()


def _load_schedules(path: Path) -> list[Schedule]:
    if not path.exists():
        console.print(f"[red]Schedule file not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        return parse_schedules(json.loads(path.read_text()))
    except (ValueError, ServiceError) as e:
        console.print(f"[red]Could not read schedules from {path}: {e}[/red]")
        raise typer.Exit(1)


def _fail(exc: SchedulingError) -> NoReturn:
    console.print(f"[red]{exc.code}: {exc.message}[/red]")
    raise typer.Exit(1)


def _parse_date(value: str, option: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Expected YYYY-MM-DD, got {value!r}", param_hint=option)


def _parse_time(value: str, option: str) -> time:
    try:
        return time.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Expected HH:MM, got {value!r}", param_hint=option)


def _slot_table(title: str, schedules: list[Schedule]) -> Table:
    table = Table(title=title)
    table.add_column("Schedule", style="cyan")
    table.add_column("Slot")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Status")
    for schedule in schedules:
        for slot in schedule.slots:
            table.add_row(
                schedule.id,
                slot.id,
                slot.start.strftime("%Y-%m-%d %H:%M"),
                slot.end.strftime("%H:%M"),
                "[red]occupied[/red]" if slot.overbooked else "[green]free[/green]",
            )
    return table


@app.command()
def stats(
    schedule_file: Path = typer.Argument(..., help="JSON file with schedules"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show occupied and available slots per date."""
    schedules = _load_schedules(schedule_file)
    grouped = group_by_date(schedules, tz=get_settings().timezone)

    if output_json:
        console.print_json(
            json.dumps(
                {
                    "dates": {
                        day.isoformat(): {
                            "schedules": len(group),
                            "occupied": total_occupied(group),
                            "available": total_available(group),
                        }
                        for day, group in grouped.items()
                    },
                    "total_occupied": total_occupied(schedules),
                    "total_available": total_available(schedules),
                }
            )
        )
        return

    table = Table(title="Slot Occupancy")
    table.add_column("Date", style="cyan")
    table.add_column("Schedules", justify="right")
    table.add_column("Occupied", justify="right")
    table.add_column("Available", justify="right")
    for day, group in grouped.items():
        table.add_row(
            day.isoformat(),
            str(len(group)),
            str(total_occupied(group)),
            str(total_available(group)),
        )
    console.print(table)
    console.print(
        f"Total: {total_occupied(schedules)} occupied, {total_available(schedules)} available"
    )


@app.command()
def transfer(
    schedule_file: Path = typer.Argument(..., help="JSON file with schedules"),
    source_key: str = typer.Argument(..., help="Drag key of the occupied slot"),
    target_key: str = typer.Argument(..., help="Drag key of the free slot"),
    practitioner: Optional[str] = typer.Option(
        None, "--practitioner", "-p", help="Practitioner id for two-part keys"
    ),
    appointment_id: Optional[str] = typer.Option(
        None, "--appointment", "-a", help="Known appointment id"
    ),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Validate moving an appointment from one slot to another."""
    schedules = _load_schedules(schedule_file)
    try:
        plan = plan_transfer(
            schedules,
            decode_drag_key(source_key, practitioner),
            decode_drag_key(target_key, practitioner),
            appointment_id=appointment_id,
            block_degraded=get_settings().block_degraded_transfers,
            tz=get_settings().timezone,
        )
    except SchedulingError as e:
        _fail(e)

    if output_json:
        console.print_json(plan.model_dump_json())
        return

    border = "yellow" if plan.degraded else "green"
    console.print(
        Panel(
            f"[bold]Appointment:[/bold] {plan.appointment_id} ({plan.resolution.value})\n"
            f"[bold]Cross-practitioner:[/bold] {plan.cross_practitioner}\n"
            f"{plan.summary()}",
            title="Transfer",
            border_style=border,
        )
    )
    if plan.degraded:
        console.print(
            "[yellow]No appointment link found; the slot id will be sent instead.[/yellow]"
        )
    moved = [s for s in apply_transfer(schedules, plan) if s.id in plan.schedule_ids]
    console.print(_slot_table("After transfer", moved))


@app.command()
def shift(
    schedule_file: Path = typer.Argument(..., help="JSON file with schedules"),
    on_date: str = typer.Option(..., "--date", "-d", help="Date group to shift (YYYY-MM-DD)"),
    minutes: Optional[int] = typer.Option(None, "--minutes", "-m", help="Delay in minutes"),
    days: Optional[int] = typer.Option(None, "--days", help="Move forward by days"),
    reason: str = typer.Option(..., "--reason", "-r", help="Reason for the shift"),
    actor: str = typer.Option(..., "--actor", help="User performing the shift"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Preview a time or day shift of every schedule on a date."""
    if (minutes is None) == (days is None):
        console.print("[red]Pass exactly one of --minutes or --days[/red]")
        raise typer.Exit(1)

    schedules = _load_schedules(schedule_file)
    day = _parse_date(on_date, "--date")
    selected = slots_on_date(schedules, day, tz=get_settings().timezone)
    if not selected:
        console.print(f"[yellow]No schedules on {day.isoformat()}[/yellow]")
        raise typer.Exit(1)

    try:
        request = ShiftRequest(
            schedule_ids=[s.id for s in selected],
            mode=ShiftMode.TIME if minutes is not None else ShiftMode.DAY,
            magnitude=minutes if minutes is not None else days,
            reason=reason,
            actor_id=actor,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid shift: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(1)

    try:
        plan = plan_shift(schedules, request)
    except SchedulingError as e:
        _fail(e)

    if output_json:
        console.print_json(plan.model_dump_json())
        return

    unit = "minute(s)" if plan.mode == ShiftMode.TIME else "day(s)"
    console.print(
        f"Shifting {len(plan.schedule_ids)} schedule(s) by {plan.magnitude} {unit} "
        f"(reason: {plan.reason}, by {plan.actor_id})"
    )
    shifted = [s for s in apply_shift(schedules, plan) if s.id in plan.schedule_ids]
    console.print(_slot_table("After shift", shifted))


@app.command("plan-delete")
def plan_delete(
    schedule_file: Path = typer.Argument(..., help="JSON file with schedules"),
    from_date: Optional[str] = typer.Option(None, "--from", help="First date (YYYY-MM-DD)"),
    to_date: Optional[str] = typer.Option(None, "--to", help="Last date (YYYY-MM-DD)"),
    schedule_ids: Optional[list[str]] = typer.Option(
        None, "--schedule", "-s", help="Schedule id to delete (repeatable)"
    ),
    slots_of: Optional[str] = typer.Option(
        None, "--slots-of", help="Delete slots of this schedule instead"
    ),
    start: Optional[str] = typer.Option(None, "--start", help="Slot window start (HH:MM)"),
    end: Optional[str] = typer.Option(None, "--end", help="Slot window end (HH:MM)"),
):
    """Preview a bulk deletion of schedules or slots."""
    schedules = _load_schedules(schedule_file)

    try:
        if slots_of:
            if not (start and end):
                console.print("[red]--slots-of needs --start and --end[/red]")
                raise typer.Exit(1)
            request = DeletionRequest(
                scope=DeletionScope.SLOTS,
                schedule_id=slots_of,
                time_range=TimeWindow(
                    start_time=_parse_time(start, "--start"),
                    end_time=_parse_time(end, "--end"),
                ),
            )
        elif schedule_ids:
            request = DeletionRequest(scope=DeletionScope.SCHEDULES, target_ids=schedule_ids)
        elif from_date and to_date:
            request = DeletionRequest(
                scope=DeletionScope.SCHEDULES,
                date_range=DateRange(
                    from_date=_parse_date(from_date, "--from"),
                    to_date=_parse_date(to_date, "--to"),
                ),
            )
        else:
            console.print("[red]Pass --from/--to, --schedule or --slots-of[/red]")
            raise typer.Exit(1)
    except ValidationError as e:
        console.print(f"[red]Invalid selection: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(1)

    try:
        plan = plan_deletion(schedules, request, tz=get_settings().timezone)
    except SchedulingError as e:
        _fail(e)

    if isinstance(plan, ScheduleDeletionPlan):
        console.print(_slot_table("Schedules to delete", plan.to_delete))
    else:
        doomed = next(s for s in schedules if s.id == plan.schedule_id)
        console.print(
            _slot_table("Slots to delete", [doomed.model_copy(update={"slots": plan.slots})])
        )
    style = "yellow" if plan.occupied_count else "green"
    console.print(f"[{style}]{plan.warning()}[/{style}]")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the planning API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"Starting SlotShift API server on {host}:{port}")
    uvicorn.run(
        "slotshift.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def version():
    """Show version information."""
    console.print(f"SlotShift v{__version__}")
