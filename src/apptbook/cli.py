"""
Command-line interface for apptbook.
"""

import calendar
import logging
from configparser import ConfigParser
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from datetime import time
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from apptbook.db import query_log_summary
from apptbook.keys import date_from_key
from apptbook.keys import day_key_for
from apptbook.models import DEFAULT_CONFIG
from apptbook.models import DEFAULT_DB
from apptbook.models import AppConfig
from apptbook.models import Appointment
from apptbook.models import AppointmentError
from apptbook.recurrence import FREQUENCIES
from apptbook.recurrence import parse_frequency
from apptbook.session import open_session
from apptbook.sync import MODES
from apptbook.sync import Replicator
from apptbook.sync.targets import DirectoryTarget

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Personal appointment book with repeat expansion and a replication log.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    db: Path = field(default_factory=lambda: DEFAULT_DB)
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    db: Annotated[
        Path,
        typer.Option("--db", help=f"Appointment database path (default: {DEFAULT_DB})"),
    ] = DEFAULT_DB,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.db = db
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if "apptbook" not in parser:
        return {}
    return dict(parser["apptbook"])


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _build_config(dry_run: bool = False, yes: bool = False) -> AppConfig:
    config_file = _load_config_file(state.config_path)
    hidden = {c.strip() for c in config_file.get("hidden_categories", "").split(",") if c.strip()}
    sync_dir = config_file.get("sync_dir")
    return AppConfig(
        db_path=state.db,
        sync_enabled=_flag(config_file.get("sync_enabled")),
        soft_delete=_flag(config_file.get("soft_delete")),
        hidden_categories=hidden,
        sync_dir=Path(sync_dir).expanduser() if sync_dir else None,
        dry_run=dry_run,
        verbose=state.verbose,
        yes=yes,
    )


def _parse_day(value: str | None) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        console.print(f"[bold red]Error:[/] Invalid date: {value!r} (expected YYYY-MM-DD)")
        raise typer.Exit(1) from None


def _parse_time(value: str | None) -> time:
    if not value:
        return time(0, 0)
    try:
        return datetime.strptime(value, "%H:%M").time()
    except ValueError:
        console.print(f"[bold red]Error:[/] Invalid time: {value!r} (expected HH:MM)")
        raise typer.Exit(1) from None


def _fail(e: AppointmentError) -> None:
    console.print(f"[bold red]Error:[/] {e}")
    raise typer.Exit(1) from None


def _appointment_table(appts: list[Appointment], title: str | None = None) -> Table:
    table = Table(show_header=True, header_style="bold cyan", title=title)
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Time")
    table.add_column("Text", min_width=24, overflow="fold")
    table.add_column("Repeat")
    table.add_column("Category")
    for appt in appts:
        when = appt.date.strftime("%H:%M")
        if when == "00:00" and not appt.duration:
            when = "—"
        repeat = ""
        if appt.repeats:
            repeat = f"{appt.frequency} ×{appt.times}"
        text = Text(appt.text)
        if appt.todo:
            text.append("  [todo]", style="yellow")
        table.add_row(str(appt.id), when, text, repeat, appt.category or "")
    return table


# ---------------------------------------------------------------------------
# Subcommands: appointments
# ---------------------------------------------------------------------------


@app.command()
def add(
    day: Annotated[str, typer.Argument(help="Date YYYY-MM-DD")],
    text: Annotated[str, typer.Argument(help="Appointment text")],
    at: Annotated[str | None, typer.Option("--at", help="Start time HH:MM")] = None,
    duration: Annotated[
        int | None, typer.Option("--duration", "-d", help="Duration in minutes")
    ] = None,
    repeat: Annotated[
        str | None,
        typer.Option("--repeat", "-r", help=f"Repeat frequency: {', '.join(FREQUENCIES)}"),
    ] = None,
    times: Annotated[int | None, typer.Option("--times", "-t", help="Number of repeats")] = None,
    category: Annotated[str | None, typer.Option("--category", help="Category label")] = None,
    todo: Annotated[bool, typer.Option("--todo", help="Track as a todo")] = False,
) -> None:
    """Add an appointment."""
    when = datetime.combine(_parse_day(day), _parse_time(at))
    if repeat:
        try:
            parse_frequency(repeat)
        except AppointmentError as e:
            raise typer.BadParameter(str(e)) from None

    appt = Appointment(
        date=when,
        text=text,
        duration=duration,
        frequency=repeat,
        times=times,
        category=category,
        todo=todo,
    )
    try:
        with open_session(_build_config()) as session:
            key = session.model.add(appt)
    except AppointmentError as e:
        _fail(e)
    console.print(f"Added appointment [bold]{key}[/] on {when:%Y-%m-%d}")


@app.command()
def day(
    when: Annotated[str | None, typer.Argument(help="Date YYYY-MM-DD (default: today)")] = None,
) -> None:
    """Show the appointments of one day, repeats included."""
    target = _parse_day(when)
    try:
        with open_session(_build_config()) as session:
            appts = session.model.appointments_on(target)
    except AppointmentError as e:
        _fail(e)

    if not appts:
        console.print(f"[dim]Nothing on {target:%A %Y-%m-%d}.[/dim]")
        return
    console.print(_appointment_table(appts, title=f"{target:%A %Y-%m-%d}"))


@app.command()
def month(
    when: Annotated[str | None, typer.Argument(help="Month YYYY-MM (default: this month)")] = None,
) -> None:
    """Show how many appointments fall on each day of a month."""
    if when:
        try:
            first = datetime.strptime(when, "%Y-%m").date()
        except ValueError:
            console.print(f"[bold red]Error:[/] Invalid month: {when!r} (expected YYYY-MM)")
            raise typer.Exit(1) from None
    else:
        first = date.today().replace(day=1)

    try:
        with open_session(_build_config()) as session:
            index = session.model.index
            _, last = calendar.monthrange(first.year, first.month)
            counts = [
                (first.replace(day=d), len(index.lookup(day_key_for(first.replace(day=d)))))
                for d in range(1, last + 1)
            ]
    except AppointmentError as e:
        _fail(e)

    table = Table(show_header=True, header_style="bold cyan", title=f"{first:%B %Y}")
    table.add_column("Day")
    table.add_column("Appointments", justify="right")
    for d, n in counts:
        if n:
            table.add_row(f"{d:%a %d}", str(n))
    if not table.row_count:
        console.print(f"[dim]Nothing in {first:%B %Y}.[/dim]")
        return
    console.print(table)


@app.command()
def delete(
    key: Annotated[int, typer.Argument(help="Appointment id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Delete an appointment (every occurrence)."""
    if not yes:
        typer.confirm(f"Delete appointment {key}?", abort=True)
    try:
        with open_session(_build_config(yes=yes)) as session:
            deleted = session.model.delete(key)
    except AppointmentError as e:
        _fail(e)
    if deleted:
        console.print(f"Deleted appointment [bold]{key}[/]")
    else:
        console.print(f"[yellow]Appointment {key} was already gone.[/]")


@app.command()
def skip(
    key: Annotated[int, typer.Argument(help="Appointment id of a repeating series")],
    occurrence: Annotated[str, typer.Argument(help="Occurrence date YYYY-MM-DD")],
) -> None:
    """Cancel one occurrence of a repeating appointment."""
    target = _parse_day(occurrence)
    try:
        with open_session(_build_config()) as session:
            session.model.delete_one_occurrence(key, target)
    except AppointmentError as e:
        _fail(e)
    console.print(f"Skipped {target:%Y-%m-%d} of appointment [bold]{key}[/]")


@app.command()
def search(
    text: Annotated[str, typer.Argument(help="Substring to look for")],
) -> None:
    """Find appointments whose text contains a substring."""
    try:
        with open_session(_build_config()) as session:
            found = session.model.search(text)
    except AppointmentError as e:
        _fail(e)
    if not found:
        console.print(f"[dim]No appointment mentions {text!r}.[/dim]")
        return
    console.print(_appointment_table(found, title=f"Matches for {text!r}"))


@app.command()
def todos() -> None:
    """List open todos."""
    try:
        with open_session(_build_config()) as session:
            items = session.model.todos()
    except AppointmentError as e:
        _fail(e)
    if not items:
        console.print("[green]No open todos.[/]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Due")
    table.add_column("Text", overflow="fold")
    for appt in sorted(items, key=lambda a: a.next_todo or a.date.date()):
        due = appt.next_todo or appt.date.date()
        table.add_row(str(appt.id), f"{due:%Y-%m-%d}", appt.text)
    console.print(table)


@app.command()
def done(
    key: Annotated[int, typer.Argument(help="Todo appointment id")],
    remove: Annotated[
        bool, typer.Option("--delete", help="Delete the todo after its last occurrence")
    ] = False,
) -> None:
    """Mark the current occurrence of a todo as done."""
    try:
        with open_session(_build_config()) as session:
            following = session.model.mark_todo_done(key, delete=remove)
    except AppointmentError as e:
        _fail(e)
    if following:
        console.print(f"Done. Next occurrence: [bold]{following:%Y-%m-%d}[/]")
    else:
        console.print("Done. No further occurrences.")


# ---------------------------------------------------------------------------
# Subcommands: replication
# ---------------------------------------------------------------------------


@app.command()
def pending() -> None:
    """List the changes waiting to be replicated."""
    try:
        with open_session(_build_config()) as session:
            entries = session.reconciler.pending()
    except AppointmentError as e:
        _fail(e)

    if not entries:
        console.print("[green]Sync log is empty.[/]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right")
    table.add_column("Day")
    table.add_column("Type")
    table.add_column("Action")
    table.add_column("UID", overflow="fold", style="dim")
    styles = {"ADD": "green", "CHANGE": "yellow", "DELETE": "red"}
    for entry in entries:
        table.add_row(
            str(entry.id),
            f"{date_from_key(entry.id):%Y-%m-%d}",
            entry.object_type.value,
            Text(entry.action.value, style=styles[entry.action.value]),
            entry.uid,
        )
    console.print(table)


_MODE_OPT = Annotated[
    str,
    typer.Option("--mode", "-m", help=f"Replication mode: {', '.join(MODES)}"),
]


@app.command()
def sync(
    mode: _MODE_OPT = "one-way",
    target_dir: Annotated[
        Path | None,
        typer.Option("--target-dir", help="Directory to mirror into (overrides config)"),
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", "-n", help="Preview changes without applying")
    ] = False,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Replicate pending changes to the target directory."""
    if mode not in MODES:
        raise typer.BadParameter(
            f"{mode!r} is not one of: {', '.join(MODES)}", param_hint="'--mode'"
        )
    cfg = _build_config(dry_run=dry_run, yes=yes)
    if not cfg.sync_enabled:
        console.print(
            "[bold red]Error:[/] Replication is not enabled. Set "
            "[cyan]sync_enabled = true[/] in the config file."
        )
        raise typer.Exit(1)

    directory = target_dir or cfg.sync_dir
    if directory is None and mode != "rebuild-log":
        console.print(
            "[bold red]Error:[/] No target directory: pass [cyan]--target-dir[/] "
            "or set [cyan]sync_dir[/] in the config file."
        )
        raise typer.Exit(1)

    info = Text()
    info.append("  Database:  ", style="bold")
    info.append(f"{cfg.db_path}\n")
    info.append("  Target:    ", style="bold")
    info.append(f"{directory or '—'}\n")
    info.append("  Mode:      ", style="bold")
    info.append(mode, style="bold yellow" if mode != "one-way" else "bold green")
    if cfg.dry_run:
        info.append("\n  Dry run:   ")
        info.append("DRY RUN", style="bold magenta")
    console.print(Panel(info, title="[bold]apptbook sync[/bold]"))

    if mode != "one-way" and not cfg.yes and not cfg.dry_run:
        typer.confirm("Proceed?", abort=True)

    try:
        with open_session(cfg) as session:
            target = DirectoryTarget(directory) if directory else None
            stats = Replicator(
                cfg, session.model, session.sync_db, target, session.reconciler
            ).run(mode)
    except AppointmentError as e:
        console.print(f"[bold red]Sync failed:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None

    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Added", str(stats.added))
    results.add_row("Modified", str(stats.modified))
    results.add_row("Deleted", str(stats.deleted))
    error_val = Text(str(stats.errors))
    if stats.errors == 0:
        error_val.append(" ✓", style="green")
    else:
        error_val.stylize("bold red")
    results.add_row("Errors", error_val)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))

    if stats.errors:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Subcommand: status
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """Show configuration and sync log summary."""
    cfg = _build_config()
    config_exists = state.config_path.exists()
    db_exists = cfg.db_path.exists()

    cfg_info = Text()
    cfg_info.append("  Config:      ", style="bold")
    cfg_info.append(str(state.config_path) + " ")
    cfg_info.append(
        "✓" if config_exists else "(not found)", style="green" if config_exists else "red"
    )
    cfg_info.append("\n  Database:    ", style="bold")
    cfg_info.append(str(cfg.db_path) + " ")
    cfg_info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")
    cfg_info.append("\n  Replication: ", style="bold")
    cfg_info.append(
        "enabled" if cfg.sync_enabled else "disabled",
        style="green" if cfg.sync_enabled else "dim",
    )
    if cfg.sync_dir:
        cfg_info.append(f" → {cfg.sync_dir}", style="dim")
    cfg_info.append("\n  Deletes:     ", style="bold")
    cfg_info.append("soft (kept until replicated)" if cfg.soft_delete else "physical")
    if cfg.hidden_categories:
        cfg_info.append("\n  Hidden:      ", style="bold")
        cfg_info.append(", ".join(sorted(cfg.hidden_categories)))

    console.print(Panel(cfg_info, title="[bold]apptbook — Status[/bold]"))

    rows = query_log_summary(cfg.db_path)
    if not rows:
        if not db_exists:
            console.print(
                "[yellow]No database yet — run[/] [cyan]apptbook add[/] [yellow]to create it.[/]"
            )
        else:
            console.print("[green]Sync log is empty — nothing pending.[/]")
        return

    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("Type")
    table.add_column("Action")
    table.add_column("Pending", justify="right")
    for row in rows:
        table.add_row(row["objtype"], row["action"], str(row["count"]))
    console.print(Panel(table, title="[bold]Sync log[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
