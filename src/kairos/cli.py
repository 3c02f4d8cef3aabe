"""CLI — init, add-project, add-item, log, status, whatnow, replan."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from pathlib import Path
from typing import TypeVar

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from kairos.config import Config
from kairos.core import ReplanEngine, SessionEngine, StatusEngine, WhatNowEngine
from kairos.core.result import Err
from kairos.errors import PlannerError
from kairos.events.bus import EventBus
from kairos.models.contract import (
    ReplanRequest,
    ReplanTrigger,
    RiskLevel,
    StatusRequest,
    WhatNowRequest,
)
from kairos.models.project import PlanNode, Project
from kairos.models.work_item import WorkItem
from kairos.storage.sqlite_store import SQLiteStore

T = TypeVar("T")

console = Console()

_RISK_STYLE = {
    RiskLevel.CRITICAL: "bold red",
    RiskLevel.AT_RISK: "yellow",
    RiskLevel.ON_TRACK: "green",
}


def _load_config(workspace: str | None) -> Config:
    try:
        config = Config.load(Path(workspace).expanduser().resolve() if workspace else None)
    except PlannerError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


def _run(config: Config, body: Callable[[SQLiteStore], Awaitable[T]]) -> T:
    """Open the workspace store, run ``body`` and always close the store."""
    if not config.db_path.exists():
        click.echo(f"Error: No database at {config.db_path}. Run 'kairos init' first.", err=True)
        sys.exit(1)

    async def _inner() -> T:
        store = SQLiteStore(config.db_path, wal_mode=config.wal_mode)
        try:
            await store.initialize()
            return await body(store)
        finally:
            await store.close()

    try:
        return asyncio.run(_inner())
    except PlannerError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _fail(err: Err) -> None:
    click.echo(f"Error: {err.kind.value}: {err.message}", err=True)
    for message in err.policy_messages:
        click.echo(f"  {message}", err=True)
    for blocker in err.blockers:
        click.echo(f"  [{blocker.code.value}] {blocker.entity_id[:8]}: {blocker.message}", err=True)
    sys.exit(1)


def _risk(level: RiskLevel) -> str:
    return f"[{_RISK_STYLE[level]}]{level.value}[/{_RISK_STYLE[level]}]"


workspace_option = click.option(
    "--workspace", "-w", default=None, help="Workspace directory (default ~/.kairos)"
)


@click.group()
@click.version_option(package_name="kairos-planner")
def main() -> None:
    """Kairos — what to work on next, and whether you'll make it."""


@main.command()
@click.argument("path", type=click.Path(), default="~/.kairos")
def init(path: str) -> None:
    """Initialize a new kairos workspace."""
    workspace = Path(path).expanduser().resolve()

    async def _init() -> None:
        config = Config(workspace_path=workspace)
        store = SQLiteStore(config.db_path)
        await store.initialize()
        await store.close()
        config.save()

    asyncio.run(_init())
    click.echo(f"Initialized workspace at {workspace}")
    click.echo(f"Database: {workspace / 'kairos.db'}")


@main.command("add-project")
@click.argument("name")
@click.option("--due", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@click.option("--short-id", default="", help="Short display ID")
@click.option("--domain", default="", help="Free-form domain label")
@workspace_option
def add_project(
    name: str, due: datetime | None, short_id: str, domain: str, workspace: str | None
) -> None:
    """Create a project with a default plan node."""
    config = _load_config(workspace)
    project = Project(
        name=name,
        short_id=short_id,
        domain=domain,
        start_date=date.today(),
        target_date=due.date() if due else None,
    )
    node = PlanNode(project_id=project.id, title=name, is_default=True)

    async def _add(store: SQLiteStore) -> None:
        await store.insert_project(project.to_storage())
        await store.insert_node(node.to_storage())

    _run(config, _add)
    console.print(
        Panel(
            f"[green]✓[/green] Project created: {name}\n"
            f"ID: {project.display_id}\n"
            f"Default node: {node.id}",
            title="Project Created",
        )
    )


@main.command("add-item")
@click.argument("node_id")
@click.argument("title")
@click.option("--planned", type=int, default=0, help="Planned minutes")
@click.option("--type", "item_type", default="task", help="Item type (exam, reading, ...)")
@click.option("--min-session", type=int, default=0)
@click.option("--max-session", type=int, default=0)
@click.option("--default-session", type=int, default=0)
@click.option("--units", type=int, default=0, help="Total units (chapters, pages, ...)")
@click.option("--units-kind", default="")
@click.option("--no-split", is_flag=True, help="Must be done in a single sitting")
@workspace_option
def add_item(
    node_id: str,
    title: str,
    planned: int,
    item_type: str,
    min_session: int,
    max_session: int,
    default_session: int,
    units: int,
    units_kind: str,
    no_split: bool,
    workspace: str | None,
) -> None:
    """Add a work item under a plan node."""
    config = _load_config(workspace)
    try:
        item = WorkItem(
            node_id=node_id,
            title=title,
            type=item_type,
            planned_min=planned,
            min_session_min=min_session,
            max_session_min=max_session,
            default_session_min=default_session,
            splittable=not no_split,
            units_total=units,
            units_kind=units_kind,
        )
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    async def _add(store: SQLiteStore) -> None:
        await store.insert_work_item(item.to_storage())

    _run(config, _add)
    click.echo(f"Added work item {item.id}")


@main.command("log")
@click.argument("item_id")
@click.argument("minutes", type=int)
@click.option("--units", type=int, default=0, help="Units completed in this session")
@click.option("--note", default=None)
@workspace_option
def log_session(
    item_id: str, minutes: int, units: int, note: str | None, workspace: str | None
) -> None:
    """Log a work session against an item."""
    config = _load_config(workspace)

    async def _log(store: SQLiteStore):
        engine = SessionEngine(store, EventBus(), config)
        session = await engine.log_session(item_id, minutes, units, note)
        return session, await store.get_work_item(item_id)

    session, item = _run(config, _log)
    click.echo(
        f"Logged {session.minutes} min on {item['title']} "
        f"({item['logged_min']}/{item['planned_min']} min, {item['status']})"
    )


@main.command()
@click.option("--project", "-p", "scope", multiple=True, help="Limit to project ID(s)")
@click.option("--recalc", is_flag=True, help="Preview pending re-estimates")
@click.option("--blockers", is_flag=True, help="List blocked items")
@click.option("--archived", is_flag=True, help="Include archived projects")
@workspace_option
def status(
    scope: tuple[str, ...], recalc: bool, blockers: bool, archived: bool, workspace: str | None
) -> None:
    """Show risk and progress per project."""
    config = _load_config(workspace)
    request = StatusRequest(
        project_scope=list(scope),
        recalc=recalc,
        include_blockers=blockers,
        include_archived=archived,
    )

    async def _status(store: SQLiteStore):
        return await StatusEngine(store, config).get_status(request)

    result = _run(config, _status)
    if isinstance(result, Err):
        _fail(result)
    response = result.value

    table = Table(title=f"Status — {response.summary.policy_message}")
    table.add_column("Project")
    table.add_column("Risk")
    table.add_column("Due")
    table.add_column("Days", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Need/day", justify="right")
    table.add_column("Pace/day", justify="right")
    table.add_column("Done %", justify="right")
    for view in response.projects:
        table.add_row(
            view.project_name,
            _risk(view.risk_level),
            view.due_date.isoformat() if view.due_date else "-",
            str(view.days_left) if view.days_left is not None else "-",
            f"{view.remaining_min_total} min",
            f"{view.required_daily_min:.0f}",
            f"{view.recent_daily_min:.0f}",
            f"{view.progress_structural_pct:.0f}",
        )
    console.print(table)
    console.print(f"Mode: [bold]{response.summary.mode.value}[/bold]")
    for blocker in response.blockers:
        console.print(f"  [dim][{blocker.code.value}][/dim] {blocker.entity_id[:8]}: {blocker.message}")
    for warning in response.warnings:
        console.print(f"[yellow]! {warning}[/yellow]")


@main.command()
@click.argument("minutes", type=int)
@click.option("--project", "-p", "scope", multiple=True, help="Limit to project ID(s)")
@click.option("--max-slices", type=int, default=0)
@click.option("--vary", is_flag=True, help="Prefer one item per project")
@click.option("--dry-run", is_flag=True)
@workspace_option
def whatnow(
    minutes: int,
    scope: tuple[str, ...],
    max_slices: int,
    vary: bool,
    dry_run: bool,
    workspace: str | None,
) -> None:
    """Recommend what to work on for MINUTES minutes."""
    config = _load_config(workspace)
    request = WhatNowRequest(
        available_min=minutes,
        project_scope=list(scope),
        max_slices=max_slices,
        enforce_variation=vary,
        dry_run=dry_run,
    )

    async def _recommend(store: SQLiteStore):
        return await WhatNowEngine(store, EventBus(), config).recommend(request)

    result = _run(config, _recommend)
    if isinstance(result, Err):
        _fail(result)
    response = result.value

    table = Table(title=f"What now — {response.allocated_min}/{response.requested_min} min")
    table.add_column("#", justify="right")
    table.add_column("Item")
    table.add_column("Minutes", justify="right")
    table.add_column("Risk")
    table.add_column("Score", justify="right")
    table.add_column("Why")
    for index, work_slice in enumerate(response.recommendations, 1):
        table.add_row(
            str(index),
            work_slice.title,
            str(work_slice.allocated_min),
            _risk(work_slice.risk_level),
            f"{work_slice.score:.1f}",
            ", ".join(r.code.value for r in work_slice.reasons),
        )
    console.print(table)
    for message in response.policy_messages:
        console.print(f"[bold]{message}[/bold]")
    for warning in response.warnings:
        console.print(f"[yellow]! {warning}[/yellow]")


@main.command()
@click.option(
    "--strategy", type=click.Choice(["rebalance", "deadline_first"]), default="rebalance"
)
@click.option("--project", "-p", "scope", multiple=True, help="Limit to project ID(s)")
@click.option("--dry-run", is_flag=True)
@workspace_option
def replan(strategy: str, scope: tuple[str, ...], dry_run: bool, workspace: str | None) -> None:
    """Re-estimate items from new sessions and recompute risk."""
    config = _load_config(workspace)
    request = ReplanRequest(
        trigger=ReplanTrigger.MANUAL,
        strategy=strategy,
        project_scope=list(scope),
        dry_run=dry_run,
    )

    async def _replan(store: SQLiteStore):
        return await ReplanEngine(store, EventBus(), config).replan(request)

    result = _run(config, _replan)
    if isinstance(result, Err):
        _fail(result)
    response = result.value

    if not response.deltas:
        console.print("No new sessions since the last replan.")
    for delta in response.deltas:
        console.print(
            Panel(
                f"Risk: {_risk(delta.risk_before)} → {_risk(delta.risk_after)}\n"
                f"Remaining: {delta.remaining_min_before} → {delta.remaining_min_after} min\n"
                f"Need/day: {delta.required_daily_min_before:.0f} → "
                f"{delta.required_daily_min_after:.0f} min\n"
                + "\n".join(delta.notes),
                title=delta.project_name,
            )
        )
    if response.explanation and response.explanation.critical_projects:
        console.print(
            "[bold red]Critical:[/bold red] " + ", ".join(response.explanation.critical_projects)
        )
    console.print(f"Mode after replan: [bold]{response.global_mode_after.value}[/bold]")
    for warning in response.warnings:
        console.print(f"[yellow]! {warning}[/yellow]")
