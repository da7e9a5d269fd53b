"""ticketflow CLI - async commands over the report database.

Commands:
- init: Initialize database schema
- seed-rules: Load default classification rules from YAML
- import-records: Derive and store a scope's records from a CSV/XLSX export
- import-links: Replace the parent/child link set
- rules: List, add, update, delete and test pattern rules
- windows: Show and switch date windows, toggle global mode
- set-status: Manually override an "Esperando El Cliente" status
- import-history: Show recent import runs
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ticketflow.config import get_config
from ticketflow.core.logging import configure_logging
from ticketflow.db.connection import close_db, get_session, init_db
from ticketflow.db.repositories import ImportLogRepository
from ticketflow.ingestion.rows import load_links, load_rows
from ticketflow.models import PatternKind, RuleFamily, Scope
from ticketflow.pipeline.orchestrator import ImportOrchestrator
from ticketflow.pipeline.types import ImportStatus
from ticketflow.rules.seed import ConfigurationError, seed_rules
from ticketflow.rules.service import RuleService
from ticketflow.status.updater import update_status
from ticketflow.windows.registry import WindowService
from ticketflow.windows.window import display_text, duration_days

app = typer.Typer(
    name="ticketflow",
    help="ticketflow - Rule-driven ticket report derivation",
    no_args_is_help=True,
)
rules_cli = typer.Typer(help="Pattern rule administration", no_args_is_help=True)
app.add_typer(rules_cli, name="rules")

windows_cli = typer.Typer(help="Date window administration", no_args_is_help=True)
app.add_typer(windows_cli, name="windows")

console = Console()

STATUS_STYLES = {
    ImportStatus.SUCCESS: "green",
    ImportStatus.PARTIAL_SUCCESS: "yellow",
    ImportStatus.FAILED: "red",
}


def _run(fn: Callable[[], Awaitable[None]]) -> None:
    """Run an async command body and dispose the engine afterwards."""

    async def _wrapped():
        try:
            await fn()
        finally:
            await close_db()

    asyncio.run(_wrapped())


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    """Configure logging before any command runs."""
    config = get_config()
    configure_logging(log_level or config.log_level, config.log_format)


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(lambda: init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="seed-rules")
def seed_rules_cmd(
    path: Optional[Path] = typer.Argument(None, help="Seed YAML (default: config/default_rules.yaml)"),
):
    """Load default business-unit, status and level rules."""

    async def _seed():
        async with get_session() as session:
            created, skipped = await seed_rules(session, path)
        console.print(f"[bold green]✓[/bold green] {created} rules created, {skipped} already present")

    try:
        _run(_seed)
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


@app.command(name="import-records")
def import_records_cmd(
    file_path: Path = typer.Argument(..., help="Ticket export (CSV/XLSX)"),
    scope: Scope = typer.Option(Scope.MONTHLY, "--scope", help="Record scope to replace"),
):
    """Derive records from an export and replace the scope's record set."""
    try:
        rows = load_rows(file_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[bold]Importing {len(rows)} rows:[/bold] scope={scope.value}")

    async def _import():
        async with get_session() as session:
            orchestrator = ImportOrchestrator(session)
            result, derivation = await orchestrator.import_records(
                rows, scope, source_name=file_path.name
            )

        style = STATUS_STYLES[result.status]
        console.print(f"[{style}]{result.status.value}[/{style}] {result.message}")

        limit = get_config().reporting.error_preview_limit
        preview = derivation.error_preview(limit)
        if preview:
            console.print(f"[yellow]⚠[/yellow] {len(derivation.row_errors)} row errors:")
            for err in preview:
                console.print(f"  {err}", style="dim")
            if len(derivation.row_errors) > limit:
                console.print(f"  ... and {len(derivation.row_errors) - limit} more", style="dim")

        if result.status is ImportStatus.FAILED:
            raise typer.Exit(1)

    _run(_import)


@app.command(name="import-links")
def import_links_cmd(
    file_path: Path = typer.Argument(..., help="Parent/child link export (CSV/XLSX)"),
):
    """Replace the parent/child link set used for linked-ticket counts."""
    try:
        links = load_links(file_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    async def _import():
        async with get_session() as session:
            result = await ImportOrchestrator(session).import_links(links, source_name=file_path.name)
        style = STATUS_STYLES[result.status]
        console.print(f"[{style}]{result.status.value}[/{style}] {result.message}")

    _run(_import)


@app.command(name="set-status")
def set_status_cmd(
    request_id: str = typer.Argument(..., help="Request ID"),
    status: str = typer.Argument(..., help="New canonical status"),
    scope: Scope = typer.Option(Scope.MONTHLY, "--scope"),
):
    """Override the status of a record awaiting the customer (one time only)."""

    async def _set():
        async with get_session() as session:
            result = await update_status(session, request_id, status, scope)
        if result.success:
            console.print(f"[bold green]✓[/bold green] {request_id} set to {status!r} (locked)")
        else:
            console.print(f"[red]✗[/red] {result.reason}")
            raise typer.Exit(1)

    _run(_set)


@app.command(name="import-history")
def import_history_cmd(
    last_n: int = typer.Option(10, "--last", "-n", help="Show last N import runs"),
):
    """Show recent import runs from the audit log."""

    async def _history():
        async with get_session() as session:
            logs = await ImportLogRepository(session).recent(last_n)

        if not logs:
            console.print("[yellow]No imports found[/yellow]")
            return

        table = Table(title=f"Last {len(logs)} imports")
        table.add_column("When")
        table.add_column("Source")
        table.add_column("Scope")
        table.add_column("Status")
        table.add_column("Inserted", justify="right")
        table.add_column("Failed", justify="right")
        for log in logs:
            style = STATUS_STYLES.get(ImportStatus(log.status), "")
            table.add_row(
                log.run_timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                log.source_name,
                log.scope or "-",
                f"[{style}]{log.status}[/{style}]",
                str(log.records_inserted),
                str(log.records_failed),
            )
        console.print(table)

    _run(_history)


# -- rules -------------------------------------------------------------------


@rules_cli.command("list")
def rules_list_cmd(
    family: Optional[RuleFamily] = typer.Option(None, "--family", help="Only this family"),
):
    """List rules in evaluation order."""

    async def _list():
        async with get_session() as session:
            rules = await RuleService(session).list(family)

        if not rules:
            console.print("[yellow]No rules found[/yellow]")
            return

        table = Table(title="Pattern rules")
        for col in ("ID", "Family", "Priority", "Kind", "Pattern", "Target", "Active"):
            table.add_column(col)
        for rule in rules:
            table.add_row(
                str(rule.id),
                rule.family.value,
                str(rule.priority),
                rule.pattern_kind.value,
                rule.source_pattern,
                rule.target_value,
                "✓" if rule.active else "[dim]✗[/dim]",
            )
        console.print(table)

    _run(_list)


@rules_cli.command("add")
def rules_add_cmd(
    family: RuleFamily = typer.Argument(..., help="Rule family"),
    pattern: str = typer.Argument(..., help="Source pattern"),
    target: str = typer.Argument(..., help="Target value"),
    kind: PatternKind = typer.Option(PatternKind.CONTAINS, "--kind"),
    priority: Optional[int] = typer.Option(None, "--priority", help="Default: after the last rule"),
    inactive: bool = typer.Option(False, "--inactive", help="Create disabled"),
):
    """Create a pattern rule."""

    async def _add():
        async with get_session() as session:
            result = await RuleService(session).create(
                family, pattern, target, kind, priority, active=not inactive
            )
        if not result.success:
            console.print(f"[red]✗[/red] {result.error}")
            raise typer.Exit(1)
        console.print(f"[bold green]✓[/bold green] Rule {result.rule.id} created (priority {result.rule.priority})")

    _run(_add)


@rules_cli.command("update")
def rules_update_cmd(
    rule_id: int = typer.Argument(..., help="Rule ID"),
    pattern: Optional[str] = typer.Option(None, "--pattern"),
    target: Optional[str] = typer.Option(None, "--target"),
    kind: Optional[PatternKind] = typer.Option(None, "--kind"),
    priority: Optional[int] = typer.Option(None, "--priority"),
    active: Optional[bool] = typer.Option(None, "--active/--inactive"),
):
    """Edit a pattern rule."""
    changes = {
        "source_pattern": pattern,
        "target_value": target,
        "pattern_kind": kind,
        "priority": priority,
        "active": active,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        console.print("[yellow]Nothing to update[/yellow]")
        raise typer.Exit(1)

    async def _update():
        async with get_session() as session:
            result = await RuleService(session).update(rule_id, **changes)
        if not result.success:
            console.print(f"[red]✗[/red] {result.error}")
            raise typer.Exit(1)
        console.print(f"[bold green]✓[/bold green] Rule {rule_id} updated")

    _run(_update)


@rules_cli.command("delete")
def rules_delete_cmd(rule_id: int = typer.Argument(..., help="Rule ID")):
    """Delete a pattern rule."""

    async def _delete():
        async with get_session() as session:
            result = await RuleService(session).delete(rule_id)
        if not result.success:
            console.print(f"[red]✗[/red] {result.error}")
            raise typer.Exit(1)
        console.print(f"[bold green]✓[/bold green] Rule {rule_id} deleted")

    _run(_delete)


@rules_cli.command("test")
def rules_test_cmd(
    pattern: str = typer.Argument(..., help="Pattern to try"),
    text: str = typer.Argument(..., help="Text to match against"),
    kind: PatternKind = typer.Option(PatternKind.CONTAINS, "--kind"),
):
    """Preview whether a pattern matches a text (nothing is stored)."""
    result = RuleService.preview(pattern, text, kind)
    if result.success:
        console.print(f"[green]match[/green] {pattern!r} ({kind.value}) ~ {text!r}")
    else:
        console.print(f"[yellow]{result.error}[/yellow]")


@rules_cli.command("stats")
def rules_stats_cmd():
    """Show rule counts per family."""

    async def _stats():
        async with get_session() as session:
            stats = await RuleService(session).statistics()
        table = Table(title="Rule statistics")
        table.add_column("Family")
        table.add_column("Active", justify="right")
        table.add_column("Total", justify="right")
        for family, counts in stats.items():
            table.add_row(family, str(counts["active"]), str(counts["total"]))
        console.print(table)

    _run(_stats)


# -- windows -----------------------------------------------------------------


@windows_cli.command("show")
def windows_show_cmd():
    """Show the window each scope currently resolves to."""

    async def _show():
        async with get_session() as session:
            service = WindowService(session, reporting=get_config().reporting)
            settings = await service.settings()
            resolved = [(scope, await service.current(scope)) for scope in Scope]

        mode = "[green]on[/green]" if settings.global_mode_enabled else "off"
        console.print(f"Global mode: {mode}")
        table = Table(title="Resolved date windows")
        for col in ("Scope", "Kind", "Range", "Days"):
            table.add_column(col)
        for scope, window in resolved:
            table.add_row(
                scope.value,
                window.range_kind.value,
                display_text(window),
                str(duration_days(window)),
            )
        console.print(table)

    _run(_show)


@windows_cli.command("set-weekly")
def windows_set_weekly_cmd(
    scope: Scope = typer.Option(Scope.MONTHLY, "--scope"),
    from_date: Optional[datetime] = typer.Option(None, "--from", formats=["%Y-%m-%d"], help="A Friday"),
    to_date: Optional[datetime] = typer.Option(None, "--to", formats=["%Y-%m-%d"], help="A Thursday"),
):
    """Activate a Friday-Thursday window (defaults to the week ending last Thursday)."""

    async def _set():
        async with get_session() as session:
            result = await WindowService(session, reporting=get_config().reporting).activate_weekly(
                scope,
                from_date.date() if from_date else None,
                to_date.date() if to_date else None,
            )
        _print_window_result(result)

    _run(_set)


@windows_cli.command("set-custom")
def windows_set_custom_cmd(
    from_date: datetime = typer.Argument(..., formats=["%Y-%m-%d"]),
    to_date: datetime = typer.Argument(..., formats=["%Y-%m-%d"]),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    scope: Scope = typer.Option(Scope.MONTHLY, "--scope"),
):
    """Activate an explicit date window."""

    async def _set():
        async with get_session() as session:
            result = await WindowService(session, reporting=get_config().reporting).activate_custom(
                from_date.date(), to_date.date(), description, scope
            )
        _print_window_result(result)

    _run(_set)


@windows_cli.command("disable")
def windows_disable_cmd(scope: Scope = typer.Option(Scope.MONTHLY, "--scope")):
    """Fall back to the current ISO week for a scope."""

    async def _disable():
        async with get_session() as session:
            result = await WindowService(session, reporting=get_config().reporting).disable(scope)
        _print_window_result(result)

    _run(_disable)


@windows_cli.command("global-mode")
def windows_global_mode_cmd(
    enabled: bool = typer.Argument(..., help="true/false"),
):
    """Route every scope to the global window."""

    async def _toggle():
        async with get_session() as session:
            await WindowService(session).set_global_mode(enabled)
        console.print(f"[bold green]✓[/bold green] Global mode {'enabled' if enabled else 'disabled'}")

    _run(_toggle)


def _print_window_result(result) -> None:
    if not result.success:
        console.print(f"[red]✗[/red] {result.error}")
        raise typer.Exit(1)
    console.print(f"[bold green]✓[/bold green] {result.window.scope.value}: {display_text(result.window)}")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
