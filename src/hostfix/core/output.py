"""Rich terminal formatting for hostfix output."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hostfix.core.models import FixMode, FixReport
from hostfix.fix.models import ChangeRecord, RepairResult, UndoResult

console = Console()
error_console = Console(stderr=True)


SEVERITY_COLORS = {
    "info": "blue",
    "warn": "yellow",
    "critical": "red",
}


def print_fix_summary(report: FixReport) -> None:
    """Print the operator-facing summary of a fix run."""
    dry_run = report.mode is FixMode.DRY_RUN
    lines = []
    lines.append("")

    if dry_run:
        lines.append("  [yellow bold]DRY-RUN[/yellow bold]  No changes were made.")
        lines.append("")
        for r in report.previews:
            lines.append(f"  [cyan]{r.check_id}[/cyan]  {r.message}")
            if r.plan and r.plan.command:
                lines.append(f"     [dim]{r.plan.command}[/dim]")
        if report.previews:
            lines.append("")
    else:
        lines.append(
            f"  Applied: {report.applied_count}  "
            f"Skipped: {report.skipped_count}  "
            f"Failed: {report.failed_count}  "
            f"Manual: {report.manual_count}  "
            f"Already fixed: {report.no_op_count}"
        )
        lines.append("")
        for r in report.applied:
            lines.append(f"  [green]✅ {r.check_id}[/green]  {r.message}  [dim]({r.change_id})[/dim]")
        if report.applied:
            lines.append("")

    if report.manual:
        lines.append("  [cyan]Manual fixes needed:[/cyan]")
        for r in report.manual:
            lines.append(f"    {r.check_id}")
            if r.hint:
                lines.append(f"      [cyan]-> {r.hint}[/cyan]")
        lines.append("")

    if report.errors:
        lines.append("  [red]Errors:[/red]")
        for r in report.errors:
            lines.append(f"  [red]❌ {r.check_id}[/red]  {r.message}")
        lines.append("")

    if report.dropped_records:
        lines.append(
            f"  [yellow]Journal repaired: {report.dropped_records} corrupted record(s) dropped.[/yellow]"
        )
        lines.append("")

    if report.applied and not dry_run:
        lines.append("  [dim]Run `hostfix undo --last` to revert this session.[/dim]")

    if report.errors:
        border = "red"
    elif dry_run or report.manual:
        border = "yellow"
    else:
        border = "green"

    title = "hostfix Fix Summary" + (" (DRY-RUN)" if dry_run else "")
    console.print(Panel(
        "\n".join(lines),
        title=f"[bold]{title}[/bold]",
        border_style=border,
        padding=(0, 1),
    ))


def print_undo_result(result: UndoResult) -> None:
    if result.success:
        console.print(f"  [green]✅ {result.change_id}[/green]  {result.message}")
    else:
        console.print(f"  [red]❌ {result.change_id}[/red]  {result.message}")


def print_history(records: list[ChangeRecord], undone: set[str] | None = None) -> None:
    """Print the journal as a table, oldest first."""
    undone = undone or set()
    table = Table(title="Change Journal", show_lines=False)
    table.add_column("ID", style="bold")
    table.add_column("When")
    table.add_column("Category")
    table.add_column("Severity")
    table.add_column("Description")
    table.add_column("Undo")

    for record in records:
        color = SEVERITY_COLORS.get(record.severity, "white")
        if record.id in undone:
            undo_state = "[dim]undone[/dim]"
        elif record.destructive:
            undo_state = "[yellow]destructive[/yellow]"
        else:
            undo_state = "[green]ok[/green]"
        table.add_row(
            record.id,
            record.timestamp[:19].replace("T", " "),
            record.category,
            f"[{color}]{record.severity}[/{color}]",
            record.description,
            undo_state,
        )
    console.print(table)


def print_integrity(ok: bool, invalid_lines: list[int]) -> None:
    if ok:
        console.print("  [green]✅ Journal integrity verified.[/green]")
        return
    shown = ", ".join(str(n) for n in invalid_lines[:20])
    more = f" (+{len(invalid_lines) - 20} more)" if len(invalid_lines) > 20 else ""
    console.print(f"  [red]❌ Journal has {len(invalid_lines)} invalid line(s): {shown}{more}[/red]")
    console.print("  Run `hostfix verify --repair` to drop them.")


def print_repair(result: RepairResult) -> None:
    if result.dropped:
        lines = ", ".join(str(n) for n in result.dropped_lines)
        console.print(
            f"  [yellow]Repaired journal: kept {result.kept}, "
            f"dropped {result.dropped} record(s) (lines {lines}).[/yellow]"
        )
    else:
        console.print(f"  [green]Journal already valid: {result.kept} record(s).[/green]")
