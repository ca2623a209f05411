"""hostfix undo command."""

from __future__ import annotations

import click

from hostfix.core.errors import HostfixError
from hostfix.core.output import console, print_undo_result
from hostfix.fix.engine import RemediationEngine


@click.command()
@click.argument("change_id", required=False)
@click.option("--all", "undo_all", is_flag=True, help="Undo every change not yet undone, newest first")
@click.option("--last", is_flag=True, help="Undo all changes from the last fix session")
@click.option("--list", "list_all", is_flag=True, help="List all undoable changes")
@click.option("--no-restore", is_flag=True, help="Do not restore file backups")
@click.option("--no-command", is_flag=True, help="Do not run recorded undo commands")
@click.pass_context
def undo(
    ctx: click.Context,
    change_id: str | None,
    undo_all: bool,
    last: bool,
    list_all: bool,
    no_restore: bool,
    no_command: bool,
):
    """Undo previously applied changes.

    Pass a CHANGE_ID (e.g. chg_0003) to undo one change, --last to undo
    the last session, or --all to undo everything.
    """
    engine = RemediationEngine(ctx.obj.get("state_dir") if ctx.obj else None)
    restore = not no_restore
    run_command = not no_command

    if list_all:
        records = engine.list_undoable()
        if not records:
            console.print("\n  No undoable changes found.\n")
            return

        console.print("\n  [bold]Undoable Changes[/bold]\n")
        for record in records:
            flag = "  [yellow](destructive)[/yellow]" if record.destructive else ""
            console.print(f"  {record.id}  {record.description}  [{record.timestamp[:19]}]{flag}")
        console.print()
        return

    try:
        if undo_all or last:
            if undo_all:
                results = engine.undo_all(restore_backup=restore, run_undo_command=run_command)
            else:
                results = engine.undo_last_session(restore_backup=restore, run_undo_command=run_command)
            if not results:
                console.print("\n  Nothing to undo.\n")
                return
            console.print("\n  [bold]Undoing changes (newest first):[/bold]\n")
            for result in results:
                print_undo_result(result)
            console.print()
            if not all(r.success for r in results):
                ctx.exit(1)
            return

        if change_id:
            result = engine.undo_change(change_id, restore_backup=restore, run_undo_command=run_command)
            print_undo_result(result)
            if not result.success:
                ctx.exit(1)
            return
    except HostfixError as e:
        console.print(f"\n  [red]{e}[/red]\n")
        ctx.exit(1)
        return

    console.print("\n  Usage: hostfix undo <CHANGE_ID>, hostfix undo --last or hostfix undo --all")
    console.print("  Run `hostfix undo --list` to see available undos.\n")
