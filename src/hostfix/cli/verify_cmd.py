"""hostfix verify command."""

from __future__ import annotations

import click

from hostfix.core.errors import SessionActiveError
from hostfix.core.output import console, print_integrity, print_repair
from hostfix.fix.engine import RemediationEngine


@click.command()
@click.option("--repair", is_flag=True, help="Drop corrupted journal lines")
@click.option("--backups", "check_backups", is_flag=True, help="Also verify every backup file")
@click.pass_context
def verify(ctx: click.Context, repair: bool, check_backups: bool):
    """Verify the change journal's integrity."""
    engine = RemediationEngine(ctx.obj.get("state_dir") if ctx.obj else None)

    ok = engine.verify()
    invalid = [] if ok else engine.journal.find_invalid_lines()
    print_integrity(ok, invalid)

    if not ok and repair:
        try:
            with engine.sessions:
                result = engine.repair()
        except SessionActiveError as e:
            console.print(f"\n  [red]{e}[/red]\n")
            ctx.exit(1)
            return
        print_repair(result)
        ok = True

    if check_backups:
        bad = 0
        for record in engine.history():
            for backup in record.backups:
                if not engine.backups.verify_backup_integrity(backup):
                    bad += 1
                    console.print(f"  [red]❌ {record.id}[/red]  backup {backup.backup_path} is corrupted or missing")
        if bad:
            ok = False
        else:
            console.print("  [green]✅ All journaled backups verified.[/green]")

    if not ok:
        ctx.exit(1)
