"""hostfix fix command."""

from __future__ import annotations

import click
from rich.prompt import Confirm

from hostfix.core.errors import CoreStateError, SessionActiveError
from hostfix.core.models import FixMode, FixPlan
from hostfix.core.output import console, print_fix_summary
from hostfix.fix.diagnostics import parse_check_lines
from hostfix.fix.engine import RemediationEngine


@click.command()
@click.option(
    "--checks", "checks_file", type=click.File("r"),
    help="Read check results (JSON lines or id|status|hint) from FILE, or - for stdin",
)
@click.option("--run", "run_command", type=str, help="Run a diagnostic command and fix what it reports")
@click.option("--dry-run", is_flag=True, help="Show what would be fixed without changing anything")
@click.option("--prompt", is_flag=True, help="Ask before applying each fix")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts")
@click.pass_context
def fix(
    ctx: click.Context,
    checks_file,
    run_command: str | None,
    dry_run: bool,
    prompt: bool,
    yes: bool,
):
    """Fix failing checks reported by a diagnostic run.

    Every applied fix is backed up and journaled. Use `hostfix undo`
    to revert.
    """
    engine = RemediationEngine(ctx.obj.get("state_dir") if ctx.obj else None)

    if dry_run:
        mode = FixMode.DRY_RUN
    elif (prompt or engine.config.fix.prompt) and not yes:
        mode = FixMode.PROMPT
    else:
        mode = FixMode.APPLY

    try:
        if run_command:
            report = engine.run_diagnostics(run_command, mode, _confirm)
        elif checks_file is not None:
            checks = parse_check_lines(checks_file.read())
            report = engine.run(checks, mode, _confirm)
        else:
            console.print("\n  Usage: hostfix fix --checks FILE or hostfix fix --run COMMAND")
            console.print("  Add --dry-run to preview.\n")
            return
    except SessionActiveError as e:
        console.print(f"\n  [red]{e}[/red]\n")
        ctx.exit(1)
        return
    except CoreStateError as e:
        console.print(f"\n  [red]Aborted: {e}[/red]")
        console.print("  [red]hostfix state could not be written safely; no further fixes were attempted.[/red]\n")
        ctx.exit(2)
        return

    print_fix_summary(report)
    if report.errors:
        ctx.exit(1)


def _confirm(plan: FixPlan) -> bool:
    console.print(f"\n  [bold]{plan.check_id}[/bold]  {plan.action}")
    if plan.command:
        console.print(f"     [dim]{plan.command}[/dim]")
    return Confirm.ask("  Apply this fix?", default=False)
