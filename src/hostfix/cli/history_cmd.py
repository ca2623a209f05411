"""hostfix history command."""

from __future__ import annotations

import json

import click

from hostfix.core.output import console, print_history
from hostfix.fix.engine import RemediationEngine


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Export as JSON")
@click.pass_context
def history(ctx: click.Context, as_json: bool):
    """Show every change recorded in the journal."""
    engine = RemediationEngine(ctx.obj.get("state_dir") if ctx.obj else None)
    records = engine.history()

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in records], indent=2))
        return

    if not records:
        console.print("\n  No changes recorded yet.\n")
        return

    print_history(records, engine.journal.undone_ids())
