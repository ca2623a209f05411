"""Click CLI entry point for hostfix."""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.logging import RichHandler

from hostfix._version import __version__
from hostfix.core.output import error_console


@click.group()
@click.version_option(version=__version__, prog_name="hostfix")
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="HOSTFIX_STATE_DIR",
    help="Directory holding the change journal and backups (default: ~/.hostfix/state)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx: click.Context, state_dir: Path | None, verbose: bool):
    """hostfix - journaled, reversible host remediation.

    Every fix is backed up, recorded and can be undone.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )
    ctx.ensure_object(dict)
    ctx.obj["state_dir"] = state_dir


# Import and register subcommands
from hostfix.cli.fix_cmd import fix  # noqa: E402
from hostfix.cli.undo_cmd import undo  # noqa: E402
from hostfix.cli.history_cmd import history  # noqa: E402
from hostfix.cli.verify_cmd import verify  # noqa: E402

cli.add_command(fix)
cli.add_command(undo)
cli.add_command(history)
cli.add_command(verify)


if __name__ == "__main__":
    cli()
