"""Main CLI entry point for SQLHandle."""

from __future__ import annotations

import click

from sqlhandle import __version__
from sqlhandle.cli.commands import register_commands
from sqlhandle.cli.commands.configuration import config_group
from sqlhandle.cli.commands.database import db_group
from sqlhandle.cli.commands.run import run_command
from sqlhandle.cli.utils import configure_logging, console


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--config", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--db", help="Database connection name")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(
    ctx: click.Context,
    version: bool,
    config: str,
    db: str,
    verbose: bool,
) -> None:
    """SQLHandle - database sessions, transactions and scripts."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        {
            "config": config,
            "db": db,
            "verbose": verbose,
        }
    )
    configure_logging(verbose)

    if version:
        console.print(f"SQLHandle v{__version__}")
        return

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


COMMAND_REGISTRY = [
    run_command,
    db_group,
    config_group,
]

register_commands(cli, COMMAND_REGISTRY)


if __name__ == "__main__":
    cli()
