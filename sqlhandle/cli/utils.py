"""Shared CLI utilities for SQLHandle."""

from __future__ import annotations

import logging

import click
from rich.console import Console
from rich.markup import escape

from sqlhandle.config import EnvironmentSettings, get_config
from sqlhandle.db import Database

# Single console instance reused across CLI modules
console = Console()


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging from ``--verbose`` or ``SQLHANDLE_LOG_LEVEL``."""
    settings = EnvironmentSettings()
    if verbose or settings.debug:
        level = logging.DEBUG
    else:
        level = logging.getLevelName(settings.log_level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def load_database(ctx: click.Context) -> Database:
    """Build the database selected by ``--config`` and ``--db``.

    Falls back to ``SQLHANDLE_CONFIG_FILE`` when ``--config`` is not given.
    """
    config_path = ctx.obj.get('config') or EnvironmentSettings().config_file
    config = get_config(config_path)
    return Database.from_config(config, ctx.obj.get('db'))


def print_exception(message: str, error: Exception, verbose: bool = False) -> None:
    """Render a formatted exception message.

    Args:
        message: Friendly context message to display before the exception.
        error: Original exception instance.
        verbose: When True, render the full traceback for debugging.
    """
    console.print(f"[red]{message}: {escape(str(error))}[/red]")
    for secondary in getattr(error, 'suppressed', []):
        console.print(f"[dim]  suppressed: {type(secondary).__name__}: {escape(str(secondary))}[/dim]")
    if verbose:
        import traceback

        console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")
