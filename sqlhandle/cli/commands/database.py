"""Database connection CLI commands."""

from __future__ import annotations

import time

import click
from rich.markup import escape
from rich.table import Table

from sqlhandle.cli.utils import console, load_database, print_exception
from sqlhandle.exceptions import ConfigurationError


@click.group(name="db")
@click.pass_context
def db_group(ctx: click.Context) -> None:
    """🗄️  Database connection management."""
    pass


@db_group.command(name="ping")
@click.pass_context
def ping_command(ctx: click.Context) -> None:
    """Open a handle and report the session it gets."""
    try:
        with load_database(ctx) as database:
            start = time.perf_counter()
            with database.open() as handle:
                handle.select("SELECT 1 AS ok").one()
                round_trip = (time.perf_counter() - start) * 1000
                isolation = handle.get_transaction_isolation_level()
                read_only = handle.is_read_only()

            table = Table(show_header=False, box=None)
            table.add_column("Property", style="cyan", width=18)
            table.add_column("Value", style="green")
            table.add_row("Database type:", database.adapter.config.type.value)
            table.add_row("Driver:", database.adapter.get_driver_name())
            table.add_row("Isolation level:", isolation.value)
            table.add_row("Read only:", "yes" if read_only else "no")
            table.add_row("Round trip:", f"{round_trip:.2f} ms")

        console.print("[bold blue]Database Connection[/bold blue]\n")
        console.print(table)
        console.print("\n[green]✅ Connection successful[/green]")
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc
    except Exception as exc:
        print_exception("❌ Connection failed", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc
