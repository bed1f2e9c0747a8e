"""Run a SQL script inside one transaction."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import click
from rich.markup import escape
from rich.table import Table

from sqlhandle.cli.utils import console, load_database, print_exception
from sqlhandle.db import Handle, TransactionIsolationLevel
from sqlhandle.exceptions import ConfigurationError

ISOLATION_CHOICES = [
    level.name for level in TransactionIsolationLevel if level is not TransactionIsolationLevel.UNKNOWN
]


def _execute_script(handle: Handle, sql: str, dry_run: bool) -> List[int]:
    counts = handle.create_script(sql).execute()
    if dry_run:
        handle.rollback()
    return counts


@click.command(name="run")
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--isolation",
    type=click.Choice(ISOLATION_CHOICES, case_sensitive=False),
    help="Isolation level for the transaction",
)
@click.option("--dry-run", is_flag=True, help="Execute, then roll back instead of committing")
@click.pass_context
def run_command(ctx: click.Context, script: str, isolation: Optional[str], dry_run: bool) -> None:
    """▶️  Execute SCRIPT in a single transaction.

    Statements are separated by semicolons. Any failure rolls back the
    whole script.
    """
    sql = Path(script).read_text(encoding='utf-8')

    try:
        with load_database(ctx) as database:
            counts = database.in_transaction(
                lambda handle: _execute_script(handle, sql, dry_run),
                level=isolation,
            )
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc
    except Exception as exc:
        print_exception("❌ Script failed and was rolled back", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Rows affected", style="green", justify="right")
    for number, count in enumerate(counts, start=1):
        table.add_row(str(number), str(count))
    console.print(table)

    if dry_run:
        console.print(f"[yellow]Dry run: {len(counts)} statement(s) rolled back[/yellow]")
    else:
        console.print(f"[green]✅ Committed {len(counts)} statement(s)[/green]")
