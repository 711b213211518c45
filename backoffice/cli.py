import click
from flask import current_app
from flask.cli import with_appcontext
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .db import fetch_all, get_db, init_db, migrate_offerte_ai
from .health import check_tables

console = Console()


@click.command("init-db")
@click.option("--deals-schema", type=click.Choice(["dutch", "english"]), default=None,
              help="Column naming for a fresh deals table.")
@click.option("--offerte-ai/--no-offerte-ai", default=None, help="Create the quote AI columns.")
@with_appcontext
def init_db_command(deals_schema, offerte_ai):
    """Create all tables."""
    config = current_app.config
    schema = deals_schema or config["DEALS_SCHEMA"]
    with_ai = config["OFFERTE_AI_COLUMNS"] if offerte_ai is None else offerte_ai

    init_db(get_db(), deals_schema=schema, offerte_ai=with_ai)
    console.print(Panel(
        f"Database: {config['DB_FILE']}\nDeals schema: {schema}\nOfferte AI velden: {'ja' if with_ai else 'nee'}",
        title="Database klaar",
        border_style="green",
    ))


@click.command("check-tables")
@with_appcontext
def check_tables_command():
    """Probe every known table."""
    table = Table(title="Tabellen")
    table.add_column("Tabel")
    table.add_column("Status")
    table.add_column("Detail")

    failures = 0
    for name, result in check_tables(get_db()).items():
        if result["ok"]:
            example = result["example"]
            table.add_row(name, "[green]ok[/green]", f"id {example['id']}" if example else "leeg")
        else:
            failures += 1
            table.add_row(name, "[red]fout[/red]", result["error"])

    console.print(table)
    console.print(f"{failures} tabel(len) ontbreken." if failures else "Alle tabellen aanwezig.")


@click.command("migrate-offertes")
@with_appcontext
def migrate_offertes_command():
    """Add the quote AI columns to an existing database."""
    added = migrate_offerte_ai(get_db())
    if added:
        console.print(Panel("\n".join(added), title="Kolommen toegevoegd", border_style="green"))
    else:
        console.print("Offerte AI velden zijn al aanwezig.")


@click.command("list-companies")
@click.option("--limit", default=20, show_default=True, type=int)
@with_appcontext
def list_companies_command(limit):
    """Show the most recent companies."""
    rows = fetch_all(
        get_db(),
        "SELECT id, naam, stad, status FROM bedrijven ORDER BY created_at DESC, id DESC LIMIT ?",
        (limit,),
    )
    if not rows:
        console.print("Nog geen bedrijven.")
        return

    table = Table(title="Bedrijven")
    table.add_column("ID", justify="right")
    table.add_column("Naam")
    table.add_column("Stad")
    table.add_column("Status")
    for row in rows:
        table.add_row(str(row["id"]), row["naam"], row["stad"] or "-", row["status"] or "-")
    console.print(table)


def register_cli(app):
    for command in (init_db_command, check_tables_command, migrate_offertes_command, list_companies_command):
        app.cli.add_command(command)
