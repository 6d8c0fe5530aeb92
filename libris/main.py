import os
import subprocess
import sys
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from libris.config import configure_logging, settings
from libris.errors import StoreError
from libris.library import Library
from libris.seed import ensure_default_librarian

console = Console()

app = typer.Typer(help="Libris lending administration")

_state = {"db_file": None}


@app.callback()
def _global_options(
    db_file: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: LIBRIS_DB_FILE)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
):
    """Global options shared by every command."""
    configure_logging(log_level)
    _state["db_file"] = db_file


def _library() -> Library:
    try:
        return Library(_state["db_file"])
    except StoreError as e:
        console.print(f"[bold red]Could not open the library database: {e}[/]")
        raise typer.Exit(code=1)


@app.command("seed")
def cli_seed(
    email: Optional[str] = typer.Option(None, help="Librarian e-mail"),
    name: Optional[str] = typer.Option(None, help="Librarian full name"),
):
    """Create the default librarian account if it is missing."""
    reader = ensure_default_librarian(_library(), email, name)
    console.print(f"Default librarian: {reader.full_name} <{reader.email}>")


@app.command("stats")
def cli_stats():
    """Print the library-wide statistics report."""
    stats = _library().library_statistics()
    console.print(Panel(stats["text_report"].rstrip(), title=settings.app_name, box=box.ROUNDED))


@app.command("overdue")
def cli_overdue():
    """List overdue loans with the overdue ratio."""
    report = _library().overdue_statistics()
    if not report["detailed_overdue_entries"]:
        console.print("No overdue borrows found.")
        return

    table = Table(title="Overdue Borrows", box=box.SIMPLE)
    table.add_column("User")
    table.add_column("Book")
    table.add_column("Borrowed")
    table.add_column("Due")
    table.add_column("Days Overdue", justify="right")
    for entry in report["detailed_overdue_entries"]:
        table.add_row(
            entry["user"], entry["book"], entry["borrow_date"].isoformat(),
            entry["due_date"].isoformat(), str(entry["days_overdue"]),
        )
    console.print(table)
    console.print(
        f"Overdue: {report['overdue_borrows']} of {report['total_borrows']} "
        f"(ratio {report['overdue_ratio']:.2f})"
    )


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default: API_HOST)"),
    port: Optional[int] = typer.Option(None, help="Port (default: API_PORT)"),
):
    """Run the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = port or settings.api_port
    console.print(f"Starting API on http://{host}:{port}/")
    args = [sys.executable, "-m", "uvicorn", "libris.api:app", "--host", host, "--port", str(port)]
    env = dict(os.environ)
    if _state["db_file"]:
        env["LIBRIS_DB_FILE"] = _state["db_file"]
    subprocess.run(args, env=env, check=False)


if __name__ == "__main__":
    app()
