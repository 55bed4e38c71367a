import logging
import os
import subprocess
import sys
from typing import Optional, Tuple

import typer
from rich.console import Console

from . import database
from .config import settings
from .records import read_catalog
from .service import BookRecommenderService, build_service
from .ui_helpers import print_book_detail, print_book_list, print_libraries, set_output_mode

APP_NAME = "Book Recommender CLI"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

console = Console()
logger = logging.getLogger(__name__)


class ServiceManager:
    """Lazily built service, rebuilt when the storage settings change."""

    _instance: Optional[BookRecommenderService] = None
    _snapshot: Optional[Tuple[str, str, str, str]] = None

    @classmethod
    def _current(cls) -> Tuple[str, str, str, str]:
        return (settings.backend, settings.data_dir, settings.books_file, settings.db_file)

    @classmethod
    def get_instance(cls) -> BookRecommenderService:
        current = cls._current()
        if cls._instance is None or cls._snapshot != current:
            if cls._instance is not None:
                cls._instance.close()
            cls._instance = build_service(settings)
            cls._snapshot = current
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        if cls._instance is not None:
            cls._instance.close()
        cls._instance = None
        cls._snapshot = None


# --- Typer CLI Application ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
):
    """Global CLI options (output mode, verbosity)."""
    level = logging.DEBUG if verbose or settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if output:
        set_output_mode(output)


@app.command("search")
def cli_search(
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Title substring"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Author substring"),
    year: Optional[str] = typer.Option(None, "--year", "-y", help="Publication year (requires --author)"),
):
    """Search the catalog by title, by author, or by author and year."""
    catalog = ServiceManager.get_instance().catalog
    if title is not None:
        books = catalog.search_by_title(title)
    elif author is not None and year is not None:
        books = catalog.search_by_author_and_year(author, year)
    elif author is not None:
        books = catalog.search_by_author(author)
    else:
        print("Give --title or --author.")
        raise typer.Exit(code=2)
    print_book_list(books, title="Search results")


@app.command("show")
def cli_show(book_id: int = typer.Argument(..., help="Catalog id of the book")):
    """Show a book with its rating summary and reader suggestions."""
    result = ServiceManager.get_instance().aggregation.book_detail(book_id)
    if not result.ok:
        print(result.error.message)
        raise typer.Exit(code=1)
    print_book_detail(result.value)


@app.command("libraries")
def cli_libraries(owner: str = typer.Argument(..., help="User id of the owner")):
    """List the libraries of a user."""
    service = ServiceManager.get_instance()
    libraries = service.libraries.list_libraries(owner)
    titles = {book.id: book.title for lib in libraries for book in map(service.catalog.get, lib.book_ids) if book}
    print_libraries(owner, libraries, titles)


@app.command("import-books")
def cli_import_books(
    csv_file: str = typer.Argument(..., help="Catalog CSV to load"),
    db_file: Optional[str] = typer.Option(None, "--db", help="Target sqlite file (default: configured one)"),
):
    """Load a catalog CSV into the sqlite Libri table."""
    if not os.path.exists(csv_file):
        print(f"File not found: {csv_file}")
        raise typer.Exit(code=1)
    target = db_file or os.path.join(settings.data_dir, settings.db_file)
    database.initialize_database(target)
    with open(csv_file, "r", encoding="utf-8") as f:
        books = list(read_catalog(f))
    inserted = database.import_books(books, target)
    ServiceManager.reset()
    print(f"Imported {inserted} of {len(books)} books into {target}")


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Start the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    console.print(f"[green]Starting API on http://{host}:{port}/[/]")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "bookrecommender.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args, check=False)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not launch uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
