import os
import json
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape

from .models import CRITERIA, BookDetail, Library

# Environment variable controlling CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "BR_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_book_list(books: List[Any], title: str = "Books") -> None:
    """Print search results in the current output mode.
    - plain: 'id - Title by Authors (year)' lines, or 'No books found.'
    - json: array of book objects
    - rich: table
    """
    mode = get_output_mode()

    if not books:
        print("No books found.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=f"📚 {title}", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Authors", style="white")
        table.add_column("Year", style="white")
        for b in books:
            table.add_row(str(b.id), escape(b.title), escape(b.authors), b.year)
        _console.print(table)
    else:
        for b in books:
            print(f"{b.id} - {b.title} by {b.authors} ({b.year})")


def print_libraries(owner_id: str, libraries: List[Library], titles: Dict[int, str]) -> None:
    mode = get_output_mode()

    if not libraries:
        print(f"No libraries for {owner_id}.")
        return

    if mode == "json":
        print(json.dumps([lib.to_dict() for lib in libraries], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=f"🗂️ Libraries of {escape(owner_id)}", show_lines=True, header_style="bold cyan")
        table.add_column("Name", style="magenta")
        table.add_column("Books", style="white")
        for lib in libraries:
            names = "\n".join(escape(titles.get(b, str(b))) for b in sorted(lib.book_ids))
            table.add_row(escape(lib.name), names)
        _console.print(table)
    else:
        for lib in libraries:
            print(f"{lib.name}: {sorted(lib.book_ids)}")


def _summary_lines(detail: BookDetail) -> List[str]:
    summary = detail.summary
    if summary is None:
        return ["No ratings yet."]
    lines = [f"Ratings: {summary.count}"]
    for criterion in CRITERIA:
        lines.append(f"{criterion}: {summary.means[criterion]:.2f} ({summary.sample_notes[criterion]})")
    lines.append(f"overall: {summary.overall:.2f} ({summary.overall_note})")
    return lines


def print_book_detail(detail: Optional[BookDetail]) -> None:
    """Print a book with its rating summary and the titles suggested with it."""
    mode = get_output_mode()

    if detail is None:
        print("Book not found.")
        return

    book = detail.book
    if mode == "json":
        payload = {
            "book": book.to_dict(),
            "summary": detail.summary.to_dict() if detail.summary else None,
            "recommended": [{"book_id": b.id, "title": b.title, "count": n} for b, n in detail.recommended],
        }
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Title:[/] {escape(book.title)}\n"
            f"[bold]Authors:[/] {escape(book.authors)}\n"
            f"[bold]Year:[/] {escape(book.year)}\n"
            f"[bold]Publisher:[/] {escape(book.publisher)}\n\n"
            + "\n".join(escape(line) for line in _summary_lines(detail))
        )
        _console.print(Panel.fit(content, title=f"📖 Book {book.id}", border_style="blue"))
        if detail.recommended:
            table = Table(title="💡 Suggested by readers", header_style="bold cyan")
            table.add_column("ID", style="magenta", no_wrap=True)
            table.add_column("Title", style="white")
            table.add_column("Times", justify="right")
            for b, n in detail.recommended:
                table.add_row(str(b.id), escape(b.title), str(n))
            _console.print(table)
    else:
        print(f"Title: {book.title}")
        print(f"Authors: {book.authors}")
        print(f"Year: {book.year}")
        for line in _summary_lines(detail):
            print(line)
        for b, n in detail.recommended:
            print(f"Suggested: {b.id} - {b.title} ({n})")
