import os
import json
from typing import List, Any, Dict
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "BOOKS_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_book_result(book: Any) -> None:
    """Print a single book in the current output mode."""
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps(book.to_dict(), ensure_ascii=False))
    elif mode == "rich":
        content = f"[bold]Title:[/] {book.title}\n[bold]Author:[/] {book.author}"
        _console.print(Panel.fit(content, title=f"📖 Book {book.id}", border_style="green"))
    else:
        print(f"ID: {book.id}")
        print(f"Title: {book.title}")
        print(f"Author: {book.author}")


def print_list_result(books: List[Any]) -> None:
    """Print the book list in the current output mode.
    - plain: 'ID - Title by Author' lines, or 'No books in library.'
    - json: JSON array of id, title, author
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        for b in books:
            table.add_row(str(b.id), b.title, b.author)
        _console.print(table)
    else:
        for b in books:
            print(f"{b.id} - {b.title} by {b.author}")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print backend statistics in the current output mode."""
    mode = get_output_mode()

    total = stats.get("total_books", 0)
    backend = stats.get("backend", "unknown")
    cache = stats.get("cache")

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = f"[bold]Backend:[/] {backend}\n[bold]Total Books:[/] {total}"
        if cache:
            content += f"\n[bold]Cache hit ratio:[/] {cache.get('hit_ratio', 0.0):.2f}"
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        print(f"Backend: {backend}")
        print(f"Total Books: {total}")
        if cache:
            print(f"Cache hits: {cache.get('hits', 0)} misses: {cache.get('misses', 0)}")
