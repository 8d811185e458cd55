import logging
from typing import Optional

import typer
import uvicorn
from rich.console import Console

from book import Book
from config import settings
from library import BookNotFoundError, InvalidBookIdError, Library, StorageError, build_library
from utils.ui_helpers import print_book_result, print_list_result, print_stats_result, set_output_mode

APP_NAME = "Books CLI"

console = Console()
logger = logging.getLogger(__name__)


class LibraryManager:
    """Lazily builds one Library for the configured backend."""
    _instance: Optional[Library] = None

    @classmethod
    def get_instance(cls) -> Library:
        if cls._instance is None:
            cls._instance = build_library(settings)
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        if cls._instance is not None:
            cls._instance.close()
        cls._instance = None


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/] {message}")
    raise typer.Exit(code=1)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# --- Typer CLI ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    if output:
        set_output_mode(output)


@app.command("list")
def cli_list():
    """List every book."""
    try:
        books = LibraryManager.get_instance().list_books()
    except StorageError as e:
        _fail(str(e))
    print_list_result(books)


@app.command("find")
def cli_find(book_id: str):
    """Show one book by id."""
    try:
        book = LibraryManager.get_instance().find_book(book_id)
    except (BookNotFoundError, InvalidBookIdError, StorageError) as e:
        _fail(str(e))
    print_book_result(book)


@app.command("add")
def cli_add(title: str, author: str):
    """Add a book."""
    try:
        book = LibraryManager.get_instance().add_book(Book(title=title, author=author))
    except StorageError as e:
        _fail(str(e))
    print(f"Added book {book.id}: {book.title} by {book.author}")


@app.command("update")
def cli_update(book_id: str, title: str, author: str):
    """Replace title and author of a book."""
    try:
        book = LibraryManager.get_instance().update_book(book_id, Book(title=title, author=author))
    except (BookNotFoundError, InvalidBookIdError, StorageError) as e:
        _fail(str(e))
    print(f"Updated book {book.id}: {book.title} by {book.author}")


@app.command("remove")
def cli_remove(book_id: str):
    """Delete a book by id."""
    try:
        LibraryManager.get_instance().remove_book(book_id)
    except (BookNotFoundError, InvalidBookIdError, StorageError) as e:
        _fail(str(e))
    print(f"Book {book_id} deleted.")


@app.command("clear")
def cli_clear(yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt")):
    """Remove every book from the persistent backend."""
    lib = LibraryManager.get_instance()
    if lib.backend == "memory":
        _fail("The in-memory backend has nothing to clear.")
    if not yes and not typer.confirm(f"Delete all books from {lib.backend}?"):
        print("Aborted.")
        raise typer.Exit()
    try:
        lib.clear()
    except StorageError as e:
        _fail(str(e))
    print(f"{lib.backend} storage cleared.")


@app.command("stats")
def cli_stats():
    """Show backend and cache statistics."""
    try:
        stats = LibraryManager.get_instance().get_statistics()
    except StorageError as e:
        _fail(str(e))
    print_stats_result(stats)


@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, "--host", help="Bind address"),
    port: int = typer.Option(settings.api_port, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Start the HTTP API with uvicorn."""
    setup_logging(settings.log_level)
    logger.info(f"Starting {settings.app_name} on http://{host}:{port}/ ({settings.storage_backend} backend)")
    uvicorn.run("api:app", host=host, port=port, reload=reload, log_level=settings.log_level.lower())


if __name__ == "__main__":
    app()
