import json

import pytest
from typer.testing import CliRunner
from unittest.mock import MagicMock

import main
from main import LibraryManager, app
from book import Book
from library import Library, StorageError

runner = CliRunner()


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    monkeypatch.delenv("BOOKS_CLI_OUTPUT", raising=False)


@pytest.fixture
def lib(monkeypatch, redis_library):
    monkeypatch.setattr(LibraryManager, "_instance", redis_library)
    return redis_library


def test_list_no_books(lib):
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_add_and_list(lib):
    result = runner.invoke(app, ["add", "Dune", "Frank Herbert"])
    assert result.exit_code == 0
    assert "Added book 1: Dune by Frank Herbert" in result.stdout

    result = runner.invoke(app, ["list"])
    assert "1 - Dune by Frank Herbert" in result.stdout


def test_list_json_output(lib, monkeypatch):
    lib.add_book(Book("Dune", "Herbert"))
    result = runner.invoke(app, ["--output", "json", "list"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == [{"id": 1, "title": "Dune", "author": "Herbert"}]


def test_find_book(lib):
    lib.add_book(Book("Emma", "Jane Austen"))
    result = runner.invoke(app, ["find", "1"])
    assert result.exit_code == 0
    assert "Title: Emma" in result.stdout
    assert "Author: Jane Austen" in result.stdout


def test_find_missing_book(lib):
    result = runner.invoke(app, ["find", "9"])
    assert result.exit_code == 1
    assert "Book not found" in result.stdout


def test_update_book(lib):
    lib.add_book(Book("Dune", "Herbert"))
    result = runner.invoke(app, ["update", "1", "Dune Messiah", "Herbert"])
    assert result.exit_code == 0
    assert lib.find_book(1).title == "Dune Messiah"


def test_remove_book(lib):
    lib.add_book(Book("Dune", "Herbert"))
    result = runner.invoke(app, ["remove", "1"])
    assert result.exit_code == 0
    assert "Book 1 deleted." in result.stdout
    assert lib.list_books() == []


def test_remove_invalid_id(lib):
    result = runner.invoke(app, ["remove", "abc"])
    assert result.exit_code == 1
    assert "Invalid book id" in result.stdout


def test_clear_with_confirmation_flag(lib, fake_redis):
    lib.add_book(Book("Dune", "Herbert"))
    result = runner.invoke(app, ["clear", "--yes"])
    assert result.exit_code == 0
    assert fake_redis.data == {}


def test_clear_aborted(lib):
    lib.add_book(Book("Dune", "Herbert"))
    result = runner.invoke(app, ["clear"], input="n\n")
    assert result.exit_code == 0
    assert "Aborted." in result.stdout
    assert len(lib.list_books()) == 1


def test_clear_refused_for_memory_backend(monkeypatch, memory_library):
    monkeypatch.setattr(LibraryManager, "_instance", memory_library)
    result = runner.invoke(app, ["clear", "--yes"])
    assert result.exit_code == 1


def test_storage_error_exits_nonzero(monkeypatch):
    broken = MagicMock(spec=Library)
    broken.list_books.side_effect = StorageError("Failed to get books from Redis")
    monkeypatch.setattr(LibraryManager, "_instance", broken)

    result = runner.invoke(app, ["list"])
    assert result.exit_code == 1
    assert "Failed to get books from Redis" in result.stdout


def test_stats(lib):
    lib.add_book(Book("Dune", "Herbert"))
    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 0
    assert "Backend: redis" in result.stdout
    assert "Total Books: 1" in result.stdout


def test_serve_runs_uvicorn(monkeypatch):
    run_mock = MagicMock()
    monkeypatch.setattr(main.uvicorn, "run", run_mock)

    result = runner.invoke(app, ["serve", "--port", "9000"])

    assert result.exit_code == 0
    args, kwargs = run_mock.call_args
    assert args == ("api:app",)
    assert kwargs["port"] == 9000
