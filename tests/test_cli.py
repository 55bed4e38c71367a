import json
import os

import pytest
from typer.testing import CliRunner

from bookrecommender import main as main_module
from bookrecommender.config import settings
from bookrecommender.main import ServiceManager, app
from bookrecommender.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path, books_csv, monkeypatch):
    """File backend over a temporary data directory."""
    monkeypatch.setattr(settings, "backend", "file")
    monkeypatch.setattr(settings, "data_dir", str(tmp_path))
    monkeypatch.setattr(settings, "books_file", os.path.basename(books_csv))
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    ServiceManager.reset()
    yield tmp_path
    ServiceManager.reset()


def test_search_by_title(cli_env):
    result = runner.invoke(app, ["search", "--title", "rosa"])
    assert result.exit_code == 0
    assert "1 - Il nome della rosa by Umberto Eco (1980)" in result.stdout


def test_search_by_author_and_year(cli_env):
    result = runner.invoke(app, ["search", "--author", "eco", "--year", "1988"])
    assert result.exit_code == 0
    assert "Il pendolo di Foucault" in result.stdout
    assert "Il nome della rosa" not in result.stdout


def test_search_no_results(cli_env):
    result = runner.invoke(app, ["search", "--title", "manzoni"])
    assert result.exit_code == 0
    assert "No books found." in result.stdout


def test_search_needs_a_criterion(cli_env):
    result = runner.invoke(app, ["search"])
    assert result.exit_code == 2


def test_search_json_output(cli_env):
    result = runner.invoke(app, ["--output", "json", "search", "--author", "calvino"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout.strip().splitlines()[-1])
    assert [b["id"] for b in payload] == [4, 3]


def test_show_book_with_ratings(cli_env):
    service = ServiceManager.get_instance()
    service.libraries.create_library("u1", "classics", [1, 2]).unwrap()
    service.ratings.rate_book("u1", "classics", 1, [5, 4, 5, 4, 5], ["a", "b", "c", "d", "e"], "f").unwrap()
    service.recommendations.recommend("u1", "classics", 1, [2]).unwrap()

    result = runner.invoke(app, ["show", "1"])
    assert result.exit_code == 0
    assert "Title: Il nome della rosa" in result.stdout
    assert "Ratings: 1" in result.stdout
    assert "overall: 4.60 (f)" in result.stdout
    assert "Suggested: 2 - Il pendolo di Foucault (1)" in result.stdout


def test_show_unknown_book(cli_env):
    result = runner.invoke(app, ["show", "999"])
    assert result.exit_code == 1
    assert "Book 999 not found." in result.stdout


def test_libraries(cli_env):
    ServiceManager.get_instance().libraries.create_library("u1", "classics", [2, 1]).unwrap()
    result = runner.invoke(app, ["libraries", "u1"])
    assert result.exit_code == 0
    assert "classics: [1, 2]" in result.stdout

    empty = runner.invoke(app, ["libraries", "u2"])
    assert "No libraries for u2." in empty.stdout


def test_import_books(cli_env, books_csv):
    db_file = str(cli_env / "import.db")
    result = runner.invoke(app, ["import-books", books_csv, "--db", db_file])
    assert result.exit_code == 0
    assert "Imported 5 of 5 books" in result.stdout

    again = runner.invoke(app, ["import-books", books_csv, "--db", db_file])
    assert "Imported 0 of 5 books" in again.stdout


def test_import_books_missing_file(cli_env):
    result = runner.invoke(app, ["import-books", str(cli_env / "missing.csv")])
    assert result.exit_code == 1
    assert "File not found" in result.stdout


def test_serve_launches_uvicorn(cli_env, monkeypatch):
    calls = []
    monkeypatch.setattr(main_module.subprocess, "run", lambda args, check=False: calls.append(args))
    result = runner.invoke(app, ["serve", "--port", "9001"])
    assert result.exit_code == 0
    assert calls and "bookrecommender.api:app" in calls[0]
    assert "9001" in calls[0]
