from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from libris import main
from libris.library import Library
from libris.main import app
from libris.models import Caller, Role

runner = CliRunner()


@pytest.fixture
def db_file(tmp_path):
    return str(tmp_path / "cli.db")


def test_seed_creates_librarian_once(db_file):
    args = ["--db", db_file, "seed", "--email", "admin@libris.test", "--name", "Admin"]

    first = runner.invoke(app, args)
    second = runner.invoke(app, args)

    assert first.exit_code == 0
    assert "Default librarian: Admin <admin@libris.test>" in first.stdout
    assert second.exit_code == 0
    assert len(Library(db_file).accounts.list_readers()) == 1


def test_stats_prints_report(db_file):
    Library(db_file).add_title("Dune", "Frank Herbert", "9780441172719", genre="SCIENCE_FICTION")

    result = runner.invoke(app, ["--db", db_file, "stats"])

    assert result.exit_code == 0
    assert "LIBRARY STATISTICS REPORT" in result.stdout
    assert "SCIENCE_FICTION (1)" in result.stdout


def test_overdue_when_nothing_is_late(db_file):
    result = runner.invoke(app, ["--db", db_file, "overdue"])

    assert result.exit_code == 0
    assert "No overdue borrows found." in result.stdout


def test_overdue_lists_late_loans(db_file):
    lib = Library(db_file)
    title = lib.add_title("Dune", "Frank Herbert", "9780441172719")
    lib.register_reader("Pat Reader", "pat@libris.test")
    today = date.today()
    lib.borrow(title.id, "pat@libris.test", today - timedelta(days=5), today - timedelta(days=2),
               caller=Caller(role=Role.LIBRARIAN, email="admin@libris.test"))

    result = runner.invoke(app, ["--db", db_file, "overdue"])

    assert result.exit_code == 0
    assert "pat@libris.test" in result.stdout
    assert "Overdue: 1 of 1 (ratio 1.00)" in result.stdout


def test_serve_runs_uvicorn(db_file, monkeypatch):
    run_mock = MagicMock()
    monkeypatch.setattr(main.subprocess, "run", run_mock)

    result = runner.invoke(app, ["--db", db_file, "serve", "--host", "127.0.0.1", "--port", "9001"])

    assert result.exit_code == 0
    assert "Starting API on http://127.0.0.1:9001/" in result.stdout
    args, kwargs = run_mock.call_args
    assert args[0][-5:] == ["libris.api:app", "--host", "127.0.0.1", "--port", "9001"]
    assert kwargs["env"]["LIBRIS_DB_FILE"] == db_file
