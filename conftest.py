from datetime import date, datetime, timedelta

import pytest

from libris import database
from libris.library import Library
from libris.models import Caller, Role
from libris.scoring import level_for
from libris.stores import ReaderStore

TODAY = date(2025, 3, 10)
NOW = datetime(2025, 3, 10, 12, 0, 0)


class Clock:
    """Mutable stand-in for date.today()."""

    def __init__(self, today: date = TODAY) -> None:
        self.current = today

    def __call__(self) -> date:
        return self.current

    def advance(self, days: int) -> None:
        self.current += timedelta(days=days)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def lib(tmp_path, request, clock):
    # Every test gets its own database file
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    lib = Library(db_file=db_file, today=clock, now=lambda: NOW)
    yield lib
    lib.close()


@pytest.fixture
def librarian(lib):
    reader = lib.register_reader("Lena Librarian", "lena@libris.test", role=Role.LIBRARIAN)
    return Caller(role=Role.LIBRARIAN, email=reader.email)


@pytest.fixture
def patron(lib):
    return lib.register_reader("Pat Reader", "pat@libris.test")


@pytest.fixture
def as_patron(patron):
    return Caller(role=Role.PATRON, email=patron.email)


@pytest.fixture
def book(lib):
    return lib.add_title("Dune", "Frank Herbert", "9780441172719", genre="SCIENCE_FICTION",
                         page_count=412, copy_count=1)


def set_score(lib: Library, email: str, score: int) -> None:
    """Put a reader at a given score, as if earned through earlier lending."""
    with database.transaction(lib.db_file) as conn:
        readers = ReaderStore(conn)
        reader = readers.find_by_email(email)
        reader.score = score
        reader.level = level_for(score)
        readers.save(reader)
