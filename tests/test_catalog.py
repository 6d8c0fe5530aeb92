from datetime import date, timedelta

import pytest

from conftest import TODAY
from libris.errors import InvalidRequestError, NotFoundError
from libris.models import Caller, Level, Role
from libris.seed import ensure_default_librarian


# --- Catalog ---
def test_add_title(lib):
    title = lib.add_title("  Dune ", "Frank Herbert", "9780441172719", genre="science_fiction",
                          page_count=412, copy_count=3, published_date=date(1965, 8, 1))

    stored = lib.get_title(title.id)
    assert stored.title == "Dune"
    assert stored.genre == "SCIENCE_FICTION"
    assert stored.copy_count == 3
    assert stored.available is True
    assert stored.published_date == date(1965, 8, 1)


def test_title_without_copies_is_unavailable(lib):
    title = lib.add_title("Dune", "Frank Herbert", "9780441172719", copy_count=0)
    assert lib.get_title(title.id).available is False


def test_duplicate_isbn(lib, book):
    with pytest.raises(InvalidRequestError, match="same ISBN"):
        lib.add_title("Dune (reprint)", "Frank Herbert", book.isbn)


def test_negative_page_count(lib):
    with pytest.raises(InvalidRequestError, match="Page count"):
        lib.add_title("Dune", "Frank Herbert", "9780441172719", page_count=-1)


def test_get_unknown_title(lib):
    with pytest.raises(NotFoundError):
        lib.get_title("missing")


def test_search_titles(lib, book):
    lib.add_title("Emma", "Jane Austen", "9780141439587")

    assert [t.title for t in lib.search_titles("herbert")] == ["Dune"]
    assert [t.title for t in lib.search_titles("9780141")] == ["Emma"]
    assert lib.search_titles("tolkien") == []


def test_update_title_fields(lib, book):
    updated = lib.update_title(book.id, title="Dune Messiah", genre="sci-fi")

    stored = lib.get_title(book.id)
    assert updated.title == stored.title == "Dune Messiah"
    assert stored.genre == "SCI-FI"
    assert stored.copy_count == 1


def test_update_without_changes(lib, book):
    with pytest.raises(InvalidRequestError, match="No changes detected"):
        lib.update_title(book.id, title="Dune", copy_count=1)


def test_update_to_existing_isbn(lib, book):
    other = lib.add_title("Emma", "Jane Austen", "9780141439587")
    with pytest.raises(InvalidRequestError, match="same ISBN"):
        lib.update_title(other.id, isbn=book.isbn)


def test_update_copy_count_refreshes_availability(lib, book):
    lib.update_title(book.id, copy_count=0)
    assert lib.get_title(book.id).available is False

    lib.update_title(book.id, copy_count=4)
    stored = lib.get_title(book.id)
    assert stored.copy_count == 4
    assert stored.available is True


def test_withdraw_copy(lib):
    title = lib.add_title("Emma", "Jane Austen", "9780141439587", copy_count=2)

    lib.withdraw_copy(title.id)
    assert lib.get_title(title.id).copy_count == 1
    lib.withdraw_copy(title.id)
    assert lib.get_title(title.id).available is False

    with pytest.raises(InvalidRequestError, match="All copies are currently borrowed"):
        lib.withdraw_copy(title.id)


# --- Accounts ---
def test_register_reader(lib):
    reader = lib.register_reader("Ada Lovelace", "Ada@Libris.TEST")

    assert reader.email == "ada@libris.test"
    assert reader.role is Role.PATRON
    assert reader.score == 0
    assert reader.level is Level.NOVICE
    assert lib.find_reader("ADA@libris.test").id == reader.id


def test_register_duplicate_email(lib, patron):
    with pytest.raises(InvalidRequestError, match="Email already registered"):
        lib.register_reader("Someone Else", patron.email.upper())


@pytest.mark.parametrize("name, email", [("", "a@libris.test"), ("Ada", "  ")])
def test_register_requires_name_and_email(lib, name, email):
    with pytest.raises(InvalidRequestError):
        lib.register_reader(name, email)


def test_unknown_reader(lib):
    with pytest.raises(NotFoundError):
        lib.get_reader("missing")
    with pytest.raises(NotFoundError, match="nobody@libris.test"):
        lib.find_reader("nobody@libris.test")


def test_reader_statistics(lib, librarian, patron, as_patron, book):
    loan = lib.borrow(book.id, patron.email, TODAY - timedelta(days=4), TODAY, caller=librarian)
    lib.return_loan(loan.id, caller=as_patron)

    stats = lib.reader_statistics(patron.id)

    assert stats["email"] == patron.email
    assert stats["score"] == 8
    assert stats["level"] == "NOVICE"
    assert stats["total_returned_books"] == 1
    assert stats["total_reading_days"] == 4
    assert stats["avg_pages_per_day"] == 103.0
    assert stats["avg_return_duration"] == 4.0


def test_reader_statistics_without_returns(lib, patron):
    stats = lib.reader_statistics(patron.id)
    assert stats["avg_pages_per_day"] == 0.0
    assert stats["avg_return_duration"] == 0.0


# --- Loan history ---
def test_patron_sees_own_history(lib, librarian, patron, as_patron, book):
    loan = lib.borrow(book.id, patron.email, TODAY, caller=librarian)

    assert [entry.id for entry in lib.loan_history(patron.id, as_patron)] == [loan.id]
    assert [entry.id for entry in lib.list_loans(as_patron)] == [loan.id]


def test_patron_cannot_see_other_history(lib, patron):
    other = lib.register_reader("Olga Other", "olga@libris.test")
    caller = Caller(role=Role.PATRON, email=other.email)

    with pytest.raises(InvalidRequestError, match="only view their own"):
        lib.loan_history(patron.id, caller)


def test_librarian_sees_every_loan(lib, librarian, patron, book):
    other = lib.register_reader("Olga Other", "olga@libris.test")
    emma = lib.add_title("Emma", "Jane Austen", "9780141439587")
    lib.borrow(book.id, patron.email, TODAY, caller=librarian)
    lib.borrow(emma.id, other.email, TODAY, caller=librarian)

    assert len(lib.list_loans(librarian)) == 2
    assert len(lib.loan_history(other.id, librarian)) == 1


def test_overdue_loans(lib, librarian, patron, book):
    loan = lib.borrow(book.id, patron.email, TODAY - timedelta(days=3),
                      TODAY - timedelta(days=1), caller=librarian)

    assert [entry.id for entry in lib.overdue_loans()] == [loan.id]


# --- Seeding ---
def test_default_librarian_is_created_once(lib):
    first = ensure_default_librarian(lib, email="admin@libris.test", full_name="Admin")
    second = ensure_default_librarian(lib, email="admin@libris.test", full_name="Admin")

    assert first.id == second.id
    assert first.role is Role.LIBRARIAN
    assert len(lib.accounts.list_readers()) == 1
